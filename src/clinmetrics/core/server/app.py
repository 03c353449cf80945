"""Clinmetrics MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP

from clinmetrics.core.audit.logger import AuditLogger
from clinmetrics.core.cache.bounded import BoundedCache
from clinmetrics.core.config.settings import Settings, get_settings
from clinmetrics.core.llm.client import LOCAL_PROVIDERS, ResearchLLMClient
from clinmetrics.core.llm.provider import create_provider
from clinmetrics.core.storage.database import BiometricsDatabase, DatabaseError
from clinmetrics.core.storage.encryption import EncryptionError, FieldEncryptor
from clinmetrics.core.storage.repository import BiometricsRepository
from clinmetrics.domains.biometrics.domain_logic.analyzer import BiometricsAnalyzer
from clinmetrics.domains.biometrics.domain_logic.threshold_provider import ThresholdProvider
from clinmetrics.domains.biometrics.prompts.report_prompts import register_biometrics_prompts
from clinmetrics.domains.biometrics.resources.metrics import register_biometrics_resources
from clinmetrics.domains.biometrics.tools.physician_report_tools import (
    register_physician_report_tools,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "Clinmetrics Biometrics"
SERVER_VERSION = "0.1.0"


def build_research_client(settings: Settings) -> ResearchLLMClient | None:
    """Research LLM client for the configured provider, or None if unconfigured."""
    api_key, model = settings.research_credentials()
    if settings.llm_provider not in LOCAL_PROVIDERS and not api_key:
        logger.warning(
            "No API key configured for provider '%s'; "
            "threshold research disabled, using default thresholds",
            settings.llm_provider,
        )
        return None

    provider = create_provider(
        provider_name=settings.llm_provider,
        api_key=api_key,
        model=model,
        timeout_s=settings.research_timeout_s,
    )
    return ResearchLLMClient(
        provider=provider,
        provider_name=settings.llm_provider,
        max_tokens=settings.research_max_tokens,
        temperature=settings.research_temperature,
    )


def build_threshold_provider(settings: Settings) -> ThresholdProvider:
    return ThresholdProvider(
        build_research_client(settings),
        cache=BoundedCache(
            settings.threshold_cache_max_entries,
            ttl_s=settings.threshold_cache_ttl_s,
        ),
        privacy_mode=settings.default_privacy_mode,
        timeout_s=settings.research_timeout_s,
    )


def create_app(
    *,
    repository_override: BiometricsRepository | None = None,
    audit_logger_override: AuditLogger | None = None,
    threshold_provider_override: ThresholdProvider | None = None,
) -> FastMCP:
    """Create and configure the Clinmetrics MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the threshold provider (research LLM + cache + fallback)
    3. Initializes the encrypted biometrics store and audit log, if configured
    4. Registers all tools, resources, and prompts
    """
    settings = get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Longitudinal biometrics analysis for physicians. Records per-visit "
            "measurements and generates reports with threshold breaches, trajectory "
            "alerts, cross-domain correlations and referral recommendations."
        ),
    )

    # --- Threshold research ---
    if threshold_provider_override is not None:
        threshold_provider = threshold_provider_override
    else:
        threshold_provider = build_threshold_provider(settings)
    analyzer = BiometricsAnalyzer(threshold_provider)

    # --- Encrypted storage (biometrics store) ---
    repository: BiometricsRepository | None = None
    audit_logger: AuditLogger | None = audit_logger_override
    if repository_override is not None:
        repository = repository_override
    elif settings.storage_enabled:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            database = BiometricsDatabase(settings.db_path)
            database.initialize()
            repository = BiometricsRepository(database, encryptor)
            if encryptor.key_count > 1:
                repository.rotate_encryption()
            if audit_logger is None:
                audit_logger = AuditLogger(database)
            logger.info(
                "Biometrics store initialized: %s (schema v%d)",
                settings.db_path,
                database.get_schema_version(),
            )
        except (EncryptionError, DatabaseError) as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; records will not be stored")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; running without persistence. "
            "Set ENCRYPTION_KEY to enable the biometrics store."
        )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        cache_stats = threshold_provider.cache.stats
        status: dict[str, Any] = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "llm_provider": threshold_provider.provider_name,
            "research_enabled": threshold_provider.llm_client is not None,
            "privacy_mode": threshold_provider.privacy_mode,
            "storage_enabled": repository is not None,
            "threshold_cache": {
                "entries": len(threshold_provider.cache),
                "hits": cache_stats.hits,
                "misses": cache_stats.misses,
            },
        }
        if repository is not None:
            status["records_stored"] = repository.count()
        return status

    register_physician_report_tools(
        server, analyzer, threshold_provider, repository, audit_logger
    )
    logger.info("Physician report tools registered")

    if repository is not None:
        from clinmetrics.domains.biometrics.tools.biometrics_entry_tools import (
            register_biometrics_entry_tools,
        )

        register_biometrics_entry_tools(server, repository, audit_logger)
        logger.info("Biometrics entry tools registered")

    if audit_logger is not None:
        from clinmetrics.domains.biometrics.tools.audit_tools import register_audit_tools

        register_audit_tools(server, audit_logger)

    # --- Register resources and prompts ---
    register_biometrics_resources(server)
    register_biometrics_prompts(server)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when accessed (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
