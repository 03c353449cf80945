"""Application settings loaded from environment variables (or ``.env``)."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Clinmetrics server configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Server
    # Loopback by default: biometrics are PHI and there is no auth layer.
    clinmetrics_host: str = "127.0.0.1"
    clinmetrics_port: int = Field(8001, ge=1, le=65535)
    clinmetrics_log_level: Literal["debug", "info", "warning", "error"] = "info"
    clinmetrics_transport: Literal["streamable-http", "stdio"] = "streamable-http"
    clinmetrics_allow_insecure_bind: bool = False

    # Research LLM (patient-specific thresholds). Blank model = provider default.
    llm_provider: Literal["anthropic", "openai", "mock"] = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = ""
    openai_api_key: str = ""
    openai_model: str = ""
    research_temperature: float = Field(0.1, ge=0.0, le=2.0)
    research_max_tokens: int = Field(2048, ge=256)
    research_timeout_s: float = Field(30.0, ge=0.0)

    # Threshold cache (0 TTL = entries never expire)
    threshold_cache_max_entries: int = Field(256, ge=1)
    threshold_cache_ttl_s: float = Field(0.0, ge=0.0)

    # Storage: disabled until ENCRYPTION_KEY is set
    db_path: str = "~/.clinmetrics/biometrics.db"
    encryption_key: str = ""

    # Privacy
    default_privacy_mode: Literal["strict", "standard", "explicit"] = "strict"

    @field_validator("clinmetrics_log_level", "clinmetrics_transport", mode="before")
    @classmethod
    def _lowercase(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def storage_enabled(self) -> bool:
        return bool(self.encryption_key)

    def research_credentials(self) -> tuple[str, str]:
        """``(api_key, model)`` for the configured research provider."""
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key, self.anthropic_model
        if self.llm_provider == "openai":
            return self.openai_api_key, self.openai_model
        return "", ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
