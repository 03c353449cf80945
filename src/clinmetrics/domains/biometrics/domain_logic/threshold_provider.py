"""Patient-specific threshold research with caching and a static fallback.

``ThresholdProvider.get_thresholds`` never raises for research failures:
a missing LLM, a provider error, a timeout or an unparseable reply all
resolve to the packaged default table. Results (fallbacks included) are
cached per (patient, record content) and concurrent identical requests
share one in-flight research call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from clinmetrics.core.cache.bounded import BoundedCache
from clinmetrics.core.privacy.policy import PrivacyMode, validate_privacy_mode
from clinmetrics.domains.biometrics.domain_logic.biometric_models import ResearchResult
from clinmetrics.domains.biometrics.domain_logic.clinical_defaults import (
    get_default_thresholds,
)
from clinmetrics.domains.biometrics.domain_logic.research_parser import (
    ResearchError,
    parse_research_response,
)
from clinmetrics.domains.biometrics.domain_logic.research_prompts import (
    build_research_prompt,
)
from clinmetrics.domains.biometrics.domain_logic.series import records_fingerprint

if TYPE_CHECKING:
    from clinmetrics.core.llm.client import ResearchLLMClient

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


class ResearchUnavailableError(ResearchError):
    """Raised when no research LLM is configured."""


@dataclass
class ProviderStats:
    """Counters for research activity (cache counters live on the cache)."""

    research_calls: int = 0
    research_successes: int = 0
    fallbacks: int = 0
    coalesced: int = 0


class ThresholdProvider:
    """Resolve evidence-based thresholds for a patient's records.

    Args:
        llm_client: Research LLM client, or None to always use defaults.
        cache: Result cache; a fresh 256-entry cache when omitted.
        privacy_mode: What the research prompt may reveal.
        defaults: Fallback table; the packaged YAML table when omitted.
        timeout_s: Upper bound on one research call (None = no bound).
    """

    def __init__(
        self,
        llm_client: ResearchLLMClient | None = None,
        *,
        cache: BoundedCache[CacheKey, ResearchResult] | None = None,
        privacy_mode: PrivacyMode | str = "strict",
        defaults: ResearchResult | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.cache: BoundedCache[CacheKey, ResearchResult] = (
            cache if cache is not None else BoundedCache()
        )
        self.privacy_mode = validate_privacy_mode(privacy_mode)
        self.defaults = defaults if defaults is not None else get_default_thresholds()
        self.timeout_s = timeout_s
        self.stats = ProviderStats()
        self._in_flight: dict[CacheKey, asyncio.Future[ResearchResult]] = {}

    @property
    def discloses_data(self) -> bool:
        """Whether research prompts leave the process."""
        return self.llm_client is not None and self.llm_client.discloses_data

    @property
    def provider_name(self) -> str:
        return self.llm_client.provider_name if self.llm_client is not None else "none"

    async def get_thresholds(self, patient_id: str, records: Sequence[Any]) -> ResearchResult:
        """Thresholds, trajectory rules and references for these records."""
        key: CacheKey = (patient_id, records_fingerprint(records))

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Threshold cache hit (source=%s)", cached.source)
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            self.stats.coalesced += 1
            return await asyncio.shield(pending)

        future: asyncio.Future[ResearchResult] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await self._research_or_fallback(patient_id, records)
        except BaseException:
            # Only cancellation gets here; waiters see it too.
            future.cancel()
            raise
        else:
            self.cache.set(key, result)
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)

    async def _research_or_fallback(
        self, patient_id: str, records: Sequence[Any]
    ) -> ResearchResult:
        try:
            result = await self._research(patient_id, records)
        except ResearchError as exc:
            logger.warning("Threshold research unusable (%s); using default thresholds", exc)
        except asyncio.TimeoutError:
            logger.warning(
                "Threshold research timed out after %.1fs; using default thresholds",
                self.timeout_s,
            )
        except Exception as exc:
            logger.warning(
                "Threshold research failed (%s); using default thresholds",
                type(exc).__name__,
                exc_info=True,
            )
        else:
            self.stats.research_successes += 1
            return result

        self.stats.fallbacks += 1
        return self.defaults

    async def _research(self, patient_id: str, records: Sequence[Any]) -> ResearchResult:
        if self.llm_client is None:
            raise ResearchUnavailableError("no research LLM configured")

        prompt = build_research_prompt(
            patient_id, records, self.defaults, privacy_mode=self.privacy_mode
        )
        self.stats.research_calls += 1
        if self.timeout_s is not None and self.timeout_s > 0:
            response = await asyncio.wait_for(
                self.llm_client.invoke(prompt), timeout=self.timeout_s
            )
        else:
            response = await self.llm_client.invoke(prompt)
        return parse_research_response(response.content, self.defaults)
