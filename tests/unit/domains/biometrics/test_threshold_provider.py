"""Tests for ThresholdProvider: research, fallback, caching, coalescing."""

from __future__ import annotations

import asyncio

from clinmetrics.core.cache.bounded import BoundedCache
from clinmetrics.core.llm.client import ResearchLLMClient
from clinmetrics.core.llm.providers.mock import MockProvider
from clinmetrics.domains.biometrics.domain_logic.threshold_provider import ThresholdProvider


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _provider(mock: MockProvider | None, **kwargs) -> ThresholdProvider:
    client = ResearchLLMClient(mock, "mock") if mock is not None else None
    return ThresholdProvider(client, **kwargs)


class TestResearch:
    def test_successful_research(self, research_reply_json, declining_patient_records):
        mock = MockProvider(response_content=research_reply_json)
        provider = _provider(mock)

        result = _run(provider.get_thresholds("p1", declining_patient_records))

        assert result.source == "research"
        assert result.threshold_for("six_minute_walk_distance").high_risk == 350
        assert provider.stats.research_successes == 1
        assert "TARGETED RESEARCH QUERIES" in mock.last_user_message

    def test_prompt_respects_privacy_mode(self, research_reply_json, declining_patient_records):
        mock = MockProvider(response_content=research_reply_json)
        _run(_provider(mock, privacy_mode="strict").get_thresholds(
            "mrn-4471", declining_patient_records
        ))
        assert "mrn-4471" not in mock.last_user_message


class TestFallback:
    def test_no_llm_client(self, declining_patient_records, default_thresholds):
        provider = _provider(None)
        result = _run(provider.get_thresholds("p1", declining_patient_records))
        assert result == default_thresholds
        assert provider.stats.fallbacks == 1
        assert provider.stats.research_calls == 0

    def test_provider_error(self, declining_patient_records, default_thresholds):
        provider = _provider(MockProvider(error=ConnectionError("unreachable")))
        assert _run(provider.get_thresholds("p1", declining_patient_records)) == default_thresholds

    def test_unparseable_reply(self, declining_patient_records, default_thresholds):
        provider = _provider(MockProvider(response_content="Sorry, I cannot help."))
        result = _run(provider.get_thresholds("p1", declining_patient_records))
        assert result.source == "fallback"
        assert provider.stats.research_calls == 1
        assert provider.stats.fallbacks == 1

    def test_timeout(self, declining_patient_records, research_reply_json):
        mock = MockProvider(response_content=research_reply_json, delay_s=0.5)
        provider = _provider(mock, timeout_s=0.01)
        assert _run(provider.get_thresholds("p1", declining_patient_records)).source == "fallback"

    def test_fallback_is_deterministic(self, declining_patient_records):
        first = _run(_provider(None).get_thresholds("p1", declining_patient_records))
        second = _run(_provider(None).get_thresholds("p2", []))
        assert first.to_dict() == second.to_dict()


class TestCaching:
    def test_identical_request_hits_cache(self, research_reply_json, declining_patient_records):
        mock = MockProvider(response_content=research_reply_json)
        provider = _provider(mock)

        first = _run(provider.get_thresholds("p1", declining_patient_records))
        second = _run(provider.get_thresholds("p1", list(reversed(declining_patient_records))))

        assert first is second
        assert mock.call_count == 1
        assert provider.cache.stats.hits == 1

    def test_fallback_is_cached(self, declining_patient_records):
        mock = MockProvider(error=RuntimeError("down"))
        provider = _provider(mock)
        _run(provider.get_thresholds("p1", declining_patient_records))
        _run(provider.get_thresholds("p1", declining_patient_records))
        assert mock.call_count == 1

    def test_different_patient_or_content_misses(self, research_reply_json, declining_patient_records):
        mock = MockProvider(response_content=research_reply_json)
        provider = _provider(mock)

        _run(provider.get_thresholds("p1", declining_patient_records))
        _run(provider.get_thresholds("p2", declining_patient_records))
        _run(provider.get_thresholds("p1", declining_patient_records[:1]))

        assert mock.call_count == 3

    def test_expired_entry_is_researched_again(self, research_reply_json, declining_patient_records):
        now = [0.0]
        cache = BoundedCache(8, ttl_s=60, clock=lambda: now[0])
        mock = MockProvider(response_content=research_reply_json)
        provider = _provider(mock, cache=cache)

        _run(provider.get_thresholds("p1", declining_patient_records))
        now[0] = 61.0
        _run(provider.get_thresholds("p1", declining_patient_records))

        assert mock.call_count == 2


class TestCoalescing:
    def test_concurrent_identical_requests_share_one_call(
        self, research_reply_json, declining_patient_records
    ):
        mock = MockProvider(response_content=research_reply_json, delay_s=0.05)
        provider = _provider(mock)

        async def _concurrent():
            return await asyncio.gather(*(
                provider.get_thresholds("p1", declining_patient_records) for _ in range(5)
            ))

        results = _run(_concurrent())

        assert mock.call_count == 1
        assert all(r is results[0] for r in results)
        assert provider.stats.coalesced == 4

    def test_concurrent_different_patients_not_coalesced(
        self, research_reply_json, declining_patient_records
    ):
        mock = MockProvider(response_content=research_reply_json, delay_s=0.05)
        provider = _provider(mock)

        async def _concurrent():
            return await asyncio.gather(
                provider.get_thresholds("p1", declining_patient_records),
                provider.get_thresholds("p2", declining_patient_records),
            )

        _run(_concurrent())
        assert mock.call_count == 2
