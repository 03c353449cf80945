"""Research LLM provider interface and factory.

A provider turns one (system, user) message pair into a ProviderResponse.
Threshold research only ever needs a single-turn completion, so there is
no chat history or tool-use surface here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

# Model used when settings leave the model blank.
DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
    "mock": "mock",
}

# Stop reasons meaning the reply hit the token ceiling.
_TRUNCATION_REASONS = frozenset({"max_tokens", "length"})


@dataclass
class ProviderResponse:
    """One completion from a research LLM."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    latency_ms: float = 0.0
    stop_reason: str = ""

    @property
    def truncated(self) -> bool:
        """True when the reply was cut off (a truncated JSON reply will not parse)."""
        return self.stop_reason in _TRUNCATION_REASONS


@runtime_checkable
class LLMProvider(Protocol):
    async def generate(
        self,
        system_message: str,
        user_message: str,
        *,
        max_tokens: int = 2048,
        temperature: float = 0.1,
        json_output: bool = False,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
    timeout_s: float = 30.0,
) -> LLMProvider:
    """Build the research provider registered under ``provider_name``.

    Args:
        provider_name: One of ``DEFAULT_MODELS``.
        api_key: Credential for the hosted providers (ignored by mock).
        model: Model override; blank selects the provider default.
        timeout_s: Per-request timeout handed to the SDK client.

    Raises:
        ValueError: For an unregistered provider name.
    """
    if provider_name not in DEFAULT_MODELS:
        raise ValueError(
            f"Unknown LLM provider: {provider_name!r} "
            f"(expected one of: {', '.join(DEFAULT_MODELS)})"
        )
    model = model or DEFAULT_MODELS[provider_name]

    if provider_name == "anthropic":
        from clinmetrics.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model, timeout_s=timeout_s)
    if provider_name == "openai":
        from clinmetrics.core.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model, timeout_s=timeout_s)

    from clinmetrics.core.llm.providers.mock import MockProvider

    return MockProvider()
