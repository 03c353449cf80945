"""Research LLM client: one research prompt in, one JSON-bearing reply out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from clinmetrics.core.llm.provider import LLMProvider
from clinmetrics.core.llm.system_prompt import (
    RESPONSE_FORMAT_INSTRUCTIONS,
    build_full_system_prompt,
)

logger = logging.getLogger(__name__)

# Providers whose calls stay inside this process.
LOCAL_PROVIDERS = frozenset({"mock"})


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    truncated: bool = False


class ResearchLLMClient:
    """Sends patient research prompts under the clinical research system prompt.

    Provider exceptions propagate; the threshold provider decides what a
    failed call means.
    """

    def __init__(
        self,
        provider: LLMProvider,
        provider_name: str = "",
        *,
        max_tokens: int = 2048,
        temperature: float = 0.1,
    ) -> None:
        self.provider = provider
        self.provider_name = provider_name or type(provider).__name__.lower()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._system_prompt = build_full_system_prompt(RESPONSE_FORMAT_INSTRUCTIONS)

    @property
    def discloses_data(self) -> bool:
        """Whether prompts sent through this client leave the process."""
        return self.provider_name not in LOCAL_PROVIDERS

    async def invoke(self, user_message: str) -> LLMResponse:
        reply = await self.provider.generate(
            self._system_prompt,
            user_message,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            json_output=True,
        )

        logger.info(
            "Research LLM call: provider=%s model=%s tokens=%d+%d latency=%.0fms",
            self.provider_name,
            reply.model,
            reply.input_tokens,
            reply.output_tokens,
            reply.latency_ms,
        )
        if reply.truncated:
            logger.warning(
                "Research reply hit the %d-token limit (stop_reason=%s)",
                self.max_tokens,
                reply.stop_reason,
            )

        return LLMResponse(
            content=reply.content,
            model=reply.model,
            usage={"input_tokens": reply.input_tokens, "output_tokens": reply.output_tokens},
            latency_ms=reply.latency_ms,
            truncated=reply.truncated,
        )
