"""Anthropic Messages API provider for threshold research."""

from __future__ import annotations

import time

from clinmetrics.core.llm.provider import DEFAULT_MODELS, ProviderResponse


class AnthropicProvider:
    """Claude via ``anthropic.AsyncAnthropic``.

    The Messages API has no JSON mode; ``json_output`` is accepted for
    interface parity and the system prompt carries the format contract.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODELS["anthropic"],
        timeout_s: float = 30.0,
    ) -> None:
        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_s)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        *,
        max_tokens: int = 2048,
        temperature: float = 0.1,
        json_output: bool = False,
    ) -> ProviderResponse:
        start = time.monotonic()
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_message,
            messages=[{"role": "user", "content": user_message}],
        )
        latency_ms = (time.monotonic() - start) * 1000

        # Research replies are plain text; skip any non-text blocks.
        text = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
        return ProviderResponse(
            content=text,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            model=message.model or self.model,
            latency_ms=latency_ms,
            stop_reason=message.stop_reason or "",
        )
