"""OpenAI Chat Completions provider for threshold research."""

from __future__ import annotations

import time

from clinmetrics.core.llm.provider import DEFAULT_MODELS, ProviderResponse


class OpenAIProvider:
    """GPT via ``openai.AsyncOpenAI``; ``json_output`` enables JSON-object mode."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODELS["openai"],
        timeout_s: float = 30.0,
    ) -> None:
        import openai

        self.client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout_s)
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
        extra = {"response_format": {"type": "json_object"}} if json_output else {}

        start = time.monotonic()
        completion = await self.client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": user_message},
            ],
            **extra,
        )
        latency_ms = (time.monotonic() - start) * 1000

        if not completion.choices:
            return ProviderResponse(content="", model=self.model, latency_ms=latency_ms)

        choice = completion.choices[0]
        usage = completion.usage
        return ProviderResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=completion.model or self.model,
            latency_ms=latency_ms,
            stop_reason=choice.finish_reason or "",
        )
