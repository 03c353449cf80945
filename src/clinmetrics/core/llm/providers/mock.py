"""Deterministic in-process provider for tests and offline runs."""

from __future__ import annotations

import asyncio

from clinmetrics.core.llm.provider import ProviderResponse


class MockProvider:
    """Returns ``response_content`` (or raises ``error``) without any network I/O.

    The last request is kept on the instance for assertions; ``delay_s``
    holds each call open so tests can overlap concurrent requests.
    """

    def __init__(
        self,
        response_content: str = "Mock LLM response.",
        error: Exception | None = None,
        delay_s: float = 0.0,
        stop_reason: str = "end_turn",
    ) -> None:
        self.response_content = response_content
        self.error = error
        self.delay_s = delay_s
        self.stop_reason = stop_reason
        self.last_system_message = ""
        self.last_user_message = ""
        self.last_json_output = False
        self.call_count = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        *,
        max_tokens: int = 2048,
        temperature: float = 0.1,
        json_output: bool = False,
    ) -> ProviderResponse:
        self.call_count += 1
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.last_json_output = json_output
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            stop_reason=self.stop_reason,
        )
