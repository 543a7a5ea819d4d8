"""Async chat completion adapter using httpx.

Speaks the OpenAI-compatible ``/chat/completions`` shape used by DeepSeek.
Every failure mode (transport, non-2xx, bad JSON, no choices, no content)
surfaces as a single ``CompletionError``.
"""

from __future__ import annotations

import time
from typing import Any, TypedDict

import httpx

from ..config import ConfigError, Settings
from .transcript.protocol import Message


class CompletionError(Exception):
    pass


class CompletionConfigurationError(CompletionError, ConfigError):
    pass


class CompletionResult(TypedDict):
    content: str
    tokens_in: int
    tokens_out: int
    tokens_total: int
    model: str
    duration_ms: int


def _token_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


class CompletionClient:
    def __init__(
        self,
        api_key: str,
        *,
        api_url: str,
        model: str,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise CompletionConfigurationError("API key is required for the completion client")
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout_s = timeout_s
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        return cls(
            settings.require_api_key(),
            api_url=settings.api_url,
            model=settings.model,
            timeout_s=float(settings.request_timeout_s),
        )

    async def complete(self, messages: list[Message]) -> CompletionResult:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        }

        start_ms = int(time.time() * 1000)

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s), transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {self.api_key}",
                    },
                )
            except httpx.HTTPError as exc:
                raise CompletionError(f"Completion request failed: {exc}") from exc

        duration_ms = int(time.time() * 1000) - start_ms

        if not response.is_success:
            body = response.text[:500]
            raise CompletionError(f"API error: status {response.status_code}: {body}")

        try:
            data = response.json()
        except ValueError as exc:
            raise CompletionError(f"Malformed completion response: {exc}") from exc
        if not isinstance(data, dict):
            raise CompletionError("Completion response JSON is not an object")

        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise CompletionError("No response from API")
        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message") if isinstance(first.get("message"), dict) else {}
        content = message.get("content")
        if not isinstance(content, str) or not content:
            raise CompletionError("No content in completion response")

        # usage is informational only; a malformed block must not cost the reply
        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        tokens_in = _token_count(usage.get("prompt_tokens"))
        tokens_out = _token_count(usage.get("completion_tokens"))
        total = usage.get("total_tokens")
        model = data.get("model")

        return CompletionResult(
            content=content,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            tokens_total=_token_count(total) if total is not None else tokens_in + tokens_out,
            model=model if isinstance(model, str) and model else self.model,
            duration_ms=duration_ms,
        )
