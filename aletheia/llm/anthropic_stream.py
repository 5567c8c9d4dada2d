"""Anthropic-style messages streaming adapter."""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from aletheia.chat.errors import ProviderStreamError

from .http_source import (
    DEFAULT_TIMEOUT_SECONDS,
    SseFragmentSource,
    decode_event_payload,
)

if typ.TYPE_CHECKING:
    import httpx

    from .sse import SseEvent

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.2


def _text_of(value: object) -> str | None:
    if not isinstance(value, cabc.Mapping):
        return None
    text = typ.cast("cabc.Mapping[str, object]", value).get("text")
    return text if isinstance(text, str) else None


class AnthropicStreamSource(SseFragmentSource):
    """Fragment source for ``POST /v1/messages`` with ``stream=true``.

    Text arrives in ``content_block_delta`` events (and occasionally inline
    in ``content_block_start``); ``message_stop`` ends the stream and an
    ``error`` event breaks it.
    """

    provider_name: typ.ClassVar[str] = "anthropic"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        super().__init__(
            base_url=base_url, api_key=api_key, client=client, timeout=timeout
        )
        self._max_tokens = max_tokens
        self._temperature = temperature

    def build_request(self, model: str, prompt: str) -> httpx.Request:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return self._client.build_request(
            "POST",
            f"{self._base_url}/v1/messages",
            json={
                "model": model,
                "stream": True,
                "max_tokens": self._max_tokens,
                "temperature": self._temperature,
                "messages": [
                    {"role": "user", "content": [{"type": "text", "text": prompt}]}
                ],
            },
            headers=headers,
        )

    def is_terminal(self, event: SseEvent) -> bool:
        return event.event == "message_stop"

    def extract_fragment(self, event: SseEvent) -> str | None:
        payload = decode_event_payload(event, self.provider_name)
        match payload.get("type", event.event):
            case "message_stop":
                return None
            case "error":
                error = payload.get("error")
                detail = (
                    typ.cast("cabc.Mapping[str, object]", error).get("message")
                    if isinstance(error, cabc.Mapping)
                    else None
                )
                msg = f"anthropic stream error: {detail or 'unknown'}"
                raise ProviderStreamError(msg)
            case "content_block_delta":
                return _text_of(payload.get("delta"))
            case "content_block_start":
                return _text_of(payload.get("content_block"))
            case _:
                return None


__all__ = ("AnthropicStreamSource",)
