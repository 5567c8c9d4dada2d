"""OpenAI-style chat completions streaming adapter.

Chunks are validated at the adapter boundary before their delta text is
handed to the generator.

Examples
--------
>>> source = OpenAIStreamSource(base_url="https://api.openai.com", api_key="sk")
>>> fragments = await source.open_stream("gpt-4o-mini", "Hello")
"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from aletheia.chat.errors import ProviderStreamError

from .http_source import SseFragmentSource, decode_event_payload

if typ.TYPE_CHECKING:
    import httpx

    from .sse import SseEvent

DONE_SENTINEL = "[DONE]"
_INVALID_CHUNK_MESSAGE = (
    "Invalid OpenAI stream chunk. Expected a choices list whose first entry "
    "carries a delta mapping."
)


def _is_string_keyed_mapping(value: object) -> bool:
    """Check whether a value is a mapping with string keys."""
    return isinstance(value, cabc.Mapping) and all(
        isinstance(candidate_key, str) for candidate_key in value
    )


def is_openai_stream_chunk(payload: object) -> bool:
    """Validate the shape of one streamed chat completion chunk.

    Parameters
    ----------
    payload : object
        Candidate chunk payload.

    Returns
    -------
    bool
        ``True`` when ``choices`` is a list that is empty or whose first
        entry has a ``delta`` mapping with optional string ``content``.
    """
    if not _is_string_keyed_mapping(payload):
        return False
    choices = typ.cast("cabc.Mapping[str, object]", payload).get("choices")
    if not isinstance(choices, list):
        return False
    if not choices:
        return True
    first = choices[0]
    if not _is_string_keyed_mapping(first):
        return False
    delta = typ.cast("cabc.Mapping[str, object]", first).get("delta")
    if delta is None:
        return True
    if not _is_string_keyed_mapping(delta):
        return False
    content = typ.cast("cabc.Mapping[str, object]", delta).get("content")
    return isinstance(content, (str, type(None)))


def extract_delta_text(payload: cabc.Mapping[str, object]) -> str | None:
    """Return ``choices[0].delta.content`` from a validated chunk."""
    choices = typ.cast("list[object]", payload["choices"])
    if not choices:
        return None
    first = typ.cast("cabc.Mapping[str, object]", choices[0])
    delta = first.get("delta")
    if delta is None:
        return None
    content = typ.cast("cabc.Mapping[str, object]", delta).get("content")
    return typ.cast("str | None", content)


class OpenAIStreamSource(SseFragmentSource):
    """Fragment source for ``POST /v1/chat/completions`` with ``stream=true``."""

    provider_name: typ.ClassVar[str] = "openai"

    def build_request(self, model: str, prompt: str) -> httpx.Request:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return self._client.build_request(
            "POST",
            f"{self._base_url}/v1/chat/completions",
            json={
                "model": model,
                "stream": True,
                "messages": [{"role": "user", "content": prompt}],
            },
            headers=headers,
        )

    def is_terminal(self, event: SseEvent) -> bool:
        return event.data.strip() == DONE_SENTINEL

    def extract_fragment(self, event: SseEvent) -> str | None:
        payload = decode_event_payload(event, self.provider_name)
        if not is_openai_stream_chunk(payload):
            raise ProviderStreamError(_INVALID_CHUNK_MESSAGE)
        return extract_delta_text(payload)


__all__ = ("OpenAIStreamSource", "extract_delta_text", "is_openai_stream_chunk")
