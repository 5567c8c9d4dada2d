"""Streaming LLM ports and provider adapters."""

from __future__ import annotations

from .anthropic_stream import AnthropicStreamSource
from .factory import build_fragment_source, fragment_source_from_env
from .http_source import SseFragmentSource
from .openai_stream import (
    OpenAIStreamSource,
    extract_delta_text,
    is_openai_stream_chunk,
)
from .ports import FragmentSource
from .sse import SseEvent, iter_sse_events, open_event_stream

__all__: list[str] = [
    "AnthropicStreamSource",
    "FragmentSource",
    "OpenAIStreamSource",
    "SseEvent",
    "SseFragmentSource",
    "build_fragment_source",
    "extract_delta_text",
    "fragment_source_from_env",
    "is_openai_stream_chunk",
    "iter_sse_events",
    "open_event_stream",
]
