"""Tests for the SSE provider adapters using ``httpx.MockTransport``.

Examples
--------
Run the provider adapter tests:

>>> pytest tests/test_llm_providers.py
"""

from __future__ import annotations

import json
import typing as typ

import httpx
import pytest

from aletheia.chat.errors import (
    ProviderError,
    ProviderStreamError,
    TransientProviderError,
)
from aletheia.config import ProviderKind
from aletheia.llm import (
    AnthropicStreamSource,
    OpenAIStreamSource,
    SseEvent,
    SseFragmentSource,
    build_fragment_source,
    fragment_source_from_env,
    is_openai_stream_chunk,
    iter_sse_events,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc


def _sse(*blocks: str) -> bytes:
    return "".join(f"{block}\n\n" for block in blocks).encode("utf-8")


def _openai_chunk(content: str | None) -> str:
    delta = {} if content is None else {"content": content}
    return "data: " + json.dumps({"choices": [{"index": 0, "delta": delta}]})


def _anthropic_event(name: str, payload: dict[str, object]) -> str:
    return f"event: {name}\ndata: {json.dumps({'type': name, **payload})}"


class _Recorder:
    """Mock transport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _stream_response(body: bytes, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=body,
        headers={"content-type": "text/event-stream"},
    )


def _client(recorder: _Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


async def _collect(source: SseFragmentSource, prompt: str = "Hello?") -> list[str]:
    fragments = await source.open_stream("test-model", prompt)
    return [fragment async for fragment in fragments]


async def _lines(values: cabc.Iterable[str]) -> cabc.AsyncIterator[str]:
    for value in values:
        yield value


@pytest.mark.asyncio
async def test_sse_parser_joins_data_and_skips_comments() -> None:
    """Multi-line data is joined and comments are ignored."""
    lines = [
        ": keep-alive",
        "event: update",
        "data: one",
        "data: two",
        "",
        "data: tail",
    ]

    events = [event async for event in iter_sse_events(_lines(lines))]

    assert events == [
        SseEvent(event="update", data="one\ntwo"),
        SseEvent(event="message", data="tail"),
    ], "Expected a named event and a trailing default event."


@pytest.mark.asyncio
async def test_openai_stream_yields_delta_text() -> None:
    """Delta contents are yielded in order and ``[DONE]`` ends the stream."""
    body = _sse(
        _openai_chunk(None),
        _openai_chunk("Hel"),
        _openai_chunk("lo"),
        "data: [DONE]",
        _openai_chunk("ignored"),
    )
    recorder = _Recorder(_stream_response(body))
    async with _client(recorder) as client:
        source = OpenAIStreamSource(
            base_url="https://llm.test/", api_key="sk-test", client=client
        )
        fragments = await _collect(source)

    assert fragments == ["Hel", "lo"], "Expected fragments up to the sentinel."
    [request] = recorder.requests
    assert request.url.path == "/v1/chat/completions", "Expected the chat endpoint."
    assert request.headers["Authorization"] == "Bearer sk-test", "Expected a bearer."
    payload = json.loads(request.content)
    assert payload["stream"] is True, "Expected a streaming request."
    assert payload["messages"] == [{"role": "user", "content": "Hello?"}], (
        "Expected the prompt as a single user message."
    )


@pytest.mark.asyncio
async def test_openai_malformed_chunk_breaks_the_stream() -> None:
    """A chunk without a choices list raises a stream error."""
    body = _sse(_openai_chunk("ok"), 'data: {"choices": "nope"}')
    async with _client(_Recorder(_stream_response(body))) as client:
        source = OpenAIStreamSource(base_url="https://llm.test", client=client)
        fragments = await source.open_stream("test-model", "Hi")
        received = [await anext(fragments)]
        with pytest.raises(ProviderStreamError):
            await anext(fragments)

    assert received == ["ok"], "Expected the valid chunk before the failure."


@pytest.mark.asyncio
async def test_non_json_event_breaks_the_stream() -> None:
    """Event data that is not JSON raises a stream error."""
    body = _sse("data: not-json")
    async with _client(_Recorder(_stream_response(body))) as client:
        source = OpenAIStreamSource(base_url="https://llm.test", client=client)
        with pytest.raises(ProviderStreamError):
            await _collect(source)


@pytest.mark.parametrize(
    ("status_code", "transient"),
    [(429, True), (503, True), (400, False), (401, False)],
)
@pytest.mark.asyncio
async def test_open_failures_are_classified(
    status_code: int,
    transient: bool,  # noqa: FBT001
) -> None:
    """Throttling and server errors are transient; client errors are not."""
    recorder = _Recorder(_stream_response(b'{"error": "nope"}', status_code))
    async with _client(recorder) as client:
        source = OpenAIStreamSource(base_url="https://llm.test", client=client)
        with pytest.raises(ProviderError) as excinfo:
            await source.open_stream("test-model", "Hi")

    assert isinstance(excinfo.value, TransientProviderError) is transient, (
        f"Expected transient={transient} for HTTP {status_code}."
    )
    assert excinfo.value.retryable is transient, "Expected a matching retry hint."


@pytest.mark.asyncio
async def test_transport_errors_are_transient() -> None:
    """Connection failures while opening are retryable."""
    recorder = _Recorder(httpx.ConnectError("connection refused"))
    async with _client(recorder) as client:
        source = OpenAIStreamSource(base_url="https://llm.test", client=client)
        with pytest.raises(TransientProviderError):
            await source.open_stream("test-model", "Hi")


@pytest.mark.asyncio
async def test_anthropic_stream_yields_text_deltas() -> None:
    """Text deltas are yielded and ``message_stop`` ends the stream."""
    body = _sse(
        _anthropic_event("message_start", {"message": {"id": "msg_1"}}),
        _anthropic_event(
            "content_block_start",
            {"index": 0, "content_block": {"type": "text", "text": ""}},
        ),
        _anthropic_event(
            "content_block_delta", {"delta": {"type": "text_delta", "text": "Hi"}}
        ),
        "event: ping\ndata: {\"type\": \"ping\"}",
        _anthropic_event(
            "content_block_delta", {"delta": {"type": "text_delta", "text": " there"}}
        ),
        _anthropic_event("message_stop", {}),
    )
    recorder = _Recorder(_stream_response(body))
    async with _client(recorder) as client:
        source = AnthropicStreamSource(
            base_url="https://llm.test", api_key="ak-test", client=client
        )
        fragments = await _collect(source)

    assert fragments == ["Hi", " there"], "Expected the text deltas in order."
    [request] = recorder.requests
    assert request.url.path == "/v1/messages", "Expected the messages endpoint."
    assert request.headers["x-api-key"] == "ak-test", "Expected the API key header."
    assert request.headers["anthropic-version"] == "2023-06-01", (
        "Expected the pinned API version."
    )


@pytest.mark.asyncio
async def test_anthropic_error_event_breaks_the_stream() -> None:
    """An in-stream error event raises a stream error."""
    body = _sse(_anthropic_event("error", {"error": {"message": "Overloaded"}}))
    async with _client(_Recorder(_stream_response(body))) as client:
        source = AnthropicStreamSource(base_url="https://llm.test", client=client)
        with pytest.raises(ProviderStreamError, match="Overloaded"):
            await _collect(source)


def test_openai_chunk_guard() -> None:
    """The chunk guard accepts empty choices and rejects bad deltas."""
    assert is_openai_stream_chunk({"choices": []}), "Expected empty choices valid."
    assert not is_openai_stream_chunk({"choices": [{"delta": {"content": 3}}]}), (
        "Expected non-string content to be rejected."
    )
    assert not is_openai_stream_chunk(["choices"]), "Expected non-mappings rejected."


@pytest.mark.asyncio
async def test_factory_selects_adapter_and_base_url() -> None:
    """The factory honours the provider kind and a base URL override."""
    recorder = _Recorder(_stream_response(_sse(_anthropic_event("message_stop", {}))))
    async with _client(recorder) as client:
        source = fragment_source_from_env(
            ProviderKind.ANTHROPIC,
            {"LLM_BASE_URL": "https://proxy.test", "LLM_API_KEY": "k"},
            client=client,
        )
        assert isinstance(source, AnthropicStreamSource), "Expected Anthropic."
        assert await _collect(source) == [], "Expected an empty stream."
        default = build_fragment_source(ProviderKind.OPENAI, client=client)

    assert recorder.requests[0].url.host == "proxy.test", "Expected the override."
    assert isinstance(default, OpenAIStreamSource), "Expected the OpenAI adapter."


def test_source_base_requires_provider_hooks() -> None:
    """The shared source cannot be built without the provider hooks."""
    with pytest.raises(TypeError, match="abstract"):
        SseFragmentSource(base_url="https://llm.test")  # type: ignore[abstract]

    class _NoFragments(SseFragmentSource):
        def build_request(self, model: str, prompt: str) -> httpx.Request:
            return httpx.Request("POST", f"{self._base_url}/{model}", json=prompt)

        def is_terminal(self, event: SseEvent) -> bool:
            return True

    with pytest.raises(TypeError, match="extract_fragment"):
        _NoFragments(base_url="https://llm.test")  # type: ignore[abstract]
