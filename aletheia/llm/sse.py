"""Server-sent event plumbing shared by the streaming provider adapters.

``open_event_stream`` sends a request with a streamed body and classifies
opening failures; ``iter_sse_events`` turns response lines into events.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ
from http import HTTPStatus

import httpx

from aletheia.chat.errors import ProviderError, TransientProviderError
from aletheia.logging import get_logger, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

_DEFAULT_EVENT = "message"


@dc.dataclass(frozen=True, slots=True)
class SseEvent:
    """One dispatched server-sent event."""

    event: str
    data: str


async def iter_sse_events(
    lines: cabc.AsyncIterable[str],
) -> cabc.AsyncIterator[SseEvent]:
    """Yield events from an iterable of SSE lines.

    Multi-line ``data`` fields are joined with newlines; comment lines and
    unknown fields are ignored. A trailing event without a blank separator
    is still dispatched.
    """
    event_name = _DEFAULT_EVENT
    data_lines: list[str] = []
    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield SseEvent(event=event_name, data="\n".join(data_lines))
            event_name, data_lines = _DEFAULT_EVENT, []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event_name = value or _DEFAULT_EVENT
    if data_lines:
        yield SseEvent(event=event_name, data="\n".join(data_lines))


def _is_transient_status(status_code: int) -> bool:
    return (
        status_code == HTTPStatus.TOO_MANY_REQUESTS
        or status_code >= HTTPStatus.INTERNAL_SERVER_ERROR
    )


async def open_event_stream(
    client: httpx.AsyncClient,
    request: httpx.Request,
    *,
    provider: str,
) -> httpx.Response:
    """Send ``request`` and return the open streaming response.

    Raises
    ------
    TransientProviderError
        On transport failures, throttling, or server-side errors.
    ProviderError
        On any other non-success status.
    """
    try:
        response = await client.send(request, stream=True)
    except httpx.TransportError as exc:
        msg = f"{provider} stream could not be opened: {exc}"
        raise TransientProviderError(msg) from exc

    if response.is_success:
        return response

    body = (await response.aread()).decode("utf-8", errors="replace")
    await response.aclose()
    log_warning(
        logger,
        "provider.open_rejected provider=%s status=%s body=%s",
        provider,
        response.status_code,
        body[:200],
    )
    msg = f"{provider} returned HTTP {response.status_code}."
    if _is_transient_status(response.status_code):
        raise TransientProviderError(msg)
    raise ProviderError(msg)


__all__ = ("SseEvent", "iter_sse_events", "open_event_stream")
