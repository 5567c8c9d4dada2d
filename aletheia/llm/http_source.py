"""Shared HTTP lifecycle for SSE-based fragment sources."""

from __future__ import annotations

import abc
import json
import typing as typ

import httpx

from aletheia.chat.errors import ProviderStreamError
from aletheia.logging import get_logger, log_debug

from .sse import SseEvent, iter_sse_events, open_event_stream

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


def decode_event_payload(event: SseEvent, provider: str) -> cabc.Mapping[str, object]:
    """Parse the JSON object carried by ``event``.

    Raises
    ------
    ProviderStreamError
        If the data is not a JSON object.
    """
    try:
        payload = json.loads(event.data)
    except json.JSONDecodeError as exc:
        msg = f"{provider} sent a malformed stream event."
        raise ProviderStreamError(msg) from exc
    if not isinstance(payload, dict):
        msg = f"{provider} sent a non-object stream event."
        raise ProviderStreamError(msg)
    return typ.cast("cabc.Mapping[str, object]", payload)


class SseFragmentSource(abc.ABC):
    """Base class owning an ``httpx.AsyncClient`` and the fragment loop.

    Subclasses build the request and translate each event into an optional
    fragment, returning ``None`` to skip an event. ``is_terminal`` ends the
    stream before the transport does.
    """

    provider_name: typ.ClassVar[str] = "provider"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client:
            await self._client.aclose()

    @abc.abstractmethod
    def build_request(self, model: str, prompt: str) -> httpx.Request:
        """Return the streaming request for one prompt."""

    @abc.abstractmethod
    def is_terminal(self, event: SseEvent) -> bool:
        """Return True when ``event`` ends the stream."""

    @abc.abstractmethod
    def extract_fragment(self, event: SseEvent) -> str | None:
        """Return the text carried by ``event``, if any."""

    async def open_stream(self, model: str, prompt: str) -> cabc.AsyncIterator[str]:
        """Open the provider stream and return its fragment iterator."""
        request = self.build_request(model, prompt)
        response = await open_event_stream(
            self._client, request, provider=self.provider_name
        )
        log_debug(
            logger,
            "provider.stream_opened provider=%s model=%s prompt_chars=%s",
            self.provider_name,
            model,
            len(prompt),
        )
        return self._fragments(response)

    async def _fragments(self, response: httpx.Response) -> cabc.AsyncIterator[str]:
        try:
            async for event in iter_sse_events(response.aiter_lines()):
                if self.is_terminal(event):
                    return
                fragment = self.extract_fragment(event)
                if fragment:
                    yield fragment
        except httpx.HTTPError as exc:
            msg = f"{self.provider_name} stream broke: {exc}"
            raise ProviderStreamError(msg) from exc
        finally:
            await response.aclose()


__all__ = ("DEFAULT_TIMEOUT_SECONDS", "SseFragmentSource", "decode_event_payload")
