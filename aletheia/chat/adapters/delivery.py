"""HTTP connection-callback delivery adapter.

Events are POSTed as JSON to ``{endpoint}/@connections/{target_id}``, the
shape of a websocket gateway's management API. Status mapping: any 2xx is
``delivered``, 410 is ``gone``, and everything else, including transport
errors, is a transient ``failed``.
"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus
from urllib.parse import quote

import httpx

from aletheia.chat.ports import DeliveryStatus
from aletheia.chat.wire import to_wire
from aletheia.logging import get_logger, log_debug, log_warning

if typ.TYPE_CHECKING:
    from aletheia.chat.domain import StreamEvent

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class HttpConnectionDelivery:
    """``DeliveryPort`` that posts wire events to a connection endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers or {}

    async def aclose(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    def url_for(self, target_id: str) -> str:
        """Return the callback URL for one connection."""
        return f"{self._endpoint}/@connections/{quote(target_id, safe='')}"

    async def send(self, target_id: str, event: StreamEvent) -> DeliveryStatus:
        """Post ``event`` once and classify the response."""
        try:
            response = await self._client.post(
                self.url_for(target_id),
                json=to_wire(event),
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            log_warning(
                logger,
                "delivery.transport_error target=%s chunk_index=%s error=%s",
                target_id,
                event.chunk_index,
                exc,
            )
            return DeliveryStatus.FAILED

        if response.is_success:
            log_debug(
                logger,
                "delivery.posted target=%s type=%s chunk_index=%s",
                target_id,
                event.message_type,
                event.chunk_index,
            )
            return DeliveryStatus.DELIVERED
        if response.status_code == HTTPStatus.GONE:
            return DeliveryStatus.GONE
        log_warning(
            logger,
            "delivery.rejected target=%s status=%s",
            target_id,
            response.status_code,
        )
        return DeliveryStatus.FAILED


__all__ = ("HttpConnectionDelivery",)
