"""Falcon API adapter for reading the history ledger.

Routes
------
``GET /conversations/{conversation_id}``
    Conversation aggregate, 404 when the conversation is unknown.
``GET /conversations/{conversation_id}/messages``
    Messages in ordering-key order. ``limit`` bounds the page and ``after``
    resumes from the previous page's ``next_after`` cursor.

Examples
--------
>>> ledger = HistoryLedger(SqlAlchemyLedgerStore(session_factory))
>>> app = create_app(ledger)
"""

from __future__ import annotations

import typing as typ

import falcon
from falcon import asgi

from aletheia.chat.domain import MessageKey
from aletheia.chat.errors import StorageError, ValidationError
from aletheia.chat.ledger import DEFAULT_PAGE_SIZE
from aletheia.logging import get_logger, log_error

from .serializers import serialize_aggregate, serialize_message

if typ.TYPE_CHECKING:
    from aletheia.chat.ledger import HistoryLedger

logger = get_logger(__name__)


def _parse_limit(raw_value: str | None) -> int:
    """Parse the page size or raise HTTP 400."""
    if raw_value is None:
        return DEFAULT_PAGE_SIZE
    try:
        return int(raw_value)
    except ValueError as exc:
        msg = f"Invalid limit: {raw_value!r}."
        raise falcon.HTTPBadRequest(description=msg) from exc


def _unavailable(exc: StorageError) -> falcon.HTTPServiceUnavailable:
    log_error(logger, "api.storage_error code=%s error=%s", exc.code, exc)
    return falcon.HTTPServiceUnavailable(description="Ledger storage is unavailable.")


class ConversationResource:
    """Read one conversation aggregate."""

    def __init__(self, ledger: HistoryLedger) -> None:
        self._ledger = ledger

    async def on_get(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        conversation_id: str,
    ) -> None:
        """Fetch the aggregate for ``conversation_id``."""
        del req
        try:
            aggregate = await self._ledger.get_aggregate(conversation_id)
        except StorageError as exc:
            raise _unavailable(exc) from exc
        if aggregate is None:
            msg = f"Conversation {conversation_id!r} not found."
            raise falcon.HTTPNotFound(description=msg)
        resp.media = serialize_aggregate(aggregate)
        resp.status = falcon.HTTP_200


class ConversationMessagesResource:
    """List persisted messages for one conversation."""

    def __init__(self, ledger: HistoryLedger) -> None:
        self._ledger = ledger

    async def on_get(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        conversation_id: str,
    ) -> None:
        """Return one page of messages and the cursor for the next one."""
        limit = _parse_limit(req.get_param("limit"))
        after = req.get_param("after")
        try:
            messages = await self._ledger.list_messages(
                conversation_id, limit=limit, after_key=after
            )
        except ValidationError as exc:
            raise falcon.HTTPBadRequest(description=str(exc)) from exc
        except StorageError as exc:
            raise _unavailable(exc) from exc

        items = [
            serialize_message(message, MessageKey.for_message(message).ordering_key)
            for message in messages
        ]
        next_after = items[-1]["ordering_key"] if len(items) == limit else None
        resp.media = {"items": items, "limit": limit, "next_after": next_after}
        resp.status = falcon.HTTP_200


def create_app(ledger: HistoryLedger) -> asgi.App:
    """Build and return the Falcon ASGI application for ledger reads."""
    app = asgi.App()
    app.add_route("/conversations/{conversation_id}", ConversationResource(ledger))
    app.add_route(
        "/conversations/{conversation_id}/messages",
        ConversationMessagesResource(ledger),
    )
    return app
