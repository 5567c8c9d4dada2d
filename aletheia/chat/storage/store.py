"""SQLAlchemy implementation of the ``LedgerStore`` port.

Each operation runs in its own unit of work. Create-only writes rely on the
(conversation, message) primary key: an integrity error on insert is
reported as ``EXISTS`` when the row is present, and as a storage failure
otherwise.

Examples
--------
>>> store = SqlAlchemyLedgerStore(session_factory)
>>> ledger = HistoryLedger(store)
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import exc as sa_exc

from aletheia.chat.errors import StorageError
from aletheia.chat.ports import CreateResult
from aletheia.logging import get_logger, log_warning

from .uow import SqlAlchemyUnitOfWork

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession

    from aletheia.chat.domain import (
        AggregateDelta,
        ConversationAggregate,
        MessageKey,
        PersistedMessage,
    )

logger = get_logger(__name__)


class SqlAlchemyLedgerStore:
    """Ledger store backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: cabc.Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    def _uow(self) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(self._session_factory)

    async def create_if_absent(
        self,
        key: MessageKey,
        record: PersistedMessage,
    ) -> CreateResult:
        """Insert ``record`` unless a message already uses ``key``.

        Raises
        ------
        StorageError
            If the insert fails and no existing row explains the failure.
        """
        try:
            async with self._uow() as uow:
                await uow.messages.add(key, record)
                await uow.commit()
        except sa_exc.IntegrityError as exc:
            if await self._exists(key):
                return CreateResult.EXISTS
            msg = f"Message {key.message_id} violated a constraint."
            raise StorageError(msg) from exc
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Failed to store message {key.message_id}: {exc}"
            raise StorageError(msg) from exc
        return CreateResult.CREATED

    async def _exists(self, key: MessageKey) -> bool:
        try:
            async with self._uow() as uow:
                return await uow.messages.exists(key.conversation_id, key.message_id)
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Failed to check message {key.message_id}: {exc}"
            raise StorageError(msg) from exc

    async def apply_aggregate_delta(
        self,
        conversation_id: str,
        delta: AggregateDelta,
    ) -> None:
        """Increment the aggregate, inserting it on first sight.

        A concurrent first insert that wins the race turns this call into a
        plain increment.

        Raises
        ------
        StorageError
            If the aggregate cannot be written.
        """
        try:
            try:
                await self._increment_or_insert(conversation_id, delta)
            except sa_exc.IntegrityError:
                log_warning(
                    logger,
                    "aggregate.insert_race conversation=%s",
                    conversation_id,
                )
                if not await self._increment(conversation_id, delta):
                    msg = f"Aggregate for {conversation_id} vanished during update."
                    raise StorageError(msg) from None
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Failed to update aggregate for {conversation_id}: {exc}"
            raise StorageError(msg) from exc

    async def _increment(self, conversation_id: str, delta: AggregateDelta) -> bool:
        async with self._uow() as uow:
            updated = await uow.conversations.increment(conversation_id, delta)
            await uow.commit()
            return updated

    async def _increment_or_insert(
        self, conversation_id: str, delta: AggregateDelta
    ) -> None:
        async with self._uow() as uow:
            if not await uow.conversations.increment(conversation_id, delta):
                await uow.conversations.add_first(conversation_id, delta)
            await uow.commit()

    async def get_aggregate(self, conversation_id: str) -> ConversationAggregate | None:
        """Fetch the aggregate for ``conversation_id``."""
        try:
            async with self._uow() as uow:
                return await uow.conversations.get(conversation_id)
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Failed to read aggregate for {conversation_id}: {exc}"
            raise StorageError(msg) from exc

    async def list_messages(
        self,
        conversation_id: str,
        *,
        limit: int,
        after_key: str | None = None,
    ) -> list[PersistedMessage]:
        """List messages in ordering-key order."""
        try:
            async with self._uow() as uow:
                return await uow.messages.list_for_conversation(
                    conversation_id, limit=limit, after_key=after_key
                )
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Failed to list messages for {conversation_id}: {exc}"
            raise StorageError(msg) from exc


__all__ = ("SqlAlchemyLedgerStore",)
