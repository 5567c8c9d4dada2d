"""SQLAlchemy repositories for the history ledger.

Repositories operate within a supplied async session and are composed
through the ledger unit-of-work.

Examples
--------
>>> async with SqlAlchemyUnitOfWork(session_factory) as uow:
...     await uow.messages.add(key, message)
...     await uow.commit()
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import sqlalchemy as sa

from aletheia.chat.domain import Role

from .mappers import _aggregate_from_record, _message_from_record, _message_to_record
from .models import ConversationRecord, MessageRecord

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from aletheia.chat.domain import (
        AggregateDelta,
        ConversationAggregate,
        MessageKey,
        PersistedMessage,
    )

_ROLE_COLUMNS: dict[Role, str] = {
    Role.USER: "user_messages",
    Role.ASSISTANT: "assistant_messages",
    Role.SYSTEM: "system_messages",
}


@dc.dataclass(slots=True)
class SqlAlchemyMessageRepository:
    """Create-only access to persisted messages."""

    _session: AsyncSession

    async def add(self, key: MessageKey, message: PersistedMessage) -> None:
        """Add a message and flush so key conflicts surface immediately."""
        self._session.add(_message_to_record(key, message))
        await self._session.flush()

    async def exists(self, conversation_id: str, message_id: str) -> bool:
        """Return whether a message is stored under the key."""
        result = await self._session.execute(
            sa.select(sa.literal(1)).where(
                MessageRecord.conversation_id == conversation_id,
                MessageRecord.message_id == message_id,
            )
        )
        return result.first() is not None

    async def list_for_conversation(
        self,
        conversation_id: str,
        *,
        limit: int,
        after_key: str | None = None,
    ) -> list[PersistedMessage]:
        """List messages in ordering-key order, strictly after ``after_key``."""
        query = sa.select(MessageRecord).where(
            MessageRecord.conversation_id == conversation_id
        )
        if after_key is not None:
            query = query.where(MessageRecord.ordering_key > after_key)
        result = await self._session.execute(
            query.order_by(MessageRecord.ordering_key).limit(limit)
        )
        return [_message_from_record(record) for record in result.scalars()]


@dc.dataclass(slots=True)
class SqlAlchemyConversationRepository:
    """Atomic counter updates on conversation aggregates."""

    _session: AsyncSession

    async def get(self, conversation_id: str) -> ConversationAggregate | None:
        """Fetch an aggregate by conversation identifier."""
        record = await self._session.get(ConversationRecord, conversation_id)
        return None if record is None else _aggregate_from_record(record)

    async def increment(self, conversation_id: str, delta: AggregateDelta) -> bool:
        """Apply ``delta`` with a single atomic UPDATE.

        Returns
        -------
        bool
            ``False`` when no aggregate exists yet.
        """
        role_column = getattr(ConversationRecord, _ROLE_COLUMNS[delta.role])
        statement = (
            sa
            .update(ConversationRecord)
            .where(ConversationRecord.conversation_id == conversation_id)
            .values({
                ConversationRecord.total_messages: ConversationRecord.total_messages
                + 1,
                role_column: role_column + 1,
                ConversationRecord.last_sequence: sa.case(
                    (
                        ConversationRecord.last_sequence < delta.sequence,
                        delta.sequence,
                    ),
                    else_=ConversationRecord.last_sequence,
                ),
                ConversationRecord.last_activity_at: delta.occurred_at,
            })
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(statement)
        return typ.cast("sa.CursorResult[typ.Any]", result).rowcount > 0

    async def add_first(self, conversation_id: str, delta: AggregateDelta) -> None:
        """Insert the aggregate for a conversation's first message."""
        record = ConversationRecord(
            conversation_id=conversation_id,
            last_activity_at=delta.occurred_at,
            last_sequence=delta.sequence,
            total_messages=1,
            user_messages=0,
            assistant_messages=0,
            system_messages=0,
        )
        setattr(record, _ROLE_COLUMNS[delta.role], 1)
        self._session.add(record)
        await self._session.flush()
