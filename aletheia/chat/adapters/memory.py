"""In-memory ledger store for tests and single-process deployments."""

from __future__ import annotations

import asyncio
import bisect
import dataclasses as dc
import typing as typ

from aletheia.chat.domain import ConversationAggregate, MessageKey, Role
from aletheia.chat.ports import CreateResult

if typ.TYPE_CHECKING:
    from aletheia.chat.domain import AggregateDelta, PersistedMessage


@dc.dataclass(slots=True)
class _Conversation:
    ordering: list[str] = dc.field(default_factory=list)
    by_ordering_key: dict[str, PersistedMessage] = dc.field(default_factory=dict)
    aggregate: ConversationAggregate | None = None


class InMemoryLedgerStore:
    """``LedgerStore`` backed by dictionaries guarded by one lock."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._keys: set[tuple[str, str]] = set()
        self._conversations: dict[str, _Conversation] = {}

    async def create_if_absent(
        self,
        key: MessageKey,
        record: PersistedMessage,
    ) -> CreateResult:
        async with self._lock:
            identity = (key.conversation_id, key.message_id)
            if identity in self._keys:
                return CreateResult.EXISTS
            self._keys.add(identity)
            conversation = self._conversations.setdefault(
                key.conversation_id, _Conversation()
            )
            bisect.insort(conversation.ordering, key.ordering_key)
            conversation.by_ordering_key[key.ordering_key] = record
            return CreateResult.CREATED

    async def apply_aggregate_delta(
        self,
        conversation_id: str,
        delta: AggregateDelta,
    ) -> None:
        async with self._lock:
            conversation = self._conversations.setdefault(
                conversation_id, _Conversation()
            )
            current = conversation.aggregate or ConversationAggregate(
                conversation_id=conversation_id,
                last_activity_at=delta.occurred_at,
                last_sequence=delta.sequence,
                total_messages=0,
                user_messages=0,
                assistant_messages=0,
                system_messages=0,
            )
            conversation.aggregate = dc.replace(
                current,
                last_activity_at=max(current.last_activity_at, delta.occurred_at),
                last_sequence=max(current.last_sequence, delta.sequence),
                total_messages=current.total_messages + 1,
                user_messages=current.user_messages + (delta.role is Role.USER),
                assistant_messages=current.assistant_messages
                + (delta.role is Role.ASSISTANT),
                system_messages=current.system_messages + (delta.role is Role.SYSTEM),
            )

    async def get_aggregate(self, conversation_id: str) -> ConversationAggregate | None:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            return None if conversation is None else conversation.aggregate

    async def list_messages(
        self,
        conversation_id: str,
        *,
        limit: int,
        after_key: str | None = None,
    ) -> list[PersistedMessage]:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return []
            start = (
                0
                if after_key is None
                else bisect.bisect_right(conversation.ordering, after_key)
            )
            keys = conversation.ordering[start : start + limit]
            return [conversation.by_ordering_key[key] for key in keys]


__all__ = ("InMemoryLedgerStore",)
