"""Integration tests for the SQLAlchemy ledger store.

Examples
--------
Run the ledger storage tests:

>>> pytest tests/chat_storage/test_sql_store.py
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import datetime as dt
import typing as typ

import pytest
from _pipeline_helpers import FIXED_NOW, make_message

from aletheia.chat.domain import AggregateDelta, MessageKey, PromptSource, Role
from aletheia.chat.ledger import HistoryLedger
from aletheia.chat.ports import CreateResult
from aletheia.chat.storage import SqlAlchemyLedgerStore, SqlAlchemyUnitOfWork

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@pytest.mark.asyncio
async def test_create_if_absent_reports_existing_keys(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A second insert under the same key reports ``EXISTS``."""
    store = SqlAlchemyLedgerStore(session_factory)
    message = make_message()
    key = MessageKey.for_message(message)

    first = await store.create_if_absent(key, message)
    second = await store.create_if_absent(key, dc.replace(message, text="changed"))

    assert first is CreateResult.CREATED, "Expected the first insert to create."
    assert second is CreateResult.EXISTS, "Expected the second insert to collide."
    [stored] = await store.list_messages("conv-1", limit=10)
    assert stored.text == message.text, "Expected the original text to survive."


@pytest.mark.asyncio
async def test_stored_message_round_trips(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Usage, metadata, and UTC timestamps survive a round trip."""
    store = SqlAlchemyLedgerStore(session_factory)
    message = dc.replace(
        make_message(), model="gpt-test", prompt_source=PromptSource.FALLBACK
    )

    await store.create_if_absent(MessageKey.for_message(message), message)
    [stored] = await store.list_messages("conv-1", limit=10)

    assert stored == message, "Expected the stored message to match the original."
    assert stored.created_at.tzinfo is not None, "Expected a timezone-aware value."


@pytest.mark.asyncio
async def test_aggregate_is_created_then_incremented(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """The first delta inserts the aggregate; later deltas increment it."""
    store = SqlAlchemyLedgerStore(session_factory)
    later = FIXED_NOW + dt.timedelta(minutes=5)

    await store.apply_aggregate_delta(
        "conv-1", AggregateDelta(role=Role.USER, sequence=3, occurred_at=FIXED_NOW)
    )
    await store.apply_aggregate_delta(
        "conv-1", AggregateDelta(role=Role.ASSISTANT, sequence=2, occurred_at=later)
    )
    aggregate = await store.get_aggregate("conv-1")

    assert aggregate is not None, "Expected an aggregate row."
    assert aggregate.total_messages == 2, "Expected two counted messages."
    assert aggregate.user_messages == 1, "Expected one user message."
    assert aggregate.assistant_messages == 1, "Expected one assistant message."
    assert aggregate.system_messages == 0, "Expected no system messages."
    assert aggregate.last_sequence == 3, "Expected the highest sequence to stick."
    assert aggregate.last_activity_at == later, "Expected the latest activity."


@pytest.mark.asyncio
async def test_missing_aggregate_is_none(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Unknown conversations have no aggregate row."""
    store = SqlAlchemyLedgerStore(session_factory)

    assert await store.get_aggregate("unknown") is None, "Expected no aggregate."


@pytest.mark.asyncio
async def test_listing_orders_by_ordering_key_and_resumes(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Messages list in sequence order and resume after a cursor."""
    store = SqlAlchemyLedgerStore(session_factory)
    for message_id, sequence in [("m-c", 11), ("m-a", 2), ("m-b", 10)]:
        message = make_message(message_id, sequence=sequence)
        await store.create_if_absent(MessageKey.for_message(message), message)
    other = make_message("m-x", conversation_id="conv-2")
    await store.create_if_absent(MessageKey.for_message(other), other)

    first_page = await store.list_messages("conv-1", limit=2)
    cursor = MessageKey.for_message(first_page[-1]).ordering_key
    second_page = await store.list_messages("conv-1", limit=2, after_key=cursor)

    assert [m.message_id for m in first_page] == ["m-a", "m-b"], (
        "Expected numeric sequence order despite string keys."
    )
    assert [m.message_id for m in second_page] == ["m-c"], "Expected the remainder."


@pytest.mark.asyncio
async def test_ledger_over_sql_store_is_idempotent(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Persisting twice stores once and counts once."""
    store = SqlAlchemyLedgerStore(session_factory)
    ledger = HistoryLedger(store, now=lambda: FIXED_NOW)
    message = make_message()

    first = await ledger.persist(message)
    second = await ledger.persist(message)

    aggregate = await ledger.get_aggregate("conv-1")
    assert first.stored, "Expected the first write to store."
    assert first.aggregate_updated, "Expected the aggregate update to succeed."
    assert not second.stored, "Expected the retry to be a duplicate."
    assert aggregate is not None, "Expected an aggregate row."
    assert aggregate.total_messages == 1, "Expected one counted message."


@pytest.mark.asyncio
async def test_uow_rolls_back_on_exception(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Leaving the unit of work with an error discards the flushed insert."""
    message = make_message()
    key = MessageKey.for_message(message)

    with pytest.raises(RuntimeError, match="abort"):
        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            await uow.messages.add(key, message)
            msg = "abort"
            raise RuntimeError(msg)

    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        exists = await uow.messages.exists(key.conversation_id, key.message_id)

    assert not exists, "Expected the rollback to discard the message."


class _OutracedStore(SqlAlchemyLedgerStore):
    """Store whose first aggregate insert loses to a rival writer."""

    async def _increment_or_insert(
        self, conversation_id: str, delta: AggregateDelta
    ) -> None:
        await super()._increment_or_insert(conversation_id, delta)
        async with self._uow() as uow:
            await uow.conversations.add_first(conversation_id, delta)
            await uow.commit()


@pytest.mark.asyncio
async def test_lost_insert_race_becomes_an_increment(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A duplicate first insert is retried as an increment."""
    store = _OutracedStore(session_factory)
    delta = AggregateDelta(role=Role.ASSISTANT, sequence=4, occurred_at=FIXED_NOW)

    await store.apply_aggregate_delta("conv-1", delta)

    aggregate = await store.get_aggregate("conv-1")
    assert aggregate is not None, "Expected the rival's aggregate row."
    assert aggregate.total_messages == 2, "Expected both writers counted once."
    assert aggregate.assistant_messages == 2, "Expected the role count to match."
    assert aggregate.last_sequence == 4, "Expected the sequence kept."


@pytest.mark.asyncio
async def test_concurrent_finalizations_store_once(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Parallel persists of one message leave a single row and count."""
    ledger = HistoryLedger(
        SqlAlchemyLedgerStore(session_factory), now=lambda: FIXED_NOW
    )
    message = make_message()

    results = await asyncio.gather(*(ledger.persist(message) for _ in range(4)))

    aggregate = await ledger.get_aggregate("conv-1")
    assert sorted(r.stored for r in results) == [False, False, False, True], (
        "Expected exactly one write to win."
    )
    assert aggregate is not None, "Expected an aggregate row."
    assert aggregate.total_messages == 1, "Expected one counted message."
    assert len(await ledger.list_messages("conv-1")) == 1, "Expected one row."
