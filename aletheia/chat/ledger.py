"""Idempotent history ledger over a ``LedgerStore``.

``HistoryLedger.persist`` writes a finalized message create-only under its
(conversation, message) key. A repeated call with the same key is a
duplicate, not an error. Only a fresh write advances the conversation
aggregate, and an aggregate failure never fails the write that caused it.

Examples
--------
>>> ledger = HistoryLedger(InMemoryLedgerStore())
>>> (await ledger.persist(message)).stored
True
>>> (await ledger.persist(message)).stored
False
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

from aletheia.logging import get_logger, log_info

from .domain import AggregateDelta, MessageKey
from .errors import AletheiaError, StorageError, ValidationError
from .observers import LoggingObserver
from .ports import CreateResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .domain import ConversationAggregate, PersistedMessage
    from .ports import LedgerStore, PipelineObserver

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dc.dataclass(frozen=True, slots=True)
class PersistResult:
    """Outcome of persisting one message."""

    stored: bool
    aggregate_updated: bool = False


@dc.dataclass(frozen=True, slots=True)
class PersistFailure:
    """A batch item that could not be persisted."""

    index: int
    message_id: str
    error_code: str
    detail: str


@dc.dataclass(frozen=True, slots=True)
class BatchPersistResult:
    """Per-item counts for a batch persist."""

    stored: int
    duplicates: int
    failed: int
    failures: tuple[PersistFailure, ...] = ()

    @property
    def total(self) -> int:
        """Return the number of items processed."""
        return self.stored + self.duplicates + self.failed


def validate_message(message: PersistedMessage) -> None:
    """Reject messages missing their identity or text.

    Raises
    ------
    ValidationError
        If the conversation id, message id, or text is blank.
    """
    if not message.conversation_id.strip():
        msg = "conversation_id must not be empty."
        raise ValidationError(msg)
    if not message.message_id.strip():
        msg = "message_id must not be empty."
        raise ValidationError(msg)
    if not message.text.strip():
        msg = "Message text must not be empty."
        raise ValidationError(msg)


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class HistoryLedger:
    """Durable, idempotent message store plus per-conversation aggregate."""

    def __init__(
        self,
        store: LedgerStore,
        *,
        observer: PipelineObserver | None = None,
        now: cabc.Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._observer = observer or LoggingObserver()
        self._now = now

    async def persist(self, message: PersistedMessage) -> PersistResult:
        """Persist one finalized message.

        Parameters
        ----------
        message : PersistedMessage
            Message to write.

        Returns
        -------
        PersistResult
            ``stored`` is ``False`` when the key already existed.

        Raises
        ------
        ValidationError
            If the message is missing required fields.
        StorageError
            If the primary write fails for a reason other than an existing key.
        """
        validate_message(message)
        key = MessageKey.for_message(message)
        result = await self._store.create_if_absent(key, message)
        if result is CreateResult.EXISTS:
            self._observer.duplicate_write(key)
            return PersistResult(stored=False)

        log_info(
            logger,
            "ledger.stored conversation=%s message=%s ordering_key=%s",
            key.conversation_id,
            key.message_id,
            key.ordering_key,
        )
        delta = AggregateDelta(
            role=message.role,
            sequence=message.sequence,
            occurred_at=self._now(),
        )
        try:
            await self._store.apply_aggregate_delta(message.conversation_id, delta)
        except StorageError as exc:
            self._observer.aggregate_update_failed(message.conversation_id, exc)
            return PersistResult(stored=True, aggregate_updated=False)
        return PersistResult(stored=True, aggregate_updated=True)

    async def persist_many(
        self, messages: cabc.Iterable[PersistedMessage]
    ) -> BatchPersistResult:
        """Persist every message independently and count the outcomes.

        A failed item never stops the remaining items.
        """
        stored = duplicates = 0
        failures: list[PersistFailure] = []
        for index, message in enumerate(messages):
            try:
                result = await self.persist(message)
            except AletheiaError as exc:
                failures.append(
                    PersistFailure(
                        index=index,
                        message_id=message.message_id,
                        error_code=exc.code,
                        detail=str(exc),
                    )
                )
                continue
            if result.stored:
                stored += 1
            else:
                duplicates += 1

        log_info(
            logger,
            "ledger.batch stored=%s duplicates=%s failed=%s",
            stored,
            duplicates,
            len(failures),
        )
        return BatchPersistResult(
            stored=stored,
            duplicates=duplicates,
            failed=len(failures),
            failures=tuple(failures),
        )

    async def list_messages(
        self,
        conversation_id: str,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        after_key: str | None = None,
    ) -> list[PersistedMessage]:
        """Return messages in ordering-key order, after ``after_key``.

        Raises
        ------
        ValidationError
            If ``limit`` is outside ``1..MAX_PAGE_SIZE``.
        """
        if not 1 <= limit <= MAX_PAGE_SIZE:
            msg = f"limit must be between 1 and {MAX_PAGE_SIZE}."
            raise ValidationError(msg)
        return await self._store.list_messages(
            conversation_id, limit=limit, after_key=after_key
        )

    async def get_aggregate(self, conversation_id: str) -> ConversationAggregate | None:
        """Return the aggregate for ``conversation_id``, if any."""
        return await self._store.get_aggregate(conversation_id)


__all__ = (
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "BatchPersistResult",
    "HistoryLedger",
    "PersistFailure",
    "PersistResult",
    "validate_message",
)
