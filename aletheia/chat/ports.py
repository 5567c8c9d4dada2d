"""Ports for delivery, persistence, and telemetry.

This module defines protocol interfaces for the external boundaries the turn
pipeline depends on, so adapters can be swapped without touching the
streaming or ledger logic.

Examples
--------
Implement a delivery adapter that satisfies the protocol:

>>> class PrintDelivery:
...     async def send(self, target_id: str, event: StreamEvent) -> DeliveryStatus:
...         print(target_id, event.chunk_index)
...         return DeliveryStatus.DELIVERED
"""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

if typ.TYPE_CHECKING:
    from .domain import (
        AggregateDelta,
        ConversationAggregate,
        MessageKey,
        PersistedMessage,
        PromptSource,
        StreamEvent,
    )


class DeliveryStatus(enum.StrEnum):
    """Outcome of one delivery attempt."""

    DELIVERED = "delivered"
    GONE = "gone"
    FAILED = "failed"


class CreateResult(enum.StrEnum):
    """Outcome of a create-only write."""

    CREATED = "created"
    EXISTS = "exists"


class DeliveryPort(typ.Protocol):
    """Pushes one event to one addressable recipient.

    ``GONE`` is permanent and must never be retried; ``FAILED`` is transient.
    Adapters translate their own transport errors into these statuses.
    """

    async def send(self, target_id: str, event: StreamEvent) -> DeliveryStatus:
        """Attempt to deliver ``event`` to ``target_id``.

        Parameters
        ----------
        target_id : str
            Address of the live recipient.
        event : StreamEvent
            Event to deliver.

        Returns
        -------
        DeliveryStatus
            Result of this single attempt.
        """
        ...


class LedgerStore(typ.Protocol):
    """Durable store behind the history ledger.

    Methods
    -------
    create_if_absent(key, record)
        Create a message record unless one exists under ``key``.
    apply_aggregate_delta(conversation_id, delta)
        Atomically fold one new message into the conversation aggregate.
    get_aggregate(conversation_id)
        Fetch the aggregate for a conversation.
    list_messages(conversation_id, limit, after_key)
        List messages in ordering-key order.
    """

    async def create_if_absent(
        self,
        key: MessageKey,
        record: PersistedMessage,
    ) -> CreateResult:
        """Create ``record`` under ``key`` unless the key is already taken.

        Raises
        ------
        StorageError
            If the write fails for any reason other than an existing key.
        """
        ...

    async def apply_aggregate_delta(
        self,
        conversation_id: str,
        delta: AggregateDelta,
    ) -> None:
        """Apply ``delta`` to the conversation aggregate, creating it if needed.

        Raises
        ------
        StorageError
            If the update cannot be applied.
        """
        ...

    async def get_aggregate(self, conversation_id: str) -> ConversationAggregate | None:
        """Return the aggregate for ``conversation_id``, or ``None``."""
        ...

    async def list_messages(
        self,
        conversation_id: str,
        *,
        limit: int,
        after_key: str | None = None,
    ) -> list[PersistedMessage]:
        """Return up to ``limit`` messages whose ordering key follows ``after_key``."""
        ...


@dc.dataclass(frozen=True, slots=True)
class GenerationReport:
    """Telemetry summary for one generation run."""

    conversation_id: str
    message_id: str
    model: str
    prompt_source: PromptSource
    time_to_first_fragment_ms: float | None
    chunks: int
    output_chars: int
    cost_estimate_usd: float
    failed: bool
    degraded_deliveries: int
    recipient_gone: bool


class PipelineObserver(typ.Protocol):
    """Best-effort telemetry sink; never required for correctness."""

    def generation_finished(self, report: GenerationReport) -> None:
        """Record the summary of a finished generation run."""
        ...

    def delivery_degraded(self, message_id: str, chunk_index: int) -> None:
        """Record that an event was abandoned after exhausting retries."""
        ...

    def duplicate_write(self, key: MessageKey) -> None:
        """Record an idempotent hit on the ledger."""
        ...

    def aggregate_update_failed(self, conversation_id: str, error: Exception) -> None:
        """Record a failed aggregate update after a successful message write."""
        ...
