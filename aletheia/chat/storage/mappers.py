"""Record-to-domain mapping helpers for ledger persistence.

Examples
--------
Convert a record to a domain message:

>>> message = _message_from_record(record)
"""

from __future__ import annotations

import datetime as dt

from aletheia.chat.domain import (
    ConversationAggregate,
    MessageKey,
    PersistedMessage,
    PromptSource,
    Role,
    Usage,
)

from .models import ConversationRecord, MessageRecord


def _as_utc(value: dt.datetime) -> dt.datetime:
    """Attach UTC to naive timestamps returned by backends without zones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value


def _message_to_record(key: MessageKey, message: PersistedMessage) -> MessageRecord:
    """Map a domain message to a new ORM record."""
    usage = message.usage
    return MessageRecord(
        conversation_id=key.conversation_id,
        message_id=key.message_id,
        ordering_key=key.ordering_key,
        sequence=message.sequence,
        role=message.role.value,
        text=message.text,
        input_tokens=None if usage is None else usage.input_tokens,
        output_tokens=None if usage is None else usage.output_tokens,
        cost_estimate_usd=message.cost_estimate_usd,
        model=message.model,
        prompt_source=(
            None if message.prompt_source is None else message.prompt_source.value
        ),
        created_at=message.created_at,
    )


def _message_from_record(record: MessageRecord) -> PersistedMessage:
    """Map a message record to a domain message."""
    usage = (
        None
        if record.input_tokens is None or record.output_tokens is None
        else Usage(input_tokens=record.input_tokens, output_tokens=record.output_tokens)
    )
    return PersistedMessage(
        conversation_id=record.conversation_id,
        sequence=record.sequence,
        message_id=record.message_id,
        role=Role.parse(record.role),
        text=record.text,
        usage=usage,
        cost_estimate_usd=record.cost_estimate_usd,
        created_at=_as_utc(record.created_at),
        model=record.model,
        prompt_source=(
            None if record.prompt_source is None else PromptSource(record.prompt_source)
        ),
    )


def _aggregate_from_record(record: ConversationRecord) -> ConversationAggregate:
    """Map a conversation record to its aggregate."""
    return ConversationAggregate(
        conversation_id=record.conversation_id,
        last_activity_at=_as_utc(record.last_activity_at),
        last_sequence=record.last_sequence,
        total_messages=record.total_messages,
        user_messages=record.user_messages,
        assistant_messages=record.assistant_messages,
        system_messages=record.system_messages,
    )
