"""Response serializers for the ledger read endpoints."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from aletheia.chat.domain import ConversationAggregate, PersistedMessage

    from .types import JsonPayload


def serialize_aggregate(aggregate: ConversationAggregate) -> JsonPayload:
    """Serialize a conversation aggregate response payload."""
    return {
        "conversation_id": aggregate.conversation_id,
        "last_activity_at": aggregate.last_activity_at.isoformat(),
        "last_sequence": aggregate.last_sequence,
        "total_messages": aggregate.total_messages,
        "messages_by_role": {
            "user": aggregate.user_messages,
            "assistant": aggregate.assistant_messages,
            "system": aggregate.system_messages,
        },
    }


def serialize_message(message: PersistedMessage, ordering_key: str) -> JsonPayload:
    """Serialize a persisted message with its ordering key."""
    usage = (
        None
        if message.usage is None
        else {
            "input": message.usage.input_tokens,
            "output": message.usage.output_tokens,
        }
    )
    return {
        "conversation_id": message.conversation_id,
        "message_id": message.message_id,
        "sequence": message.sequence,
        "ordering_key": ordering_key,
        "role": message.role.value,
        "text": message.text,
        "usage": usage,
        "cost_estimate_usd": message.cost_estimate_usd,
        "model": message.model,
        "prompt_source": (
            None if message.prompt_source is None else message.prompt_source.value
        ),
        "created_at": message.created_at.isoformat(),
    }
