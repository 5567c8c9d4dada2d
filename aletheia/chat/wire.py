"""Wire serialization for stream events.

``to_wire`` renders a ``StreamEvent`` into the camel-cased JSON shape the
delivery transport carries. ``correlationId`` is the conversation
identifier; clients group the chunks of one run by ``messageId``.
"""

from __future__ import annotations

import typing as typ

from .domain import MessageType

if typ.TYPE_CHECKING:
    from .domain import JsonMapping, StreamEvent


def to_wire(event: StreamEvent) -> JsonMapping:
    """Serialize ``event`` into its wire representation.

    Usage and cost are only attached to ``final`` events.
    """
    payload: JsonMapping = {"text": event.text}
    if event.message_type is MessageType.FINAL:
        if event.usage is not None:
            payload["usage"] = {
                "input": event.usage.input_tokens,
                "output": event.usage.output_tokens,
            }
        if event.cost_estimate_usd is not None:
            payload["costEstimateUSD"] = event.cost_estimate_usd
    return {
        "messageType": event.message_type.value,
        "messageId": event.message_id,
        "sequence": event.sequence,
        "chunkIndex": event.chunk_index,
        "isFinal": event.is_final,
        "correlationId": event.conversation_id,
        "role": event.role.value,
        "payload": payload,
    }


__all__ = ("to_wire",)
