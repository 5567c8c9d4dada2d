"""Unit tests for stream event wire serialization."""

from __future__ import annotations

from aletheia.chat.domain import MessageType, Role, StreamEvent, Usage
from aletheia.chat.wire import to_wire


def _event(message_type: MessageType, **overrides: object) -> StreamEvent:
    fields: dict[str, object] = {
        "message_type": message_type,
        "message_id": "msg-9",
        "conversation_id": "conv-3",
        "sequence": 4,
        "chunk_index": 1,
        "is_final": message_type is not MessageType.CHUNK,
        "role": Role.ASSISTANT,
        "text": "lo",
    }
    fields.update(overrides)
    return StreamEvent(**fields)  # type: ignore[arg-type]


def test_chunk_event_shape() -> None:
    """Chunks carry identity, ordering, and text only."""
    wire = to_wire(_event(MessageType.CHUNK))

    assert wire == {
        "messageType": "chunk",
        "messageId": "msg-9",
        "sequence": 4,
        "chunkIndex": 1,
        "isFinal": False,
        "correlationId": "conv-3",
        "role": "assistant",
        "payload": {"text": "lo"},
    }, "Expected the camel-cased chunk shape."


def test_final_event_carries_usage_and_cost() -> None:
    """Final events attach usage and cost to the payload."""
    event = _event(
        MessageType.FINAL,
        chunk_index=2,
        text="Hello",
        usage=Usage(input_tokens=12, output_tokens=2),
        cost_estimate_usd=0.000009,
    )

    payload = to_wire(event)["payload"]

    assert payload == {
        "text": "Hello",
        "usage": {"input": 12, "output": 2},
        "costEstimateUSD": 0.000009,
    }, "Expected usage and cost on the final payload."


def test_error_event_omits_usage() -> None:
    """Error events never carry usage, even if one is set."""
    event = _event(
        MessageType.ERROR,
        role=Role.SYSTEM,
        usage=Usage(input_tokens=1, output_tokens=1),
    )

    wire = to_wire(event)

    assert wire["payload"] == {"text": "lo"}, "Expected a text-only payload."
    assert wire["isFinal"] is True, "Expected error events to be terminal."
    assert wire["role"] == "system", "Expected the system role."
