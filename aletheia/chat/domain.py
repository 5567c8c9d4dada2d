"""Domain models for the conversational turn pipeline."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt

type JsonMapping = dict[str, object]

SEQUENCE_PAD_WIDTH = 12


class Role(enum.StrEnum):
    """Speaker roles for utterances, events, and persisted messages."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: object) -> Role:
        """Return the matching role, defaulting unknown values to ``user``."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return cls.USER
        return cls.USER


class MessageType(enum.StrEnum):
    """Wire message types produced toward the delivery port."""

    CHUNK = "chunk"
    FINAL = "final"
    SYSTEM = "system"
    ERROR = "error"


class PromptSource(enum.StrEnum):
    """Where the prompt text of a generation run came from."""

    PREPARED = "prepared"
    FALLBACK = "fallback"


class GenerationStatus(enum.StrEnum):
    """Terminal status of one generation run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dc.dataclass(frozen=True, slots=True)
class Utterance:
    """One historical role-tagged text entry."""

    role: Role
    text: str

    @classmethod
    def from_mapping(cls, payload: cabc.Mapping[str, object]) -> Utterance:
        """Build an utterance from a loose ``{role, text|content}`` mapping."""
        raw_text = payload.get("text")
        if raw_text is None:
            raw_text = payload.get("content")
        return cls(
            role=Role.parse(payload.get("role")),
            text="" if raw_text is None else str(raw_text),
        )


@dc.dataclass(frozen=True, slots=True)
class Turn:
    """One user request within a conversation.

    Turns are created per inbound request and never persisted.
    """

    conversation_id: str
    sequence: int
    text: str
    history: tuple[Utterance, ...] = ()


@dc.dataclass(frozen=True, slots=True)
class TokenBudget:
    """Token accounting for one prepared prompt.

    Attributes
    ----------
    max_input_tokens : int
        Configured ceiling for the whole prompt.
    reserved_output_tokens : int
        Tokens held back for the model's answer.
    overhead_tokens : int
        Tokens spent on the system instruction and the current request.
    available_for_history : int
        Tokens history was allowed to use.
    used_by_history : int
        Tokens history actually used (summary plus recent entries).
    """

    max_input_tokens: int
    reserved_output_tokens: int
    overhead_tokens: int
    available_for_history: int
    used_by_history: int

    @property
    def total_committed(self) -> int:
        """Return reserved output plus overhead plus history usage."""
        return self.reserved_output_tokens + self.overhead_tokens + self.used_by_history


@dc.dataclass(frozen=True, slots=True)
class SafetyRecord:
    """Redaction flags and exact per-category match counts."""

    flags: frozenset[str]
    redactions: cabc.Mapping[str, int]


@dc.dataclass(frozen=True, slots=True)
class PreparedPrompt:
    """The bounded, sanitized, budget-compliant prompt for one turn."""

    conversation_id: str
    sequence: int
    system: str
    user: str
    history: tuple[Utterance, ...]
    summary: str | None
    composite: str
    budget: TokenBudget
    safety: SafetyRecord
    language: str


@dc.dataclass(frozen=True, slots=True)
class Usage:
    """Estimated token usage for one generation run."""

    input_tokens: int
    output_tokens: int


@dc.dataclass(frozen=True, slots=True)
class StreamEvent:
    """One ordered message describing generation progress.

    ``usage`` and ``cost_estimate_usd`` are only populated on the terminal
    ``final`` event.
    """

    message_type: MessageType
    message_id: str
    conversation_id: str
    sequence: int
    chunk_index: int
    is_final: bool
    role: Role
    text: str
    usage: Usage | None = None
    cost_estimate_usd: float | None = None


@dc.dataclass(frozen=True, slots=True)
class PersistedMessage:
    """A finalized message, immutable once stored."""

    conversation_id: str
    sequence: int
    message_id: str
    role: Role
    text: str
    usage: Usage | None
    cost_estimate_usd: float | None
    created_at: dt.datetime
    model: str | None = None
    prompt_source: PromptSource | None = None


@dc.dataclass(frozen=True, slots=True)
class MessageKey:
    """Storage identity of a persisted message.

    The primary identity is (conversation, message). ``ordering_key`` pads
    the caller-assigned sequence so lexicographic order matches arrival
    priority even when sequences repeat across regenerated attempts.
    """

    conversation_id: str
    message_id: str
    sequence: int

    @classmethod
    def for_message(cls, message: PersistedMessage) -> MessageKey:
        """Derive the storage key for a message."""
        return cls(
            conversation_id=message.conversation_id,
            message_id=message.message_id,
            sequence=message.sequence,
        )

    @property
    def ordering_key(self) -> str:
        """Return ``SEQ#<zero-padded sequence>#MSG#<message id>``."""
        padded = str(max(0, self.sequence)).zfill(SEQUENCE_PAD_WIDTH)
        return f"SEQ#{padded}#MSG#{self.message_id}"


@dc.dataclass(frozen=True, slots=True)
class AggregateDelta:
    """Increment applied to a conversation aggregate for one new message."""

    role: Role
    sequence: int
    occurred_at: dt.datetime


@dc.dataclass(frozen=True, slots=True)
class ConversationAggregate:
    """Running per-conversation counters."""

    conversation_id: str
    last_activity_at: dt.datetime
    last_sequence: int
    total_messages: int
    user_messages: int
    assistant_messages: int
    system_messages: int

    def count_for(self, role: Role) -> int:
        """Return the message count for one role."""
        match role:
            case Role.USER:
                return self.user_messages
            case Role.ASSISTANT:
                return self.assistant_messages
            case Role.SYSTEM:
                return self.system_messages


@dc.dataclass(frozen=True, slots=True)
class GenerationOutcome:
    """Explicit result of one generation run."""

    status: GenerationStatus
    message_id: str
    chunks: int
    text: str
    usage: Usage | None = None
    cost_estimate_usd: float | None = None
    persisted: bool = False
    recipient_gone: bool = False
    degraded_deliveries: int = 0
    error_code: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return True when the run produced and recorded a final message."""
        return self.status is GenerationStatus.SUCCEEDED
