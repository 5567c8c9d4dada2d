"""Conversational turn pipeline: prepare, stream, and record one turn.

Submodules are imported explicitly by callers; this package re-exports the
domain types and the error taxonomy only.
"""

from __future__ import annotations

from .domain import (
    AggregateDelta,
    ConversationAggregate,
    GenerationOutcome,
    GenerationStatus,
    MessageKey,
    MessageType,
    PersistedMessage,
    PreparedPrompt,
    PromptSource,
    Role,
    SafetyRecord,
    StreamEvent,
    TokenBudget,
    Turn,
    Usage,
    Utterance,
)
from .errors import (
    AletheiaError,
    DeliveryGoneError,
    GenerationFailedError,
    PromptBudgetExceededError,
    ProviderError,
    ProviderStreamError,
    StorageError,
    TransientDeliveryError,
    TransientProviderError,
    ValidationError,
)

__all__ = [
    "AggregateDelta",
    "AletheiaError",
    "ConversationAggregate",
    "DeliveryGoneError",
    "GenerationFailedError",
    "GenerationOutcome",
    "GenerationStatus",
    "MessageKey",
    "MessageType",
    "PersistedMessage",
    "PreparedPrompt",
    "PromptBudgetExceededError",
    "PromptSource",
    "ProviderError",
    "ProviderStreamError",
    "Role",
    "SafetyRecord",
    "StorageError",
    "StreamEvent",
    "TokenBudget",
    "TransientDeliveryError",
    "TransientProviderError",
    "Turn",
    "Usage",
    "Utterance",
    "ValidationError",
]
