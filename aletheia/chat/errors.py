"""Exception taxonomy for the turn pipeline.

Every error carries a stable ``code`` and a ``retryable`` hint so adapters
and outer workflow layers can decide whether to retry without inspecting
exception types.

Examples
--------
>>> raise ValidationError("User text must not be empty.")
"""

from __future__ import annotations

import typing as typ


class AletheiaError(Exception):
    """Base exception with structured metadata for pipeline failures."""

    error_code: typ.ClassVar[str] = "aletheia_error"
    default_retryable: typ.ClassVar[bool] = False

    code: str
    retryable: bool

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code if code is not None else type(self).error_code
        self.retryable = (
            type(self).default_retryable if retryable is None else retryable
        )


class ValidationError(AletheiaError):
    """Raised when required input is empty or malformed."""

    error_code: typ.ClassVar[str] = "validation_error"


class PromptBudgetExceededError(ValidationError):
    """Raised when the current request alone cannot fit the input budget."""

    error_code: typ.ClassVar[str] = "prompt_budget_exceeded"


class ProviderError(AletheiaError):
    """Raised when the text-generation provider rejects a request."""

    error_code: typ.ClassVar[str] = "provider_error"


class TransientProviderError(ProviderError):
    """Raised when opening a provider stream failed but may succeed later."""

    error_code: typ.ClassVar[str] = "provider_unavailable"
    default_retryable: typ.ClassVar[bool] = True


class ProviderStreamError(ProviderError):
    """Raised when a provider stream breaks after it was opened."""

    error_code: typ.ClassVar[str] = "provider_stream_error"


class GenerationFailedError(AletheiaError):
    """Raised when a generation run cannot produce a final message."""

    error_code: typ.ClassVar[str] = "generation_failed"


class TransientDeliveryError(AletheiaError):
    """Raised when one delivery attempt failed and may be retried."""

    error_code: typ.ClassVar[str] = "delivery_failed"
    default_retryable: typ.ClassVar[bool] = True


class DeliveryGoneError(AletheiaError):
    """Raised when the recipient is permanently unreachable for this run."""

    error_code: typ.ClassVar[str] = "delivery_gone"


class StorageError(AletheiaError):
    """Raised when the backing store fails for reasons other than a duplicate."""

    error_code: typ.ClassVar[str] = "storage_error"
    default_retryable: typ.ClassVar[bool] = True


__all__ = (
    "AletheiaError",
    "DeliveryGoneError",
    "GenerationFailedError",
    "PromptBudgetExceededError",
    "ProviderError",
    "ProviderStreamError",
    "StorageError",
    "TransientDeliveryError",
    "TransientProviderError",
    "ValidationError",
)
