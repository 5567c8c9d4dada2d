"""Explicit configuration values for the turn pipeline.

Every tunable is carried in frozen dataclasses that callers pass into each
operation; nothing in the core reads the environment on its own.
``PipelineConfig.from_env`` translates an environment-style mapping into
those values at the edge of the process.

Examples
--------
>>> import os
>>> config = PipelineConfig.from_env(os.environ)
>>> config.prompt.max_input_tokens
6200
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import enum

from aletheia.chat.errors import ValidationError


class ProviderKind(enum.StrEnum):
    """Supported text-generation backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dc.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff with jitter.

    Attributes
    ----------
    attempts : int
        Total attempts including the first one.
    base_delay : float
        Delay in seconds before the exponential factor is applied.
    max_delay : float
        Ceiling for a single delay, before jitter.
    time_budget : float | None
        Soft limit in seconds for all attempts together; a retry whose delay
        would overrun it is not started.
    """

    attempts: int = 3
    base_delay: float = 0.3
    max_delay: float = 3.0
    time_budget: float | None = 10.0

    def __post_init__(self) -> None:
        """Validate retry bounds."""
        if self.attempts < 1:
            msg = "attempts must be at least 1."
            raise ValidationError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "Retry delays must be non-negative."
            raise ValidationError(msg)


@dc.dataclass(frozen=True, slots=True)
class PromptConfig:
    """Budget, redaction, and language settings for prompt preparation."""

    max_input_tokens: int = 6200
    reserved_output_tokens: int = 800
    max_history_tokens: int = 4000
    max_history_messages: int = 12
    tokens_per_char: float = 4.0
    redact_pii: bool = True
    default_language: str = "pt-BR"
    system_instruction: str = ""
    history_tail_window: int = 4

    def __post_init__(self) -> None:
        """Validate budget settings."""
        if self.max_input_tokens < 1:
            msg = "max_input_tokens must be positive."
            raise ValidationError(msg)
        if self.reserved_output_tokens < 0 or self.max_history_tokens < 0:
            msg = "Token reservations must be non-negative."
            raise ValidationError(msg)
        if self.max_history_messages < 0 or self.history_tail_window < 0:
            msg = "History limits must be non-negative."
            raise ValidationError(msg)
        if self.tokens_per_char <= 0:
            msg = "tokens_per_char must be positive."
            raise ValidationError(msg)


@dc.dataclass(frozen=True, slots=True)
class GenerationConfig:
    """Model selection, pricing, and retry settings for one generation run."""

    model: str = "gpt-4o-mini"
    provider: ProviderKind = ProviderKind.OPENAI
    tokens_per_char: float = 4.0
    price_per_k_tokens_in: float = 0.0
    price_per_k_tokens_out: float = 0.0
    provider_retry: RetryPolicy = dc.field(
        default_factory=lambda: RetryPolicy(attempts=2)
    )
    delivery_retry: RetryPolicy = dc.field(default_factory=RetryPolicy)
    persist_partial_on_stream_error: bool = False
    fallback_history_entries: int = 8


@dc.dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Complete configuration for prepare, generate, and persist."""

    prompt: PromptConfig = dc.field(default_factory=PromptConfig)
    generation: GenerationConfig = dc.field(default_factory=GenerationConfig)

    @classmethod
    def from_env(cls, environ: cabc.Mapping[str, str]) -> PipelineConfig:
        """Build configuration from an environment-style mapping.

        Parameters
        ----------
        environ : collections.abc.Mapping[str, str]
            Source of settings, typically ``os.environ``.

        Returns
        -------
        PipelineConfig
            Configuration with defaults for every missing key.

        Raises
        ------
        ValidationError
            If a value cannot be parsed or violates a bound.
        """
        reader = _EnvReader(environ)
        tokens_per_char = reader.number("TOKEN_PER_CHAR", 4.0)
        prompt = PromptConfig(
            max_input_tokens=reader.integer("MAX_INPUT_TOKENS", 6200),
            reserved_output_tokens=reader.integer("RESERVED_OUTPUT_TOKENS", 800),
            max_history_tokens=reader.integer("MAX_HISTORY_TOKENS", 4000),
            max_history_messages=reader.integer("MAX_HISTORY_MESSAGES", 12),
            tokens_per_char=tokens_per_char,
            redact_pii=reader.flag("REDACT_PII", default=True),
            default_language=reader.text("DEFAULT_LANGUAGE", "pt-BR"),
            system_instruction=reader.text("SYSTEM_INSTRUCTION", ""),
        )
        generation = GenerationConfig(
            model=reader.text("MODEL_ID", "gpt-4o-mini"),
            provider=reader.provider("LLM_PROVIDER", ProviderKind.OPENAI),
            tokens_per_char=tokens_per_char,
            price_per_k_tokens_in=reader.number("PRICING_INPUT_PER_1K", 0.0),
            price_per_k_tokens_out=reader.number("PRICING_OUTPUT_PER_1K", 0.0),
            persist_partial_on_stream_error=reader.flag(
                "PERSIST_PARTIAL_ON_ERROR", default=False
            ),
        )
        return cls(prompt=prompt, generation=generation)


@dc.dataclass(frozen=True, slots=True)
class _EnvReader:
    """Typed accessors over an environment mapping."""

    environ: cabc.Mapping[str, str]

    def _raw(self, key: str) -> str | None:
        value = self.environ.get(key)
        if value is None or not value.strip():
            return None
        return value.strip()

    def text(self, key: str, default: str) -> str:
        raw = self._raw(key)
        return default if raw is None else raw

    def integer(self, key: str, default: int) -> int:
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError as exc:
            msg = f"Invalid integer for {key}: {raw!r}."
            raise ValidationError(msg) from exc

    def number(self, key: str, default: float) -> float:
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError as exc:
            msg = f"Invalid number for {key}: {raw!r}."
            raise ValidationError(msg) from exc

    def flag(self, key: str, *, default: bool) -> bool:
        raw = self._raw(key)
        if raw is None:
            return default
        return raw.lower() in {"1", "true", "yes", "on"}

    def provider(self, key: str, default: ProviderKind) -> ProviderKind:
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return ProviderKind(raw.lower())
        except ValueError as exc:
            msg = f"Unsupported {key}: {raw!r}."
            raise ValidationError(msg) from exc


__all__ = (
    "GenerationConfig",
    "PipelineConfig",
    "PromptConfig",
    "ProviderKind",
    "RetryPolicy",
)
