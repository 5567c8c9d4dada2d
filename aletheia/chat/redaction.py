"""PII and secret redaction for user text and history.

Each category replaces matches with a fixed placeholder and counts the exact
number of replaced occurrences. More specific patterns run first so an
access key is never half-consumed by the phone pattern.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import enum
import re


class RedactionCategory(enum.StrEnum):
    """Redacted content categories, keyed by their counter name."""

    AWS_KEY = "aws_key"
    SECRET = "secret"
    EMAIL = "email"
    PHONE = "phone"


@dc.dataclass(frozen=True, slots=True)
class _Rule:
    category: RedactionCategory
    pattern: re.Pattern[str]
    placeholder: str
    flag: str


_RULES: tuple[_Rule, ...] = (
    _Rule(
        RedactionCategory.AWS_KEY,
        re.compile(r"\b(?:A3T[A-Z0-9]{16}|AKIA[0-9A-Z]{16})\b"),
        "[AWS_ACCESS_KEY_ID]",
        "secret:aws-key",
    ),
    _Rule(
        RedactionCategory.SECRET,
        re.compile(
            r"(?:secret|token|password|passwd|senha|api[_-]?key)\s*[:=]\s*"
            r"['\"][^'\"]{8,}['\"]",
            re.IGNORECASE,
        ),
        "[SECRET_REDACTED]",
        "secret:generic",
    ),
    _Rule(
        RedactionCategory.EMAIL,
        re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"),
        "[EMAIL]",
        "pii:email",
    ),
    _Rule(
        RedactionCategory.PHONE,
        re.compile(r"\+?\d{1,3}[\s-]?\(?\d{2,3}\)?[\s-]?\d{3,5}[\s-]?\d{4}"),
        "[PHONE]",
        "pii:phone",
    ),
)


@dc.dataclass(slots=True)
class RedactionTally:
    """Mutable per-category counters accumulated across several texts."""

    counts: dict[RedactionCategory, int] = dc.field(
        default_factory=lambda: dict.fromkeys(RedactionCategory, 0)
    )

    def redact(self, text: str) -> str:
        """Return ``text`` with every rule applied, counting each match."""
        redacted = text
        for rule in _RULES:
            redacted, hits = rule.pattern.subn(rule.placeholder, redacted)
            self.counts[rule.category] += hits
        return redacted

    def flags(self) -> frozenset[str]:
        """Return the flag name of every category with at least one match."""
        return frozenset(rule.flag for rule in _RULES if self.counts[rule.category])

    def as_mapping(self) -> cabc.Mapping[str, int]:
        """Return counters keyed by category value."""
        return {category.value: count for category, count in self.counts.items()}
