"""Prompt preparation: sanitize, budget, compact, and assemble one turn.

``prepare`` is a pure function of the turn and the prompt configuration. It
performs no I/O and reads no clock or random source, so identical inputs
always yield a byte-identical composite prompt.

Examples
--------
>>> turn = Turn(conversation_id="conv-1", sequence=3, text="Why did it fail?")
>>> prepared = prepare(turn, PromptConfig())
>>> prepared.budget.total_committed <= prepared.budget.max_input_tokens
True
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import math
import re
import typing as typ

from .domain import PreparedPrompt, SafetyRecord, TokenBudget, Utterance
from .errors import PromptBudgetExceededError, ValidationError
from .redaction import RedactionTally
from .tokens import estimate_tokens, truncate

if typ.TYPE_CHECKING:
    from aletheia.config import PromptConfig

    from .domain import Turn

OUTPUT_RESERVE_CAP_RATIO = 0.5
SUMMARY_BUDGET_RATIO = 0.6
SUMMARY_BULLET_CHARS = 140
SUMMARY_MIN_BULLET_CHARS = 24
SUMMARY_SHRINK_FACTOR = 0.85
RECENT_ENTRY_CHARS = 180

LANG_PT = "pt-BR"
LANG_EN = "en-US"

_PT_SIGNATURE = re.compile(
    r"\b(?:que|com|para|não|sim|erro|problema|melhoria|análise|investigação)\b",
    re.IGNORECASE,
)
_EN_SIGNATURE = re.compile(
    r"\b(?:the|and|for|not|yes|error|issue|improvement|analysis|investigation)\b",
    re.IGNORECASE,
)

_SYSTEM_INSTRUCTIONS: dict[str, str] = {
    LANG_EN: (
        "You are AletheIA, an investigative AI agent. "
        "Goals: clarify the issue, hypothesize causes, propose next steps. "
        "Style: concise, stepwise, developer-friendly."
    ),
    LANG_PT: (
        "Você é a AletheIA, agente de investigação assistida por IA. "
        "Objetivo: esclarecer o problema, levantar hipóteses de causa e "
        "sugerir próximos passos práticos. "
        "Estilo: conciso, passo a passo, amigável a desenvolvedores."
    ),
}

RESPONSE_INSTRUCTIONS = (
    "RESPONSE INSTRUCTIONS:\n"
    "- Be clear and incremental.\n"
    "- Propose practical next steps.\n"
    "- If data is missing, state your assumptions.\n"
    "- Use bullet lists when helpful."
)


@dc.dataclass(frozen=True, slots=True)
class CompactedHistory:
    """History after capping, summarizing, and budget enforcement."""

    recent: tuple[Utterance, ...]
    summary: str | None
    used_tokens: int


def detect_language(text: str, default: str) -> str:
    """Guess the language of ``text`` from two keyword signatures.

    Returns ``default`` when both signatures match or neither does.
    """
    portuguese = _PT_SIGNATURE.search(text) is not None
    english = _EN_SIGNATURE.search(text) is not None
    if portuguese and not english:
        return LANG_PT
    if english and not portuguese:
        return LANG_EN
    return default


def system_instruction_for(language: str, configured: str = "") -> str:
    """Return the configured instruction, else the one for ``language``."""
    if configured.strip():
        return configured.strip()
    return _SYSTEM_INSTRUCTIONS.get(language, _SYSTEM_INSTRUCTIONS[LANG_PT])


def normalise_history(
    history: cabc.Iterable[Utterance | cabc.Mapping[str, object]],
    max_messages: int,
) -> list[Utterance]:
    """Coerce entries to utterances, drop blanks, and keep the newest ones."""
    normalised: list[Utterance] = []
    for entry in history:
        utterance = (
            entry if isinstance(entry, Utterance) else Utterance.from_mapping(entry)
        )
        if utterance.text.strip():
            normalised.append(utterance)
    if max_messages <= 0:
        return []
    return normalised[-max_messages:]


def _render_bullets(entries: cabc.Sequence[Utterance], limit: int) -> str:
    return "\n".join(
        f"• {entry.role}: {truncate(entry.text, limit)}" for entry in entries
    )


def summarise_older(
    older: cabc.Sequence[Utterance],
    target_tokens: int,
    tokens_per_char: float,
) -> str | None:
    """Build an extractive bullet summary that fits ``target_tokens``.

    Bullets are narrowed first; once they reach the minimum width the oldest
    bullets are dropped. ``None`` is returned when nothing fits.
    """
    if not older:
        return None
    entries = list(older)
    limit = SUMMARY_BULLET_CHARS
    summary = _render_bullets(entries, limit)
    while estimate_tokens(summary, tokens_per_char) > target_tokens:
        if limit > SUMMARY_MIN_BULLET_CHARS:
            shrunk = math.floor(limit * SUMMARY_SHRINK_FACTOR)
            limit = max(SUMMARY_MIN_BULLET_CHARS, shrunk)
        elif len(entries) > 1:
            entries = entries[1:]
        else:
            return None
        summary = _render_bullets(entries, limit)
    return summary


def render_recent(recent: cabc.Sequence[Utterance]) -> str:
    """Render recent history lines, each truncated to a fixed width."""
    return "\n".join(
        f"- {entry.role}: {truncate(entry.text, RECENT_ENTRY_CHARS)}"
        for entry in recent
    )


def _history_tokens(
    recent: cabc.Sequence[Utterance],
    summary: str | None,
    tokens_per_char: float,
) -> int:
    return estimate_tokens(render_recent(recent), tokens_per_char) + estimate_tokens(
        summary or "", tokens_per_char
    )


def compact_history(
    history: cabc.Sequence[Utterance],
    available_tokens: int,
    config: PromptConfig,
) -> CompactedHistory:
    """Split history into a summary and a verbatim tail within budget.

    The tail window is kept verbatim; older entries are summarised into at
    most ``SUMMARY_BUDGET_RATIO`` of the available tokens. If the tail still
    overruns the budget, the summary goes first and then the oldest tail
    entries.
    """
    tail = config.history_tail_window
    if len(history) > tail:
        split = len(history) - tail
        older, recent = list(history[:split]), list(history[split:])
        summary_target = math.floor(available_tokens * SUMMARY_BUDGET_RATIO)
        summary = summarise_older(older, summary_target, config.tokens_per_char)
    else:
        recent, summary = list(history), None

    used = _history_tokens(recent, summary, config.tokens_per_char)
    if used > available_tokens and summary is not None:
        summary = None
        used = _history_tokens(recent, summary, config.tokens_per_char)
    while used > available_tokens and recent:
        recent = recent[1:]
        used = _history_tokens(recent, summary, config.tokens_per_char)

    return CompactedHistory(recent=tuple(recent), summary=summary, used_tokens=used)


def build_composite(
    *,
    system: str,
    user: str,
    recent: cabc.Sequence[Utterance],
    summary: str | None,
) -> str:
    """Join the non-empty prompt sections in their fixed order."""
    sections = [
        f"SYSTEM:\n{system}" if system else None,
        f"HISTORY SUMMARY:\n{summary}" if summary else None,
        f"RECENT HISTORY:\n{render_recent(recent)}" if recent else None,
        f"CURRENT REQUEST:\n{user}",
        RESPONSE_INSTRUCTIONS,
    ]
    return "\n\n".join(section for section in sections if section)


def _budget_overhead(
    user: str,
    system: str,
    config: PromptConfig,
) -> tuple[int, int, int]:
    """Return reserved output, overhead, and history allowance."""
    max_input = config.max_input_tokens
    reserved = min(
        config.reserved_output_tokens,
        math.floor(max_input * OUTPUT_RESERVE_CAP_RATIO),
    )
    overhead = estimate_tokens(user, config.tokens_per_char) + estimate_tokens(
        system, config.tokens_per_char
    )
    if reserved + overhead > max_input:
        msg = (
            f"Current request needs {overhead} tokens but only "
            f"{max_input - reserved} remain after reserving output."
        )
        raise PromptBudgetExceededError(msg)
    available = max(0, min(config.max_history_tokens, max_input - reserved - overhead))
    return reserved, overhead, available


def prepare(turn: Turn, config: PromptConfig) -> PreparedPrompt:
    """Prepare the bounded, sanitized prompt for one turn.

    Parameters
    ----------
    turn : Turn
        The inbound request plus its prior utterances.
    config : PromptConfig
        Budget, redaction, and language settings.

    Returns
    -------
    PreparedPrompt
        Prompt whose budget satisfies
        ``reserved + overhead + used_by_history <= max_input_tokens``.

    Raises
    ------
    ValidationError
        If the conversation identifier or the trimmed user text is empty.
    PromptBudgetExceededError
        If the request and system instruction alone overrun the budget.
    """
    if not turn.conversation_id.strip():
        msg = "conversation_id must not be empty."
        raise ValidationError(msg)
    raw_user = turn.text.strip()
    if not raw_user:
        msg = "User text must not be empty."
        raise ValidationError(msg)

    language = detect_language(raw_user, config.default_language)
    tally = RedactionTally()
    user = tally.redact(raw_user) if config.redact_pii else raw_user

    history = normalise_history(turn.history, config.max_history_messages)
    if config.redact_pii:
        history = [
            dc.replace(entry, text=tally.redact(entry.text)) for entry in history
        ]

    system = system_instruction_for(language, config.system_instruction)
    reserved, overhead, available = _budget_overhead(user, system, config)
    compacted = compact_history(history, available, config)

    composite = build_composite(
        system=system,
        user=user,
        recent=compacted.recent,
        summary=compacted.summary,
    )
    return PreparedPrompt(
        conversation_id=turn.conversation_id,
        sequence=turn.sequence,
        system=system,
        user=user,
        history=compacted.recent,
        summary=compacted.summary,
        composite=composite,
        budget=TokenBudget(
            max_input_tokens=config.max_input_tokens,
            reserved_output_tokens=reserved,
            overhead_tokens=overhead,
            available_for_history=available,
            used_by_history=compacted.used_tokens,
        ),
        safety=SafetyRecord(flags=tally.flags(), redactions=tally.as_mapping()),
        language=language,
    )


class PromptPreparer:
    """Callable wrapper binding a prompt configuration to ``prepare``."""

    def __init__(self, config: PromptConfig) -> None:
        self._config = config

    def prepare(self, turn: Turn) -> PreparedPrompt:
        """Prepare one turn with the bound configuration."""
        return prepare(turn, self._config)


__all__ = (
    "CompactedHistory",
    "PromptPreparer",
    "build_composite",
    "compact_history",
    "detect_language",
    "normalise_history",
    "prepare",
    "summarise_older",
    "system_instruction_for",
)
