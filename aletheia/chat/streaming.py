"""Stream generation: drive the provider, deliver events, persist the answer.

One ``StreamGenerator.generate`` call is one generation run. Fragments are
consumed strictly in order and each becomes a ``chunk`` event with the next
chunk index; the run ends with exactly one terminal event, either ``final``
carrying usage and cost or ``error``.

Once the recipient is reported gone no further delivery is attempted, but
fragments are still consumed and the final message is still persisted.

Examples
--------
>>> generator = StreamGenerator(provider=source, delivery=delivery, ledger=ledger)
>>> outcome = await generator.generate(prepared, "conn-1", GenerationConfig())
>>> outcome.chunks
2
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import datetime as dt
import random
import time
import typing as typ
import uuid

from aletheia.logging import get_logger, log_debug, log_error, log_info, log_warning

from .domain import (
    GenerationOutcome,
    GenerationStatus,
    MessageType,
    PersistedMessage,
    PreparedPrompt,
    PromptSource,
    Role,
    StreamEvent,
    Usage,
)
from .errors import (
    AletheiaError,
    DeliveryGoneError,
    GenerationFailedError,
    ProviderError,
    TransientDeliveryError,
    TransientProviderError,
    ValidationError,
)
from .observers import LoggingObserver
from .ports import DeliveryStatus, GenerationReport
from .prompting import normalise_history, render_recent
from .retry import retry_async
from .tokens import estimate_cost_usd, estimate_tokens

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from aletheia.config import GenerationConfig, RetryPolicy
    from aletheia.llm.ports import FragmentSource

    from .domain import Turn
    from .ledger import HistoryLedger
    from .ports import DeliveryPort, PipelineObserver

logger = get_logger(__name__)

FALLBACK_PREFACE = (
    "Context: you are an AletheIA investigation agent. "
    "Goal: explain the problem and suggest short next steps."
)
ERROR_EVENT_TEXT = "An error occurred while generating the response. Please try again."


def build_fallback_prompt(turn: Turn, history_entries: int) -> str:
    """Assemble a minimal prompt straight from a raw turn.

    The last ``history_entries`` non-blank utterances are rendered one per
    line, each truncated to the recent-history width.
    """
    history = normalise_history(turn.history, history_entries)
    sections = [
        FALLBACK_PREFACE,
        f"History:\n{render_recent(history)}" if history else None,
        f"Question:\n{turn.text.strip()}",
    ]
    return "\n\n".join(section for section in sections if section)


@dc.dataclass(slots=True)
class _Run:
    """Mutable bookkeeping for one generation run."""

    message_id: str
    target_id: str
    conversation_id: str
    sequence: int
    model: str
    prompt_source: PromptSource
    started_at: float
    parts: list[str] = dc.field(default_factory=list)
    first_fragment_at: float | None = None
    recipient_gone: bool = False
    degraded_deliveries: int = 0

    @property
    def chunks(self) -> int:
        return len(self.parts)

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def event(
        self,
        message_type: MessageType,
        text: str,
        *,
        role: Role = Role.ASSISTANT,
        usage: Usage | None = None,
        cost_estimate_usd: float | None = None,
    ) -> StreamEvent:
        return StreamEvent(
            message_type=message_type,
            message_id=self.message_id,
            conversation_id=self.conversation_id,
            sequence=self.sequence,
            chunk_index=self.chunks,
            is_final=message_type in {MessageType.FINAL, MessageType.ERROR},
            role=role,
            text=text,
            usage=usage,
            cost_estimate_usd=cost_estimate_usd,
        )


def _new_message_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class StreamGenerator:
    """Orchestrates generation runs against injected ports.

    Parameters
    ----------
    provider : FragmentSource
        Source of text fragments.
    delivery : DeliveryPort
        Push channel toward the live recipient.
    ledger : HistoryLedger
        Durable store for the final message.
    observer : PipelineObserver | None
        Telemetry sink; defaults to ``LoggingObserver``.
    clock, now, sleep, rng, message_id_factory
        Injectable time, randomness, and identity sources.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        provider: FragmentSource,
        delivery: DeliveryPort,
        ledger: HistoryLedger,
        observer: PipelineObserver | None = None,
        clock: cabc.Callable[[], float] = time.monotonic,
        now: cabc.Callable[[], dt.datetime] = _utc_now,
        sleep: cabc.Callable[[float], cabc.Awaitable[None]] = asyncio.sleep,
        rng: cabc.Callable[[], float] = random.random,
        message_id_factory: cabc.Callable[[], str] = _new_message_id,
    ) -> None:
        self._provider = provider
        self._delivery = delivery
        self._ledger = ledger
        self._observer = observer or LoggingObserver()
        self._clock = clock
        self._now = now
        self._sleep = sleep
        self._rng = rng
        self._message_id_factory = message_id_factory

    async def generate(
        self,
        source: PreparedPrompt | Turn,
        target_id: str,
        config: GenerationConfig,
        *,
        message_id: str | None = None,
    ) -> GenerationOutcome:
        """Run one generation and report its explicit outcome.

        Parameters
        ----------
        source : PreparedPrompt | Turn
            Prepared prompt, or a raw turn when preparation was skipped.
        target_id : str
            Delivery address of the live recipient.
        config : GenerationConfig
            Model, pricing, retry, and partial-persistence settings.
        message_id : str | None
            Identifier for the answer; pass the same value when retrying an
            invocation so the ledger deduplicates it.

        Returns
        -------
        GenerationOutcome
            ``succeeded`` once the final message was recorded, otherwise
            ``failed`` with an ``error_code``.
        """
        if isinstance(source, PreparedPrompt):
            prompt, prompt_source = source.composite, PromptSource.PREPARED
        else:
            prompt = build_fallback_prompt(source, config.fallback_history_entries)
            prompt_source = PromptSource.FALLBACK

        run = _Run(
            message_id=message_id or self._message_id_factory(),
            target_id=target_id,
            conversation_id=source.conversation_id,
            sequence=source.sequence,
            model=config.model,
            prompt_source=prompt_source,
            started_at=self._clock(),
        )
        log_info(
            logger,
            "generate.start conversation=%s message=%s sequence=%s model=%s source=%s",
            run.conversation_id,
            run.message_id,
            run.sequence,
            run.model,
            run.prompt_source,
        )

        try:
            _validate_source(source)
            fragments = await self._open(prompt, config)
            await self._consume(run, fragments, config)
        except AletheiaError as exc:
            return await self._fail(run, exc, config)
        if not run.text.strip():
            exc = GenerationFailedError("Provider produced no text.")
            return await self._fail(run, exc, config)
        return await self._finish(run, source, prompt, config)

    async def _open(
        self, prompt: str, config: GenerationConfig
    ) -> cabc.AsyncIterator[str]:
        return await retry_async(
            lambda: self._provider.open_stream(config.model, prompt),
            policy=config.provider_retry,
            retry_on=(TransientProviderError,),
            name="provider-open",
            sleep=self._sleep,
            rng=self._rng,
            clock=self._clock,
        )

    async def _consume(
        self,
        run: _Run,
        fragments: cabc.AsyncIterator[str],
        config: GenerationConfig,
    ) -> None:
        try:
            async for fragment in fragments:
                if run.first_fragment_at is None:
                    run.first_fragment_at = self._clock()
                await self._deliver(
                    run, run.event(MessageType.CHUNK, fragment), config.delivery_retry
                )
                run.parts.append(fragment)
                log_debug(
                    logger,
                    "chunk.sent message=%s chunk_index=%s chars=%s",
                    run.message_id,
                    run.chunks - 1,
                    len(fragment),
                )
        except ProviderError as exc:
            if config.persist_partial_on_stream_error and run.parts:
                log_warning(
                    logger,
                    "generate.partial message=%s chunks=%s error=%s",
                    run.message_id,
                    run.chunks,
                    exc,
                )
                return
            raise

    async def _deliver(
        self, run: _Run, event: StreamEvent, policy: RetryPolicy
    ) -> None:
        """Deliver one event with retry, recording gone and degraded outcomes."""
        if run.recipient_gone:
            return

        async def attempt() -> None:
            status = await self._delivery.send(run.target_id, event)
            if status is DeliveryStatus.GONE:
                msg = f"Recipient {run.target_id} is gone."
                raise DeliveryGoneError(msg)
            if status is DeliveryStatus.FAILED:
                msg = f"Delivery to {run.target_id} failed."
                raise TransientDeliveryError(msg)

        try:
            await retry_async(
                attempt,
                policy=policy,
                retry_on=(TransientDeliveryError,),
                name="delivery",
                sleep=self._sleep,
                rng=self._rng,
                clock=self._clock,
            )
        except DeliveryGoneError:
            run.recipient_gone = True
            log_warning(
                logger,
                "delivery.gone message=%s chunk_index=%s",
                run.message_id,
                event.chunk_index,
            )
        except TransientDeliveryError:
            run.degraded_deliveries += 1
            self._observer.delivery_degraded(run.message_id, event.chunk_index)

    async def _finish(
        self,
        run: _Run,
        source: PreparedPrompt | Turn,
        prompt: str,
        config: GenerationConfig,
    ) -> GenerationOutcome:
        text = run.text
        input_tokens = estimate_tokens(prompt, config.tokens_per_char)
        if isinstance(source, PreparedPrompt):
            declared = source.budget.used_by_history + source.budget.overhead_tokens
            input_tokens = min(input_tokens, declared)
        usage = Usage(
            input_tokens=input_tokens,
            output_tokens=estimate_tokens(text, config.tokens_per_char),
        )
        cost = estimate_cost_usd(
            usage.input_tokens,
            usage.output_tokens,
            price_per_k_in=config.price_per_k_tokens_in,
            price_per_k_out=config.price_per_k_tokens_out,
        )
        final = run.event(MessageType.FINAL, text, usage=usage, cost_estimate_usd=cost)
        await self._deliver(run, final, config.delivery_retry)

        message = PersistedMessage(
            conversation_id=run.conversation_id,
            sequence=run.sequence,
            message_id=run.message_id,
            role=Role.ASSISTANT,
            text=text,
            usage=usage,
            cost_estimate_usd=cost,
            created_at=self._now(),
            model=run.model,
            prompt_source=run.prompt_source,
        )
        try:
            result = await self._ledger.persist(message)
        except AletheiaError as exc:
            log_error(
                logger,
                "generate.persist_failed message=%s code=%s error=%s",
                run.message_id,
                exc.code,
                exc,
            )
            self._report(run, cost, failed=True)
            return self._outcome(
                run,
                GenerationStatus.FAILED,
                usage=usage,
                cost=cost,
                error_code=exc.code,
            )

        self._report(run, cost, failed=False)
        log_info(
            logger,
            "generate.done message=%s chunks=%s stored=%s gone=%s degraded=%s",
            run.message_id,
            run.chunks,
            result.stored,
            run.recipient_gone,
            run.degraded_deliveries,
        )
        return self._outcome(
            run,
            GenerationStatus.SUCCEEDED,
            usage=usage,
            cost=cost,
            persisted=result.stored,
        )

    async def _fail(
        self,
        run: _Run,
        exc: AletheiaError,
        config: GenerationConfig,
    ) -> GenerationOutcome:
        log_error(
            logger,
            "generate.error conversation=%s message=%s chunks=%s code=%s error=%s",
            run.conversation_id,
            run.message_id,
            run.chunks,
            exc.code,
            exc,
        )
        error_event = run.event(MessageType.ERROR, ERROR_EVENT_TEXT, role=Role.SYSTEM)
        await self._deliver(run, error_event, config.delivery_retry)
        self._report(run, 0.0, failed=True)
        return self._outcome(run, GenerationStatus.FAILED, error_code=exc.code)

    def _report(self, run: _Run, cost: float, *, failed: bool) -> None:
        ttft_ms = (
            None
            if run.first_fragment_at is None
            else round((run.first_fragment_at - run.started_at) * 1000, 3)
        )
        self._observer.generation_finished(
            GenerationReport(
                conversation_id=run.conversation_id,
                message_id=run.message_id,
                model=run.model,
                prompt_source=run.prompt_source,
                time_to_first_fragment_ms=ttft_ms,
                chunks=run.chunks,
                output_chars=len(run.text),
                cost_estimate_usd=cost,
                failed=failed,
                degraded_deliveries=run.degraded_deliveries,
                recipient_gone=run.recipient_gone,
            )
        )

    @staticmethod
    def _outcome(  # noqa: PLR0913
        run: _Run,
        status: GenerationStatus,
        *,
        usage: Usage | None = None,
        cost: float | None = None,
        persisted: bool = False,
        error_code: str | None = None,
    ) -> GenerationOutcome:
        return GenerationOutcome(
            status=status,
            message_id=run.message_id,
            chunks=run.chunks,
            text=run.text,
            usage=usage,
            cost_estimate_usd=cost,
            persisted=persisted,
            recipient_gone=run.recipient_gone,
            degraded_deliveries=run.degraded_deliveries,
            error_code=error_code,
        )


def _validate_source(source: PreparedPrompt | Turn) -> None:
    if not source.conversation_id.strip():
        msg = "conversation_id must not be empty."
        raise ValidationError(msg)
    text = source.composite if isinstance(source, PreparedPrompt) else source.text
    if not text.strip():
        msg = "Prompt text must not be empty."
        raise ValidationError(msg)


__all__ = (
    "ERROR_EVENT_TEXT",
    "FALLBACK_PREFACE",
    "StreamGenerator",
    "build_fallback_prompt",
)
