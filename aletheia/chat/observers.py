"""Pipeline observers.

``LoggingObserver`` turns telemetry callbacks into structured log records;
``RecordingObserver`` keeps them in memory for assertions and local
inspection.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from aletheia.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from .domain import MessageKey
    from .ports import GenerationReport

logger = get_logger(__name__)


class LoggingObserver:
    """Observer that writes every signal to the module logger."""

    def generation_finished(self, report: GenerationReport) -> None:
        """Log the run summary."""
        log_info(
            logger,
            "generation.report conversation=%s message=%s model=%s source=%s "
            "ttft_ms=%s chunks=%s output_chars=%s cost_usd=%s failed=%s "
            "degraded=%s gone=%s",
            report.conversation_id,
            report.message_id,
            report.model,
            report.prompt_source,
            report.time_to_first_fragment_ms,
            report.chunks,
            report.output_chars,
            report.cost_estimate_usd,
            report.failed,
            report.degraded_deliveries,
            report.recipient_gone,
        )

    def delivery_degraded(self, message_id: str, chunk_index: int) -> None:
        """Log an abandoned event delivery."""
        log_warning(
            logger,
            "delivery.degraded message=%s chunk_index=%s",
            message_id,
            chunk_index,
        )

    def duplicate_write(self, key: MessageKey) -> None:
        """Log an idempotent ledger hit."""
        log_info(
            logger,
            "ledger.duplicate conversation=%s message=%s",
            key.conversation_id,
            key.message_id,
        )

    def aggregate_update_failed(self, conversation_id: str, error: Exception) -> None:
        """Log a failed aggregate update."""
        log_error(
            logger,
            "ledger.aggregate_failed conversation=%s error=%s",
            conversation_id,
            error,
        )


@dc.dataclass(slots=True)
class RecordingObserver:
    """Observer that keeps every signal in lists."""

    reports: list[GenerationReport] = dc.field(default_factory=list)
    degraded: list[tuple[str, int]] = dc.field(default_factory=list)
    duplicates: list[MessageKey] = dc.field(default_factory=list)
    aggregate_failures: list[tuple[str, Exception]] = dc.field(default_factory=list)

    def generation_finished(self, report: GenerationReport) -> None:
        self.reports.append(report)

    def delivery_degraded(self, message_id: str, chunk_index: int) -> None:
        self.degraded.append((message_id, chunk_index))

    def duplicate_write(self, key: MessageKey) -> None:
        self.duplicates.append(key)

    def aggregate_update_failed(self, conversation_id: str, error: Exception) -> None:
        self.aggregate_failures.append((conversation_id, error))
