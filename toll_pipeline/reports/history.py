"""
Append-only audit of report invocations.

Writes use their own session and transaction, separate from the report's.
Failures are logged and swallowed so auditing can never change a report's
outcome.
"""

from __future__ import annotations

from toll_pipeline.domain.models import ReportHistoryEntry
from toll_pipeline.infrastructure.db_factory import SessionFactory, session_scope
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)

INSERT_HISTORY_SQL = """
INSERT INTO public.report_history
    (report_kind, parameters, result, duration_ms, correlation_id, status, error_message, recorded_at)
VALUES (%s, %s::jsonb, %s::jsonb, %s, %s, %s, %s, %s);
"""


class HistoryRecorder:
    def __init__(self, session_factory: SessionFactory = session_scope) -> None:
        self.session_factory = session_factory

    def record(self, entry: ReportHistoryEntry) -> bool:
        """Persist `entry`. Returns False (after logging) if the write failed."""
        try:
            with self.session_factory() as conn:
                with conn.transaction():
                    conn.execute(
                        INSERT_HISTORY_SQL,
                        (
                            entry.report_kind,
                            entry.parameters,
                            entry.result,
                            entry.duration_ms,
                            entry.correlation_id,
                            entry.status.value,
                            entry.error_message,
                            entry.recorded_at,
                        ),
                    )
        except Exception:  # noqa: BLE001 - history must never affect the report outcome
            log.exception(
                "Failed to record report history",
                extra={
                    "correlation_id": str(entry.correlation_id),
                    "report_kind": entry.report_kind,
                    "status": entry.status.value,
                },
            )
            return False
        return True


__all__ = ["HistoryRecorder"]
