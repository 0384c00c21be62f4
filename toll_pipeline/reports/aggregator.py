"""
Report aggregator: runs one report request end to end.

Per request: Received -> Validating -> Executing -> Completed | Cancelled |
Failed. Validation errors raise before execution. Execution runs under a
bounded cancellation token (caller token + fixed budget); the token is polled
between the query and shaping stages and while iterating groups, and an
in-flight query is interrupted through `Connection.cancel_safe`. Every
execution outcome is written to the report history, best effort.

Usage:
    aggregator = ReportAggregator()
    result = aggregator.run(TopPlazasRequest(year=2025, month=5, top=5))
    for row in result.payload:
        print(row.rank, row.plaza_name, row.total_amount)
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union, assert_never

from psycopg import Connection
from psycopg.errors import QueryCanceled

from toll_pipeline.config import get_settings
from toll_pipeline.domain.errors import CancelReason, ReportCancelledError
from toll_pipeline.domain.models import ReportHistoryEntry, ReportStatus, VehicleClass
from toll_pipeline.domain.reports import (
    CANCELLED_MESSAGE,
    TIMEOUT_MESSAGE,
    HourlyRevenueRequest,
    HourlyRevenueRow,
    ReportResult,
    TopPlazaRow,
    TopPlazasRequest,
    VehicleClassShare,
    VehicleMixRequest,
    VehicleMixRow,
)
from toll_pipeline.infrastructure.db_factory import (
    SessionFactory,
    apply_statement_timeout,
    session_scope,
)
from toll_pipeline.reports.cancellation import CancellationToken, TimeoutCoordinator
from toll_pipeline.reports.history import HistoryRecorder
from toll_pipeline.reports.pagination import PagedResult, page_offset, paginate
from toll_pipeline.reports.queries import MixGroup, UsageQueries
from toll_pipeline.reports.validation import validate_report_request
from toll_pipeline.utils.clock import utcnow
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)

AnyReportRequest = Union[HourlyRevenueRequest, TopPlazasRequest, VehicleMixRequest]

PERCENT = Decimal("0.01")
HUNDRED = Decimal(100)


def share_percentage(count: int, total: int) -> Decimal:
    """Share of `count` in `total` as a percentage, banker's-rounded to 2 places."""
    if total <= 0:
        return Decimal("0.00")
    return (Decimal(count) * HUNDRED / Decimal(total)).quantize(PERCENT, rounding=ROUND_HALF_EVEN)


class ReportAggregator:
    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        queries: Optional[UsageQueries] = None,
        history: Optional[HistoryRecorder] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = get_settings()
        self.session_factory = session_factory
        self.queries = queries or UsageQueries()
        self.history = history or HistoryRecorder(session_factory)
        self.timeout_seconds = timeout_seconds or settings.report_timeout_seconds
        self.max_page_size = settings.report_max_page_size
        self.clock = clock

    def run(
        self, request: AnyReportRequest, token: Optional[CancellationToken] = None
    ) -> ReportResult[Any]:
        """
        Execute `request` and return its result envelope.

        Raises
        ------
        ValidationError
            If the request is invalid. Nothing is executed or recorded.
        """
        validate_report_request(request, now=self.clock(), max_page_size=self.max_page_size)

        correlation_id = uuid.uuid4()
        kind = request.history_kind
        started = time.perf_counter()
        log.info(
            f"[REPORT START] {kind}",
            extra={"correlation_id": str(correlation_id), "report_kind": kind},
        )

        coordinator = TimeoutCoordinator(self.timeout_seconds)
        try:
            with coordinator.bounded(token) as bounded:
                payload, total = self._execute(request, bounded, coordinator)
        except ReportCancelledError as exc:
            elapsed = _elapsed_ms(started)
            timed_out = exc.reason is CancelReason.TIMEOUT
            log.warning(
                f"[REPORT CANCELLED] {kind}",
                extra={
                    "correlation_id": str(correlation_id),
                    "reason": exc.reason.value,
                    "duration_ms": elapsed,
                },
            )
            self._record(
                request,
                correlation_id,
                ReportStatus.CANCELLED,
                elapsed,
                error="Timeout" if timed_out else "Cancelled by caller",
            )
            return ReportResult.cancelled(
                TIMEOUT_MESSAGE if timed_out else CANCELLED_MESSAGE, elapsed, correlation_id
            )
        except Exception as exc:  # noqa: BLE001 - every failure becomes a Failed outcome
            elapsed = _elapsed_ms(started)
            log.exception(
                f"[REPORT FAILED] {kind}",
                extra={"correlation_id": str(correlation_id), "duration_ms": elapsed},
            )
            self._record(
                request,
                correlation_id,
                ReportStatus.FAILED,
                elapsed,
                error=str(exc.__cause__ or exc),
            )
            return ReportResult.failed(elapsed, correlation_id)

        elapsed = _elapsed_ms(started)
        result = ReportResult.completed(payload, elapsed, total, correlation_id)
        self._record(
            request,
            correlation_id,
            ReportStatus.COMPLETED,
            elapsed,
            result_json=result.model_dump_json(),
        )
        log.info(
            f"[REPORT COMPLETE] {kind}",
            extra={
                "correlation_id": str(correlation_id),
                "duration_ms": elapsed,
                "total_records": total,
            },
        )
        return result

    def _execute(
        self,
        request: AnyReportRequest,
        token: CancellationToken,
        coordinator: TimeoutCoordinator,
    ) -> Tuple[Any, int]:
        with self.session_factory() as conn:
            unregister = token.register(conn.cancel_safe)
            try:
                with conn.transaction():
                    with conn.cursor() as cur:
                        apply_statement_timeout(cur, max(coordinator.remaining_ms, 1))
                    token.raise_if_cancelled()
                    match request:
                        case HourlyRevenueRequest():
                            return self._hourly_revenue(conn, request, token)
                        case TopPlazasRequest():
                            return self._top_plazas(conn, request, token)
                        case VehicleMixRequest():
                            return self._vehicle_mix(conn, request, token)
                        case _:
                            assert_never(request)
            except QueryCanceled:
                # statement_timeout may beat the timer; either way it is the budget.
                token.cancel(CancelReason.TIMEOUT)
                token.raise_if_cancelled()
                raise
            finally:
                unregister()

    def _hourly_revenue(
        self, conn: Connection, request: HourlyRevenueRequest, token: CancellationToken
    ) -> Tuple[Any, int]:
        groups = self.queries.hourly_groups(conn, request.start, request.end, request.city)
        token.raise_if_cancelled()

        rows: List[HourlyRevenueRow] = []
        for group in sorted(groups, key=lambda g: (g.city, g.hour, g.state)):
            token.raise_if_cancelled()
            rows.append(
                HourlyRevenueRow(
                    city=group.city,
                    state=group.state,
                    hour=group.hour,
                    total_amount=group.total_amount,
                    usage_count=group.usage_count,
                )
            )
        return _shape(rows, request.page, request.page_size)

    def _top_plazas(
        self, conn: Connection, request: TopPlazasRequest, token: CancellationToken
    ) -> Tuple[Any, int]:
        start, end = request.window()
        totals = self.queries.plaza_totals(conn, start, end)
        token.raise_if_cancelled()

        # Stable sort: equal totals keep first-seen order from the query.
        ordered = sorted(totals, key=lambda t: t.total_amount, reverse=True)

        if request.page is not None:
            offset = page_offset(request.page, request.page_size)
            window = ordered[offset : offset + request.page_size]
        else:
            offset = 0
            window = ordered[: request.top]

        rows: List[TopPlazaRow] = []
        for index, item in enumerate(window):
            token.raise_if_cancelled()
            rows.append(
                TopPlazaRow(
                    plaza_id=item.plaza_id,
                    plaza_name=item.plaza_name,
                    city=item.city,
                    state=item.state,
                    total_amount=item.total_amount,
                    usage_count=item.usage_count,
                    rank=offset + index + 1,
                )
            )

        if request.page is not None:
            paged = PagedResult.create(rows, request.page, request.page_size, len(ordered))
            return paged, paged.total_records
        return rows, len(rows)

    def _vehicle_mix(
        self, conn: Connection, request: VehicleMixRequest, token: CancellationToken
    ) -> Tuple[Any, int]:
        groups = self.queries.vehicle_mix_groups(conn, request.start, request.end, request.plaza_id)
        token.raise_if_cancelled()

        by_plaza: Dict[int, List[MixGroup]] = {}
        for group in groups:
            by_plaza.setdefault(group.plaza_id, []).append(group)

        rows: List[VehicleMixRow] = []
        for plaza_groups in by_plaza.values():
            token.raise_if_cancelled()
            rows.append(_mix_row(plaza_groups))
        rows.sort(key=lambda r: (r.city, r.plaza_name, r.plaza_id))
        return _shape(rows, request.page, request.page_size)

    def _record(
        self,
        request: AnyReportRequest,
        correlation_id: uuid.UUID,
        status: ReportStatus,
        duration_ms: int,
        result_json: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        self.history.record(
            ReportHistoryEntry(
                report_kind=request.history_kind,
                parameters=request.model_dump_json(),
                result=result_json,
                duration_ms=duration_ms,
                correlation_id=correlation_id,
                status=status,
                error_message=error,
                recorded_at=self.clock(),
            )
        )


def _mix_row(groups: Sequence[MixGroup]) -> VehicleMixRow:
    first = groups[0]
    plaza_count = sum(g.usage_count for g in groups)
    shares = [
        VehicleClassShare(
            vehicle_class=VehicleClass(g.vehicle_class),
            description=VehicleClass(g.vehicle_class).description,
            usage_count=g.usage_count,
            total_amount=g.total_amount,
            percentage=share_percentage(g.usage_count, plaza_count),
        )
        for g in sorted(groups, key=lambda g: g.vehicle_class)
    ]
    return VehicleMixRow(
        plaza_id=first.plaza_id,
        plaza_name=first.plaza_name,
        city=first.city,
        state=first.state,
        vehicle_classes=shares,
        usage_count=plaza_count,
        total_amount=sum((g.total_amount for g in groups), Decimal("0")),
    )


def _shape(rows: List[Any], page: Optional[int], page_size: int) -> Tuple[Any, int]:
    if page is None:
        return rows, len(rows)
    paged = paginate(rows, page, page_size)
    return paged, paged.total_records


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = ["ReportAggregator", "share_percentage"]
