"""
Report request and result contracts.

Report kinds form a closed tagged union (`ReportRequest`, discriminated by
`kind`). Each variant has its own row type; the aggregator dispatches over the
union exhaustively. A request with `page` set yields a paged payload, otherwise
a plain list.
"""
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Annotated, Any, Generic, List, Literal, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from toll_pipeline.domain.models import ReportStatus, VehicleClass
from toll_pipeline.utils.clock import as_utc, utcnow

DEFAULT_PAGE_SIZE = 10
DEFAULT_TOP = 10

TIMEOUT_MESSAGE = "Report cancelled by timeout"
CANCELLED_MESSAGE = "Report cancelled by caller"
FAILED_MESSAGE = "Internal error while processing report"
SUCCESS_MESSAGE = "Report processed successfully"


class _Paging(BaseModel):
    page: Optional[int] = Field(None, description="1-based page; None returns the full list.")
    page_size: int = Field(DEFAULT_PAGE_SIZE)

    model_config = {"frozen": True}

    @property
    def paged(self) -> bool:
        return self.page is not None


class _TimeWindow(_Paging):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # Naive bounds are read as UTC.
        return as_utc(value)


class HourlyRevenueRequest(_TimeWindow):
    kind: Literal["hourly_revenue"] = "hourly_revenue"
    city: Optional[str] = Field(None, description="Case-insensitive substring filter.")

    @property
    def history_kind(self) -> str:
        return "HourlyRevenuePaged" if self.paged else "HourlyRevenue"


class TopPlazasRequest(_Paging):
    kind: Literal["top_plazas"] = "top_plazas"
    year: int
    month: int
    top: int = Field(DEFAULT_TOP, description="Cap for the non-paged variant.")

    @property
    def history_kind(self) -> str:
        return "TopPlazasPaged" if self.paged else "TopPlazas"

    def window(self) -> Tuple[datetime, datetime]:
        """Half-open [first day of month, first day of next month) in UTC."""
        start = datetime(self.year, self.month, 1, tzinfo=UTC)
        if self.month == 12:
            end = datetime(self.year + 1, 1, 1, tzinfo=UTC)
        else:
            end = datetime(self.year, self.month + 1, 1, tzinfo=UTC)
        return start, end


class VehicleMixRequest(_TimeWindow):
    kind: Literal["vehicle_mix"] = "vehicle_mix"
    plaza_id: Optional[int] = None

    @property
    def history_kind(self) -> str:
        return "VehicleMixPaged" if self.paged else "VehicleMix"


ReportRequest = Annotated[
    Union[HourlyRevenueRequest, TopPlazasRequest, VehicleMixRequest],
    Field(discriminator="kind"),
]

_REQUEST_ADAPTER: TypeAdapter[Any] = TypeAdapter(ReportRequest)


def parse_report_request(data: Any) -> Union[HourlyRevenueRequest, TopPlazasRequest, VehicleMixRequest]:
    """Build the matching request variant from a mapping carrying `kind`."""
    return _REQUEST_ADAPTER.validate_python(data)


class HourlyRevenueRow(BaseModel):
    city: str
    state: str
    hour: datetime
    total_amount: Decimal
    usage_count: int


class TopPlazaRow(BaseModel):
    plaza_id: int
    plaza_name: str
    city: str
    state: str
    total_amount: Decimal
    usage_count: int
    rank: int


class VehicleClassShare(BaseModel):
    vehicle_class: VehicleClass
    description: str
    usage_count: int
    total_amount: Decimal
    percentage: Decimal


class VehicleMixRow(BaseModel):
    plaza_id: int
    plaza_name: str
    city: str
    state: str
    vehicle_classes: List[VehicleClassShare]
    usage_count: int
    total_amount: Decimal


PayloadT = TypeVar("PayloadT")


class ReportResult(BaseModel, Generic[PayloadT]):
    """Envelope returned for every report invocation."""

    success: bool
    status: ReportStatus
    message: str
    payload: Optional[PayloadT] = None
    duration_ms: int = 0
    total_records: int = 0
    correlation_id: uuid.UUID
    completed_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def completed(
        cls, payload: Any, duration_ms: int, total_records: int, correlation_id: uuid.UUID
    ) -> "ReportResult[Any]":
        return cls(
            success=True,
            status=ReportStatus.COMPLETED,
            message=SUCCESS_MESSAGE,
            payload=payload,
            duration_ms=duration_ms,
            total_records=total_records,
            correlation_id=correlation_id,
        )

    @classmethod
    def cancelled(cls, message: str, duration_ms: int, correlation_id: uuid.UUID) -> "ReportResult[Any]":
        return cls(
            success=False,
            status=ReportStatus.CANCELLED,
            message=message,
            duration_ms=duration_ms,
            correlation_id=correlation_id,
        )

    @classmethod
    def failed(cls, duration_ms: int, correlation_id: uuid.UUID) -> "ReportResult[Any]":
        return cls(
            success=False,
            status=ReportStatus.FAILED,
            message=FAILED_MESSAGE,
            duration_ms=duration_ms,
            correlation_id=correlation_id,
        )


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_TOP",
    "TIMEOUT_MESSAGE",
    "CANCELLED_MESSAGE",
    "FAILED_MESSAGE",
    "SUCCESS_MESSAGE",
    "HourlyRevenueRequest",
    "TopPlazasRequest",
    "VehicleMixRequest",
    "ReportRequest",
    "parse_report_request",
    "HourlyRevenueRow",
    "TopPlazaRow",
    "VehicleClassShare",
    "VehicleMixRow",
    "ReportResult",
]
