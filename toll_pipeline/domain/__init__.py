"""
Domain package for the toll pipeline.

Exports the core domain models, report contracts and the error taxonomy used
across ingestion and reporting. Keep this package focused on data definitions.
"""

from toll_pipeline.domain.errors import (
    CancelReason,
    DomainError,
    FieldViolation,
    InfrastructureError,
    ReportCancelledError,
    ReportTimeoutError,
    TollPipelineError,
    ValidationError,
)
from toll_pipeline.domain.models import (
    BatchOutcome,
    Plaza,
    QueueEnvelope,
    ReportHistoryEntry,
    ReportStatus,
    SingleOutcome,
    UsageInput,
    UsageRecord,
    VehicleClass,
)
from toll_pipeline.domain.reports import (
    HourlyRevenueRequest,
    ReportRequest,
    ReportResult,
    TopPlazasRequest,
    VehicleMixRequest,
    parse_report_request,
)

__all__ = [
    "CancelReason",
    "DomainError",
    "FieldViolation",
    "InfrastructureError",
    "ReportCancelledError",
    "ReportTimeoutError",
    "TollPipelineError",
    "ValidationError",
    "BatchOutcome",
    "Plaza",
    "QueueEnvelope",
    "ReportHistoryEntry",
    "ReportStatus",
    "SingleOutcome",
    "UsageInput",
    "UsageRecord",
    "VehicleClass",
    "HourlyRevenueRequest",
    "ReportRequest",
    "ReportResult",
    "TopPlazasRequest",
    "VehicleMixRequest",
    "parse_report_request",
]
