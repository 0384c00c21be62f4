"""
Exception taxonomy for the toll pipeline.

- ValidationError: malformed or out-of-range input; carries field/message pairs.
- DomainError: structurally valid input that breaks a business rule.
- ReportCancelledError / ReportTimeoutError: a report run was cancelled by the
  caller or exceeded its execution budget.
- InfrastructureError: storage or transport failure. The message shown to
  callers is generic; the original exception is chained.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List


@dataclass(frozen=True)
class FieldViolation:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class TollPipelineError(Exception):
    """Base class for every error raised by the pipeline core."""


class ValidationError(TollPipelineError):
    def __init__(self, violations: Iterable[FieldViolation], message: str = "Invalid input") -> None:
        self.violations: List[FieldViolation] = list(violations)
        super().__init__(message)

    def __str__(self) -> str:
        details = "; ".join(str(v) for v in self.violations)
        return f"{self.args[0]}: {details}" if details else self.args[0]


class DomainError(TollPipelineError):
    pass


class CancelReason(str, Enum):
    CALLER = "caller"
    TIMEOUT = "timeout"


class ReportCancelledError(TollPipelineError):
    def __init__(self, reason: CancelReason = CancelReason.CALLER) -> None:
        self.reason = reason
        super().__init__(f"Report cancelled ({reason.value})")


class ReportTimeoutError(ReportCancelledError):
    def __init__(self) -> None:
        super().__init__(CancelReason.TIMEOUT)


class InfrastructureError(TollPipelineError):
    def __init__(self, message: str = "Storage operation failed") -> None:
        super().__init__(message)


__all__ = [
    "FieldViolation",
    "TollPipelineError",
    "ValidationError",
    "DomainError",
    "CancelReason",
    "ReportCancelledError",
    "ReportTimeoutError",
    "InfrastructureError",
]
