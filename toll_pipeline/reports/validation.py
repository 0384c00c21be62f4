"""
Report request validation.

Runs before any storage access. A rejected request never reaches execution,
so it produces no history entry.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Union

from toll_pipeline.config import get_settings
from toll_pipeline.domain.errors import FieldViolation, ValidationError
from toll_pipeline.domain.reports import HourlyRevenueRequest, TopPlazasRequest, VehicleMixRequest
from toll_pipeline.utils.clock import as_utc, utcnow

MIN_YEAR = 2021
MAX_TOP = 100
CITY_FILTER_MIN = 2
CITY_FILTER_MAX = 100


def _check_paging(page: Optional[int], page_size: int, max_page_size: int) -> List[FieldViolation]:
    violations = []
    if page is not None and page < 1:
        violations.append(FieldViolation("page", "Page must be >= 1"))
    if not 1 <= page_size <= max_page_size:
        violations.append(
            FieldViolation("page_size", f"Page size must be between 1 and {max_page_size}")
        )
    return violations


def _check_range(start: datetime, end: datetime, now: datetime) -> List[FieldViolation]:
    violations = []
    if as_utc(end) < as_utc(start):
        violations.append(FieldViolation("end", "End must not be before start"))
    if as_utc(end) > now + timedelta(days=1):
        violations.append(FieldViolation("end", "End cannot be in the future"))
    return violations


def validate_report_request(
    request: Union[HourlyRevenueRequest, TopPlazasRequest, VehicleMixRequest],
    now: Optional[datetime] = None,
    max_page_size: Optional[int] = None,
) -> None:
    """
    Raises
    ------
    ValidationError
        With every violated rule, if any.
    """
    now = as_utc(now) if now is not None else utcnow()
    cap = max_page_size or get_settings().report_max_page_size
    violations = _check_paging(request.page, request.page_size, cap)

    if isinstance(request, HourlyRevenueRequest):
        violations.extend(_check_range(request.start, request.end, now))
        if request.city is not None and request.city.strip():
            if not CITY_FILTER_MIN <= len(request.city.strip()) <= CITY_FILTER_MAX:
                violations.append(
                    FieldViolation(
                        "city", f"City must be between {CITY_FILTER_MIN} and {CITY_FILTER_MAX} characters"
                    )
                )
    elif isinstance(request, VehicleMixRequest):
        violations.extend(_check_range(request.start, request.end, now))
        if request.plaza_id is not None and request.plaza_id <= 0:
            violations.append(FieldViolation("plaza_id", "Plaza id must be greater than zero"))
    elif isinstance(request, TopPlazasRequest):
        if not MIN_YEAR <= request.year <= now.year:
            violations.append(FieldViolation("year", f"Year must be between {MIN_YEAR} and {now.year}"))
        if not 1 <= request.month <= 12:
            violations.append(FieldViolation("month", "Month must be between 1 and 12"))
        elif all(v.field != "year" for v in violations) and request.window()[0] > now:
            violations.append(FieldViolation("month", "Cannot query a future month"))
        if not 1 <= request.top <= MAX_TOP:
            violations.append(FieldViolation("top", f"Top must be between 1 and {MAX_TOP}"))

    if violations:
        raise ValidationError(violations, message="Invalid report request")


__all__ = ["validate_report_request"]
