"""
Usage record validation.

Pure functions: no storage access, no side effects. Each check yields a
`FieldViolation`; callers decide whether a violation rejects the whole request
(single mode) or only the offending record (batch mode).
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from toll_pipeline.config import get_settings
from toll_pipeline.domain.errors import FieldViolation, ValidationError
from toll_pipeline.domain.models import UsageInput, VehicleClass
from toll_pipeline.utils.clock import as_utc, one_year_before, utcnow

CITY_MAX_LENGTH = 100
CITY_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s\-'.]+$")
STATE_PATTERN = re.compile(r"^[A-Z]{2}$")


def _validate_timestamp(value: Optional[datetime], now: datetime) -> List[FieldViolation]:
    if value is None:
        return [FieldViolation("timestamp", "Timestamp is required")]
    used_at = as_utc(value)
    if used_at > now:
        return [FieldViolation("timestamp", "Timestamp cannot be in the future")]
    if used_at < one_year_before(now):
        return [FieldViolation("timestamp", "Timestamp cannot be older than one year")]
    return []


def _validate_city(city: str) -> List[FieldViolation]:
    value = city.strip()
    if not value:
        return [FieldViolation("city", "City is required")]
    if len(value) > CITY_MAX_LENGTH:
        return [FieldViolation("city", f"City must be at most {CITY_MAX_LENGTH} characters")]
    if not CITY_PATTERN.match(value):
        return [FieldViolation("city", "City contains invalid characters")]
    return []


def _validate_amount(amount: Decimal, ceiling: Decimal) -> List[FieldViolation]:
    if not amount.is_finite():
        return [FieldViolation("amountPaid", "Amount paid must be a finite number")]
    if amount <= 0:
        return [FieldViolation("amountPaid", "Amount paid must be greater than zero")]
    if amount > ceiling:
        return [FieldViolation("amountPaid", f"Amount paid must not exceed {ceiling}")]
    if amount != amount.quantize(Decimal("0.01")):
        return [FieldViolation("amountPaid", "Amount paid must have at most two decimal places")]
    return []


def validate_usage(
    usage: UsageInput,
    now: Optional[datetime] = None,
    max_amount: Optional[Decimal] = None,
) -> List[FieldViolation]:
    """
    Check a single usage record.

    Parameters
    ----------
    usage : UsageInput
        The record as submitted.
    now : datetime | None
        Reference time for the timestamp window. Defaults to the current UTC time.
    max_amount : Decimal | None
        Amount ceiling. Defaults to `Settings.max_amount_paid`.

    Returns
    -------
    list[FieldViolation]
        Empty when the record is acceptable.
    """
    now = as_utc(now) if now is not None else utcnow()
    ceiling = max_amount if max_amount is not None else get_settings().max_amount_paid

    violations: List[FieldViolation] = []
    violations.extend(_validate_timestamp(usage.used_at, now))
    if usage.plaza_id <= 0:
        violations.append(FieldViolation("plazaId", "Plaza id must be greater than zero"))
    violations.extend(_validate_city(usage.city))
    if not STATE_PATTERN.match(usage.state.strip()):
        violations.append(FieldViolation("state", "State must be exactly two upper-case letters"))
    violations.extend(_validate_amount(usage.amount_paid, ceiling))
    try:
        VehicleClass.parse(usage.vehicle_class)
    except ValueError:
        violations.append(FieldViolation("vehicleClass", "Vehicle class is not a known value"))
    return violations


def validate_batch_size(usages: Sequence[UsageInput], max_size: Optional[int] = None) -> None:
    """Raise ValidationError unless the batch holds between 1 and `max_size` records."""
    limit = max_size if max_size is not None else get_settings().max_batch_size
    if not usages:
        raise ValidationError([FieldViolation("usages", "Batch must contain at least one record")])
    if len(usages) > limit:
        raise ValidationError(
            [FieldViolation("usages", f"Batch must contain at most {limit} records")]
        )


__all__ = ["CITY_PATTERN", "STATE_PATTERN", "validate_batch_size", "validate_usage"]
