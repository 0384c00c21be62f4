"""
Domain models for the toll pipeline.

Defines plazas, usage records (as submitted and as persisted), ingestion batch
envelopes and outcomes, and report history entries. Schemas are aligned with
`toll_pipeline.infrastructure.schema`.
"""
from __future__ import annotations

import hashlib
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum, IntEnum
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from toll_pipeline.utils.clock import as_utc, utcnow

CENTS = Decimal("0.01")


class VehicleClass(IntEnum):
    """Vehicle classes. Ordinal values are persisted and drive report ordering."""

    MOTORCYCLE = 1
    CAR = 2
    TRUCK = 3

    @property
    def description(self) -> str:
        return _VEHICLE_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: Union["VehicleClass", int, str]) -> "VehicleClass":
        """
        Resolve an enum member from itself, its ordinal or its name.

        Raises
        ------
        ValueError
            If the value does not name a known vehicle class.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown vehicle class: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            key = value.strip()
            if key.isdigit():
                return cls(int(key))
            try:
                return cls[key.upper()]
            except KeyError:
                raise ValueError(f"Unknown vehicle class: {value!r}") from None
        raise ValueError(f"Unknown vehicle class: {value!r}")


_VEHICLE_DESCRIPTIONS = {
    VehicleClass.MOTORCYCLE: "Motorcycle",
    VehicleClass.CAR: "Car",
    VehicleClass.TRUCK: "Truck",
}


class Plaza(BaseModel):
    id: int
    name: str
    city: str
    state: str = Field(..., min_length=2, max_length=2)
    active: bool = True

    model_config = {"frozen": True}


class UsageInput(BaseModel):
    """
    A toll usage as submitted by a caller, before validation.

    Accepts both snake_case field names and the camelCase keys used by
    upstream producers (`timestamp`, `plazaId`, `amountPaid`, `vehicleClass`).
    """

    used_at: Optional[datetime] = Field(None, alias="timestamp")
    plaza_id: int = Field(..., alias="plazaId")
    city: str = ""
    state: str = ""
    amount_paid: Decimal = Field(..., alias="amountPaid")
    vehicle_class: Union[VehicleClass, int, str] = Field(..., alias="vehicleClass")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }


class UsageRecord(BaseModel):
    """
    Representation of a single row in the `toll_usages` table.
    """

    id: Optional[int] = Field(None, description="Assigned by storage on insert.")
    used_at: datetime
    plaza_id: int
    city: str
    state: str
    amount_paid: Decimal
    vehicle_class: VehicleClass
    inserted_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @classmethod
    def from_input(cls, usage: UsageInput, inserted_at: Optional[datetime] = None) -> "UsageRecord":
        """Normalize a validated input: trimmed upper-case city/state, cents, UTC."""
        if usage.used_at is None:
            raise ValueError("used_at is required")
        return cls(
            used_at=as_utc(usage.used_at),
            plaza_id=usage.plaza_id,
            city=usage.city.strip().upper(),
            state=usage.state.strip().upper(),
            amount_paid=usage.amount_paid.quantize(CENTS, rounding=ROUND_HALF_UP),
            vehicle_class=VehicleClass.parse(usage.vehicle_class),
            inserted_at=inserted_at or utcnow(),
        )

    def as_row(self) -> tuple:
        """Column tuple in `USAGE_COLUMNS` order."""
        return (
            self.used_at,
            self.plaza_id,
            self.city,
            self.state,
            self.amount_paid,
            int(self.vehicle_class),
            self.inserted_at,
        )


USAGE_COLUMNS = (
    "used_at",
    "plaza_id",
    "city",
    "state",
    "amount_paid",
    "vehicle_class",
    "inserted_at",
)


def fingerprint_usages(usages: Sequence[UsageInput]) -> str:
    digest = hashlib.sha256()
    for usage in usages:
        digest.update(usage.model_dump_json().encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


class QueueEnvelope(BaseModel):
    """Message handed from the dispatcher's producers to its workers."""

    message_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    enqueued_at: datetime = Field(default_factory=utcnow)
    usages: List[UsageInput]
    origin: Optional[str] = None
    delivery_attempt: int = 1
    fingerprint: str = ""

    model_config = {"frozen": True}

    @classmethod
    def create(cls, usages: Sequence[UsageInput], origin: Optional[str] = None) -> "QueueEnvelope":
        return cls(usages=list(usages), origin=origin, fingerprint=fingerprint_usages(usages))

    def with_attempt(self, attempt: int) -> "QueueEnvelope":
        return self.model_copy(update={"delivery_attempt": attempt})


class BatchOutcome(BaseModel):
    batch_id: uuid.UUID
    processed: int = 0
    errored: int = 0
    errors: List[str] = Field(default_factory=list)
    strategy: str = "none"
    completed_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}


class SingleOutcome(BaseModel):
    id: int
    processed_at: datetime

    model_config = {"frozen": True}


class ReportStatus(str, Enum):
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


class ReportHistoryEntry(BaseModel):
    report_kind: str
    parameters: str
    result: Optional[str] = None
    duration_ms: int
    correlation_id: uuid.UUID
    status: ReportStatus
    error_message: Optional[str] = None
    recorded_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}


__all__ = [
    "CENTS",
    "VehicleClass",
    "Plaza",
    "UsageInput",
    "UsageRecord",
    "USAGE_COLUMNS",
    "fingerprint_usages",
    "QueueEnvelope",
    "BatchOutcome",
    "SingleOutcome",
    "ReportStatus",
    "ReportHistoryEntry",
]
