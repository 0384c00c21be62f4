from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from toll_pipeline.domain.errors import ValidationError
from toll_pipeline.domain.models import UsageInput
from toll_pipeline.ingestion.validator import validate_batch_size, validate_usage

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


def _usage(**overrides) -> UsageInput:
    data = {
        "used_at": NOW - timedelta(hours=1),
        "plaza_id": 1,
        "city": "São José dos Campos",
        "state": "SP",
        "amount_paid": Decimal("12.50"),
        "vehicle_class": 2,
    }
    data.update(overrides)
    return UsageInput(**data)


def _fields(usage: UsageInput) -> list[str]:
    return [v.field for v in validate_usage(usage, now=NOW)]


def test_valid_usage_has_no_violations():
    assert validate_usage(_usage(), now=NOW) == []


def test_city_allows_diacritics_hyphen_apostrophe_and_period():
    assert _fields(_usage(city="Sant'Ana do Livramento")) == []
    assert _fields(_usage(city="Embu-Guaçu")) == []
    assert _fields(_usage(city="St. Louis")) == []


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"used_at": None}, "timestamp"),
        ({"used_at": NOW + timedelta(minutes=1)}, "timestamp"),
        ({"used_at": NOW - timedelta(days=366)}, "timestamp"),
        ({"plaza_id": 0}, "plazaId"),
        ({"city": "   "}, "city"),
        ({"city": "A" * 101}, "city"),
        ({"city": "Rio 2"}, "city"),
        ({"state": "S"}, "state"),
        ({"state": "sp"}, "state"),
        ({"amount_paid": Decimal("0")}, "amountPaid"),
        ({"amount_paid": Decimal("1000000.00")}, "amountPaid"),
        ({"amount_paid": Decimal("1.005")}, "amountPaid"),
        ({"vehicle_class": 9}, "vehicleClass"),
        ({"vehicle_class": "bus"}, "vehicleClass"),
    ],
)
def test_single_rule_violations(overrides, field):
    assert _fields(_usage(**overrides)) == [field]


def test_trailing_zero_decimals_are_accepted():
    assert _fields(_usage(amount_paid=Decimal("10.500"))) == []


def test_naive_timestamp_is_treated_as_utc():
    assert _fields(_usage(used_at=datetime(2025, 6, 15, 11, 0))) == []


def test_multiple_violations_are_all_reported():
    fields = _fields(_usage(plaza_id=-1, state="XYZ", amount_paid=Decimal("-3")))
    assert fields == ["plazaId", "state", "amountPaid"]


def test_amount_ceiling_is_configurable():
    usage = _usage(amount_paid=Decimal("50.00"))
    violations = validate_usage(usage, now=NOW, max_amount=Decimal("49.99"))
    assert [v.field for v in violations] == ["amountPaid"]


def test_batch_size_bounds():
    with pytest.raises(ValidationError) as excinfo:
        validate_batch_size([])
    assert excinfo.value.violations[0].field == "usages"

    with pytest.raises(ValidationError):
        validate_batch_size([_usage()] * 3, max_size=2)

    validate_batch_size([_usage()] * 2, max_size=2)
