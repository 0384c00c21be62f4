from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from toll_pipeline.domain.errors import ValidationError
from toll_pipeline.domain.reports import (
    HourlyRevenueRequest,
    TopPlazasRequest,
    VehicleMixRequest,
    parse_report_request,
)
from toll_pipeline.reports.validation import validate_report_request

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)
START = NOW - timedelta(days=7)


def _violations(request) -> list[str]:
    try:
        validate_report_request(request, now=NOW, max_page_size=100)
    except ValidationError as exc:
        return [v.field for v in exc.violations]
    return []


def test_valid_requests_pass():
    assert _violations(HourlyRevenueRequest(start=START, end=NOW, city="camp")) == []
    assert _violations(TopPlazasRequest(year=2025, month=6)) == []
    assert _violations(VehicleMixRequest(start=START, end=NOW, plaza_id=3, page=2)) == []


def test_end_before_start_is_rejected():
    assert _violations(HourlyRevenueRequest(start=NOW, end=START)) == ["end"]


def test_equal_bounds_are_accepted():
    assert _violations(VehicleMixRequest(start=NOW, end=NOW)) == []


def test_end_more_than_a_day_ahead_is_rejected():
    request = VehicleMixRequest(start=START, end=NOW + timedelta(days=2))
    assert _violations(request) == ["end"]


@pytest.mark.parametrize(
    ("request_kwargs", "field"),
    [
        ({"year": 2025, "month": 7}, "month"),
        ({"year": 2025, "month": 13}, "month"),
        ({"year": 2026, "month": 1}, "year"),
        ({"year": 2019, "month": 1}, "year"),
        ({"year": 2025, "month": 5, "top": 0}, "top"),
        ({"year": 2025, "month": 5, "top": 101}, "top"),
    ],
)
def test_top_plazas_rules(request_kwargs, field):
    assert _violations(TopPlazasRequest(**request_kwargs)) == [field]


def test_paging_rules():
    assert _violations(HourlyRevenueRequest(start=START, end=NOW, page=0)) == ["page"]
    assert _violations(HourlyRevenueRequest(start=START, end=NOW, page=1, page_size=101)) == [
        "page_size"
    ]


def test_short_city_filter_is_rejected():
    assert _violations(HourlyRevenueRequest(start=START, end=NOW, city="a")) == ["city"]


def test_non_positive_plaza_filter_is_rejected():
    assert _violations(VehicleMixRequest(start=START, end=NOW, plaza_id=0)) == ["plaza_id"]


def test_requests_parse_from_tagged_mappings():
    request = parse_report_request({"kind": "top_plazas", "year": 2025, "month": 3, "page": 2})
    assert isinstance(request, TopPlazasRequest)
    assert request.history_kind == "TopPlazasPaged"
    assert request.window() == (
        datetime(2025, 3, 1, tzinfo=UTC),
        datetime(2025, 4, 1, tzinfo=UTC),
    )


def test_december_window_rolls_into_next_year():
    assert TopPlazasRequest(year=2024, month=12).window()[1] == datetime(2025, 1, 1, tzinfo=UTC)


@pytest.mark.parametrize("request_type", [HourlyRevenueRequest, VehicleMixRequest])
def test_naive_bounds_are_read_as_utc(request_type):
    request = request_type(start=datetime(2025, 6, 8, 12, 0), end=datetime(2025, 6, 15, 12, 0))

    assert request.start == START
    assert request.end == NOW
    assert request.start.tzinfo is UTC and request.end.tzinfo is UTC
    assert _violations(request) == []


def test_offset_bounds_are_converted_to_utc():
    sao_paulo = timezone(timedelta(hours=-3))
    request = HourlyRevenueRequest(start=datetime(2025, 6, 8, 9, 0, tzinfo=sao_paulo), end=NOW)

    assert request.start == START
    assert request.start.utcoffset() == timedelta(0)
