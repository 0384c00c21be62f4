from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Iterator, List

import psycopg
import pytest

from toll_pipeline.domain.errors import DomainError
from toll_pipeline.domain.models import ReportHistoryEntry, ReportStatus
from toll_pipeline.ingestion.registry import PlazaRegistry, plaza_unavailable_message
from toll_pipeline.reports.history import HistoryRecorder


class _Cursor:
    def __init__(self, rows: List[tuple], rowcount: int = 1) -> None:
        self._rows = rows
        self.rowcount = rowcount
        self.executed: List[tuple] = []

    def __enter__(self) -> "_Cursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False

    def execute(self, query: str, params: Any = None) -> "_Cursor":
        self.executed.append((query, params))
        return self

    def fetchall(self) -> List[tuple]:
        return list(self._rows)


class _Conn:
    def __init__(self, rows: List[tuple] = (), rowcount: int = 1, fail: bool = False) -> None:
        self.cur = _Cursor(list(rows), rowcount)
        self.fail = fail

    @contextmanager
    def transaction(self) -> Iterator[None]:
        yield

    def cursor(self, **_: Any) -> _Cursor:
        return self.cur

    def execute(self, query: str, params: Any = None) -> _Cursor:
        if self.fail:
            raise psycopg.OperationalError("connection lost")
        return self.cur.execute(query, params)


def _entry() -> ReportHistoryEntry:
    return ReportHistoryEntry(
        report_kind="TopPlazas",
        parameters='{"year":2025}',
        duration_ms=12,
        correlation_id=uuid.uuid4(),
        status=ReportStatus.COMPLETED,
        recorded_at=datetime(2025, 6, 15, tzinfo=UTC),
    )


def _factory(conn: _Conn):
    @contextmanager
    def _session() -> Iterator[_Conn]:
        yield conn

    return _session


def test_history_record_writes_one_row():
    conn = _Conn()
    entry = _entry()

    assert HistoryRecorder(_factory(conn)).record(entry) is True

    (query, params), = conn.cur.executed
    assert "report_history" in query
    assert params[0] == "TopPlazas"
    assert params[4] == entry.correlation_id
    assert params[5] == "Completed"


def test_history_failure_is_logged_and_swallowed(caplog):
    recorder = HistoryRecorder(_factory(_Conn(fail=True)))

    assert recorder.record(_entry()) is False
    assert "Failed to record report history" in caplog.text


def test_history_session_failure_is_swallowed():
    @contextmanager
    def _broken() -> Iterator[_Conn]:
        raise RuntimeError("pool exhausted")
        yield  # pragma: no cover

    assert HistoryRecorder(_broken).record(_entry()) is False


def test_active_ids_queries_distinct_sorted_ids():
    conn = _Conn(rows=[(1,), (3,)])

    assert PlazaRegistry().active_ids(conn, [3, 1, 3, 2]) == {1, 3}
    (_, params), = conn.cur.executed
    assert params == ([1, 2, 3],)


def test_active_ids_skips_query_for_empty_input():
    conn = _Conn()
    assert PlazaRegistry().active_ids(conn, []) == set()
    assert conn.cur.executed == []


def test_require_active_raises_domain_error():
    with pytest.raises(DomainError) as exc_info:
        PlazaRegistry().require_active(_Conn(rows=[]), 99)
    assert str(exc_info.value) == plaza_unavailable_message(99) == "Plaza id 99 not found or inactive"


def test_set_active_unknown_plaza_raises():
    with pytest.raises(DomainError):
        PlazaRegistry().set_active(_Conn(rowcount=0), 42, False)
