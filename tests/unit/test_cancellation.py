from __future__ import annotations

import pytest

from toll_pipeline.domain.errors import CancelReason, ReportCancelledError, ReportTimeoutError
from toll_pipeline.reports.cancellation import CancellationToken, TimeoutCoordinator

SHORT_TIMEOUT = 0.05
WAIT = 2.0


def test_token_runs_callbacks_once_with_reason():
    token = CancellationToken()
    calls: list[str] = []
    token.register(lambda: calls.append("first"))

    assert token.cancel(CancelReason.CALLER) is True
    assert token.cancel(CancelReason.TIMEOUT) is False

    assert calls == ["first"]
    assert token.reason is CancelReason.CALLER
    with pytest.raises(ReportCancelledError) as excinfo:
        token.raise_if_cancelled()
    assert not isinstance(excinfo.value, ReportTimeoutError)


def test_register_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls: list[int] = []
    token.register(lambda: calls.append(1))
    assert calls == [1]


def test_unregistered_callback_is_not_called():
    token = CancellationToken()
    calls: list[int] = []
    unregister = token.register(lambda: calls.append(1))
    unregister()
    token.cancel()
    assert calls == []


def test_failing_callback_does_not_block_others():
    token = CancellationToken()
    calls: list[int] = []

    def _boom() -> None:
        raise RuntimeError("boom")

    token.register(_boom)
    token.register(lambda: calls.append(1))
    token.cancel()
    assert calls == [1]


def test_bounded_token_times_out():
    coordinator = TimeoutCoordinator(SHORT_TIMEOUT)
    with coordinator.bounded() as token:
        assert token.wait(WAIT)
        with pytest.raises(ReportTimeoutError):
            token.raise_if_cancelled()
    assert token.reason is CancelReason.TIMEOUT


def test_bounded_token_follows_caller_cancellation():
    caller = CancellationToken()
    with TimeoutCoordinator(60).bounded(caller) as token:
        caller.cancel()
        assert token.cancelled
        assert token.reason is CancelReason.CALLER


def test_bounded_token_is_unlinked_after_exit():
    caller = CancellationToken()
    with TimeoutCoordinator(60).bounded(caller) as token:
        pass
    caller.cancel()
    assert not token.cancelled


def test_remaining_budget_shrinks_inside_the_window():
    coordinator = TimeoutCoordinator(10)
    assert coordinator.remaining_ms == 10_000
    with coordinator.bounded():
        assert 0 < coordinator.remaining_ms <= 10_000


def test_timeout_must_be_positive():
    with pytest.raises(ValueError):
        TimeoutCoordinator(0)
