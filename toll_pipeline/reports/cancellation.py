"""
Cooperative cancellation for report runs.

A CancellationToken is a one-shot flag with a reason and a list of callbacks.
Report code polls `raise_if_cancelled()` between stages; callbacks (for
example `Connection.cancel_safe`) interrupt blocking I/O.

`TimeoutCoordinator.bounded(parent)` derives a child token that fires on
whichever comes first: the caller cancelling `parent`, or the fixed budget
elapsing.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Generator, List, Optional

from toll_pipeline.domain.errors import CancelReason, ReportCancelledError, ReportTimeoutError
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[CancelReason] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: CancelReason = CancelReason.CALLER) -> bool:
        """Cancel once. Returns False if the token was already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception:  # noqa: BLE001 - a failing callback must not stop the others
                log.warning("Cancellation callback failed", exc_info=True)
        return True

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run `callback` on cancellation (immediately if already cancelled).

        Returns a function that unregisters it.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if not self._event.is_set():
            return
        if self.reason is CancelReason.TIMEOUT:
            raise ReportTimeoutError()
        raise ReportCancelledError(self.reason or CancelReason.CALLER)


class TimeoutCoordinator:
    """Bounds report work to a fixed wall-clock budget."""

    def __init__(self, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.timeout_seconds = timeout_seconds
        self._deadline: Optional[float] = None

    @property
    def remaining_ms(self) -> int:
        if self._deadline is None:
            return int(self.timeout_seconds * 1000)
        return max(int((self._deadline - time.monotonic()) * 1000), 0)

    @contextmanager
    def bounded(
        self, parent: Optional[CancellationToken] = None
    ) -> Generator[CancellationToken, None, None]:
        child = CancellationToken()
        unlink = (
            parent.register(lambda: child.cancel(CancelReason.CALLER))
            if parent is not None
            else (lambda: None)
        )
        timer = threading.Timer(self.timeout_seconds, child.cancel, args=(CancelReason.TIMEOUT,))
        timer.daemon = True
        self._deadline = time.monotonic() + self.timeout_seconds
        timer.start()
        try:
            yield child
        finally:
            timer.cancel()
            unlink()
            self._deadline = None


__all__ = ["CancellationToken", "TimeoutCoordinator"]
