"""
Queue dispatcher for deferred batch ingestion.

`submit` validates the batch size, writes a QueueEnvelope to the durable
queue store and returns at once. A fixed pool of worker threads claims
envelopes from the store; a bounded semaphore caps how many batches are
inside the handler at the same time, independent of the worker count.

Delivery is at-least-once: an envelope is acknowledged only after the handler
returns. When the handler raises, the envelope's lease is released and it is
claimed again (the store bumps `delivery_attempt`) until `max_deliveries` is
reached, after which it is dead-lettered. Stopping the dispatcher never drops
an envelope: whatever is not yet acknowledged stays in the store for the next
dispatcher. Batches are not deduplicated; a redelivered batch that had
partially written (bulk path) writes those rows again. The envelope
fingerprint is logged so duplicates can be traced.

Usage:
    service = IngestionService()
    with QueueDispatcher(service.process_envelope) as dispatcher:
        envelope = dispatcher.submit(usages, origin="lane-7")
        dispatcher.join()
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from toll_pipeline.config import get_settings
from toll_pipeline.domain.models import BatchOutcome, QueueEnvelope, UsageInput
from toll_pipeline.ingestion.queue_store import PostgresQueueStore, QueueStore
from toll_pipeline.ingestion.validator import validate_batch_size
from toll_pipeline.utils.logging import get_logger
from toll_pipeline.utils.profiler import profile_block

log = get_logger(__name__)

EnvelopeHandler = Callable[[QueueEnvelope], BatchOutcome]
OutcomeListener = Callable[[QueueEnvelope, BatchOutcome], None]


@dataclass
class DispatcherStats:
    submitted: int = 0
    completed: int = 0
    redelivered: int = 0
    dead_lettered: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0


class QueueDispatcher:
    def __init__(
        self,
        handler: EnvelopeHandler,
        store: Optional[QueueStore] = None,
        workers: Optional[int] = None,
        max_parallelism: Optional[int] = None,
        max_deliveries: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.handler = handler
        self.store: QueueStore = store or PostgresQueueStore()
        self.workers = workers or settings.queue_workers
        self.max_parallelism = max_parallelism or settings.queue_max_parallelism
        self.max_deliveries = max_deliveries or settings.queue_max_deliveries
        self.poll_interval = poll_interval or settings.queue_poll_interval_seconds

        self._slots = threading.BoundedSemaphore(self.max_parallelism)
        self._stats_lock = threading.Lock()
        self._wakeup = threading.Condition()
        self._stopping = threading.Event()
        self._threads: List[threading.Thread] = []
        self._listeners: List[OutcomeListener] = []
        self._started = False

        self.stats = DispatcherStats()
        self.dead_letters: List[QueueEnvelope] = []

    def __enter__(self) -> "QueueDispatcher":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop(drain=True)

    def on_outcome(self, listener: OutcomeListener) -> None:
        """Register a callback invoked after each successfully handled envelope."""
        self._listeners.append(listener)

    def start(self) -> None:
        if self._started:
            return
        self._stopping.clear()
        for n in range(1, self.workers + 1):
            thread = threading.Thread(target=self._worker_loop, name=f"ingest-worker-{n}", daemon=True)
            thread.start()
            self._threads.append(thread)
        self._started = True
        log.info(
            "Queue dispatcher started",
            extra={"workers": self.workers, "max_parallelism": self.max_parallelism},
        )

    def submit(self, usages: Sequence[UsageInput], origin: Optional[str] = None) -> QueueEnvelope:
        """
        Durably enqueue a batch and return its envelope without waiting for processing.

        Raises
        ------
        ValidationError
            If the batch is empty or larger than the configured maximum.
        InfrastructureError
            If the envelope could not be stored; the batch was not accepted.
        RuntimeError
            If the dispatcher has not been started.
        """
        if not self._started:
            raise RuntimeError("Dispatcher is not running; call start() first")
        validate_batch_size(usages)
        envelope = QueueEnvelope.create(usages, origin=origin)
        self.store.enqueue(envelope)
        with self._stats_lock:
            self.stats.submitted += 1
        log.info(
            "Batch enqueued",
            extra={
                "message_id": str(envelope.message_id),
                "fingerprint": envelope.fingerprint[:16],
                "rows": len(envelope.usages),
                "origin": origin,
            },
        )
        self._notify()
        return envelope

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the store holds no ready envelope and no delivery is running.

        Returns False if `timeout` elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._stats_lock:
                idle = self.stats.in_flight == 0
            if idle and self.store.pending() == 0:
                return True
            wait = self.poll_interval
            if deadline is not None:
                left = deadline - time.monotonic()
                if left <= 0:
                    return False
                wait = min(wait, left)
            with self._wakeup:
                self._wakeup.wait(wait)

    def stop(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the workers after their current delivery.

        With `drain`, waits for the store to empty first. Envelopes left
        unacknowledged stay in the store.
        """
        if not self._started:
            return
        if drain:
            self.join(timeout)
        self._stopping.set()
        self._notify()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads.clear()
        self._started = False
        log.info(
            "Queue dispatcher stopped",
            extra={"completed": self.stats.completed, "dead_letters": len(self.dead_letters)},
        )

    def _notify(self) -> None:
        with self._wakeup:
            self._wakeup.notify_all()

    def _worker_loop(self) -> None:
        while not self._stopping.is_set():
            with self._slots:
                envelope = self._claim()
                if envelope is not None:
                    self._deliver(envelope)
                    continue
            with self._wakeup:
                if not self._stopping.is_set():
                    self._wakeup.wait(self.poll_interval)

    def _claim(self) -> Optional[QueueEnvelope]:
        try:
            return self.store.claim()
        except Exception:  # noqa: BLE001 - the store may be briefly unreachable; poll again
            log.exception("Failed to claim from the ingest queue")
            return None

    def _deliver(self, envelope: QueueEnvelope) -> None:
        message_id = str(envelope.message_id)
        self._track_in_flight(+1)
        try:
            try:
                with profile_block(f"batch-{message_id[:8]}", enable_tracemalloc=False) as prof:
                    outcome = self.handler(envelope)
            except Exception:  # noqa: BLE001 - any handler failure triggers redelivery
                log.exception(
                    f"[DELIVERY FAILED] attempt {envelope.delivery_attempt}/{self.max_deliveries}",
                    extra={"message_id": message_id, "fingerprint": envelope.fingerprint[:16]},
                )
                self._redeliver_or_dead_letter(envelope)
                return
            self._acknowledge(envelope, outcome, prof.duration_ms, prof.peak_rss_bytes)
        finally:
            self._track_in_flight(-1)
            self._notify()

    def _acknowledge(
        self,
        envelope: QueueEnvelope,
        outcome: BatchOutcome,
        duration_ms: int,
        peak_rss_bytes: Optional[int],
    ) -> None:
        message_id = str(envelope.message_id)
        try:
            self.store.ack(envelope)
        except Exception:  # noqa: BLE001 - the lease expires and the batch is delivered again
            log.exception("Failed to acknowledge batch", extra={"message_id": message_id})
            return

        with self._stats_lock:
            self.stats.completed += 1
        log.info(
            "Batch processed",
            extra={
                "message_id": message_id,
                "attempt": envelope.delivery_attempt,
                "processed": outcome.processed,
                "errored": outcome.errored,
                "strategy": outcome.strategy,
                "duration_ms": duration_ms,
                "peak_rss_bytes": peak_rss_bytes,
            },
        )
        for listener in list(self._listeners):
            try:
                listener(envelope, outcome)
            except Exception:  # noqa: BLE001 - listeners must not disturb the worker
                log.exception("Outcome listener failed", extra={"message_id": message_id})

    def _redeliver_or_dead_letter(self, envelope: QueueEnvelope) -> None:
        message_id = str(envelope.message_id)
        try:
            if envelope.delivery_attempt >= self.max_deliveries:
                self.store.dead_letter(envelope)
            else:
                self.store.release(envelope)
        except Exception:  # noqa: BLE001 - the lease expires and the batch is delivered again
            log.exception("Failed to settle failed batch", extra={"message_id": message_id})
            return

        if envelope.delivery_attempt >= self.max_deliveries:
            with self._stats_lock:
                self.stats.dead_lettered += 1
                self.dead_letters.append(envelope)
            log.error(
                "Batch moved to dead letters",
                extra={"message_id": message_id, "attempts": envelope.delivery_attempt},
            )
        else:
            with self._stats_lock:
                self.stats.redelivered += 1

    def _track_in_flight(self, delta: int) -> None:
        with self._stats_lock:
            self.stats.in_flight += delta
            self.stats.peak_in_flight = max(self.stats.peak_in_flight, self.stats.in_flight)


__all__ = ["DispatcherStats", "QueueDispatcher"]
