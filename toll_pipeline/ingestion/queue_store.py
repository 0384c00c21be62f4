"""
Durable storage behind the queue dispatcher.

Envelopes live in `public.ingest_queue` until they are acknowledged (deleted)
or dead-lettered. A worker claims the oldest ready row with
`FOR UPDATE SKIP LOCKED` and takes a lease on it; the claim increments the
row's delivery attempt. A failed delivery releases the lease so the row can
be claimed again. A worker that dies mid-delivery simply lets its lease
expire, after which the row is redelivered. Nothing accepted by `enqueue` is
lost when the process stops.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from toll_pipeline.config import get_settings
from toll_pipeline.domain.models import QueueEnvelope
from toll_pipeline.infrastructure.db_factory import SessionFactory, session_scope

READY = "ready"
DEAD = "dead"

ENQUEUE_SQL = """
INSERT INTO public.ingest_queue (message_id, envelope, origin, fingerprint, enqueued_at)
VALUES (%s, %s::jsonb, %s, %s, %s);
"""

# The claim increments delivery_attempt, so a lease that expires after a crash
# counts as one more delivery.
CLAIM_SQL = """
UPDATE public.ingest_queue q
SET delivery_attempt = q.delivery_attempt + 1,
    locked_until = now() + make_interval(secs => %(lease)s)
WHERE q.message_id = (
    SELECT message_id
    FROM public.ingest_queue
    WHERE status = 'ready' AND (locked_until IS NULL OR locked_until < now())
    ORDER BY enqueued_at, message_id
    FOR UPDATE SKIP LOCKED
    LIMIT 1
)
RETURNING q.envelope, q.delivery_attempt;
"""


@runtime_checkable
class QueueStore(Protocol):
    def enqueue(self, envelope: QueueEnvelope) -> None:
        ...

    def claim(self) -> Optional[QueueEnvelope]:
        """Lease the next ready envelope, or return None when there is none."""
        ...

    def ack(self, envelope: QueueEnvelope) -> None:
        ...

    def release(self, envelope: QueueEnvelope) -> None:
        ...

    def dead_letter(self, envelope: QueueEnvelope) -> None:
        ...

    def pending(self) -> int:
        """Envelopes not yet acknowledged or dead-lettered, leased ones included."""
        ...

    def dead_letters(self) -> List[QueueEnvelope]:
        ...


def _envelope_from_row(payload: dict, attempt: int) -> QueueEnvelope:
    return QueueEnvelope.model_validate(payload).with_attempt(attempt)


class PostgresQueueStore:
    """QueueStore over `public.ingest_queue`; each call uses its own session."""

    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        lease_seconds: Optional[float] = None,
    ) -> None:
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds or get_settings().queue_lease_seconds

    def enqueue(self, envelope: QueueEnvelope) -> None:
        with self.session_factory() as conn:
            with conn.transaction():
                conn.execute(
                    ENQUEUE_SQL,
                    (
                        envelope.message_id,
                        envelope.model_dump_json(),
                        envelope.origin,
                        envelope.fingerprint,
                        envelope.enqueued_at,
                    ),
                )

    def claim(self) -> Optional[QueueEnvelope]:
        with self.session_factory() as conn:
            with conn.transaction():
                row = conn.execute(CLAIM_SQL, {"lease": float(self.lease_seconds)}).fetchone()
        if row is None:
            return None
        payload, attempt = row
        return _envelope_from_row(payload, attempt)

    def ack(self, envelope: QueueEnvelope) -> None:
        with self.session_factory() as conn:
            with conn.transaction():
                conn.execute(
                    "DELETE FROM public.ingest_queue WHERE message_id = %s;", (envelope.message_id,)
                )

    def release(self, envelope: QueueEnvelope) -> None:
        with self.session_factory() as conn:
            with conn.transaction():
                conn.execute(
                    "UPDATE public.ingest_queue SET locked_until = NULL WHERE message_id = %s;",
                    (envelope.message_id,),
                )

    def dead_letter(self, envelope: QueueEnvelope) -> None:
        with self.session_factory() as conn:
            with conn.transaction():
                conn.execute(
                    """
                    UPDATE public.ingest_queue
                    SET status = %s, locked_until = NULL, dead_lettered_at = now()
                    WHERE message_id = %s;
                    """,
                    (DEAD, envelope.message_id),
                )

    def pending(self) -> int:
        with self.session_factory() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM public.ingest_queue WHERE status = %s;", (READY,)
            ).fetchone()
        return row[0]

    def dead_letters(self) -> List[QueueEnvelope]:
        with self.session_factory() as conn:
            rows = conn.execute(
                """
                SELECT envelope, delivery_attempt FROM public.ingest_queue
                WHERE status = %s ORDER BY dead_lettered_at, enqueued_at;
                """,
                (DEAD,),
            ).fetchall()
        return [_envelope_from_row(payload, attempt) for payload, attempt in rows]


__all__ = ["DEAD", "READY", "PostgresQueueStore", "QueueStore"]
