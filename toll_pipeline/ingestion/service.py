"""
Ingestion service: composes validation, plaza lookup and routing.

Single mode is all-or-nothing: any violation or an unknown plaza aborts the
request. Batch mode isolates bad records, counts them as errored, and writes
the rest (partial success). Each call uses its own scoped sessions.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Set

from toll_pipeline.domain.errors import InfrastructureError, ValidationError
from toll_pipeline.domain.models import (
    BatchOutcome,
    QueueEnvelope,
    SingleOutcome,
    UsageInput,
    UsageRecord,
)
from toll_pipeline.infrastructure.db_factory import SessionFactory, session_scope
from toll_pipeline.ingestion.registry import PlazaRegistry, plaza_unavailable_message
from toll_pipeline.ingestion.router import BatchRouter
from toll_pipeline.ingestion.validator import validate_batch_size, validate_usage
from toll_pipeline.ingestion.writers import DirectWriter, WriteStrategy
from toll_pipeline.utils.clock import utcnow
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)


class IngestionService:
    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        registry: Optional[PlazaRegistry] = None,
        router: Optional[BatchRouter] = None,
        direct_writer: Optional[WriteStrategy] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.registry = registry or PlazaRegistry()
        self.router = router or BatchRouter()
        self.direct_writer = direct_writer or DirectWriter()
        self.clock = clock

    def ingest_single(self, usage: UsageInput) -> SingleOutcome:
        """
        Validate and persist one usage record.

        Raises
        ------
        ValidationError
            If any field is invalid.
        DomainError
            If the plaza is unknown or inactive.
        InfrastructureError
            On storage failure (never retried here).
        """
        violations = validate_usage(usage, now=self.clock())
        if violations:
            raise ValidationError(violations)

        try:
            with self.session_factory() as conn:
                self.registry.require_active(conn, usage.plaza_id)
                record = UsageRecord.from_input(usage, inserted_at=self.clock())
                result = self.direct_writer.write(conn, [record])
        except InfrastructureError:
            log.exception("Single usage ingestion failed", extra={"plaza_id": usage.plaza_id})
            raise

        outcome = SingleOutcome(id=result["ids"][0], processed_at=self.clock())
        log.info("Usage accepted", extra={"usage_id": outcome.id, "plaza_id": usage.plaza_id})
        return outcome

    def ingest_batch(
        self,
        usages: Sequence[UsageInput],
        origin: Optional[str] = None,
        batch_id: Optional[uuid.UUID] = None,
    ) -> BatchOutcome:
        """
        Validate and persist a batch with per-record isolation.

        `processed + errored == len(usages)` on return. Storage failures
        during the write propagate and fail the whole batch.
        """
        validate_batch_size(usages)
        batch_id = batch_id or uuid.uuid4()
        now = self.clock()

        violations_by_record = [validate_usage(usage, now=now) for usage in usages]
        candidate_ids = {u.plaza_id for u, v in zip(usages, violations_by_record) if not v}
        active: Set[int] = set()
        if candidate_ids:
            try:
                with self.session_factory() as conn:
                    active = self.registry.active_ids(conn, candidate_ids)
            except InfrastructureError:
                log.exception("Plaza lookup failed", extra={"batch_id": str(batch_id), "origin": origin})
                raise

        errors: List[str] = []
        accepted: List[UsageRecord] = []
        inserted_at = self.clock()
        for index, (usage, violations) in enumerate(zip(usages, violations_by_record), start=1):
            if violations:
                errors.append(f"Record {index}: " + "; ".join(str(v) for v in violations))
            elif usage.plaza_id not in active:
                errors.append(plaza_unavailable_message(usage.plaza_id))
            else:
                accepted.append(UsageRecord.from_input(usage, inserted_at=inserted_at))

        try:
            route = self.router.route(self.session_factory, accepted)
        except InfrastructureError:
            log.exception(
                "Batch ingestion failed",
                extra={"batch_id": str(batch_id), "origin": origin, "rows": len(accepted)},
            )
            raise

        outcome = BatchOutcome(
            batch_id=batch_id,
            processed=route.processed,
            errored=len(errors) + route.errored,
            errors=errors,
            strategy=route.strategy,
            completed_at=self.clock(),
        )
        log.info(
            f"[BATCH] {outcome.processed} processed, {outcome.errored} errored",
            extra={
                "batch_id": str(batch_id),
                "origin": origin,
                "strategy": outcome.strategy,
                "processed": outcome.processed,
                "errored": outcome.errored,
            },
        )
        return outcome

    def process_envelope(self, envelope: QueueEnvelope) -> BatchOutcome:
        """Queue handler: ingest the envelope's usages under its message id."""
        return self.ingest_batch(envelope.usages, origin=envelope.origin, batch_id=envelope.message_id)


__all__ = ["IngestionService"]
