"""
End-to-end tests against a real PostgreSQL instance.

Verifies that:
1. Single and batch ingestion persist accepted usages and report rejections
2. Batches above the threshold go through the COPY bulk loader
3. Each report kind aggregates persisted usages and is recorded in history
4. Daily statistics count what was ingested
5. Queued batches live in ingest_queue until acknowledged, across dispatcher restarts

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
import threading
import time
from datetime import timedelta
from decimal import Decimal

import pytest

from toll_pipeline.domain.errors import DomainError
from toll_pipeline.domain.models import ReportStatus, UsageInput
from toll_pipeline.domain.reports import HourlyRevenueRequest, TopPlazasRequest, VehicleMixRequest
from toll_pipeline.ingestion.dispatcher import QueueDispatcher
from toll_pipeline.ingestion.queue_store import PostgresQueueStore
from toll_pipeline.ingestion.registry import PlazaRegistry
from toll_pipeline.ingestion.router import BatchRouter
from toll_pipeline.ingestion.service import IngestionService
from toll_pipeline.ingestion.writers import BulkLoader, DirectWriter
from toll_pipeline.reports.aggregator import ReportAggregator
from toll_pipeline.reports.history import HistoryRecorder
from toll_pipeline.reports.statistics import collect_statistics
from toll_pipeline.utils.clock import utcnow

BULK_CHUNK_SIZE = 40
MISSING_PLAZA_ID = 9_999

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def used_at():
    return utcnow().replace(microsecond=0) - timedelta(hours=2)


@pytest.fixture
def service(session_factory):
    router = BatchRouter(writers={"direct": DirectWriter(), "bulk": BulkLoader(chunk_size=BULK_CHUNK_SIZE)})
    return IngestionService(session_factory=session_factory, router=router)


@pytest.fixture
def queue_store(session_factory):
    return PostgresQueueStore(session_factory, lease_seconds=30)


@pytest.fixture
def aggregator(session_factory):
    return ReportAggregator(
        session_factory=session_factory, history=HistoryRecorder(session_factory), timeout_seconds=30
    )


def _usage(plaza_id: int, used_at, amount: str = "9.00", vehicle_class: str = "car", city: str = "Campinas"):
    return UsageInput(
        timestamp=used_at,
        plazaId=plaza_id,
        city=city,
        state="SP",
        amountPaid=Decimal(amount),
        vehicleClass=vehicle_class,
    )


def _count(db_connection, table: str) -> int:
    return db_connection.execute(f"SELECT COUNT(*) FROM public.{table};").fetchone()[0]


class TestIngestion:
    def test_single_usage_is_persisted(self, service, seeded_plazas, used_at, db_connection):
        outcome = service.ingest_single(_usage(seeded_plazas[0], used_at))

        row = db_connection.execute(
            "SELECT plaza_id, city, state, amount_paid FROM public.toll_usages WHERE id = %s;",
            (outcome.id,),
        ).fetchone()
        assert row == (seeded_plazas[0], "CAMPINAS", "SP", Decimal("9.00"))

    def test_single_usage_for_inactive_plaza_is_rejected(self, service, seeded_plazas, used_at, db_connection):
        inactive_id = max(seeded_plazas) + 1
        with pytest.raises(DomainError):
            service.ingest_single(_usage(inactive_id, used_at))
        assert _count(db_connection, "toll_usages") == 0

    def test_batch_with_missing_plaza_keeps_valid_records(self, service, seeded_plazas, used_at, db_connection):
        usages = [
            _usage(seeded_plazas[0], used_at),
            _usage(MISSING_PLAZA_ID, used_at),
            _usage(seeded_plazas[1], used_at, amount="27.00", vehicle_class="truck"),
        ]

        outcome = service.ingest_batch(usages, origin="smoke")

        assert (outcome.processed, outcome.errored, outcome.strategy) == (2, 1, "direct")
        assert outcome.errors == [f"Plaza id {MISSING_PLAZA_ID} not found or inactive"]
        assert _count(db_connection, "toll_usages") == 2

    def test_large_batch_goes_through_bulk_loader(self, service, seeded_plazas, used_at, db_connection):
        usages = [_usage(seeded_plazas[n % 3], used_at - timedelta(minutes=n)) for n in range(101)]

        outcome = service.ingest_batch(usages)

        assert (outcome.processed, outcome.errored, outcome.strategy) == (101, 0, "bulk")
        assert _count(db_connection, "toll_usages") == 101

    def test_queue_dispatcher_processes_batches(self, service, queue_store, seeded_plazas, used_at, db_connection):
        outcomes = []
        with QueueDispatcher(
            service.process_envelope, store=queue_store, workers=2, max_parallelism=2, poll_interval=0.05
        ) as dispatcher:
            dispatcher.on_outcome(lambda _envelope, outcome: outcomes.append(outcome))
            for plaza_id in seeded_plazas:
                dispatcher.submit([_usage(plaza_id, used_at)] * 5)
            dispatcher.join()

        assert sorted(o.processed for o in outcomes) == [5, 5, 5]
        assert dispatcher.dead_letters == []
        assert _count(db_connection, "toll_usages") == 15
        assert _count(db_connection, "ingest_queue") == 0

    def test_unacknowledged_batch_survives_a_dispatcher_restart(
        self, service, queue_store, seeded_plazas, used_at, db_connection
    ):
        started = threading.Event()

        def _down(envelope):
            started.set()
            time.sleep(0.3)
            raise RuntimeError("storage unavailable")

        first = QueueDispatcher(_down, store=queue_store, workers=1, max_deliveries=3, poll_interval=0.05)
        first.start()
        submitted = first.submit([_usage(seeded_plazas[0], used_at)] * 3)
        assert started.wait(10)
        first.stop(drain=False, timeout=10)

        assert first.stats.completed == 0
        assert first.stats.redelivered == 1
        assert queue_store.pending() == 1

        delivered = []
        second = QueueDispatcher(
            service.process_envelope, store=queue_store, workers=1, max_deliveries=5, poll_interval=0.05
        )
        second.on_outcome(lambda envelope, outcome: delivered.append((envelope.message_id, envelope.delivery_attempt)))
        with second:
            assert second.join(timeout=10)

        assert second.stats.completed == 1
        assert _count(db_connection, "toll_usages") == 3
        assert _count(db_connection, "ingest_queue") == 0
        assert queue_store.dead_letters() == []
        assert delivered == [(submitted.message_id, 2)]


class TestReports:
    @pytest.fixture
    def ingested(self, service, seeded_plazas, used_at):
        first, second, third = seeded_plazas
        usages = (
            [_usage(first, used_at, "9.00", "car")] * 4
            + [_usage(second, used_at, "27.00", "truck", city="Curitiba")] * 2
            + [_usage(third, used_at, "4.50", "motorcycle", city="Niteroi")]
        )
        outcome = service.ingest_batch(usages)
        assert outcome.processed == len(usages)
        return seeded_plazas

    def test_top_plazas_ranks_by_total(self, aggregator, ingested, used_at, db_connection):
        result = aggregator.run(TopPlazasRequest(year=used_at.year, month=used_at.month, top=2))

        assert result.status is ReportStatus.COMPLETED
        assert [(r.rank, r.plaza_id, r.total_amount) for r in result.payload] == [
            (1, ingested[1], Decimal("54.00")),
            (2, ingested[0], Decimal("36.00")),
        ]
        status, kind = db_connection.execute(
            "SELECT status, report_kind FROM public.report_history WHERE correlation_id = %s;",
            (result.correlation_id,),
        ).fetchone()
        assert (status, kind) == ("Completed", "TopPlazas")

    def test_hourly_revenue_filters_by_city(self, aggregator, ingested, used_at):
        result = aggregator.run(
            HourlyRevenueRequest(start=used_at - timedelta(hours=1), end=utcnow(), city="curi")
        )

        assert result.success is True
        (row,) = result.payload
        assert (row.city, row.total_amount, row.usage_count) == ("CURITIBA", Decimal("54.00"), 2)
        assert row.hour == used_at.replace(minute=0, second=0)

    def test_vehicle_mix_for_one_plaza(self, aggregator, ingested, used_at):
        result = aggregator.run(
            VehicleMixRequest(
                start=used_at - timedelta(hours=1), end=utcnow(), plaza_id=ingested[0], page=1
            )
        )

        page = result.payload
        assert page.total_records == 1
        (row,) = page.items
        assert row.usage_count == 4
        assert [(s.description, s.percentage) for s in row.vehicle_classes] == [("Car", Decimal("100.00"))]

    def test_statistics_count_todays_usages(self, ingested, used_at, db_connection):
        stats = collect_statistics(db_connection, now=used_at)

        assert stats.usages_today == 7
        assert stats.by_vehicle_class == {"Motorcycle": 1, "Car": 4, "Truck": 2}
        assert stats.by_state == {"SP": 7}


def test_registry_lists_and_toggles_plazas(seeded_plazas, db_connection):
    registry = PlazaRegistry()

    registry.set_active(db_connection, seeded_plazas[0], False)

    assert [p.id for p in registry.list_plazas(db_connection, only_active=True)] == seeded_plazas[1:]
    assert len(registry.list_plazas(db_connection)) == 4
