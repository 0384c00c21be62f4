from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import typer
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console

from toll_pipeline.config import get_settings
from toll_pipeline.domain.errors import DomainError, InfrastructureError, ValidationError
from toll_pipeline.domain.models import BatchOutcome, QueueEnvelope, UsageInput
from toll_pipeline.domain.reports import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_TOP,
    HourlyRevenueRequest,
    ReportResult,
    TopPlazasRequest,
    VehicleMixRequest,
)
from toll_pipeline.infrastructure.db_factory import get_sync_connection, session_scope
from toll_pipeline.infrastructure.schema import init_schema
from toll_pipeline.ingestion.dispatcher import QueueDispatcher
from toll_pipeline.ingestion.queue_store import PostgresQueueStore
from toll_pipeline.ingestion.registry import PlazaRegistry
from toll_pipeline.ingestion.service import IngestionService
from toll_pipeline.reporter import (
    print_batch_outcome,
    print_plazas,
    print_queue_status,
    print_report,
    print_statistics,
)
from toll_pipeline.reports.aggregator import ReportAggregator
from toll_pipeline.reports.statistics import collect_statistics
from toll_pipeline.utils.clock import as_utc
from toll_pipeline.utils.logging import configure_logging

app = typer.Typer(help="Toll plaza ingestion and reporting CLI.")
console = Console()

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]

_USAGES = TypeAdapter(List[UsageInput])


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _fail(message: str, code: int = 1) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code)


def _emit_report(result: ReportResult[Any], as_json: bool) -> None:
    if as_json:
        typer.echo(result.model_dump_json(indent=2))
    else:
        print_report(result, console)
    if not result.success:
        raise typer.Exit(1)


def _run_report(request: Any, as_json: bool) -> None:
    _setup()
    try:
        result = ReportAggregator().run(request)
    except ValidationError as exc:
        _fail("\n".join(str(v) for v in exc.violations), code=2)
    _emit_report(result, as_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"bulk_threshold={settings.bulk_threshold} chunk={settings.bulk_chunk_size} "
        f"workers={settings.queue_workers} parallelism={settings.queue_max_parallelism} "
        f"report_timeout={settings.report_timeout_seconds}s"
    )


@app.command("init-db")
def init_db() -> None:
    """Create tables and indexes if they do not exist."""
    _setup()
    conn = get_sync_connection(autocommit=True)
    try:
        init_schema(conn)
    finally:
        conn.close()
    typer.echo("Schema ready.")


@app.command()
def plazas(active_only: bool = typer.Option(False, "--active-only", help="Hide inactive plazas.")) -> None:
    """List registered plazas."""
    _setup()
    with session_scope() as conn:
        rows = PlazaRegistry().list_plazas(conn, only_active=active_only)
    print_plazas(rows, console)


@app.command("plaza-add")
def plaza_add(
    name: str = typer.Argument(..., help="Plaza display name."),
    city: str = typer.Argument(...),
    state: str = typer.Argument(..., help="Two-letter state code."),
    inactive: bool = typer.Option(False, "--inactive", help="Register as inactive."),
) -> None:
    """Register a new plaza."""
    _setup()
    with session_scope() as conn:
        plaza = PlazaRegistry().add(conn, name, city, state, active=not inactive)
    typer.echo(f"Plaza #{plaza.id} registered.")


@app.command("plaza-set-active")
def plaza_set_active(
    plaza_id: int = typer.Argument(...),
    active: bool = typer.Option(True, "--active/--inactive"),
) -> None:
    """Toggle a plaza's active flag."""
    _setup()
    try:
        with session_scope() as conn:
            PlazaRegistry().set_active(conn, plaza_id, active)
    except DomainError as exc:
        _fail(str(exc))
    typer.echo(f"Plaza #{plaza_id} is now {'active' if active else 'inactive'}.")


@app.command()
def ingest(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON object or array of usages."),
    queue: bool = typer.Option(False, "--queue", "-q", help="Defer through the queue dispatcher."),
    origin: Optional[str] = typer.Option(None, "--origin", help="Origin tag for the batch."),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON instead of tables."),
) -> None:
    """
    Ingest usages from a JSON file.

    A JSON object is ingested as a single record; an array as a batch. With
    --queue, arrays are split into batches of MAX_BATCH_SIZE and processed by
    the worker pool.
    """
    _setup()
    raw = json.loads(file.read_text(encoding="utf-8"))
    service = IngestionService()

    try:
        if isinstance(raw, dict):
            outcome = service.ingest_single(UsageInput.model_validate(raw))
            typer.echo(outcome.model_dump_json(indent=2) if as_json else f"Accepted usage #{outcome.id}.")
            return

        usages = _USAGES.validate_python(raw)
        if not queue:
            _emit_outcomes([service.ingest_batch(usages, origin=origin)], as_json)
            return

        outcomes: List[BatchOutcome] = []

        def _collect(_: QueueEnvelope, outcome: BatchOutcome) -> None:
            outcomes.append(outcome)

        size = get_settings().max_batch_size
        with QueueDispatcher(service.process_envelope) as dispatcher:
            dispatcher.on_outcome(_collect)
            for offset in range(0, len(usages), size):
                envelope = dispatcher.submit(usages[offset : offset + size], origin=origin)
                typer.echo(f"Enqueued batch {envelope.message_id} ({len(envelope.usages)} usages).")
            dispatcher.join()
        _emit_outcomes(outcomes, as_json)
        if dispatcher.dead_letters:
            _fail(f"{len(dispatcher.dead_letters)} batch(es) dead-lettered.")
    except PydanticValidationError as exc:
        _fail(f"Malformed input: {exc}", code=2)
    except ValidationError as exc:
        _fail("\n".join(str(v) for v in exc.violations), code=2)
    except DomainError as exc:
        _fail(str(exc))
    except InfrastructureError as exc:
        _fail(str(exc))

@app.command("queue-status")
def queue_status(as_json: bool = typer.Option(False, "--json")) -> None:
    """Show envelopes waiting in the ingest queue and the dead-lettered ones."""
    _setup()
    store = PostgresQueueStore()
    try:
        pending = store.pending()
        dead = store.dead_letters()
    except InfrastructureError as exc:
        _fail(str(exc))
    if as_json:
        typer.echo(
            json.dumps(
                {
                    "pending": pending,
                    "dead_letters": [json.loads(envelope.model_dump_json()) for envelope in dead],
                },
                indent=2,
            )
        )
    else:
        print_queue_status(pending, dead, console)


def _emit_outcomes(outcomes: List[BatchOutcome], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([json.loads(o.model_dump_json()) for o in outcomes], indent=2))
        return
    for outcome in outcomes:
        print_batch_outcome(outcome, console)


@app.command("report-hourly")
def report_hourly(
    start: datetime = typer.Option(..., "--start", formats=DATE_FORMATS),
    end: datetime = typer.Option(..., "--end", formats=DATE_FORMATS),
    city: Optional[str] = typer.Option(None, "--city", help="Case-insensitive substring filter."),
    page: Optional[int] = typer.Option(None, "--page"),
    page_size: int = typer.Option(DEFAULT_PAGE_SIZE, "--page-size"),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Revenue per city per hour."""
    request = HourlyRevenueRequest(
        start=as_utc(start), end=as_utc(end), city=city, page=page, page_size=page_size
    )
    _run_report(request, as_json)


@app.command("report-top")
def report_top(
    year: int = typer.Option(..., "--year"),
    month: int = typer.Option(..., "--month"),
    top: int = typer.Option(DEFAULT_TOP, "--top"),
    page: Optional[int] = typer.Option(None, "--page"),
    page_size: int = typer.Option(DEFAULT_PAGE_SIZE, "--page-size"),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Top-earning plazas for a month."""
    request = TopPlazasRequest(year=year, month=month, top=top, page=page, page_size=page_size)
    _run_report(request, as_json)


@app.command("report-mix")
def report_mix(
    start: datetime = typer.Option(..., "--start", formats=DATE_FORMATS),
    end: datetime = typer.Option(..., "--end", formats=DATE_FORMATS),
    plaza_id: Optional[int] = typer.Option(None, "--plaza-id"),
    page: Optional[int] = typer.Option(None, "--page"),
    page_size: int = typer.Option(DEFAULT_PAGE_SIZE, "--page-size"),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Vehicle class mix per plaza."""
    request = VehicleMixRequest(
        start=as_utc(start), end=as_utc(end), plaza_id=plaza_id, page=page, page_size=page_size
    )
    _run_report(request, as_json)


@app.command()
def stats(as_json: bool = typer.Option(False, "--json")) -> None:
    """Usage statistics for today and yesterday."""
    _setup()
    with session_scope() as conn:
        result = collect_statistics(conn)
    if as_json:
        typer.echo(
            json.dumps(
                {
                    "day": result.day.date().isoformat(),
                    "usages_today": result.usages_today,
                    "usages_yesterday": result.usages_yesterday,
                    "average_amount_today": str(result.average_amount_today),
                    "by_vehicle_class": result.by_vehicle_class,
                    "by_state": result.by_state,
                },
                indent=2,
            )
        )
    else:
        print_statistics(result, console)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
