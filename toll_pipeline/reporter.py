from __future__ import annotations

from typing import Any, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from toll_pipeline.domain.models import BatchOutcome, Plaza, QueueEnvelope
from toll_pipeline.domain.reports import (
    HourlyRevenueRow,
    ReportResult,
    TopPlazaRow,
    VehicleMixRow,
)
from toll_pipeline.reports.pagination import PagedResult
from toll_pipeline.reports.statistics import UsageStatistics


def _money(value: Any) -> str:
    return f"{value:,.2f}"


def _hourly_table(rows: Sequence[HourlyRevenueRow], title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("City", style="cyan", no_wrap=True)
    table.add_column("State", style="cyan")
    table.add_column("Hour (UTC)", style="blue")
    table.add_column("Usages", justify="right", style="magenta")
    table.add_column("Revenue", justify="right", style="bold green")
    for row in rows:
        table.add_row(
            row.city,
            row.state,
            row.hour.strftime("%Y-%m-%d %H:00"),
            f"{row.usage_count:,}",
            _money(row.total_amount),
        )
    return table


def _top_table(rows: Sequence[TopPlazaRow], title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED, caption="Sorted by Revenue (descending)")
    table.add_column("Rank", justify="right", style="bold")
    table.add_column("Plaza", style="cyan", no_wrap=True)
    table.add_column("City / State", style="cyan")
    table.add_column("Usages", justify="right", style="magenta")
    table.add_column("Revenue", justify="right", style="bold green")
    for row in rows:
        table.add_row(
            str(row.rank),
            f"{row.plaza_name} (#{row.plaza_id})",
            f"{row.city}/{row.state}",
            f"{row.usage_count:,}",
            _money(row.total_amount),
        )
    return table


def _mix_table(rows: Sequence[VehicleMixRow], title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Plaza", style="cyan", no_wrap=True)
    table.add_column("Vehicle", style="blue")
    table.add_column("Usages", justify="right", style="magenta")
    table.add_column("Revenue", justify="right", style="green")
    table.add_column("Share %", justify="right", style="yellow")
    for row in rows:
        label = f"{row.plaza_name} ({row.city}/{row.state})"
        for share in row.vehicle_classes:
            table.add_row(
                label,
                share.description,
                f"{share.usage_count:,}",
                _money(share.total_amount),
                f"{share.percentage:.2f}",
            )
            label = ""
        table.add_row(
            "", "[bold]Total[/bold]", f"{row.usage_count:,}", _money(row.total_amount), "100.00",
            end_section=True,
        )
    return table


def print_report(result: ReportResult[Any], console: Optional[Console] = None) -> None:
    """
    Render a report result as a rich table.

    Paged payloads get a caption with the page position; failed or cancelled
    results print their status line only.
    """
    console = console or Console()
    status_style = "green" if result.success else "red"
    console.print(
        f"[{status_style}]{result.status.value}[/{status_style}] {result.message} "
        f"[dim]({result.duration_ms} ms, {result.total_records} record(s), "
        f"correlation {result.correlation_id})[/dim]"
    )
    if not result.success or result.payload is None:
        return

    payload = result.payload
    caption: Optional[str] = None
    rows: List[Any]
    if isinstance(payload, PagedResult):
        rows = list(payload.items)
        caption = (
            f"Page {payload.page}/{max(payload.total_pages, 1)} "
            f"- {payload.total_records} record(s)"
        )
    else:
        rows = list(payload)

    if not rows:
        console.print("[yellow]No rows to display.[/yellow]")
        return

    first = rows[0]
    if isinstance(first, HourlyRevenueRow):
        table = _hourly_table(rows, "Hourly Revenue by City")
    elif isinstance(first, TopPlazaRow):
        table = _top_table(rows, "Top Plazas by Revenue")
    elif isinstance(first, VehicleMixRow):
        table = _mix_table(rows, "Vehicle Mix per Plaza")
    else:
        raise TypeError(f"Unsupported report row type: {type(first).__name__}")
    if caption:
        table.caption = caption
    console.print(table)


def print_batch_outcome(outcome: BatchOutcome, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title=f"Batch {outcome.batch_id}", box=box.ROUNDED)
    table.add_column("Strategy", style="cyan")
    table.add_column("Processed", justify="right", style="bold green")
    table.add_column("Errored", justify="right", style="red")
    table.add_column("Completed at", style="blue")
    table.add_row(
        outcome.strategy,
        f"{outcome.processed:,}",
        f"{outcome.errored:,}",
        outcome.completed_at.isoformat(timespec="seconds"),
    )
    console.print(table)
    for error in outcome.errors:
        console.print(f"[red]-[/red] {error}")


def print_statistics(stats: UsageStatistics, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title=f"Usage Statistics {stats.day:%Y-%m-%d}", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="magenta")
    table.add_row("Usages today", f"{stats.usages_today:,}")
    table.add_row("Usages yesterday", f"{stats.usages_yesterday:,}")
    table.add_row("Average amount today", _money(stats.average_amount_today), end_section=True)
    for label, count in stats.by_vehicle_class.items():
        table.add_row(f"Vehicle: {label}", f"{count:,}")
    for state, count in stats.by_state.items():
        table.add_row(f"State: {state}", f"{count:,}")
    console.print(table)


def print_plazas(plazas: Sequence[Plaza], console: Optional[Console] = None) -> None:
    console = console or Console()
    if not plazas:
        console.print("[yellow]No plazas registered.[/yellow]")
        return
    table = Table(title="Plazas", box=box.ROUNDED)
    table.add_column("Id", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("City / State", style="blue")
    table.add_column("Active", justify="center")
    for plaza in plazas:
        table.add_row(
            str(plaza.id),
            plaza.name,
            f"{plaza.city}/{plaza.state}",
            "[green]yes[/green]" if plaza.active else "[red]no[/red]",
        )
    console.print(table)


def print_queue_status(
    pending: int, dead_letters: Sequence[QueueEnvelope], console: Optional[Console] = None
) -> None:
    console = console or Console()
    console.print(f"Pending envelopes: [bold]{pending:,}[/bold]")
    if not dead_letters:
        console.print("[green]No dead-lettered batches.[/green]")
        return
    table = Table(title="Dead letters", box=box.ROUNDED)
    table.add_column("Message id", style="cyan")
    table.add_column("Origin")
    table.add_column("Usages", justify="right")
    table.add_column("Attempts", justify="right", style="red")
    table.add_column("Enqueued at")
    for envelope in dead_letters:
        table.add_row(
            str(envelope.message_id),
            envelope.origin or "-",
            str(len(envelope.usages)),
            str(envelope.delivery_attempt),
            envelope.enqueued_at.isoformat(timespec="seconds"),
        )
    console.print(table)


__all__ = ["print_batch_outcome", "print_plazas", "print_queue_status", "print_report", "print_statistics"]
