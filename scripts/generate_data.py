"""
Synthetic data generation and loading for the toll pipeline.

Seeds a deterministic set of plazas, generates pseudo-random usages over the
last N days as CSV, and loads them with Postgres COPY. Can also emit a JSON
array suitable for `toll-pipeline ingest`.
"""

from __future__ import annotations

import csv
import json
import random
import sys
import tempfile
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Tuple

import psycopg
import typer

from toll_pipeline.domain.models import USAGE_COLUMNS, VehicleClass
from toll_pipeline.infrastructure.db_factory import build_dsn
from toll_pipeline.infrastructure.schema import init_schema
from toll_pipeline.utils.clock import utcnow

app = typer.Typer(help="Generate synthetic plazas and toll usages (CSV + COPY).")

PLAZAS: List[Tuple[str, str, str]] = [
    ("Plaza Anhanguera Norte", "JUNDIAI", "SP"),
    ("Plaza Bandeirantes Km 39", "CAIEIRAS", "SP"),
    ("Plaza Dutra Jacarei", "JACAREI", "SP"),
    ("Plaza Fernao Dias", "MAIRIPORA", "SP"),
    ("Plaza Rio-Petropolis", "DUQUE DE CAXIAS", "RJ"),
    ("Plaza Linha Amarela", "RIO DE JANEIRO", "RJ"),
    ("Plaza BR-040 Sul", "JUIZ DE FORA", "MG"),
    ("Plaza Regis Bittencourt", "REGISTRO", "SP"),
    ("Plaza Castello Branco", "ITU", "SP"),
    ("Plaza Freeway", "GRAVATAI", "RS"),
]

# Base fare per vehicle class; the generated amount varies around it.
FARES = {
    VehicleClass.MOTORCYCLE: 4.50,
    VehicleClass.CAR: 9.00,
    VehicleClass.TRUCK: 27.00,
}


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _seed_plazas(dsn: str) -> List[Tuple[int, str, str]]:
    """Create the schema and register the fixed plaza set once. Returns (id, city, state)."""
    with psycopg.connect(dsn, autocommit=True) as conn:
        init_schema(conn)
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM public.plazas;")
                if cur.fetchone()[0] == 0:
                    cur.executemany(
                        "INSERT INTO public.plazas (name, city, state) VALUES (%s, %s, %s);",
                        PLAZAS,
                    )
                cur.execute("SELECT id, city, state FROM public.plazas WHERE active ORDER BY id;")
                return [tuple(row) for row in cur.fetchall()]


def _random_usage(
    rng: random.Random, plazas: List[Tuple[int, str, str]], now: datetime, days: int
) -> Tuple[datetime, int, str, str, str, VehicleClass]:
    plaza_id, city, state = rng.choice(plazas)
    vehicle = rng.choices(list(VehicleClass), weights=[15, 70, 15])[0]
    used_at = now - timedelta(seconds=rng.randint(0, days * 86_400))
    amount = FARES[vehicle] * rng.uniform(0.8, 1.5)
    return used_at, plaza_id, city, state, f"{amount:.2f}", vehicle


def _generate_usages_csv(
    csv_path: Path,
    plazas: List[Tuple[int, str, str]],
    rows: int,
    batch_size: int,
    seed: int,
    days: int = 30,
) -> None:
    rng = random.Random(seed)
    now = utcnow()
    inserted_at = now.isoformat()

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(list(USAGE_COLUMNS))

        buffer: list[list[str]] = []
        for _ in range(rows):
            used_at, plaza_id, city, state, amount, vehicle = _random_usage(rng, plazas, now, days)
            buffer.append(
                [used_at.isoformat(), str(plaza_id), city, state, amount, str(int(vehicle)), inserted_at]
            )
            if len(buffer) >= batch_size:
                writer.writerows(buffer)
                buffer.clear()
        if buffer:
            writer.writerows(buffer)


def _generate_usages_json(
    json_path: Path, plazas: List[Tuple[int, str, str]], rows: int, seed: int, days: int = 30
) -> None:
    """Write an ingestion file (camelCase keys, as upstream producers send them)."""
    rng = random.Random(seed)
    now = utcnow()
    usages = []
    for _ in range(rows):
        used_at, plaza_id, city, state, amount, vehicle = _random_usage(rng, plazas, now, days)
        usages.append(
            {
                "timestamp": used_at.isoformat(),
                "plazaId": plaza_id,
                "city": city.title(),
                "state": state,
                "amountPaid": amount,
                "vehicleClass": vehicle.name.lower(),
            }
        )
    json_path.write_text(json.dumps(usages, indent=2), encoding="utf-8")


def _copy_into_db(dsn: str, csv_path: Path) -> int:
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            with cur.copy(
                f"""
                COPY public.toll_usages ({", ".join(USAGE_COLUMNS)})
                FROM STDIN WITH (FORMAT csv, HEADER TRUE)
                """
            ) as copy:
                with csv_path.open("r", encoding="utf-8") as f:
                    for line in f:
                        copy.write(line)
            rows = cur.rowcount
            conn.commit()
    return rows


@app.command()
def main(
    rows: int = typer.Option(100_000, "--rows", "-r", help="Number of usages to generate."),
    days: int = typer.Option(30, "--days", help="Spread usages over the last N days."),
    batch_size: int = typer.Option(
        10_000, "--batch-size", "-b", help="Batch size for CSV buffering during generation."
    ),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Optional CSV output path (if omitted, a temp file will be used).",
    ),
    json_output: Path | None = typer.Option(
        None,
        "--json-output",
        help="Write a JSON ingestion file instead of loading with COPY.",
    ),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    no_load: bool = typer.Option(False, "--no-load", help="Only generate CSV; skip loading."),
) -> None:
    """
    Seed plazas, generate synthetic usages and optionally load them using COPY.
    """
    start = time.perf_counter()
    conn_dsn = _build_dsn(dsn)
    if no_load:
        plazas = [(n, city, state) for n, (_, city, state) in enumerate(PLAZAS, start=1)]
    else:
        plazas = _seed_plazas(conn_dsn)
    typer.echo(f"{len(plazas)} active plaza(s) available.")

    if json_output:
        json_output.parent.mkdir(parents=True, exist_ok=True)
        _generate_usages_json(json_output, plazas, rows=rows, seed=seed, days=days)
        typer.echo(f"Wrote {rows:,} usages -> {json_output}")
        return

    if output:
        csv_path = output
        csv_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        tmpdir = Path(tempfile.mkdtemp(prefix="toll_usages_csv_"))
        csv_path = tmpdir / "toll_usages.csv"

    typer.echo(f"Generating {rows:,} usages -> {csv_path} (batch={batch_size}, seed={seed})")
    _generate_usages_csv(csv_path, plazas, rows=rows, batch_size=batch_size, seed=seed, days=days)
    gen_duration = time.perf_counter() - start
    typer.echo(
        f"CSV generation completed in {gen_duration:.2f}s ({rows / gen_duration:,.0f} rows/s)"
    )

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    load_start = time.perf_counter()
    typer.echo("Loading CSV into Postgres via COPY...")
    loaded = _copy_into_db(conn_dsn, csv_path)
    load_duration = time.perf_counter() - load_start

    total_duration = time.perf_counter() - start
    typer.echo(
        f"Loaded {loaded:,} rows in {load_duration:.2f}s. Total time {total_duration:.2f}s "
        f"({rows / total_duration:,.0f} rows/s overall)."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
