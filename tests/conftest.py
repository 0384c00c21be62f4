"""
Pytest configuration for the toll pipeline.

Provides fixtures for:
- Settings override and cache reset
- Database connection management (integration tests skip without Postgres)
- Schema setup, table cleanup and plaza seeding
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, List

import psycopg
import pytest

from toll_pipeline.config import Settings, get_settings
from toll_pipeline.infrastructure.schema import init_schema


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "toll_pipeline"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    init_schema(db_connection)
    return True


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty every pipeline table before and after each test function.
    """
    truncate = (
        "TRUNCATE TABLE public.ingest_queue, public.report_history, public.toll_usages, public.plazas "
        "RESTART IDENTITY CASCADE;"
    )
    db_connection.execute(truncate)
    yield
    db_connection.execute(truncate)


@pytest.fixture(scope="function")
def session_factory(test_dsn: str, clean_tables) -> Callable[[], ContextManager[psycopg.Connection]]:
    """
    Per-operation connections against the test database, bypassing the
    process-wide pool so tests never share state through it.
    """

    @contextmanager
    def _session() -> Generator[psycopg.Connection, None, None]:
        with psycopg.connect(test_dsn, autocommit=True) as conn:
            yield conn

    return _session


@pytest.fixture(scope="function")
def seeded_plazas(db_connection: psycopg.Connection, clean_tables) -> List[int]:
    """
    Register three active plazas and one inactive plaza.

    Returns the ids of the active plazas.
    """
    rows = [
        ("Plaza Norte", "CAMPINAS", "SP", True),
        ("Plaza Sul", "CURITIBA", "PR", True),
        ("Plaza Leste", "NITEROI", "RJ", True),
        ("Plaza Desativada", "SANTOS", "SP", False),
    ]
    with db_connection.cursor() as cur:
        cur.executemany(
            "INSERT INTO public.plazas (name, city, state, active) VALUES (%s, %s, %s, %s);", rows
        )
        cur.execute("SELECT id FROM public.plazas WHERE active ORDER BY id;")
        return [row[0] for row in cur.fetchall()]
