"""
Database connection factory utilities for the toll pipeline.

Provides centralized management of PostgreSQL connections and the shared
connection pool. The PoolManager singleton ensures the pool is cleaned up on
application exit; `session_scope` hands each logical operation (one ingestion
call, one report run, one history write) its own pooled connection and
releases it on every exit path.

Pooled connections run in autocommit mode: every unit of work is an explicit
`conn.transaction()` block, so the bulk path can commit chunk by chunk.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, Optional

import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from toll_pipeline.config import Settings, get_settings
from toll_pipeline.domain.errors import InfrastructureError
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)

SessionFactory = Callable[[], ContextManager[Connection]]


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


class PoolManager:
    """
    Thread-safe singleton for managing the database connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(
        self, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int | None
            Minimum number of idle connections to keep. Defaults to settings.
        max_size : int | None
            Maximum total connections in the pool. Defaults to settings.

        Returns
        -------
        ConnectionPool
            The managed pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(settings),
                    min_size=min_size or settings.db_pool_min_size,
                    max_size=max_size or settings.db_pool_max_size,
                    kwargs={"autocommit": True},
                    open=True,
                )
                log.info(
                    "Connection pool opened",
                    extra={"host": settings.db_host, "db": settings.db_name},
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(self) -> Generator[Connection, None, None]:
        """
        Context manager for obtaining a connection from the pool.

        Example
        -------
            manager = PoolManager()
            with manager.sync_connection() as conn:
                with conn.transaction():
                    conn.execute("SELECT 1")
        """
        pool = self.get_sync_pool()
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except psycopg.Error:
                    log.warning("Error while closing connection pool", exc_info=True)
                finally:
                    self._sync_pool = None


@contextmanager
def session_scope() -> Generator[Connection, None, None]:
    """
    Acquire a pooled connection for one logical operation.

    Storage failures are re-raised as InfrastructureError with the driver
    exception chained; the connection is always returned to the pool.
    """
    try:
        with PoolManager().sync_connection() as conn:
            yield conn
    except psycopg.Error as exc:
        raise InfrastructureError() from exc


def apply_statement_timeout(cur: psycopg.Cursor, timeout_ms: int) -> None:
    """
    Bound statements in the current transaction. `0` disables the limit.

    Must run inside an explicit transaction (uses SET LOCAL).
    """
    cur.execute(
        sql.SQL("SET LOCAL statement_timeout = {}").format(sql.Literal(max(int(timeout_ms), 0)))
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None, autocommit: bool = False) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off operations (schema setup, seeding). Prefer
    `session_scope` for pipeline work.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn(), autocommit=autocommit)


def get_sync_pool(min_size: Optional[int] = None, max_size: Optional[int] = None) -> ConnectionPool:
    """Get or create the connection pool via PoolManager."""
    return PoolManager().get_sync_pool(min_size=min_size, max_size=max_size)


__all__ = [
    "PoolManager",
    "SessionFactory",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
    "session_scope",
]
