"""
Infrastructure package for the toll pipeline.

Centralizes database connectivity concerns (connection factory, pooling,
scoped sessions, schema). Keep this layer focused on I/O and resource
management, decoupled from ingestion and report logic.
"""

from toll_pipeline.infrastructure.db_factory import (
    PoolManager,
    SessionFactory,
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
    get_sync_pool,
    session_scope,
)
from toll_pipeline.infrastructure.schema import init_schema

__all__ = [
    "PoolManager",
    "SessionFactory",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
    "init_schema",
    "session_scope",
]
