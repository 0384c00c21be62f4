"""
PostgreSQL schema for the toll pipeline.

Four tables: `plazas` (registry), `toll_usages` (append-only usage events),
`report_history` (append-only audit of report invocations) and `ingest_queue`
(durable envelopes awaiting the queue dispatcher). Indexes match
the report access paths: (used_at, city) for hourly revenue, (plaza_id,
used_at) for plaza reports, (state, city) for statistics.
"""

from __future__ import annotations

from psycopg import Connection

from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS public.plazas (
    id          SERIAL PRIMARY KEY,
    name        VARCHAR(100) NOT NULL,
    city        VARCHAR(100) NOT NULL,
    state       CHAR(2)      NOT NULL,
    active      BOOLEAN      NOT NULL DEFAULT TRUE
);

CREATE INDEX IF NOT EXISTS ix_plazas_state_city ON public.plazas (state, city);

CREATE TABLE IF NOT EXISTS public.toll_usages (
    id            BIGSERIAL PRIMARY KEY,
    used_at       TIMESTAMPTZ   NOT NULL,
    plaza_id      INTEGER       NOT NULL REFERENCES public.plazas (id) ON DELETE RESTRICT,
    city          VARCHAR(100)  NOT NULL,
    state         CHAR(2)       NOT NULL,
    amount_paid   NUMERIC(10,2) NOT NULL CHECK (amount_paid > 0),
    vehicle_class SMALLINT      NOT NULL,
    inserted_at   TIMESTAMPTZ   NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS ix_toll_usages_used_at_city ON public.toll_usages (used_at, city);
CREATE INDEX IF NOT EXISTS ix_toll_usages_plaza_used_at ON public.toll_usages (plaza_id, used_at);
CREATE INDEX IF NOT EXISTS ix_toll_usages_state_city ON public.toll_usages (state, city);

CREATE TABLE IF NOT EXISTS public.report_history (
    id             BIGSERIAL PRIMARY KEY,
    report_kind    VARCHAR(50) NOT NULL,
    parameters     JSONB,
    result         JSONB,
    duration_ms    INTEGER,
    correlation_id UUID        NOT NULL UNIQUE,
    status         VARCHAR(20) NOT NULL,
    error_message  TEXT,
    recorded_at    TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS ix_report_history_kind_recorded
    ON public.report_history (report_kind, recorded_at);

CREATE TABLE IF NOT EXISTS public.ingest_queue (
    message_id       UUID PRIMARY KEY,
    envelope         JSONB       NOT NULL,
    origin           VARCHAR(100),
    fingerprint      CHAR(64)    NOT NULL,
    delivery_attempt INTEGER     NOT NULL DEFAULT 0,
    status           VARCHAR(10) NOT NULL DEFAULT 'ready',
    locked_until     TIMESTAMPTZ,
    enqueued_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    dead_lettered_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS ix_ingest_queue_ready
    ON public.ingest_queue (enqueued_at) WHERE status = 'ready';
"""


def init_schema(conn: Connection) -> None:
    """Create tables and indexes if missing. Idempotent."""
    with conn.transaction():
        conn.execute(SCHEMA_SQL)
    log.info("Schema initialized")


__all__ = ["SCHEMA_SQL", "init_schema"]
