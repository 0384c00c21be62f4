"""
COPY-based bulk loader for large usage batches.

Records are partitioned into fixed-size chunks; each chunk is streamed with
`COPY ... FROM STDIN` in its own transaction under a generous statement
timeout. A failure aborts the load and propagates. Chunks committed before the
failure stay committed: there is no compensating rollback across chunks.
"""

from __future__ import annotations

from typing import Iterator, Optional, Sequence

from psycopg import Connection

from toll_pipeline.config import get_settings
from toll_pipeline.domain.models import USAGE_COLUMNS, UsageRecord
from toll_pipeline.infrastructure.db_factory import apply_statement_timeout
from toll_pipeline.ingestion.writers.abstract import AbstractWriteStrategy, WriteResult
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)

COPY_SQL = f"COPY public.toll_usages ({', '.join(USAGE_COLUMNS)}) FROM STDIN"


def _chunked(records: Sequence[UsageRecord], size: int) -> Iterator[Sequence[UsageRecord]]:
    """Yield consecutive slices of at most `size` records, preserving order."""
    for offset in range(0, len(records), size):
        yield records[offset : offset + size]


class BulkLoader(AbstractWriteStrategy):
    name: str = "bulk"
    description: str = "Chunked COPY FROM STDIN, one transaction per chunk."

    def __init__(
        self, chunk_size: Optional[int] = None, timeout_seconds: Optional[int] = None
    ) -> None:
        settings = get_settings()
        self.chunk_size = chunk_size or settings.bulk_chunk_size
        self.timeout_seconds = timeout_seconds or settings.bulk_timeout_seconds
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

    def write(self, conn: Connection, records: Sequence[UsageRecord]) -> WriteResult:
        total = 0
        chunk_count = 0
        for chunk_no, chunk in enumerate(_chunked(records, self.chunk_size), start=1):
            with conn.transaction():
                with conn.cursor() as cur:
                    apply_statement_timeout(cur, self.timeout_seconds * 1000)
                    with cur.copy(COPY_SQL) as copy:
                        for record in chunk:
                            copy.write_row(record.as_row())
            total += len(chunk)
            chunk_count = chunk_no
            log.info(
                f"Chunk {chunk_no} inserted",
                extra={"chunk": chunk_no, "chunk_rows": len(chunk), "rows_so_far": total},
            )

        return WriteResult(rows=total, chunks=chunk_count)


__all__ = ["BulkLoader", "COPY_SQL"]
