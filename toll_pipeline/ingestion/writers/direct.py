from __future__ import annotations

from typing import List, Sequence

from psycopg import Connection

from toll_pipeline.domain.models import USAGE_COLUMNS, UsageRecord
from toll_pipeline.ingestion.writers.abstract import AbstractWriteStrategy, WriteResult
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)

INSERT_SQL = (
    f"INSERT INTO public.toll_usages ({', '.join(USAGE_COLUMNS)}) "
    f"VALUES ({', '.join(['%s'] * len(USAGE_COLUMNS))}) RETURNING id;"
)


class DirectWriter(AbstractWriteStrategy):
    """
    Transactional insert path for small batches and single records.

    All records of one call are written in a single transaction: either every
    row commits or none do.
    """

    name: str = "direct"
    description: str = "executemany INSERT ... RETURNING inside one transaction."

    def write(self, conn: Connection, records: Sequence[UsageRecord]) -> WriteResult:
        if not records:
            return WriteResult(rows=0, ids=[])

        ids: List[int] = []
        with conn.transaction():
            with conn.cursor() as cur:
                cur.executemany(INSERT_SQL, [r.as_row() for r in records], returning=True)
                # One result set per parameter row, in input order.
                while True:
                    row = cur.fetchone()
                    if row is not None:
                        ids.append(row[0])
                    if not cur.nextset():
                        break

        log.debug("Direct write committed", extra={"rows": len(ids)})
        return WriteResult(rows=len(ids), ids=ids)


__all__ = ["DirectWriter", "INSERT_SQL"]
