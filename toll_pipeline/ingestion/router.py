"""
Batch router: picks the write path for a list of validated records.

Batches strictly larger than `BULK_THRESHOLD` (default 100) go through the
COPY bulk loader; smaller ones through the transactional direct writer.

Usage:
    from toll_pipeline.ingestion.router import BatchRouter

    result = BatchRouter().route(session_scope, records)
    print(result.strategy, result.processed)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from toll_pipeline.config import get_settings
from toll_pipeline.domain.models import UsageRecord
from toll_pipeline.infrastructure.db_factory import SessionFactory, session_scope
from toll_pipeline.ingestion.writers import BulkLoader, DirectWriter, WriteStrategy
from toll_pipeline.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class RouteResult:
    strategy: str
    processed: int
    errored: int = 0


def _writer_factories() -> Dict[str, Callable[[], WriteStrategy]]:
    """Registry of available writers."""
    return {
        "direct": lambda: DirectWriter(),
        "bulk": lambda: BulkLoader(),
    }


def available_writers() -> List[str]:
    """List available writer names."""
    return sorted(_writer_factories().keys())


def _resolve_writer(name: str) -> WriteStrategy:
    factories = _writer_factories()
    if name not in factories:
        raise ValueError(f"Unknown writer '{name}'. Available: {', '.join(factories)}")
    return factories[name]()


class BatchRouter:
    def __init__(
        self,
        threshold: Optional[int] = None,
        writers: Optional[Dict[str, WriteStrategy]] = None,
    ) -> None:
        self.threshold = threshold if threshold is not None else get_settings().bulk_threshold
        self._writers: Dict[str, WriteStrategy] = dict(writers or {})

    def select_strategy(self, count: int) -> str:
        return "bulk" if count > self.threshold else "direct"

    def writer_for(self, name: str) -> WriteStrategy:
        if name not in self._writers:
            self._writers[name] = _resolve_writer(name)
        return self._writers[name]

    def route(
        self,
        session_factory: SessionFactory = session_scope,
        records: Sequence[UsageRecord] = (),
    ) -> RouteResult:
        """
        Write `records` through the strategy matching their count.

        Errors from the writer propagate unchanged; retrying is the queue
        dispatcher's job.
        """
        if not records:
            return RouteResult(strategy="none", processed=0)

        name = self.select_strategy(len(records))
        writer = self.writer_for(name)
        log.info(
            f"[ROUTE] {len(records)} record(s) -> {writer.name}",
            extra={"strategy": writer.name, "rows": len(records)},
        )
        with session_factory() as conn:
            result = writer.write(conn, records)

        return RouteResult(strategy=writer.name, processed=result.get("rows", 0))


__all__ = ["BatchRouter", "RouteResult", "available_writers"]
