"""
Write strategy interfaces and result contract for usage ingestion.

Concrete writers (direct transactional insert, COPY bulk load) implement the
WriteStrategy protocol and return a WriteResult TypedDict so the router can
report outcomes uniformly.
"""

from __future__ import annotations

import abc
from typing import List, Protocol, Sequence, TypedDict, runtime_checkable

from psycopg import Connection

from toll_pipeline.domain.models import UsageRecord


class WriteResult(TypedDict, total=False):
    """
    Outcome of one writer invocation.

    `ids` is only populated by writers that can return generated keys cheaply.
    """

    rows: int
    ids: List[int]
    chunks: int


@runtime_checkable
class WriteStrategy(Protocol):
    """
    Common interface every usage writer implements.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier (recorded on BatchOutcome.strategy).
    description : str
        A human-friendly summary of the approach.
    """

    name: str
    description: str

    def write(self, conn: Connection, records: Sequence[UsageRecord]) -> WriteResult:
        """
        Persist `records` in order using `conn`.

        Parameters
        ----------
        conn : psycopg.Connection
            An autocommit connection; the writer opens its own transaction(s).
        records : Sequence[UsageRecord]
            Normalized, validated records.

        Returns
        -------
        WriteResult
            Row count written, plus generated ids where available.
        """
        ...


class AbstractWriteStrategy(abc.ABC):
    """
    Optional ABC helper for class-based implementations.

    Subclasses set `name` and `description` and implement `write`.
    """

    name: str
    description: str

    @abc.abstractmethod
    def write(self, conn: Connection, records: Sequence[UsageRecord]) -> WriteResult:  # pragma: no cover - interface only
        """Persist records and return the write result."""
        raise NotImplementedError


__all__ = [
    "WriteResult",
    "WriteStrategy",
    "AbstractWriteStrategy",
]
