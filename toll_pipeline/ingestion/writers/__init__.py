"""
Usage writers.

Exports the write strategy interfaces and the two concrete writers: the
transactional DirectWriter and the COPY-based BulkLoader.
"""

from toll_pipeline.ingestion.writers.abstract import (
    AbstractWriteStrategy,
    WriteResult,
    WriteStrategy,
)
from toll_pipeline.ingestion.writers.bulk import BulkLoader
from toll_pipeline.ingestion.writers.direct import DirectWriter

__all__ = [
    "AbstractWriteStrategy",
    "BulkLoader",
    "DirectWriter",
    "WriteResult",
    "WriteStrategy",
]
