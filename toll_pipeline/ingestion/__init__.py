"""
Ingestion package: validation, plaza lookup, write routing and the queue
dispatcher for deferred batches.
"""

from toll_pipeline.ingestion.dispatcher import DispatcherStats, QueueDispatcher
from toll_pipeline.ingestion.queue_store import PostgresQueueStore, QueueStore
from toll_pipeline.ingestion.registry import PlazaRegistry
from toll_pipeline.ingestion.router import BatchRouter, RouteResult, available_writers
from toll_pipeline.ingestion.service import IngestionService
from toll_pipeline.ingestion.validator import validate_batch_size, validate_usage

__all__ = [
    "BatchRouter",
    "DispatcherStats",
    "IngestionService",
    "PlazaRegistry",
    "PostgresQueueStore",
    "QueueDispatcher",
    "QueueStore",
    "RouteResult",
    "available_writers",
    "validate_batch_size",
    "validate_usage",
]
