"""
Toll Pipeline - ingestion and reporting for a highway toll-plaza network.

This package ingests toll usage events (single records or batches) and
produces operational reports:

- Validation and plaza lookup with per-record isolation in batches
- Dual write path: transactional inserts for small batches, COPY bulk loading
  for large ones
- In-process queue dispatcher with a fixed worker pool and redelivery
- Hourly revenue, top plazas and vehicle mix reports with pagination,
  timeout/cancellation and an audit history
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from toll_pipeline.config import Settings, get_settings
from toll_pipeline.ingestion import BatchRouter, IngestionService, QueueDispatcher
from toll_pipeline.reports import CancellationToken, ReportAggregator
from toll_pipeline.utils.logging import configure_logging, get_logger
from toll_pipeline.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Ingestion
    "BatchRouter",
    "IngestionService",
    "QueueDispatcher",
    # Reports
    "CancellationToken",
    "ReportAggregator",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
