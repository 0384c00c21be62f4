"""
Utilities package for the toll pipeline.

Exports shared helpers for logging, profiling and time handling.
Keep this package lightweight and free of domain-specific logic.
"""

from toll_pipeline.utils.clock import as_utc, utcnow
from toll_pipeline.utils.logging import configure_logging, get_logger
from toll_pipeline.utils.profiler import ProfileStats, profile_block

__all__ = [
    "as_utc",
    "utcnow",
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
