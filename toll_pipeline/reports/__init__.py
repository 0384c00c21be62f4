"""
Reports package: request validation, grouping queries, the aggregator with
timeout/cancellation, pagination, history auditing and daily statistics.
"""

from toll_pipeline.reports.aggregator import ReportAggregator
from toll_pipeline.reports.cancellation import CancellationToken, TimeoutCoordinator
from toll_pipeline.reports.history import HistoryRecorder
from toll_pipeline.reports.pagination import PagedResult, paginate
from toll_pipeline.reports.queries import UsageQueries
from toll_pipeline.reports.statistics import UsageStatistics, collect_statistics
from toll_pipeline.reports.validation import validate_report_request

__all__ = [
    "CancellationToken",
    "HistoryRecorder",
    "PagedResult",
    "ReportAggregator",
    "TimeoutCoordinator",
    "UsageQueries",
    "UsageStatistics",
    "collect_statistics",
    "paginate",
    "validate_report_request",
]
