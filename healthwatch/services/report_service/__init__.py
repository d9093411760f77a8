"""Report Service: Report Store and Lifecycle Manager.

Students submit symptom reports; administrators move them through
pending -> investigating -> reviewed -> resolved (or fast-close
pending -> resolved). Every write invalidates derived aggregates.
"""

from .report_store import ReportStore, InMemoryReportStore, StoreSnapshot
from .report_repository import PostgresReportStore
from .lifecycle import LifecycleManager, parse_report_status

__all__ = [
    "ReportStore",
    "InMemoryReportStore",
    "StoreSnapshot",
    "PostgresReportStore",
    "LifecycleManager",
    "parse_report_status",
]
