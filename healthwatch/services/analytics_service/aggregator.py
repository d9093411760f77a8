"""Aggregator - windowed report counts per location.

Windows are fixed-size, non-overlapping buckets aligned to the Unix epoch.
Every report falls in exactly one (location, window) pair, selected by its
``created_at``.

Recomputation is lazy: single-window reads are memoized and tagged with
the store's per-location revision, so a cached window is never served
after a write to its location. Ranking cycles use ``snapshot()``, which
derives every window from one consistent view of the store.
"""
import logging
import threading
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from healthwatch.shared.models import AggregateWindow, HealthReport, ReportStatus
from healthwatch.services.report_service import ReportStore

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)

WindowKey = Tuple[str, datetime]


def floor_to_window(ts: datetime, window: timedelta) -> datetime:
    return EPOCH + ((ts - EPOCH) // window) * window


def build_window(
    location_id: str,
    window_start: datetime,
    window: timedelta,
    reports: Iterable[HealthReport],
) -> AggregateWindow:
    """Count ``reports`` (already filtered to the pair) into a window."""
    total = 0
    by_symptom: Counter = Counter()
    by_status: Counter = Counter()
    reporters: Set[str] = set()

    for report in reports:
        total += 1
        by_symptom.update(report.symptoms)
        by_status[report.status.value] += 1
        reporters.add(report.reporter_id)

    return AggregateWindow(
        location_id=location_id,
        window_start=window_start,
        window_end=window_start + window,
        total=total,
        by_symptom=dict(by_symptom),
        by_status={status.value: by_status.get(status.value, 0) for status in ReportStatus},
        distinct_reporters=len(reporters),
    )


class AggregationSnapshot:
    """Every window derived from one StoreSnapshot.

    Read-only; a ranking cycle works exclusively against one instance so
    pre- and post-update counts are never mixed.
    """

    def __init__(
        self,
        reports: Tuple[HealthReport, ...],
        window: timedelta,
        revision: int,
        taken_at: datetime,
    ):
        self.reports = reports
        self.window = window
        self.revision = revision
        self.taken_at = taken_at

        grouped: Dict[WindowKey, List[HealthReport]] = defaultdict(list)
        for report in reports:
            grouped[(report.location_id, floor_to_window(report.created_at, window))].append(report)

        self._windows: Dict[WindowKey, AggregateWindow] = {
            key: build_window(key[0], key[1], window, items)
            for key, items in grouped.items()
        }
        self._locations = {key[0] for key in self._windows}

    def window_start(self, ts: datetime) -> datetime:
        return floor_to_window(ts, self.window)

    def get_aggregate(self, location_id: str, window: datetime) -> AggregateWindow:
        start = floor_to_window(window, self.window)
        found = self._windows.get((location_id, start))
        if found is None:
            return build_window(location_id, start, self.window, ())
        return found

    def total(self, location_id: str, window_start: datetime) -> int:
        found = self._windows.get((location_id, window_start))
        return found.total if found else 0

    def locations(self) -> Set[str]:
        return set(self._locations)

    def windows_in(self, window_start: datetime) -> List[AggregateWindow]:
        """All non-empty windows starting at ``window_start``."""
        return [w for (loc, start), w in sorted(self._windows.items()) if start == window_start]

    def status_counts(self) -> Dict[str, int]:
        counts = Counter(report.status.value for report in self.reports)
        return {status.value: counts.get(status.value, 0) for status in ReportStatus}


class Aggregator:
    """Windowed counting over the Report Store."""

    def __init__(self, store: ReportStore, window: timedelta = timedelta(hours=24)):
        if window <= timedelta(0):
            raise ValueError("Aggregation window must be positive")

        self.store = store
        self.window = window
        self._lock = threading.Lock()
        self._cache: Dict[WindowKey, Tuple[int, AggregateWindow]] = {}

        logger.info(
            "AGGREGATOR_INITIALIZED",
            extra={"window_seconds": int(window.total_seconds())}
        )

    def window_start(self, ts: datetime) -> datetime:
        return floor_to_window(ts, self.window)

    def window_end(self, ts: datetime) -> datetime:
        return self.window_start(ts) + self.window

    def get_aggregate(self, location_id: str, window: datetime) -> AggregateWindow:
        """Counts for the window containing ``window`` at ``location_id``."""
        start = self.window_start(window)
        key = (location_id, start)

        # Read the revision before the data: a write racing with this read
        # leaves an entry tagged too old, which is recomputed next time.
        revision = self.store.location_revision(location_id)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None and cached[0] == revision:
            return cached[1]

        matching = self.store.list_in_window(location_id, start, start + self.window)
        aggregate = build_window(location_id, start, self.window, matching)

        with self._lock:
            self._cache[key] = (revision, aggregate)

        logger.debug(
            "AGGREGATE_RECOMPUTED",
            extra={"location_id": location_id, "window_start": start.isoformat(), "total": aggregate.total}
        )
        return aggregate

    def total(self, location_id: str, window_start: datetime) -> int:
        return self.get_aggregate(location_id, window_start).total

    def invalidate(self, location_id: str, timestamp: datetime) -> None:
        """Drop the cached window covering ``timestamp`` at ``location_id``."""
        with self._lock:
            self._cache.pop((location_id, self.window_start(timestamp)), None)

    def on_report_written(self, report: HealthReport) -> None:
        """Lifecycle write listener."""
        self.invalidate(report.location_id, report.created_at)

    def snapshot(self, at: Optional[datetime] = None) -> AggregationSnapshot:
        """Derive every window from a single consistent view of the store."""
        store_snapshot = self.store.snapshot()
        return AggregationSnapshot(
            reports=store_snapshot.reports,
            window=self.window,
            revision=store_snapshot.revision,
            taken_at=at or datetime.utcnow(),
        )
