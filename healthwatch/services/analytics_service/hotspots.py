"""Hotspot Ranker - ordered, thresholded list of high-risk locations."""
import logging
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Set

from healthwatch.shared.config import EngineConfig
from healthwatch.shared.models import BayesianParameter, HotspotData, Trend

logger = logging.getLogger(__name__)


class HotspotRanker:
    """Turns risk estimates into a ranked hotspot list.

    Ordering: risk score descending, then report count descending, then
    location id ascending. Locations at or below the threshold are left
    out entirely. The only state kept is the previous cycle's scores, used
    for the trend.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._lock = threading.Lock()
        self._previous_scores: Dict[str, float] = {}
        self._previous_hotspots: Set[str] = set()

        logger.info(
            "HOTSPOT_RANKER_INITIALIZED",
            extra={"threshold": self.config.hotspot_threshold}
        )

    def trend_for(self, location_id: str, risk_score: float) -> Trend:
        with self._lock:
            previous = self._previous_scores.get(location_id, self.config.baseline_prior)

        delta = risk_score - previous
        if delta > self.config.trend_epsilon:
            return Trend.UP
        if delta < -self.config.trend_epsilon:
            return Trend.DOWN
        return Trend.FLAT

    def rank(
        self,
        parameters: Iterable[BayesianParameter],
        report_counts: Mapping[str, int],
        remember: bool = True,
    ) -> List[HotspotData]:
        """Rank one cycle's estimates.

        Args:
            parameters: Current estimate per location (one cycle, one snapshot)
            report_counts: Reports in the current window per location
            remember: Store this cycle's scores for the next trend. Callers
                with later stages that can fail pass False and call
                ``remember`` themselves once the cycle has succeeded.

        Returns:
            Hotspots above the threshold, ranked from 1

        Logs:
            - HOTSPOTS_RANKED: After the cycle's ordering is built
        """
        params = list(parameters)
        threshold = self.config.hotspot_threshold

        candidates = [p for p in params if p.posterior > threshold]
        candidates.sort(
            key=lambda p: (-p.posterior, -report_counts.get(p.location_id, 0), p.location_id)
        )

        hotspots = [
            HotspotData(
                location_id=p.location_id,
                risk_score=p.posterior,
                report_count=report_counts.get(p.location_id, 0),
                trend=self.trend_for(p.location_id, p.posterior),
                rank=position,
            )
            for position, p in enumerate(candidates, start=1)
        ]

        if remember:
            self.remember(params, hotspots)

        logger.info(
            "HOTSPOTS_RANKED",
            extra={
                "evaluated": len(params),
                "hotspot_count": len(hotspots),
                "threshold": threshold,
                "top_location": hotspots[0].location_id if hotspots else None,
            }
        )
        return hotspots

    def remember(
        self,
        parameters: Iterable[BayesianParameter],
        hotspots: Iterable[HotspotData],
    ) -> None:
        """Make this cycle the baseline for the next cycle's trends."""
        with self._lock:
            self._previous_scores = {p.location_id: p.posterior for p in parameters}
            self._previous_hotspots = {h.location_id for h in hotspots}

    def previous_hotspots(self) -> Set[str]:
        with self._lock:
            return set(self._previous_hotspots)
