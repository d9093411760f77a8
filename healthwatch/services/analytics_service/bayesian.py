"""Bayesian Risk Estimator - per-location outbreak probability.

Each aggregation window is one piece of evidence. The likelihood ratio
compares the window's report count under an outbreak hypothesis (rate
multiplied by ``outbreak_rate_multiplier``) with the location's baseline
Poisson rate:

    log LR = observed * ln(m) - (m - 1) * expected

and the posterior follows from the odds form of Bayes' rule:

    posterior_odds = prior_odds * LR

with evidence against an outbreak applied only to the odds above the
``min_probability`` floor. The posterior of a finalized window becomes the prior of the next one.
Re-evaluating the window currently in progress restarts from that
window's prior, so repeated updates never count the same reports twice.
"""
import logging
import math
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from healthwatch.shared.config import EngineConfig
from healthwatch.shared.errors import AuthorizationError, ValidationError
from healthwatch.shared.models import Actor, BayesianParameter
from healthwatch.services.audit_service import AuditAction, AuditEntity, AuditLogger
from .aggregator import Aggregator

logger = logging.getLogger(__name__)


def probability_to_odds(p: float) -> float:
    return p / (1.0 - p)


def odds_to_probability(odds: float) -> float:
    return odds / (1.0 + odds)


class BayesianRiskEstimator:
    """Sequential Bayesian updating of outbreak probability per location.

    ``source`` arguments accept either the Aggregator or an
    AggregationSnapshot; both expose ``window``, ``window_start()`` and
    ``total()``.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        config: Optional[EngineConfig] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.aggregator = aggregator
        self.config = config or EngineConfig()
        self.audit_logger = audit_logger or AuditLogger()
        self.clock = clock

        self._lock = threading.Lock()
        self._params: Dict[str, BayesianParameter] = {}
        self._baselines: Dict[str, float] = {}

        logger.info(
            "BAYESIAN_ESTIMATOR_INITIALIZED",
            extra={
                "baseline_prior": self.config.baseline_prior,
                "outbreak_rate_multiplier": self.config.outbreak_rate_multiplier,
                "default_baseline_rate": self.config.default_baseline_rate,
            }
        )

    def likelihood_ratio(self, observed: int, expected: float) -> float:
        """Poisson likelihood ratio of outbreak vs baseline.

        Non-decreasing in ``observed``; below 1 for an empty window.
        """
        m = self.config.outbreak_rate_multiplier
        expected = max(expected, self.config.expected_floor)
        log_lr = observed * math.log(m) - (m - 1.0) * expected

        cap = math.log(self.config.max_likelihood_ratio)
        return math.exp(min(max(log_lr, -cap), cap))

    def apply_evidence(self, prior: float, likelihood_ratio: float) -> float:
        """Odds-form Bayes update kept inside the configured probability band.

        Evidence against an outbreak (ratio below 1) shrinks only the part
        of the prior odds above the floor, so quiet windows keep lowering
        the estimate towards ``min_probability`` without pinning it there.
        """
        low, high = self.config.min_probability, self.config.max_probability
        prior = min(max(prior, low), high)
        prior_odds = probability_to_odds(prior)

        if likelihood_ratio < 1.0:
            floor_odds = probability_to_odds(low)
            posterior_odds = floor_odds + (prior_odds - floor_odds) * likelihood_ratio
        else:
            posterior_odds = prior_odds * likelihood_ratio
        return min(odds_to_probability(posterior_odds), high)

    def expected_count(self, location_id: str, window_start: datetime, source=None) -> float:
        """Baseline reports per window for ``location_id`` before ``window_start``."""
        source = source or self.aggregator
        floor = self.config.expected_floor

        with self._lock:
            override = self._baselines.get(location_id)
        if override is not None:
            return max(override, floor)

        history = [
            source.total(location_id, window_start - i * source.window)
            for i in range(1, self.config.baseline_windows + 1)
        ]
        if sum(history) == 0:
            return self.config.default_baseline_rate
        return max(sum(history) / len(history), floor)

    def evaluate(
        self,
        location_id: str,
        source=None,
        at: Optional[datetime] = None,
    ) -> BayesianParameter:
        """Compute the new parameter for ``location_id`` without storing it.

        Raises:
            ValidationError: If ``at`` falls before the last evaluated window
        """
        source = source or self.aggregator
        current = source.window_start(at or self.clock())
        window = source.window

        with self._lock:
            previous = self._params.get(location_id)

        if previous is None:
            prior = self.config.baseline_prior
            evidence = 0
            pending = [current]
        elif previous.window_start is None:
            # Administrative override: start over from the forced prior.
            prior = previous.prior
            evidence = previous.evidence_count
            pending = [current]
        elif previous.window_start == current:
            prior = previous.prior
            evidence = previous.evidence_count - 1
            pending = [current]
        elif previous.window_start < current:
            prior = previous.posterior
            evidence = previous.evidence_count
            skipped = min((current - previous.window_start) // window - 1, self.config.max_catchup_windows)
            pending = [current - i * window for i in range(skipped, 0, -1)] + [current]
        else:
            raise ValidationError(
                f"Cannot evaluate {location_id} for a window before "
                f"{previous.window_start.isoformat()}"
            )

        # Fold elapsed windows in order; the last one is the current window.
        likelihood_ratio = 1.0
        observed = 0
        expected = 0.0
        posterior = prior
        for window_start in pending:
            prior = posterior
            observed = source.total(location_id, window_start)
            expected = self.expected_count(location_id, window_start, source)
            likelihood_ratio = self.likelihood_ratio(observed, expected)
            posterior = self.apply_evidence(prior, likelihood_ratio)

        return BayesianParameter(
            location_id=location_id,
            prior=prior,
            likelihood_ratio=likelihood_ratio,
            posterior=posterior,
            evidence_count=evidence + len(pending),
            last_updated=self.clock(),
            window_start=current,
            observed_count=observed,
            expected_count=expected,
        )

    def commit(self, params: Iterable[BayesianParameter]) -> None:
        """Store a batch of evaluated parameters."""
        with self._lock:
            for param in params:
                self._params[param.location_id] = param

    def update_risk(
        self,
        location_id: str,
        source=None,
        at: Optional[datetime] = None,
    ) -> BayesianParameter:
        """Evaluate and store the outbreak estimate for one location.

        Logs:
            - RISK_UPDATED: After the parameter is stored
        """
        param = self.evaluate(location_id, source=source, at=at)
        self.commit([param])

        logger.info(
            "RISK_UPDATED",
            extra={
                "location_id": location_id,
                "prior": round(param.prior, 6),
                "likelihood_ratio": round(param.likelihood_ratio, 6),
                "posterior": round(param.posterior, 6),
                "observed": param.observed_count,
                "expected": round(param.expected_count, 3),
                "evidence_count": param.evidence_count,
            }
        )
        return param

    def override(self, location_id: str, probability: float, actor: Actor) -> BayesianParameter:
        """Reset a location's prior (administrators only).

        The next evaluation starts from ``probability`` for the current window.
        """
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can override risk estimates")
        if not isinstance(probability, (int, float)) or not 0.0 <= probability <= 1.0:
            raise ValidationError("probability must be a number between 0 and 1")

        param = BayesianParameter(
            location_id=location_id,
            prior=float(probability),
            likelihood_ratio=1.0,
            posterior=float(probability),
            evidence_count=0,
            last_updated=self.clock(),
            window_start=None,
        )
        self.commit([param])

        logger.warning(
            "RISK_OVERRIDDEN",
            extra={"location_id": location_id, "probability": probability, "actor_id": actor.actor_id}
        )
        self.audit_logger.log(
            action=AuditAction.RISK_OVERRIDDEN,
            entity_type=AuditEntity.LOCATION,
            entity_id=location_id,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            details={"probability": probability},
        )
        return param

    def set_baseline(self, location_id: str, rate: float, actor: Actor) -> None:
        """Pin the expected reports per window for a location (administrators only)."""
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can change baselines")
        if not isinstance(rate, (int, float)) or rate <= 0:
            raise ValidationError("baseline rate must be a positive number")

        with self._lock:
            self._baselines[location_id] = float(rate)

        logger.info(
            "BASELINE_CHANGED",
            extra={"location_id": location_id, "rate": rate, "actor_id": actor.actor_id}
        )
        self.audit_logger.log(
            action=AuditAction.BASELINE_CHANGED,
            entity_type=AuditEntity.LOCATION,
            entity_id=location_id,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            details={"rate": rate},
        )

    def get(self, location_id: str) -> Optional[BayesianParameter]:
        with self._lock:
            return self._params.get(location_id)

    def all_parameters(self) -> List[BayesianParameter]:
        with self._lock:
            return sorted(self._params.values(), key=lambda p: p.location_id)

    def is_stale(self, param: BayesianParameter, now: Optional[datetime] = None) -> bool:
        """True if the estimate has not been refreshed for ``staleness_windows``."""
        now = now or self.clock()
        return now - param.last_updated > self.config.staleness_windows * self.aggregator.window
