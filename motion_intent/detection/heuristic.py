"""
Rule-based intentionality scoring.

Ten boolean indicators are computed from MovementFeatures, each carrying a
fixed weight. The weighted fraction of indicators that hold is the
intentionality score; a movement is intentional when the score exceeds the
threshold. A window whose step direction keeps flipping (tremor) is
classified unintentional whatever the score.

The classifier is stateless and never fails, so it is always available as the
fallback verdict.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict

from motion_intent.config import HeuristicConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeuristicVerdict:
    """
    Result of scoring one set of features.
    """

    is_intentional: bool
    score: float
    "Weighted fraction of indicators that hold, in [0, 1]."
    indicators: Dict[str, bool] = field(default_factory=dict)
    tremor_veto: bool = False
    "True when the tremor veto overrode the score."

    @property
    def confidence(self) -> float:
        return self.score


class HeuristicClassifier:
    """
    Deterministic intentionality scorer requiring no training.
    """

    def __init__(self, threshold=None, tremor_veto_alternation=None, weights=None):
        """
        Initialize the heuristic classifier.

        Args:
            threshold (float): Score above which a movement is intentional
            tremor_veto_alternation (float): Share of reversing steps above which
                a movement is always unintentional
            weights (dict, optional): Indicator name -> weight override
        """
        cfg = HeuristicConfig
        self.threshold = threshold if threshold is not None else cfg.INTENTION_THRESHOLD
        if tremor_veto_alternation is None:
            tremor_veto_alternation = cfg.TREMOR_VETO_ALTERNATION
        self.tremor_veto_alternation = tremor_veto_alternation
        self.weights = dict(cfg.WEIGHTS)
        if weights:
            self.weights.update(weights)
        self.total_weight = math.fsum(self.weights.values())

    @staticmethod
    def compute_indicators(features):
        """
        Evaluate the ten intentionality indicators.

        Args:
            features (MovementFeatures): Features of one landmark

        Returns:
            dict: Indicator name -> bool, in weight order
        """
        cfg = HeuristicConfig
        return {
            'speed': features.speed > cfg.MIN_SPEED,
            'smoothness': features.jitter < cfg.MAX_JITTER and features.is_smooth,
            'acceleration': features.acceleration > cfg.MIN_ACCELERATION,
            'duration': cfg.MIN_DURATION < features.duration < cfg.MAX_DURATION,
            'direction': not features.is_reversing,
            'frequency': features.frequency < cfg.MAX_FREQUENCY,
            'steadiness': features.steadiness > cfg.MIN_STEADINESS,
            'pattern': features.pattern_score > cfg.MIN_PATTERN_SCORE,
            'continuity': features.continuity > cfg.MIN_CONTINUITY,
            'magnitude': features.magnitude > cfg.MIN_MAGNITUDE,
        }

    def score(self, features):
        """
        Weighted fraction of indicators that hold.

        Returns:
            float: Intentionality score (0-1)
        """
        indicators = self.compute_indicators(features)
        return self._weighted_score(indicators)

    def _weighted_score(self, indicators):
        if self.total_weight <= 0:
            return 0.0
        # Exact sums so that a score equal to the threshold stays equal to it
        weighted_sum = math.fsum(self.weights.get(name, 0.0)
                                 for name, value in indicators.items() if value)
        return weighted_sum / self.total_weight

    def classify(self, features):
        """
        Classify a movement.

        Args:
            features (MovementFeatures): Features of one landmark

        Returns:
            HeuristicVerdict: Verdict with score and indicator breakdown
        """
        indicators = self.compute_indicators(features)
        score = self._weighted_score(indicators)

        tremor_veto = features.alternation > self.tremor_veto_alternation
        is_intentional = score > self.threshold and not tremor_veto

        logger.debug(f"Intentionality for {features.landmark}: {score:.2f} "
                     f"(veto={tremor_veto}) {indicators}")

        return HeuristicVerdict(
            is_intentional=is_intentional,
            score=score,
            indicators=indicators,
            tremor_veto=tremor_veto,
        )

    def is_intentional(self, features):
        return self.classify(features).is_intentional
