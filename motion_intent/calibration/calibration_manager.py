"""
Calibration sample collection and quality scoring.

During a guided calibration the UI runs timed labelling phases ("move on
purpose", "rest") and calls add_sample() repeatedly. Each call extracts
features for every tracked landmark from the current pose history and stores
one labelled sample per landmark that yielded features.

Calibration quality is the sum of four sub-scores of up to 25 points each:
- Count: total samples relative to the target count
- Balance: minority/majority ratio relative to the allowed imbalance ceiling
- Diversity: distinct (direction, magnitude bucket) patterns within each class
- Separability: held-out accuracy of a tiny probe network on a reduced
  feature subset

Quality is advisory: below 40 the user should recalibrate, from 70 the data is
considered ready for training.
"""

import json
import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

import numpy as np

from motion_intent.classifier.network import AdamOptimizer, IntentionNetwork
from motion_intent.config import TRACKED_LANDMARKS, CalibrationConfig, ModelConfig
from motion_intent.core.data_types import CalibrationSample

logger = logging.getLogger(__name__)


def round_half_up(value):
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class CalibrationQuality:
    """
    Breakdown of the calibration quality score.
    """

    count_score: int = 0
    balance_score: int = 0
    diversity_score: int = 0
    separability_score: int = 0

    @property
    def total(self) -> int:
        return self.count_score + self.balance_score + self.diversity_score + self.separability_score

    @property
    def status(self) -> str:
        """'recalibrate', 'fair' or 'ready'."""
        if self.total < CalibrationConfig.RECALIBRATE_BELOW:
            return 'recalibrate'
        if self.total >= CalibrationConfig.READY_AT:
            return 'ready'
        return 'fair'

    def as_dict(self):
        data = asdict(self)
        data['total'] = self.total
        data['status'] = self.status
        return data


class CalibrationManager:
    """
    Collects labelled calibration samples and scores their quality.
    """

    def __init__(self, history, feature_extractor, tracked_landmarks=TRACKED_LANDMARKS,
                 target_samples=None, max_imbalance_ratio=None, samples=None, seed=0):
        """
        Initialize the calibration manager.

        Args:
            history (PoseHistoryBuffer): Pose history shared with the detector
            feature_extractor (FeatureExtractor): Extractor shared with the detector
            tracked_landmarks (tuple): Landmarks sampled on each add_sample() call
            target_samples (int): Sample count that earns the full count score
            max_imbalance_ratio (float): Balance ratio that earns the full balance score
            samples (list, optional): Sample list to collect into (kept by reference)
            seed (int): Seed of the separability probe (split and weights)
        """
        self.history = history
        self.feature_extractor = feature_extractor
        self.tracked_landmarks = tuple(tracked_landmarks)
        self.target_samples = (target_samples if target_samples is not None
                               else CalibrationConfig.TARGET_SAMPLES)
        self.max_imbalance_ratio = (max_imbalance_ratio if max_imbalance_ratio is not None
                                    else CalibrationConfig.MAX_IMBALANCE_RATIO)
        self.seed = seed

        self.samples = samples if samples is not None else []
        self._quality = CalibrationQuality()
        self._phase_duration = CalibrationConfig.PHASE_DURATION

    # ------------------------------------------------------------------ collection

    def add_sample(self, is_intentional):
        """
        Capture one labelled sample per tracked landmark from the current history.

        Args:
            is_intentional (bool): Ground-truth label of the current phase

        Returns:
            int: Number of samples added
        """
        frames = self.history.window(self.history.capacity)
        added = 0
        for landmark in self.tracked_landmarks:
            features = self.feature_extractor.extract_features(frames, landmark)
            if features is None:
                continue
            self.samples.append(CalibrationSample(features=features,
                                                  is_intentional=bool(is_intentional)))
            added += 1

        if added:
            self.update_quality()
            logger.debug(f"Added {added} {'intentional' if is_intentional else 'unintentional'} "
                         f"samples ({len(self.samples)} total)")
        return added

    def add_samples(self, samples):
        """Append existing CalibrationSample objects (e.g. imported or synthetic)."""
        self.samples.extend(samples)
        self.update_quality()

    def clear(self):
        """Reset samples and quality to zero."""
        self.samples.clear()
        self._quality = CalibrationQuality()
        logger.info("Calibration data cleared")

    @property
    def intentional_count(self):
        return sum(1 for s in self.samples if s.is_intentional)

    @property
    def unintentional_count(self):
        return len(self.samples) - self.intentional_count

    @property
    def balance_ratio(self):
        n_pos, n_neg = self.intentional_count, self.unintentional_count
        larger = max(n_pos, n_neg)
        return min(n_pos, n_neg) / larger if larger > 0 else 0.0

    @property
    def phase_duration(self):
        """Seconds per labelling phase (at least MIN_PHASE_DURATION)."""
        return self._phase_duration

    @phase_duration.setter
    def phase_duration(self, seconds):
        self._phase_duration = max(CalibrationConfig.MIN_PHASE_DURATION, float(seconds))

    # ------------------------------------------------------------------ quality

    @property
    def quality(self):
        """Last computed quality score (0-100)."""
        return self._quality.total

    @property
    def quality_breakdown(self):
        return self._quality

    def update_quality(self):
        """
        Recompute calibration quality from the current samples.

        Returns:
            CalibrationQuality: New breakdown
        """
        self._quality = self.compute_quality(self.samples)

        if self.samples:
            q = self._quality
            logger.debug(f"Calibration quality: {q.total}/100 "
                        f"(count {q.count_score}, balance {q.balance_score}, "
                        f"diversity {q.diversity_score}, separability {q.separability_score})")
            if q.status == 'recalibrate' and len(self.samples) >= self.target_samples:
                logger.warning("Low calibration quality. Consider recalibrating with more "
                               "distinct movements.")
        return self._quality

    def compute_quality(self, samples):
        """
        Score a sample set without modifying the manager.

        Args:
            samples (list): CalibrationSample list

        Returns:
            CalibrationQuality: Breakdown of the score
        """
        if not samples:
            return CalibrationQuality()

        return CalibrationQuality(
            count_score=self.count_score(len(samples)),
            balance_score=self.balance_score(samples),
            diversity_score=self.diversity_score(samples),
            separability_score=self.separability_score(samples),
        )

    def count_score(self, total):
        cap = CalibrationConfig.SUBSCORE_CAP
        return min(cap, round_half_up(cap * total / self.target_samples))

    def balance_score(self, samples):
        n_pos = sum(1 for s in samples if s.is_intentional)
        n_neg = len(samples) - n_pos
        if max(n_pos, n_neg) == 0:
            return 0
        balance = min(n_pos, n_neg) / max(n_pos, n_neg)
        cap = CalibrationConfig.SUBSCORE_CAP
        return min(cap, round_half_up(cap * balance / self.max_imbalance_ratio))

    @staticmethod
    def diversity_score(samples):
        """
        Distinct (direction, magnitude bucket) patterns per class, relative to
        a third of the class size (at least 5).
        """
        bucket = CalibrationConfig.DIVERSITY_BUCKET
        patterns = {True: [], False: []}
        for s in samples:
            patterns[s.is_intentional].append(
                (s.features.direction.value, round_half_up(s.features.magnitude / bucket)))

        half = CalibrationConfig.SUBSCORE_CAP / 2.0
        score = 0.0
        for label_patterns in patterns.values():
            score += half * len(set(label_patterns)) / max(5.0, len(label_patterns) / 3.0)
        return min(CalibrationConfig.SUBSCORE_CAP, round_half_up(score))

    def separability_score(self, samples):
        """
        Train a probe on a shuffled 70/30 split and map its held-out accuracy
        (0.5 -> 0, 1.0 -> 25) to a score.
        """
        cfg = CalibrationConfig
        if len(samples) < cfg.PROBE_MIN_SAMPLES:
            return cfg.PROBE_DEFAULT_SCORE

        X = np.array([[s.features.jitter,
                       1.0 if s.features.is_smooth else 0.0,
                       s.features.magnitude / ModelConfig.MAGNITUDE_SCALE,
                       1.0 if s.features.is_reversing else 0.0] for s in samples])
        y = np.array([1.0 if s.is_intentional else 0.0 for s in samples])

        rng = np.random.default_rng(self.seed)
        order = rng.permutation(len(y))
        X, y = X[order], y[order]

        split = int(len(y) * cfg.PROBE_TRAIN_FRACTION)
        X_train, y_train = X[:split], y[:split]
        X_test, y_test = X[split:], y[split:]

        if not (np.any(y_test == 1) and np.any(y_test == 0)):
            return cfg.PROBE_SINGLE_CLASS_SCORE

        probe = IntentionNetwork(X.shape[1], (cfg.PROBE_HIDDEN_UNITS,), seed=self.seed)
        optimizer = AdamOptimizer(cfg.PROBE_LEARNING_RATE)
        for _ in range(cfg.PROBE_EPOCHS):
            loss = probe.train_epoch(X_train, y_train, cfg.PROBE_BATCH_SIZE, optimizer)
            if not np.isfinite(loss):
                logger.warning("Separability probe diverged")
                return cfg.PROBE_DEFAULT_SCORE

        accuracy = float(np.mean((probe.predict_proba(X_test) > 0.5) == (y_test > 0.5)))
        score = round_half_up(cfg.SUBSCORE_CAP * (accuracy - 0.5) * 2)
        return max(0, min(cfg.SUBSCORE_CAP, score))

    # ------------------------------------------------------------------ import / export

    def save_samples(self, filepath):
        """
        Save calibration samples as a JSON file.

        Args:
            filepath (str): Output path

        Returns:
            Path: Path to the saved file, or None if there is nothing to save
        """
        if not self.samples:
            return None

        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'metadata': {
                'collection_date': datetime.now().isoformat(),
                'num_intentional': self.intentional_count,
                'num_unintentional': self.unintentional_count,
                'total_samples': len(self.samples),
                'quality': self.quality,
            },
            'samples': [s.to_dict() for s in self.samples],
        }

        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

        logger.info(f"Saved {len(self.samples)} calibration samples to {filepath}")
        return filepath

    def load_samples(self, filepath, replace=True):
        """
        Load calibration samples from a JSON file written by save_samples().

        Args:
            filepath (str): Path to the JSON file
            replace (bool): Discard current samples first

        Returns:
            int: Number of samples loaded

        Raises:
            OSError: If the file cannot be read
            ValueError: If the file is not valid JSON or holds malformed samples
        """
        with open(filepath, 'r') as f:
            data = json.load(f)

        try:
            loaded = [CalibrationSample.from_dict(item) for item in data.get('samples', [])]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise ValueError(f"Malformed calibration file {filepath}: {e!r}") from e
        if replace:
            self.samples.clear()
        self.add_samples(loaded)

        logger.info(f"Loaded {len(loaded)} calibration samples from {filepath}")
        return len(loaded)
