"""
Movement feature extraction for motion_intent.

This module turns the recent pose history of one landmark into a
MovementFeatures record: endpoint velocity and acceleration, deviation from a
straight path (jitter), rate of direction changes (frequency), steadiness,
directional pattern and continuity, plus the duration and reversal of the
current movement from a per-landmark Idle/Moving state machine.

Coordinates are in pixels and timestamps in seconds, so velocities are px/s.
Extraction never raises for missing data: too little history or a landmark
missing at either end of the window yields None.
"""

import logging
from collections import OrderedDict

import numpy as np

from motion_intent.config import FeatureConfig, HistoryConfig
from motion_intent.core.data_types import Direction, MovementFeatures

logger = logging.getLogger(__name__)


class MovementState:
    """
    Idle/Moving state of one landmark, with the position and time the current
    movement started.
    """

    __slots__ = ('is_moving', 'start_x', 'start_y', 'start_time')

    def __init__(self):
        self.is_moving = False
        self.start_x = 0.0
        self.start_y = 0.0
        self.start_time = 0.0

    def __repr__(self):
        return (f"MovementState(is_moving={self.is_moving}, start=({self.start_x:.1f}, "
                f"{self.start_y:.1f}), start_time={self.start_time:.3f})")


class FeatureExtractor:
    """
    Extracts kinematic features of single landmarks from a pose history.

    The extractor keeps the movement start/end state of every landmark it has
    seen. The state map can be supplied by the owner (the detector state) so
    that it is shared with whoever resets it.
    """

    def __init__(self, window_size=None, min_history=None, confidence_floor=None,
                 start_threshold=None, end_threshold=None, movement_states=None):
        """
        Initialize the feature extractor.

        Args:
            window_size (int): Frames analysed per landmark. If None, uses config default.
            min_history (int): Frames with the landmark required before extracting
            confidence_floor (float): Landmarks below this confidence count as missing
            start_threshold (float): Window magnitude that starts a movement
            end_threshold (float): Window magnitude that ends a movement
            movement_states (dict, optional): Shared landmark -> MovementState map
        """
        cfg = FeatureConfig
        self.window_size = window_size if window_size is not None else cfg.WINDOW_SIZE
        self.min_history = min_history if min_history is not None else HistoryConfig.MIN_HISTORY
        self.confidence_floor = (confidence_floor if confidence_floor is not None
                                 else cfg.CONFIDENCE_FLOOR)
        self.start_threshold = (start_threshold if start_threshold is not None
                                else cfg.MOVEMENT_START_THRESHOLD)
        self.end_threshold = (end_threshold if end_threshold is not None
                              else cfg.MOVEMENT_END_THRESHOLD)

        self.movement_states = movement_states if movement_states is not None else {}

        # Keyed by (landmark, newest frame timestamp)
        self._cache = OrderedDict()

    def extract_features(self, history, landmark):
        """
        Extract movement features for one landmark.

        Args:
            history (Sequence[PoseFrame]): Pose frames, oldest first. Only the newest
                `window_size` frames are analysed.
            landmark (str): Landmark name

        Returns:
            MovementFeatures: Features, or None if not enough data is available
        """
        frames = list(history)
        if len(frames) < self.min_history:
            return None

        recent = frames[-self.window_size:]
        name = str(landmark)

        cache_key = (name, recent[-1].timestamp)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        points = self._collect_points(recent, name)
        if points is None:
            return None

        features = self._compute_features(name, points)
        if features is None:
            return None

        self._cache[cache_key] = features
        while len(self._cache) > FeatureConfig.CACHE_SIZE:
            self._cache.popitem(last=False)

        return features

    def _collect_points(self, recent, name):
        """
        Gather (t, x, y) samples of a landmark over the window.

        Returns:
            numpy.ndarray: Array of shape (n, 3), or None when either window
                endpoint lacks the landmark or too few frames contain it
        """
        rows = []
        for frame in recent:
            lm = frame.get(name)
            if lm is not None and lm.confidence > self.confidence_floor:
                rows.append((frame.timestamp, lm.x, lm.y))
            elif frame is recent[0] or frame is recent[-1]:
                return None

        if len(rows) < min(self.min_history, self.window_size):
            return None

        return np.asarray(rows, dtype=float)

    def _compute_features(self, name, points):
        t, xs, ys = points[:, 0], points[:, 1], points[:, 2]

        elapsed = t[-1] - t[0]
        if elapsed <= 0:
            logger.debug(f"Non-increasing timestamps for {name}, skipping")
            return None

        dx = xs[-1] - xs[0]
        dy = ys[-1] - ys[0]
        velocity_x = dx / elapsed
        velocity_y = dy / elapsed
        magnitude = float(np.hypot(dx, dy))

        acceleration = self._calculate_acceleration(t, xs, ys)
        duration, is_reversing = self._update_movement_state(name, points, magnitude)
        jitter = self._calculate_jitter(t, xs, ys)

        return MovementFeatures(
            landmark=name,
            velocity_x=float(velocity_x),
            velocity_y=float(velocity_y),
            acceleration=acceleration,
            jitter=jitter,
            direction=self._calculate_direction(dx, dy, magnitude),
            is_smooth=jitter < FeatureConfig.SMOOTH_JITTER,
            magnitude=magnitude,
            duration=duration,
            is_reversing=is_reversing,
            frequency=self._calculate_frequency(t, xs, ys),
            alternation=self._calculate_alternation(xs, ys),
            steadiness=self._calculate_steadiness(xs, ys),
            pattern_score=self._calculate_pattern_score(xs, ys),
            continuity=self._calculate_continuity(t, xs, ys),
            timestamp=float(t[-1]),
        )

    def _calculate_acceleration(self, t, xs, ys):
        """
        Difference between the velocities of the two window halves, over the
        whole window time.
        """
        if len(t) < 3:
            return 0.0

        mid = len(t) // 2
        first_dt = t[mid] - t[0]
        second_dt = t[-1] - t[mid]
        if first_dt <= 0 or second_dt <= 0:
            return 0.0

        vx1 = (xs[mid] - xs[0]) / first_dt
        vy1 = (ys[mid] - ys[0]) / first_dt
        vx2 = (xs[-1] - xs[mid]) / second_dt
        vy2 = (ys[-1] - ys[mid]) / second_dt

        elapsed = t[-1] - t[0]
        ax = (vx2 - vx1) / elapsed
        ay = (vy2 - vy1) / elapsed
        return float(np.hypot(ax, ay))

    @staticmethod
    def _calculate_direction(dx, dy, magnitude):
        if magnitude < FeatureConfig.MIN_SIGNIFICANT_MOVEMENT:
            return Direction.NONE
        if abs(dx) > abs(dy):
            return Direction.RIGHT if dx > 0 else Direction.LEFT
        return Direction.DOWN if dy > 0 else Direction.UP

    def _update_movement_state(self, name, points, magnitude):
        """
        Advance the Idle/Moving state machine of a landmark.

        A movement starts when the window magnitude exceeds the start threshold
        while idle, and ends when it falls below the end threshold while moving.
        When a movement ends it is reversing if the landmark finished within
        half a window magnitude of where it started.

        Returns:
            tuple: (duration in seconds, is_reversing)
        """
        state = self.movement_states.get(name)
        if state is None:
            state = MovementState()
            self.movement_states[name] = state

        t_first, x_first, y_first = points[0]
        t_last, x_last, y_last = points[-1]

        if not state.is_moving and magnitude > self.start_threshold:
            state.is_moving = True
            state.start_x = float(x_first)
            state.start_y = float(y_first)
            state.start_time = float(t_first)
            logger.debug(f"Movement started for {name} at t={t_first:.3f}")

        duration = 0.0
        is_reversing = False

        if state.is_moving and magnitude < self.end_threshold:
            duration = float(t_last - state.start_time)
            total_distance = float(np.hypot(x_last - state.start_x, y_last - state.start_y))
            if total_distance < magnitude * FeatureConfig.REVERSAL_RATIO:
                is_reversing = True
            state.is_moving = False
            logger.debug(f"Movement ended for {name}: duration={duration:.3f}s, "
                         f"reversing={is_reversing}")
        elif state.is_moving:
            duration = float(t_last - state.start_time)

        return duration, is_reversing

    def _calculate_jitter(self, t, xs, ys):
        """
        Average deviation of the intermediate samples from the straight line
        between the window endpoints, positioned by elapsed-time fraction.
        """
        if len(t) < FeatureConfig.MIN_POINTS_JITTER:
            return 0.0

        vector_x = xs[-1] - xs[0]
        vector_y = ys[-1] - ys[0]
        if np.hypot(vector_x, vector_y) < FeatureConfig.MIN_SIGNIFICANT_MOVEMENT:
            return 0.0

        progress = (t[1:-1] - t[0]) / (t[-1] - t[0])
        expected_x = xs[0] + vector_x * progress
        expected_y = ys[0] + vector_y * progress
        deviation = np.hypot(xs[1:-1] - expected_x, ys[1:-1] - expected_y)

        return float(np.mean(deviation))

    def _calculate_frequency(self, t, xs, ys):
        """
        Sign changes of the per-step x and y displacement, per second.
        Tremor shows up as a high rate of alternation.
        """
        if len(t) < FeatureConfig.MIN_POINTS_FREQUENCY:
            return 0.0

        sign_x = np.sign(np.diff(xs))
        sign_y = np.sign(np.diff(ys))
        changes = (np.count_nonzero(sign_x[1:] * sign_x[:-1] < 0) +
                   np.count_nonzero(sign_y[1:] * sign_y[:-1] < 0))

        time_span = t[-1] - t[0]
        return float(changes / time_span) if time_span > 0 else 0.0

    def _calculate_alternation(self, xs, ys):
        """
        Sign changes of the per-step displacement over the number of step
        pairs, for the more alternating axis. 1.0 means the step direction
        flips on every sample, whatever the frame rate.
        """
        if len(xs) < FeatureConfig.MIN_POINTS_FREQUENCY:
            return 0.0

        pairs = len(xs) - 2
        ratios = []
        for values in (xs, ys):
            sign = np.sign(np.diff(values))
            ratios.append(np.count_nonzero(sign[1:] * sign[:-1] < 0) / pairs)
        return float(max(ratios))

    def _calculate_steadiness(self, xs, ys):
        """
        1 - variance(per-step displacement) / scale, floored at 0.
        """
        steps = np.hypot(np.diff(xs), np.diff(ys))
        if len(steps) < FeatureConfig.MIN_STEPS_STEADINESS:
            return 0.0

        variance = float(np.var(steps))
        return max(0.0, 1.0 - min(1.0, variance / FeatureConfig.STEADINESS_VARIANCE_SCALE))

    def _calculate_pattern_score(self, xs, ys):
        """
        High score when every step keeps the sign of the first step on x or on y.
        """
        step_x = np.diff(xs)
        step_y = np.diff(ys)
        if len(step_x) < FeatureConfig.MIN_STEPS_PATTERN:
            return 0.0

        consistent_x = bool(np.all((step_x > 0) == (step_x[0] > 0)))
        consistent_y = bool(np.all((step_y > 0) == (step_y[0] > 0)))

        if consistent_x or consistent_y:
            return FeatureConfig.PATTERN_CONSISTENT
        return FeatureConfig.PATTERN_INCONSISTENT

    def _calculate_continuity(self, t, xs, ys):
        """
        Fraction of steps whose speed stays above the pause threshold.
        """
        dt = np.diff(t)
        valid = dt > 0
        speeds = np.hypot(np.diff(xs)[valid], np.diff(ys)[valid]) / dt[valid]
        if len(speeds) < FeatureConfig.MIN_STEPS_CONTINUITY:
            return 0.0

        pauses = np.count_nonzero(speeds < FeatureConfig.PAUSE_SPEED)
        return max(0.0, 1.0 - pauses / len(speeds))

    def get_movement_state(self, landmark):
        return self.movement_states.get(str(landmark))

    def clear_state(self):
        """Forget all movement states and cached features."""
        self.movement_states.clear()
        self._cache.clear()
