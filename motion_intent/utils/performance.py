"""
Performance monitoring for the frame path.

Tracks execution times of labelled sections and warns when a section exceeds
its budget. One monitor is created per detector and injected where needed.
"""

import logging
import time
from collections import deque

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """
    Records durations of labelled code sections.
    """

    def __init__(self, enabled=True, max_samples=100):
        """
        Initialize the monitor.

        Args:
            enabled (bool): Whether timings are recorded
            max_samples (int): Durations kept per label
        """
        self.enabled = enabled
        self.max_samples = max_samples
        self.start_times = {}
        self.durations = {}
        self.warning_thresholds = {}

    def set_warning_threshold(self, label, threshold):
        """
        Warn whenever `label` takes longer than `threshold` seconds.
        """
        self.warning_thresholds[label] = threshold

    def start(self, label):
        if not self.enabled:
            return
        self.start_times[label] = time.perf_counter()

    def end(self, label):
        """
        Stop timing a section and record its duration.

        Args:
            label (str): Section label passed to start()

        Returns:
            float: Duration in seconds, or None if disabled or never started
        """
        if not self.enabled:
            return None

        start_time = self.start_times.pop(label, None)
        if start_time is None:
            logger.warning(f"PerformanceMonitor: no start time for label '{label}'")
            return None

        duration = time.perf_counter() - start_time
        self.durations.setdefault(label, deque(maxlen=self.max_samples)).append(duration)

        threshold = self.warning_thresholds.get(label)
        if threshold is not None and duration > threshold:
            logger.warning(f"Performance warning: '{label}' took {duration * 1000:.2f}ms "
                           f"(budget {threshold * 1000:.2f}ms)")

        return duration

    def get_average(self, label):
        samples = self.durations.get(label)
        if not samples:
            return None
        return sum(samples) / len(samples)

    def get_stats(self):
        """
        Get timing statistics for every recorded label.

        Returns:
            dict: label -> {'average', 'min', 'max', 'samples'} (seconds)
        """
        stats = {}
        for label, samples in self.durations.items():
            if not samples:
                continue
            stats[label] = {
                'average': sum(samples) / len(samples),
                'min': min(samples),
                'max': max(samples),
                'samples': len(samples),
            }
        return stats

    def reset(self):
        self.start_times.clear()
        self.durations.clear()
