"""
Exceptions raised inside the detector.

None of these escape the per-frame path: training turns them into a
TrainingResult, model loading turns them into "no model", and the remote
client turns them into "unavailable".
"""


class MotionIntentError(Exception):
    """Base class for detector errors."""


class InsufficientCalibrationDataError(MotionIntentError):
    """The calibration set cannot support training."""

    def __init__(self, reason, message):
        super().__init__(message)
        self.reason = reason


class TrainingAbortedError(MotionIntentError):
    """Training stopped before completion (cancelled, timed out or diverged)."""

    def __init__(self, reason, message):
        super().__init__(message)
        self.reason = reason


class CorruptModelStateError(MotionIntentError):
    """Serialized model state could not be restored."""


class RemoteClassifierError(MotionIntentError):
    """The remote classifier returned no usable verdict."""
