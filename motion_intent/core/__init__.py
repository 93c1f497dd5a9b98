"""
Core Module - Data types, errors, orchestration and background work.

This module contains the building blocks shared by every component:
- Data types (data_types.py)
- Error hierarchy (errors.py)
- Per-frame orchestration (orchestrator.py)
- Background worker threads (workers.py)
- Model persistence (persistence.py)
- Remote classifier client (remote_classifier.py)

Only the leaf modules are re-exported here; import the orchestrator and the
services from their own modules.
"""

from .data_types import (
    CalibrationSample,
    ClassifierModel,
    DetectorStatus,
    Direction,
    Landmark,
    LandmarkName,
    MovementFeatures,
    MovementResult,
    PoseFrame,
    TrainingFailure,
    TrainingResult,
)

from .errors import (
    CorruptModelStateError,
    InsufficientCalibrationDataError,
    MotionIntentError,
    RemoteClassifierError,
    TrainingAbortedError,
)

__all__ = [
    # Data types
    'CalibrationSample',
    'ClassifierModel',
    'DetectorStatus',
    'Direction',
    'Landmark',
    'LandmarkName',
    'MovementFeatures',
    'MovementResult',
    'PoseFrame',
    'TrainingFailure',
    'TrainingResult',
    # Errors
    'CorruptModelStateError',
    'InsufficientCalibrationDataError',
    'MotionIntentError',
    'RemoteClassifierError',
    'TrainingAbortedError',
]
