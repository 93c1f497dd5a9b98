"""
Data types shared by the detector components.

Frames flow in as PoseFrame objects, landmarks are analysed into
MovementFeatures, and the orchestrator emits MovementResult objects.
Calibration pairs features with a ground-truth label (CalibrationSample) and
training produces a ClassifierModel plus a TrainingResult.
"""

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class LandmarkName(str, Enum):
    """
    Fixed vocabulary of tracked anatomical points.
    Members compare equal to their string values.
    """

    LEFT_WRIST = 'left_wrist'
    RIGHT_WRIST = 'right_wrist'
    LEFT_ELBOW = 'left_elbow'
    RIGHT_ELBOW = 'right_elbow'
    LEFT_SHOULDER = 'left_shoulder'
    RIGHT_SHOULDER = 'right_shoulder'
    LEFT_INDEX = 'left_index'
    RIGHT_INDEX = 'right_index'
    LEFT_THUMB = 'left_thumb'
    RIGHT_THUMB = 'right_thumb'
    LEFT_PINKY = 'left_pinky'
    RIGHT_PINKY = 'right_pinky'
    NOSE = 'nose'
    LEFT_EYE = 'left_eye'
    RIGHT_EYE = 'right_eye'

    def __str__(self) -> str:
        return self.value


class Direction(str, Enum):
    """
    Dominant axis of a movement, in image coordinates (y grows downwards).
    """

    UP = 'up'
    DOWN = 'down'
    LEFT = 'left'
    RIGHT = 'right'
    NONE = 'none'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Landmark:
    """
    A tracked point with its 2D position and detection confidence.
    """

    name: LandmarkName
    "Which anatomical point this is."
    x: float
    "Horizontal position (pixels)."
    y: float
    "Vertical position (pixels)."
    confidence: float = 1.0
    "Detection confidence in [0, 1]."

    def __post_init__(self) -> None:
        object.__setattr__(self, 'name', LandmarkName(self.name))


@dataclass(frozen=True)
class PoseFrame:
    """
    All landmarks detected in one camera frame.
    """

    landmarks: Tuple[Landmark, ...]
    "Landmarks in detection order."
    timestamp: float
    alternation: float = 0.0
    "Largest per-axis share of consecutive steps that reverse sign, in [0, 1]."
    "Monotonic capture time (seconds)."

    _index: Dict[str, Landmark] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'landmarks', tuple(self.landmarks))
        object.__setattr__(self, '_index', {lm.name.value: lm for lm in self.landmarks})

    def get(self, name: str) -> Optional[Landmark]:
        """
        Return the landmark with the given name, or None if it was not detected.
        """
        return self._index.get(str(name))


@dataclass(frozen=True)
class MovementFeatures:
    """
    Kinematic description of one landmark's motion over the analysis window.
    """

    landmark: str
    velocity_x: float
    velocity_y: float
    acceleration: float
    jitter: float
    direction: Direction
    is_smooth: bool
    magnitude: float
    duration: float
    is_reversing: bool
    frequency: float
    steadiness: float
    pattern_score: float
    continuity: float
    timestamp: float
    alternation: float = 0.0
    "Largest per-axis share of consecutive steps that reverse sign, in [0, 1]."

    @property
    def speed(self) -> float:
        """
        Magnitude of the endpoint velocity vector.
        """
        return math.hypot(self.velocity_x, self.velocity_y)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['direction'] = self.direction.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MovementFeatures':
        values = dict(data)
        values['direction'] = Direction(values['direction'])
        return cls(**values)


@dataclass(frozen=True)
class MovementResult:
    """
    Orchestrator output for one landmark in one frame.
    """

    landmark: str
    is_intentional: bool
    velocity: float
    direction: Direction
    confidence: float
    source: str = 'heuristic'
    "Which classifier produced the verdict: 'heuristic', 'model' or 'remote'."


@dataclass(frozen=True)
class CalibrationSample:
    """
    Features captured during a labelled calibration phase.
    """

    features: MovementFeatures
    is_intentional: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'features': self.features.to_dict(),
            'label': self.is_intentional,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalibrationSample':
        return cls(
            features=MovementFeatures.from_dict(data['features']),
            is_intentional=bool(data['label']),
        )


@dataclass
class ClassifierModel:
    """
    Trained parameter set of the personalised classifier.
    """

    user_id: str
    version: int
    created_at: str
    parameters: Dict[str, Any]
    "Network weights as nested lists (see IntentionNetwork.to_dict)."
    feature_names: List[str]
    threshold: float
    metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrainingResult:
    """
    Outcome of a training request.
    """

    success: bool
    reason: str = ''
    "Failure code, empty on success (see TrainingFailure)."
    message: str = ''
    accuracy: float = 0.0
    validation_accuracy: float = 0.0
    low_confidence: bool = False
    "True when the model was trained on poorly balanced data."
    epochs_run: int = 0
    num_samples: int = 0


class TrainingFailure:
    """
    Failure codes reported in TrainingResult.reason.
    """

    INSUFFICIENT_SAMPLES = 'insufficient_samples'
    SINGLE_CLASS = 'single_class'
    IMBALANCED = 'imbalanced'
    IN_PROGRESS = 'in_progress'
    CANCELLED = 'cancelled'
    TIMEOUT = 'timeout'
    DIVERGED = 'diverged'
    ERROR = 'error'


@dataclass(frozen=True)
class DetectorStatus:
    """
    Snapshot of the detector state for display.
    """

    is_model_trained: bool
    calibration_samples: int
    intentional_samples: int
    unintentional_samples: int
    calibration_quality: int
    remote_enabled: bool
    is_training: bool
    error_count: int = 0
    last_error: str = ''
