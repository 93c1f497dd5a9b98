"""
Configuration module for motion_intent.

This module contains all configuration parameters and constants used by the
movement-intention detector. The constant classes hold the defaults; runtime
tuning goes through a DetectorConfig instance that is injected into the
orchestrator, so the classes below are never mutated.

TUNING:
- Faster reaction, more false triggers: lower HeuristicConfig.INTENTION_THRESHOLD
  or DetectionConfig.COOLDOWN_PERIOD
- Stricter personalised model: raise ModelConfig.DECISION_THRESHOLD
- Tremor-heavy users: lower HeuristicConfig.MAX_FREQUENCY and TREMOR_VETO_ALTERNATION
"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

logger = logging.getLogger(__name__)


# ==================== Landmark Vocabulary ====================
TRACKED_LANDMARKS = (
    'left_wrist', 'right_wrist',
    'left_elbow', 'right_elbow',
    'left_shoulder', 'right_shoulder',
    'left_index', 'right_index',
    'left_thumb', 'right_thumb',
    'left_pinky', 'right_pinky',
    'nose', 'left_eye', 'right_eye',
)


# ==================== History Configuration ====================
class HistoryConfig:
    """Pose history buffer parameters."""

    # Number of frames kept (~2 seconds at 30fps)
    CAPACITY = 60

    # Frames required before any landmark is analysed
    MIN_HISTORY = 10


# ==================== Feature Extraction Configuration ====================
class FeatureConfig:
    """Kinematic feature extraction parameters (pixel units, seconds)."""

    # Frames analysed per landmark
    WINDOW_SIZE = 15

    # Landmarks below this detection confidence are treated as missing
    CONFIDENCE_FLOOR = 0.5

    # Endpoint displacement below which jitter is 0 and direction is 'none'
    MIN_SIGNIFICANT_MOVEMENT = 2.0

    # Movement start/end state machine thresholds (window magnitude)
    MOVEMENT_START_THRESHOLD = 5.0
    MOVEMENT_END_THRESHOLD = 3.0

    # Fraction of window magnitude under which an ended movement counts as reversing
    REVERSAL_RATIO = 0.5

    # Jitter below this marks a movement as smooth
    SMOOTH_JITTER = 10.0

    # Per-step speed (units/s) under which a step counts as a pause
    PAUSE_SPEED = 5.0

    # Per-step speed variance that maps steadiness to 0
    STEADINESS_VARIANCE_SCALE = 100.0

    # Pattern score for consistent / inconsistent step directions
    PATTERN_CONSISTENT = 0.8
    PATTERN_INCONSISTENT = 0.2

    # Minimum points/steps for the windowed statistics
    MIN_POINTS_JITTER = 5
    MIN_POINTS_FREQUENCY = 5
    MIN_STEPS_STEADINESS = 3
    MIN_STEPS_CONTINUITY = 3
    MIN_STEPS_PATTERN = 5

    # Feature cache size (entries keyed by landmark and newest frame timestamp)
    CACHE_SIZE = 100


# ==================== Heuristic Classifier Configuration ====================
class HeuristicConfig:
    """Rule-based intentionality scoring."""

    MIN_SPEED = 20.0                # Endpoint speed (units/s) of a deliberate movement
    MAX_JITTER = 12.0               # Jitter allowed for the smoothness indicator
    MIN_ACCELERATION = 15.0         # Acceleration of a deliberate movement
    MIN_DURATION = 0.2              # Plausible gesture duration range (seconds)
    MAX_DURATION = 1.5
    MAX_FREQUENCY = 4.0             # Direction changes per second (tremor above)
    MIN_STEADINESS = 0.6
    MIN_PATTERN_SCORE = 0.5
    MIN_CONTINUITY = 0.7
    MIN_MAGNITUDE = 15.0

    # Indicator weights, in indicator order
    WEIGHTS = {
        'speed': 1.0,
        'smoothness': 1.5,
        'acceleration': 0.8,
        'duration': 1.0,
        'direction': 0.7,
        'frequency': 1.2,
        'steadiness': 1.2,
        'pattern': 0.9,
        'continuity': 1.0,
        'magnitude': 0.7,
    }

    # Weighted score above which a movement is intentional
    INTENTION_THRESHOLD = 0.55

    # Share of consecutive steps reversing sign (on the more alternating axis)
    # above which a movement is always tremor. Flipping on every sample gives 1.0
    # at any frame rate; single-axis sensor noise averages about 0.5.
    TREMOR_VETO_ALTERNATION = 0.8


# ==================== Trainable Model Configuration ====================
class ModelConfig:
    """Personalised feed-forward network."""

    # Hidden layer sizes and the dropout applied after each of them
    HIDDEN_UNITS = (64, 32, 16)
    DROPOUT_RATES = (0.3, 0.2, 0.0)

    # Output probability above which a movement is intentional
    DECISION_THRESHOLD = 0.65

    # Input normalisation divisors
    MAGNITUDE_SCALE = 100.0
    FREQUENCY_SCALE = 10.0

    # Serialized model format version
    FORMAT_VERSION = 1


# ==================== Training Configuration ====================
class TrainingConfig:
    """Training loop and class balancing."""

    MIN_SAMPLES = 10                # Calibration samples required to train
    EPOCHS = 100
    BATCH_SIZE = 32
    LEARNING_RATE = 0.0005
    VALIDATION_SPLIT = 0.2

    # Minority-class oversampling: copies per sample and multiplicative jitter
    AUGMENT_MAX_COPIES = 5
    AUGMENT_JITTER = 0.10

    # Balance ratio (minority / majority) below which training refuses
    MIN_BALANCE_RATIO = 0.2

    # Balance ratio below which a trained model is flagged low-confidence
    LOW_CONFIDENCE_BALANCE_RATIO = 0.7

    # Background training timeout (seconds)
    TIMEOUT = 60.0


# ==================== Calibration Configuration ====================
class CalibrationConfig:
    """Calibration sample collection and quality scoring."""

    # Maximum points per quality sub-score
    SUBSCORE_CAP = 25

    # Sample count that earns the full count sub-score
    TARGET_SAMPLES = 100

    # Balance ratio that earns the full balance sub-score
    MAX_IMBALANCE_RATIO = 0.7

    # Magnitude bucket width used by the diversity sub-score
    DIVERSITY_BUCKET = 10.0

    # Separability probe
    PROBE_MIN_SAMPLES = 20
    PROBE_TRAIN_FRACTION = 0.7
    PROBE_HIDDEN_UNITS = 8
    PROBE_EPOCHS = 20
    PROBE_BATCH_SIZE = 16
    PROBE_LEARNING_RATE = 0.01
    PROBE_DEFAULT_SCORE = 10        # Too few samples
    PROBE_SINGLE_CLASS_SCORE = 15   # A split holds only one class

    # Advisory quality bands
    RECALIBRATE_BELOW = 40
    READY_AT = 70

    # Seconds per labelling phase
    PHASE_DURATION = 15.0
    MIN_PHASE_DURATION = 5.0


# ==================== Detection Configuration ====================
class DetectionConfig:
    """Per-frame orchestration."""

    # Refractory period between intentional emissions per landmark (seconds)
    COOLDOWN_PERIOD = 0.2
    MIN_COOLDOWN = 0.05
    MAX_COOLDOWN = 1.0

    # Velocity above which incidental motion is still reported
    NOTABLE_VELOCITY = 5.0

    # Process every (FRAME_SKIP + 1)-th frame
    FRAME_SKIP = 0
    MAX_FRAME_SKIP = 5

    # Frame processing time that triggers a performance warning (seconds)
    FRAME_BUDGET = 0.016


# ==================== Remote Classifier Configuration ====================
class RemoteClassifierConfig:
    """Optional remote classification delegate."""

    REQUEST_TIMEOUT = 5.0           # HTTP timeout (seconds)
    RETRY_COUNT = 3
    RETRY_BASE_DELAY = 0.3          # Backoff: 0.3, 0.6, 1.2 seconds
    CACHE_VALIDITY = 1.0            # Seconds a verdict is reused
    MIN_MAGNITUDE = 10.0            # Only consult for movements larger than this
    RESPONSE_WAIT = 0.05            # Frame path wait for a pending verdict (seconds)
    MAX_REQUEST_AGE = 1.0           # Requests older than this are skipped (seconds)
    DEFAULT_MODEL_ID = 'default-model'


# ==================== Worker Thread Configuration ====================
class WorkerConfig:
    """Background worker threads."""

    REQUEST_QUEUE_MAXSIZE = 64
    QUEUE_TIMEOUT = 0.1
    THREAD_SHUTDOWN_TIMEOUT = 2.0


@dataclass
class DetectorCapabilities:
    """Optional behaviours, resolved once when the detector is built."""

    use_trainable_model: bool = True
    use_remote_classifier: bool = False
    monitor_performance: bool = True


@dataclass
class DetectorConfig:
    """
    Every tunable option of the detector, with defaults from the constant classes.

    Build it directly, from a dict (from_dict) or from a JSON file (from_json).
    """

    history_capacity: int = HistoryConfig.CAPACITY
    min_history: int = HistoryConfig.MIN_HISTORY
    window_size: int = FeatureConfig.WINDOW_SIZE
    confidence_floor: float = FeatureConfig.CONFIDENCE_FLOOR
    movement_start_threshold: float = FeatureConfig.MOVEMENT_START_THRESHOLD
    movement_end_threshold: float = FeatureConfig.MOVEMENT_END_THRESHOLD
    cooldown_period: float = DetectionConfig.COOLDOWN_PERIOD
    notable_velocity: float = DetectionConfig.NOTABLE_VELOCITY
    frame_skip: int = DetectionConfig.FRAME_SKIP
    heuristic_threshold: float = HeuristicConfig.INTENTION_THRESHOLD
    tremor_veto_alternation: float = HeuristicConfig.TREMOR_VETO_ALTERNATION
    model_threshold: float = ModelConfig.DECISION_THRESHOLD
    min_training_samples: int = TrainingConfig.MIN_SAMPLES
    epochs: int = TrainingConfig.EPOCHS
    batch_size: int = TrainingConfig.BATCH_SIZE
    learning_rate: float = TrainingConfig.LEARNING_RATE
    validation_split: float = TrainingConfig.VALIDATION_SPLIT
    augment_max_copies: int = TrainingConfig.AUGMENT_MAX_COPIES
    augment_jitter: float = TrainingConfig.AUGMENT_JITTER
    min_balance_ratio: float = TrainingConfig.MIN_BALANCE_RATIO
    training_timeout: float = TrainingConfig.TIMEOUT
    quality_target_samples: int = CalibrationConfig.TARGET_SAMPLES
    quality_max_imbalance_ratio: float = CalibrationConfig.MAX_IMBALANCE_RATIO
    remote_endpoint: str = ''
    remote_api_key: str = ''
    remote_model_id: str = RemoteClassifierConfig.DEFAULT_MODEL_ID
    remote_timeout: float = RemoteClassifierConfig.REQUEST_TIMEOUT
    remote_response_wait: float = RemoteClassifierConfig.RESPONSE_WAIT
    remote_max_age: float = RemoteClassifierConfig.MAX_REQUEST_AGE
    tracked_landmarks: tuple = TRACKED_LANDMARKS
    capabilities: DetectorCapabilities = field(default_factory=DetectorCapabilities)

    @classmethod
    def from_dict(cls, values):
        """
        Build a configuration from a plain dict.

        Args:
            values (dict): Option names mapped to values. A nested 'capabilities'
                dict sets the capability flags.

        Returns:
            DetectorConfig: Configuration with the given overrides

        Raises:
            ValueError: If an option name is not recognised
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown configuration options: {sorted(unknown)}")

        values = dict(values)
        if 'capabilities' in values and isinstance(values['capabilities'], dict):
            values['capabilities'] = DetectorCapabilities(**values['capabilities'])
        if 'tracked_landmarks' in values:
            values['tracked_landmarks'] = tuple(values['tracked_landmarks'])
        return cls(**values)

    @classmethod
    def from_json(cls, filepath):
        """
        Load a configuration from a JSON file.

        Args:
            filepath (str): Path to a JSON object of option overrides

        Returns:
            DetectorConfig: Loaded configuration
        """
        with open(Path(filepath), 'r') as f:
            values = json.load(f)
        logger.info(f"Loaded detector configuration from {filepath}")
        return cls.from_dict(values)
