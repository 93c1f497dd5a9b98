"""
Per-frame movement-intention detection.

The DetectionOrchestrator is the single entry point of the detector. Each
call to process_frame() pushes a PoseFrame into the history, extracts
features for every tracked landmark, obtains a verdict and applies the
refractory gate:

1. Remote classifier (optional): requests are submitted to a background
   worker first and collected with a short bounded wait. A verdict that
   arrives in time replaces the local one when it is more confident.
2. Trainable model: used for the local verdict once trained (and enabled).
3. Heuristic classifier: the fallback local verdict.

A landmark marked intentional less than the cooldown period after its
previous intentional emission is reported as unintentional. A result is
emitted for every landmark that is intentional or moving faster than the
notable velocity.

All state is mutated only on the process_frame() call path; training and
remote classification exchange data with it only through explicit payloads.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List

from motion_intent import __version__
from motion_intent.calibration.calibration_manager import CalibrationManager
from motion_intent.classifier.augmentation import JitterOversampler
from motion_intent.classifier.trainable_classifier import TrainableClassifier
from motion_intent.config import DetectionConfig, DetectorConfig
from motion_intent.core.data_types import CalibrationSample, DetectorStatus, MovementResult
from motion_intent.core.remote_classifier import RemoteClassifierClient
from motion_intent.core.workers import RequestWorker
from motion_intent.detection.feature_extractor import FeatureExtractor
from motion_intent.detection.heuristic import HeuristicClassifier
from motion_intent.utils.buffer import PoseHistoryBuffer
from motion_intent.utils.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


@dataclass
class DetectorState:
    """
    Mutable state of one detector.
    """

    history: PoseHistoryBuffer
    "Recent pose frames."
    last_intentional_times: Dict[str, float] = field(default_factory=dict)
    "Landmark -> timestamp of its last intentional emission (cooldown)."
    movement_states: Dict[str, object] = field(default_factory=dict)
    "Landmark -> MovementState (movement start position and time)."
    calibration_samples: List[CalibrationSample] = field(default_factory=list)
    "Labelled samples collected during calibration."
    frame_count: int = 0
    "Frames delivered, including skipped ones."
    remote_requests: Dict[str, object] = field(default_factory=dict)
    "Landmark -> PendingRequest of the remote classifier not yet consumed."


class DetectionOrchestrator:
    """
    Drives feature extraction and classification for every delivered frame.
    """

    def __init__(self, config=None, classifier=None, remote_client=None,
                 performance_monitor=None, user_id=''):
        """
        Initialize the detector.

        Args:
            config (DetectorConfig, optional): Detector options; defaults if None
            classifier (TrainableClassifier, optional): Personalised classifier to use
            remote_client (RemoteClassifierClient, optional): Remote delegate; built
                from the config when the capability is enabled and none is given
            performance_monitor (PerformanceMonitor, optional): Timing collector
            user_id (str): Owner of trained models
        """
        self.config = config if config is not None else DetectorConfig()
        self.capabilities = self.config.capabilities
        self.user_id = user_id
        cfg = self.config

        self.state = DetectorState(history=PoseHistoryBuffer(cfg.history_capacity))
        self.tracked_landmarks = tuple(cfg.tracked_landmarks)

        self.feature_extractor = FeatureExtractor(
            window_size=cfg.window_size,
            min_history=cfg.min_history,
            confidence_floor=cfg.confidence_floor,
            start_threshold=cfg.movement_start_threshold,
            end_threshold=cfg.movement_end_threshold,
            movement_states=self.state.movement_states,
        )
        self.heuristic = HeuristicClassifier(threshold=cfg.heuristic_threshold,
                                             tremor_veto_alternation=cfg.tremor_veto_alternation)
        self.classifier = classifier if classifier is not None else TrainableClassifier(
            threshold=cfg.model_threshold,
            epochs=cfg.epochs,
            batch_size=cfg.batch_size,
            learning_rate=cfg.learning_rate,
            validation_split=cfg.validation_split,
            min_samples=cfg.min_training_samples,
            min_balance_ratio=cfg.min_balance_ratio,
            balancing=JitterOversampler(cfg.augment_max_copies, cfg.augment_jitter),
            timeout=cfg.training_timeout,
        )

        self.calibration = CalibrationManager(
            self.state.history,
            self.feature_extractor,
            tracked_landmarks=self.tracked_landmarks,
            target_samples=cfg.quality_target_samples,
            max_imbalance_ratio=cfg.quality_max_imbalance_ratio,
            samples=self.state.calibration_samples,
        )

        self.performance = performance_monitor or PerformanceMonitor(
            enabled=self.capabilities.monitor_performance)
        self.performance.set_warning_threshold('process_frame', DetectionConfig.FRAME_BUDGET)

        self.remote_client = None
        self.remote_worker = None
        if self.capabilities.use_remote_classifier:
            self.remote_client = remote_client or RemoteClassifierClient(
                cfg.remote_endpoint, cfg.remote_api_key, cfg.remote_model_id,
                timeout=cfg.remote_timeout)
            if self.remote_client.enabled:
                self.remote_worker = RequestWorker(self.remote_client.classify,
                                                   name="RemoteClassifierWorker")
                self.remote_worker.start()
            else:
                logger.warning("Remote classifier enabled without endpoint or key; ignoring")

        self._cooldown_period = DetectionConfig.COOLDOWN_PERIOD
        self.cooldown_period = cfg.cooldown_period
        self._frame_skip = 0
        self.frame_skip = cfg.frame_skip

        self.stored_quality = 0
        self.error_count = 0
        self.last_error = ''

        logger.info(f"DetectionOrchestrator initialized: {len(self.tracked_landmarks)} landmarks, "
                    f"remote={'on' if self.remote_worker else 'off'}, "
                    f"model={'trained' if self.classifier.is_trained else 'untrained'}")

    # ------------------------------------------------------------------ settings

    @property
    def cooldown_period(self):
        return self._cooldown_period

    @cooldown_period.setter
    def cooldown_period(self, seconds):
        self._cooldown_period = min(DetectionConfig.MAX_COOLDOWN,
                                    max(DetectionConfig.MIN_COOLDOWN, float(seconds)))

    @property
    def frame_skip(self):
        return self._frame_skip

    @frame_skip.setter
    def frame_skip(self, frames):
        self._frame_skip = min(DetectionConfig.MAX_FRAME_SKIP, max(0, int(frames)))

    @property
    def remote_enabled(self):
        return self.remote_worker is not None

    # ------------------------------------------------------------------ detection

    def process_frame(self, frame):
        """
        Analyse one pose frame.

        Never raises: unexpected errors are logged and counted, and the frame
        yields no results.

        Args:
            frame (PoseFrame): Landmarks detected in the newest camera frame

        Returns:
            list: MovementResult objects, in tracked-landmark order
        """
        self.performance.start('process_frame')
        try:
            return self._process_frame(frame)
        except Exception as e:
            self.error_count += 1
            self.last_error = str(e)
            logger.error(f"Error processing frame: {e}", exc_info=True)
            return []
        finally:
            self.performance.end('process_frame')

    def _process_frame(self, frame):
        self.state.frame_count += 1
        if self._frame_skip and (self.state.frame_count - 1) % (self._frame_skip + 1) != 0:
            return []

        history = self.state.history
        history.push(frame)
        if len(history) < self.config.min_history:
            return []

        frames = history.window(history.capacity)
        candidates = []
        for name in self.tracked_landmarks:
            landmark = frame.get(name)
            if landmark is None or landmark.confidence <= self.config.confidence_floor:
                continue

            features = self.feature_extractor.extract_features(frames, name)
            if features is None:
                continue

            pending = None
            if self.remote_worker is not None and self.remote_client.should_consult(features):
                pending = self._remote_request(name, features)
            candidates.append((name, features, pending))

        deadline = time.monotonic() + self.config.remote_response_wait
        results = []

        for name, features, pending in candidates:
            is_intentional, confidence, source = self._local_verdict(features)

            if pending is not None:
                remote = self._collect_remote(name, pending, deadline)
                if remote is not None:
                    if remote.confidence > confidence:
                        is_intentional = remote.is_intentional
                        source = 'remote'
                    confidence = max(confidence, remote.confidence)

            if is_intentional and self._on_cooldown(name, frame.timestamp):
                is_intentional = False

            if is_intentional:
                self.state.last_intentional_times[name] = frame.timestamp

            velocity = features.speed
            if is_intentional or velocity > self.config.notable_velocity:
                results.append(MovementResult(
                    landmark=name,
                    is_intentional=is_intentional,
                    velocity=velocity,
                    direction=features.direction,
                    confidence=confidence,
                    source=source,
                ))

        return results

    def _remote_request(self, name, features):
        """
        Request a remote verdict, keeping at most one request in flight per landmark.

        Returns:
            PendingRequest: The landmark's unfinished request if it is still fresh,
                otherwise a newly submitted one
        """
        pending = self.state.remote_requests.get(name)
        if pending is None or pending.expired:
            pending = self.remote_worker.submit(features, max_age=self.config.remote_max_age)
            self.state.remote_requests[name] = pending
        return pending

    def _collect_remote(self, name, pending, deadline):
        """
        Wait for a remote verdict until the frame deadline.

        A request still running stays registered for its landmark, so its
        verdict is used by a later frame instead of being discarded.
        """
        pending.result(timeout=max(0.0, deadline - time.monotonic()))
        if not pending.done:
            return None
        self.state.remote_requests.pop(name, None)
        return pending.result(timeout=0)

    def _local_verdict(self, features):
        """
        Returns:
            tuple: (is_intentional, confidence, source)
        """
        if self.capabilities.use_trainable_model and self.classifier.is_trained:
            prediction = self.classifier.predict(features)
            if prediction is not None:
                is_intentional, probability = prediction
                return is_intentional, probability, 'model'

        verdict = self.heuristic.classify(features)
        return verdict.is_intentional, verdict.confidence, 'heuristic'

    def _on_cooldown(self, landmark, timestamp):
        last = self.state.last_intentional_times.get(landmark)
        return last is not None and timestamp - last < self._cooldown_period

    # ------------------------------------------------------------------ calibration

    def add_calibration_sample(self, is_intentional):
        """
        Capture labelled samples from the current history.

        Returns:
            int: Number of samples added
        """
        return self.calibration.add_sample(is_intentional)

    @property
    def calibration_quality(self):
        if self.state.calibration_samples:
            return self.calibration.quality
        return self.stored_quality

    def clear_calibration(self):
        """Discard calibration samples and cooldown timestamps."""
        self.calibration.clear()
        self.state.last_intentional_times.clear()
        self.stored_quality = 0

    def train_model(self, progress_callback=None, timeout=None, background=False):
        """
        Train the personalised classifier on the calibration samples.

        Args:
            progress_callback (callable, optional): Called with progress in [0, 1]
            timeout (float, optional): Wall-clock limit in seconds
            background (bool): Return a running TrainingTask instead of blocking

        Returns:
            TrainingResult, or TrainingTask when background is True
        """
        breakdown = self.calibration.quality_breakdown
        if self.state.calibration_samples and breakdown.status == 'recalibrate':
            logger.warning(f"Low calibration quality ({breakdown.total}/100). "
                           f"Consider recalibrating with more distinct movements.")
        return self.classifier.train(self.state.calibration_samples,
                                     progress_callback=progress_callback,
                                     timeout=timeout,
                                     background=background,
                                     user_id=self.user_id)

    def save_model(self, store, user_id=None):
        """
        Persist the trained model with the calibration quality.

        Args:
            store (ModelStore): Persistence collaborator
            user_id (str, optional): Owner; defaults to the detector's user

        Returns:
            bool: True if a model was saved
        """
        user_id = user_id if user_id is not None else self.user_id
        state = self.classifier.serialize_model(user_id)
        if state is None:
            logger.error("No trained model to save")
            return False
        try:
            store.save(user_id, state, self.calibration_quality)
        except OSError as e:
            logger.error(f"Failed to save model: {e}")
            return False
        return True

    def load_model(self, store, user_id=None):
        """
        Restore a persisted model.

        Returns:
            bool: True if a usable model was loaded
        """
        user_id = user_id if user_id is not None else self.user_id
        state, quality = store.load(user_id)
        if state is None:
            return False
        if self.classifier.deserialize_model(user_id, state) is None:
            return False
        self.user_id = user_id
        self.stored_quality = quality
        return True

    # ------------------------------------------------------------------ status

    def get_status(self):
        return DetectorStatus(
            is_model_trained=self.classifier.is_trained,
            calibration_samples=len(self.state.calibration_samples),
            intentional_samples=self.calibration.intentional_count,
            unintentional_samples=self.calibration.unintentional_count,
            calibration_quality=self.calibration_quality,
            remote_enabled=self.remote_enabled,
            is_training=self.classifier.is_training,
            error_count=self.error_count,
            last_error=self.last_error,
        )

    def run_diagnostics(self):
        """
        Collect a snapshot of detector health for troubleshooting.

        Returns:
            dict: Version, detector flags, performance stats, sample counts and settings
        """
        status = self.get_status()
        return {
            'version': __version__,
            'detectors': {
                'heuristic': True,
                'trainable_model': self.capabilities.use_trainable_model,
                'model_trained': status.is_model_trained,
                'remote': status.remote_enabled,
            },
            'performance': self.performance.get_stats(),
            'calibration': {
                'samples': status.calibration_samples,
                'intentional': status.intentional_samples,
                'unintentional': status.unintentional_samples,
                'quality': status.calibration_quality,
            },
            'settings': {
                'cooldown_period': self.cooldown_period,
                'frame_skip': self.frame_skip,
                'history_capacity': self.state.history.capacity,
                'window_size': self.feature_extractor.window_size,
            },
            'errors': {
                'count': self.error_count,
                'last': self.last_error,
            },
        }

    def reset(self):
        """Forget history, movement states and cooldowns; keep calibration and model."""
        self.state.history.clear()
        self.feature_extractor.clear_state()
        self.state.last_intentional_times.clear()
        self.state.remote_requests.clear()
        self.state.frame_count = 0

    def close(self):
        """Stop background workers."""
        if self.remote_worker is not None:
            self.remote_worker.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
