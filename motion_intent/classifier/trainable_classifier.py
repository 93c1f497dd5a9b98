"""
Personalised intention classifier for motion_intent.

This module implements a small feed-forward network trained per user on the
labelled calibration samples. It complements the heuristic classifier: once a
model exists it takes over the local verdict, with a stricter decision
threshold than the heuristic's.

FEATURES (15, fixed order):
- velocity_x, velocity_y, acceleration, jitter (raw)
- is_smooth flag
- one-hot direction (up, down, left, right)
- magnitude / 100
- is_reversing flag
- frequency / 10
- steadiness, pattern_score, continuity

TRAINING:
- Minority class oversampled by a pluggable balancing strategy
- Validation split held out after shuffling
- Mini-batch Adam on binary cross-entropy for a fixed epoch budget
- The trained network replaces the previous one only when training succeeds

USAGE:
    classifier = TrainableClassifier()
    result = classifier.train(samples, progress_callback=print)
    if result.success:
        is_intentional, probability = classifier.predict(features)
    state = classifier.serialize_model('user-1')
"""

import logging
import threading
import time
from datetime import datetime, timezone

import numpy as np

from motion_intent.classifier.augmentation import JitterOversampler
from motion_intent.classifier.network import AdamOptimizer, IntentionNetwork, binary_cross_entropy
from motion_intent.config import ModelConfig, TrainingConfig
from motion_intent.core.data_types import ClassifierModel, Direction, TrainingFailure, TrainingResult
from motion_intent.core.errors import (
    CorruptModelStateError,
    InsufficientCalibrationDataError,
    TrainingAbortedError,
)
from motion_intent.core.workers import TrainingTask

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    'velocity_x',
    'velocity_y',
    'acceleration',
    'jitter',
    'is_smooth',
    'direction_up',
    'direction_down',
    'direction_left',
    'direction_right',
    'magnitude',            # / MAGNITUDE_SCALE
    'is_reversing',
    'frequency',            # / FREQUENCY_SCALE
    'steadiness',
    'pattern_score',
    'continuity',
]


def encode_features(features):
    """
    Encode MovementFeatures into the model's input vector.

    Args:
        features (MovementFeatures): Features of one landmark

    Returns:
        numpy.ndarray: Vector of shape (15,)
    """
    direction = features.direction
    return np.array([
        features.velocity_x,
        features.velocity_y,
        features.acceleration,
        features.jitter,
        1.0 if features.is_smooth else 0.0,
        1.0 if direction == Direction.UP else 0.0,
        1.0 if direction == Direction.DOWN else 0.0,
        1.0 if direction == Direction.LEFT else 0.0,
        1.0 if direction == Direction.RIGHT else 0.0,
        features.magnitude / ModelConfig.MAGNITUDE_SCALE,
        1.0 if features.is_reversing else 0.0,
        features.frequency / ModelConfig.FREQUENCY_SCALE,
        features.steadiness,
        features.pattern_score,
        features.continuity,
    ], dtype=float)


def class_balance(labels):
    """
    Returns:
        tuple: (n_intentional, n_unintentional, min/max ratio or 0.0)
    """
    n_pos = sum(1 for label in labels if label)
    n_neg = len(labels) - n_pos
    ratio = min(n_pos, n_neg) / max(n_pos, n_neg) if max(n_pos, n_neg) > 0 else 0.0
    return n_pos, n_neg, ratio


class TrainableClassifier:
    """
    Feed-forward intention classifier trained on calibration samples.

    Only one training job may run at a time; a second request is answered with
    an `in_progress` failure. The network in use is swapped atomically at the
    end of a successful training, so inference always sees a complete model.
    """

    def __init__(self, threshold=None, epochs=None, batch_size=None, learning_rate=None,
                 validation_split=None, min_samples=None, min_balance_ratio=None,
                 balancing=None, timeout=None, seed=None):
        """
        Initialize the trainable classifier.

        Args:
            threshold (float): Probability above which a movement is intentional
            epochs (int): Training epoch budget
            batch_size (int): Mini-batch size
            learning_rate (float): Adam learning rate
            validation_split (float): Fraction of (augmented) data held out
            min_samples (int): Calibration samples required to train
            min_balance_ratio (float): Minority/majority ratio below which training refuses
            balancing (BalancingStrategy, optional): Class balancing strategy
            timeout (float): Default training timeout in seconds
            seed (int, optional): Seed for reproducible training
        """
        self.threshold = threshold if threshold is not None else ModelConfig.DECISION_THRESHOLD
        self.epochs = epochs if epochs is not None else TrainingConfig.EPOCHS
        self.batch_size = batch_size if batch_size is not None else TrainingConfig.BATCH_SIZE
        self.learning_rate = (learning_rate if learning_rate is not None
                              else TrainingConfig.LEARNING_RATE)
        self.validation_split = (validation_split if validation_split is not None
                                 else TrainingConfig.VALIDATION_SPLIT)
        self.min_samples = min_samples if min_samples is not None else TrainingConfig.MIN_SAMPLES
        self.min_balance_ratio = (min_balance_ratio if min_balance_ratio is not None
                                  else TrainingConfig.MIN_BALANCE_RATIO)
        self.balancing = balancing if balancing is not None else JitterOversampler()
        self.timeout = timeout if timeout is not None else TrainingConfig.TIMEOUT
        self.seed = seed

        self.feature_names = list(FEATURE_NAMES)

        self._network = None
        self._model = None
        self._model_lock = threading.Lock()
        self._training_lock = threading.Lock()

        logger.info(f"Initialized TrainableClassifier with {len(self.feature_names)} features")

    # ------------------------------------------------------------------ inference

    @property
    def is_trained(self):
        return self._network is not None

    @property
    def is_training(self):
        return self._training_lock.locked()

    @property
    def model(self):
        """The current ClassifierModel, or None if untrained."""
        return self._model

    def predict_proba(self, features):
        """
        Predict the probability that a movement is intentional.

        Args:
            features (MovementFeatures): Features of one landmark

        Returns:
            float: Probability (0-1), or None if no model is trained
        """
        network = self._network
        if network is None:
            return None
        return float(network.predict_proba(encode_features(features))[0])

    def predict(self, features):
        """
        Classify a movement.

        Returns:
            tuple: (is_intentional, probability), or None if no model is trained
        """
        probability = self.predict_proba(features)
        if probability is None:
            return None
        return probability > self.threshold, probability

    # ------------------------------------------------------------------ training

    def check_training_data(self, samples):
        """
        Validate a calibration set for training.

        Args:
            samples (list): CalibrationSample list

        Returns:
            float: Class balance ratio (minority / majority)

        Raises:
            InsufficientCalibrationDataError: If the set cannot support training
        """
        if len(samples) < self.min_samples:
            raise InsufficientCalibrationDataError(
                TrainingFailure.INSUFFICIENT_SAMPLES,
                f"Need at least {self.min_samples} calibration samples, have {len(samples)}")

        n_pos, n_neg, ratio = class_balance([s.is_intentional for s in samples])
        if n_pos == 0 or n_neg == 0:
            raise InsufficientCalibrationDataError(
                TrainingFailure.SINGLE_CLASS,
                f"Calibration samples contain a single class "
                f"({n_pos} intentional, {n_neg} unintentional)")
        if ratio < self.min_balance_ratio:
            raise InsufficientCalibrationDataError(
                TrainingFailure.IMBALANCED,
                f"Class balance {ratio:.2f} is below {self.min_balance_ratio:.2f} "
                f"({n_pos} intentional, {n_neg} unintentional)")
        return ratio

    def train(self, samples, progress_callback=None, timeout=None, background=False, user_id=''):
        """
        Train a new model on calibration samples.

        Args:
            samples (list): CalibrationSample list (copied before training)
            progress_callback (callable, optional): Called with progress in [0, 1] per epoch
            timeout (float, optional): Wall-clock limit; defaults to the configured timeout
            background (bool): Run on a background thread and return the TrainingTask
            user_id (str): Owner recorded in the trained model

        Returns:
            TrainingResult, or TrainingTask when background is True
        """
        if not self._training_lock.acquire(blocking=False):
            result = TrainingResult(success=False, reason=TrainingFailure.IN_PROGRESS,
                                    message="A training task is already running")
            logger.warning(result.message)
            return TrainingTask.rejected(result) if background else result

        snapshot = list(samples)
        timeout = timeout if timeout is not None else self.timeout

        def job(progress_callback=None, cancel_event=None, deadline=None):
            try:
                return self._fit(snapshot, progress_callback, cancel_event, deadline, user_id)
            finally:
                self._training_lock.release()

        task = TrainingTask(job, progress_callback=progress_callback, timeout=timeout)
        if background:
            return task.start()

        return task.run()

    def _fit(self, samples, progress_callback, cancel_event, deadline, user_id):
        try:
            balance_ratio = self.check_training_data(samples)
        except InsufficientCalibrationDataError as e:
            logger.warning(f"Training refused: {e}")
            return TrainingResult(success=False, reason=e.reason, message=str(e),
                                  num_samples=len(samples))

        rng = np.random.default_rng(self.seed)
        X = np.vstack([encode_features(s.features) for s in samples])
        y = np.array([1.0 if s.is_intentional else 0.0 for s in samples])

        X_aug, y_aug = self.balancing.balance(X, y, rng)

        order = rng.permutation(len(y_aug))
        X_aug, y_aug = X_aug[order], y_aug[order]
        n_val = int(len(y_aug) * self.validation_split)
        if n_val > 0 and len(y_aug) - n_val > 0:
            X_train, y_train = X_aug[:-n_val], y_aug[:-n_val]
            X_val, y_val = X_aug[-n_val:], y_aug[-n_val:]
        else:
            X_train, y_train = X_aug, y_aug
            X_val, y_val = None, None

        network = IntentionNetwork(len(self.feature_names), ModelConfig.HIDDEN_UNITS,
                                   ModelConfig.DROPOUT_RATES,
                                   seed=int(rng.integers(0, 2 ** 31)))
        optimizer = AdamOptimizer(self.learning_rate)

        logger.info(f"Training model with {len(y_train)} samples "
                    f"({len(samples)} collected, {0 if y_val is None else len(y_val)} held out)")

        epochs_run = 0
        try:
            for epoch in range(self.epochs):
                loss = network.train_epoch(X_train, y_train, self.batch_size, optimizer)
                epochs_run = epoch + 1

                if not np.isfinite(loss):
                    raise TrainingAbortedError(TrainingFailure.DIVERGED,
                                               f"Loss diverged at epoch {epoch}")
                logger.debug(f"Epoch {epoch}: loss = {loss:.4f}")

                if progress_callback is not None:
                    progress_callback(epochs_run / self.epochs)

                if cancel_event is not None and cancel_event.is_set():
                    raise TrainingAbortedError(TrainingFailure.CANCELLED,
                                               f"Training cancelled after {epochs_run} epochs")
                if deadline is not None and time.monotonic() > deadline:
                    raise TrainingAbortedError(TrainingFailure.TIMEOUT,
                                               f"Training timed out after {epochs_run} epochs")
        except TrainingAbortedError as e:
            logger.warning(f"Training aborted: {e}; previous model kept")
            return TrainingResult(success=False, reason=e.reason, message=str(e),
                                  epochs_run=epochs_run, num_samples=len(samples))

        accuracy = self._accuracy(network, X, y)
        validation_accuracy = self._accuracy(network, X_val, y_val) if y_val is not None else accuracy
        final_loss = binary_cross_entropy(y, network.predict_proba(X))
        low_confidence = balance_ratio < TrainingConfig.LOW_CONFIDENCE_BALANCE_RATIO

        model = ClassifierModel(
            user_id=user_id,
            version=ModelConfig.FORMAT_VERSION,
            created_at=datetime.now(timezone.utc).isoformat(),
            parameters=network.to_dict(),
            feature_names=list(self.feature_names),
            threshold=self.threshold,
            metrics={
                'accuracy': accuracy,
                'validation_accuracy': validation_accuracy,
                'loss': final_loss,
                'balance_ratio': balance_ratio,
                'num_samples': len(samples),
            },
        )

        with self._model_lock:
            self._network = network
            self._model = model

        if low_confidence:
            logger.warning(f"Model trained on imbalanced data (balance {balance_ratio:.2f}); "
                           f"consider collecting more samples of the minority class")
        logger.info(f"Model training complete. Accuracy: {accuracy:.3f}, "
                    f"validation accuracy: {validation_accuracy:.3f}")

        return TrainingResult(
            success=True,
            message="Model trained",
            accuracy=accuracy,
            validation_accuracy=validation_accuracy,
            low_confidence=low_confidence,
            epochs_run=epochs_run,
            num_samples=len(samples),
        )

    def _accuracy(self, network, X, y):
        if X is None or len(y) == 0:
            return 0.0
        predictions = network.predict_proba(X) > self.threshold
        return float(np.mean(predictions == (y > 0.5)))

    def evaluate(self, samples):
        """
        Evaluate the current model on labelled samples.

        Returns:
            dict: accuracy, precision, recall, f1_score and confusion counts,
                or None if no model is trained
        """
        network = self._network
        if network is None or not samples:
            return None

        X = np.vstack([encode_features(s.features) for s in samples])
        y = np.array([bool(s.is_intentional) for s in samples])
        predictions = network.predict_proba(X) > self.threshold

        tp = int(np.sum(predictions & y))
        fp = int(np.sum(predictions & ~y))
        tn = int(np.sum(~predictions & ~y))
        fn = int(np.sum(~predictions & y))
        total = tp + fp + tn + fn

        precision = tp / (tp + fp) if (tp + fp) > 0 else 0.0
        recall = tp / (tp + fn) if (tp + fn) > 0 else 0.0
        f1_score = 2 * precision * recall / (precision + recall) if (precision + recall) > 0 else 0.0

        return {
            'accuracy': (tp + tn) / total,
            'precision': precision,
            'recall': recall,
            'f1_score': f1_score,
            'total_samples': total,
            'true_positives': tp,
            'false_positives': fp,
            'true_negatives': tn,
            'false_negatives': fn,
        }

    # ------------------------------------------------------------------ persistence

    def serialize_model(self, user_id):
        """
        Export the current model as a JSON-compatible dict.

        Args:
            user_id (str): Owner recorded in the state

        Returns:
            dict: Serialized ClassifierModel, or None if no model is trained
        """
        with self._model_lock:
            model = self._model
        if model is None:
            return None
        state = model.to_dict()
        state['user_id'] = user_id
        return state

    def deserialize_model(self, user_id, state):
        """
        Restore a model from serialize_model() output and make it current.

        Corrupt, mismatched or foreign state leaves the classifier unchanged.

        Args:
            user_id (str): Expected owner
            state (dict): Serialized model

        Returns:
            ClassifierModel: Restored model, or None if the state is unusable
        """
        try:
            model, network = self._restore(user_id, state)
        except CorruptModelStateError as e:
            logger.warning(f"Ignoring stored model for {user_id}: {e}")
            return None

        with self._model_lock:
            self._network = network
            self._model = model
            self.threshold = model.threshold

        logger.info(f"Model restored for user {user_id} (created {model.created_at})")
        return model

    def _restore(self, user_id, state):
        if not isinstance(state, dict):
            raise CorruptModelStateError("state is not a mapping")
        try:
            if state['version'] != ModelConfig.FORMAT_VERSION:
                raise CorruptModelStateError(f"unsupported format version {state['version']}")
            if state['user_id'] != user_id:
                raise CorruptModelStateError(f"state belongs to user {state['user_id']}")
            if list(state['feature_names']) != self.feature_names:
                raise CorruptModelStateError("feature layout does not match")

            network = IntentionNetwork.from_dict(state['parameters'])
            if network.input_dim != len(self.feature_names):
                raise CorruptModelStateError(f"input size {network.input_dim} does not match")
            threshold = float(state['threshold'])
            if not 0.0 < threshold < 1.0:
                raise CorruptModelStateError(f"decision threshold {threshold} is out of range")

            model = ClassifierModel(
                user_id=state['user_id'],
                version=int(state['version']),
                created_at=str(state['created_at']),
                parameters=state['parameters'],
                feature_names=list(state['feature_names']),
                threshold=threshold,
                metrics=dict(state.get('metrics', {})),
            )
        except (KeyError, TypeError, ValueError, OverflowError, MemoryError) as e:
            raise CorruptModelStateError(f"malformed state: {e}") from e

        return model, network

    def reset(self):
        """Discard the current model."""
        with self._model_lock:
            self._network = None
            self._model = None
