"""
Tests for the personalised trainable classifier.
"""

import threading

import numpy as np
import pytest

from motion_intent.classifier.synthetic import generate_synthetic_samples
from motion_intent.classifier.trainable_classifier import (
    FEATURE_NAMES,
    TrainableClassifier,
    class_balance,
    encode_features,
)
from motion_intent.config import ModelConfig
from motion_intent.core.data_types import TrainingFailure
from motion_intent.core.errors import InsufficientCalibrationDataError


@pytest.fixture(scope='module')
def pool():
    return generate_synthetic_samples(120, seed=7)


def pick(pool, n_intentional, n_unintentional):
    pos = [s for s in pool if s.is_intentional][:n_intentional]
    neg = [s for s in pool if not s.is_intentional][:n_unintentional]
    assert len(pos) == n_intentional and len(neg) == n_unintentional
    return pos + neg


def make_classifier(**kwargs):
    kwargs.setdefault('epochs', 5)
    kwargs.setdefault('seed', 0)
    return TrainableClassifier(**kwargs)


def test_encode_features(pool):
    features = pool[0].features
    vector = encode_features(features)

    assert vector.shape == (len(FEATURE_NAMES),)
    assert vector[0] == features.velocity_x
    assert vector[9] == pytest.approx(features.magnitude / ModelConfig.MAGNITUDE_SCALE)
    assert vector[11] == pytest.approx(features.frequency / ModelConfig.FREQUENCY_SCALE)
    assert vector[5:9].sum() == (0.0 if features.direction.value == 'none' else 1.0)


def test_class_balance():
    assert class_balance([True] * 20 + [False] * 5) == (20, 5, 0.25)
    assert class_balance([]) == (0, 0, 0.0)


def test_untrained_classifier_predicts_nothing(pool):
    clf = make_classifier()
    assert not clf.is_trained
    assert clf.predict(pool[0].features) is None
    assert clf.predict_proba(pool[0].features) is None
    assert clf.serialize_model('alice') is None
    assert clf.evaluate(pool[:10]) is None


@pytest.mark.parametrize('n_pos, n_neg, reason', [
    (4, 4, TrainingFailure.INSUFFICIENT_SAMPLES),
    (15, 0, TrainingFailure.SINGLE_CLASS),
    (20, 3, TrainingFailure.IMBALANCED),
])
def test_training_refusals(pool, n_pos, n_neg, reason):
    clf = make_classifier()
    samples = pick(pool, n_pos, n_neg)

    with pytest.raises(InsufficientCalibrationDataError):
        clf.check_training_data(samples)

    result = clf.train(samples)
    assert not result.success
    assert result.reason == reason
    assert not clf.is_trained
    assert not clf.is_training


def test_training_on_balanced_data(pool):
    clf = make_classifier(epochs=10)
    progress = []
    result = clf.train(pick(pool, 30, 30), progress_callback=progress.append, user_id='alice')

    assert result.success
    assert not result.low_confidence
    assert result.epochs_run == 10
    assert result.num_samples == 60
    assert 0.0 <= result.accuracy <= 1.0
    assert progress[-1] == pytest.approx(1.0)
    assert len(progress) == 10

    assert clf.is_trained
    assert clf.model.user_id == 'alice'
    assert set(clf.model.metrics) == {'accuracy', 'validation_accuracy', 'loss',
                                      'balance_ratio', 'num_samples'}

    is_intentional, probability = clf.predict(pool[0].features)
    assert isinstance(is_intentional, (bool, np.bool_))
    assert 0.0 <= probability <= 1.0
    assert is_intentional == (probability > clf.threshold)


def test_imbalanced_data_trains_with_low_confidence(pool):
    clf = make_classifier()
    result = clf.train(pick(pool, 20, 5))

    assert result.success
    assert result.low_confidence
    assert clf.model.metrics['balance_ratio'] == pytest.approx(0.25)


def test_evaluate(pool):
    clf = make_classifier()
    clf.train(pick(pool, 20, 20))
    metrics = clf.evaluate(pool[:30])

    assert metrics['total_samples'] == 30
    assert (metrics['true_positives'] + metrics['false_positives'] +
            metrics['true_negatives'] + metrics['false_negatives']) == 30
    assert 0.0 <= metrics['f1_score'] <= 1.0


def test_serialization_round_trip(pool):
    clf = make_classifier()
    clf.train(pick(pool, 20, 20))
    state = clf.serialize_model('bob')
    assert state['user_id'] == 'bob'
    assert state['feature_names'] == FEATURE_NAMES

    restored = make_classifier()
    model = restored.deserialize_model('bob', state)
    assert model is not None
    assert restored.is_trained

    for sample in pool[:10]:
        assert restored.predict_proba(sample.features) == pytest.approx(
            clf.predict_proba(sample.features))


def test_restored_model_uses_its_stored_threshold(pool):
    clf = make_classifier(threshold=0.65)
    clf.train(pick(pool, 20, 20))
    state = clf.serialize_model('bob')
    state['threshold'] = 0.9

    restored = make_classifier(threshold=0.65)
    assert restored.deserialize_model('bob', state).threshold == 0.9
    assert restored.threshold == 0.9
    for sample in pool[:10]:
        is_intentional, probability = restored.predict(sample.features)
        assert is_intentional == (probability > 0.9)


@pytest.mark.parametrize('mutate', [
    lambda s: s.update(user_id='mallory'),
    lambda s: s.update(version=ModelConfig.FORMAT_VERSION + 1),
    lambda s: s.update(feature_names=s['feature_names'][:-1]),
    lambda s: s['parameters'].update(weights=s['parameters']['weights'][:-1]),
    lambda s: s.pop('threshold'),
    lambda s: s['parameters'].update(hidden_units=[10 ** 7, 10 ** 7], weights=[], biases=[]),
    lambda s: s['parameters'].update(hidden_units=[10 ** 400]),
    lambda s: s.update(threshold=1.5),
])
def test_unusable_state_is_ignored(pool, mutate):
    clf = make_classifier()
    clf.train(pick(pool, 20, 20))
    state = clf.serialize_model('bob')
    mutate(state)

    restored = make_classifier()
    assert restored.deserialize_model('bob', state) is None
    assert not restored.is_trained
    assert restored.deserialize_model('bob', 'not a model') is None


def test_second_training_request_is_rejected(pool):
    clf = make_classifier(epochs=3)
    release = threading.Event()

    def hold(progress):
        release.wait(5.0)

    task = clf.train(pick(pool, 20, 20), progress_callback=hold, background=True)
    try:
        assert clf.is_training
        result = clf.train(pick(pool, 20, 20))
        assert not result.success
        assert result.reason == TrainingFailure.IN_PROGRESS

        rejected = clf.train(pick(pool, 20, 20), background=True)
        assert not rejected.is_running
        assert rejected.wait(0).reason == TrainingFailure.IN_PROGRESS
    finally:
        release.set()

    assert task.wait(10.0).success
    assert not clf.is_training


def test_cancelled_training_keeps_previous_model(pool):
    clf = make_classifier(epochs=50)
    started = threading.Event()
    proceed = threading.Event()

    def signal(progress):
        started.set()
        proceed.wait(5.0)

    task = clf.train(pick(pool, 20, 20), progress_callback=signal, background=True)
    assert started.wait(5.0)
    task.cancel()
    proceed.set()

    result = task.wait(10.0)
    assert not result.success
    assert result.reason == TrainingFailure.CANCELLED
    assert result.epochs_run == 1
    assert not clf.is_trained


def test_training_timeout(pool):
    clf = make_classifier(epochs=50)
    result = clf.train(pick(pool, 20, 20), timeout=1e-9)

    assert not result.success
    assert result.reason == TrainingFailure.TIMEOUT
    assert not clf.is_trained


def test_reset(pool):
    clf = make_classifier()
    clf.train(pick(pool, 20, 20))
    clf.reset()
    assert not clf.is_trained
    assert clf.model is None
