"""
Tests for per-frame detection orchestration.
"""

import threading

import pytest

from motion_intent import __version__
from motion_intent.classifier.synthetic import frames_from_positions, generate_synthetic_samples, linear_reach
from motion_intent.config import DetectionConfig, DetectorCapabilities, DetectorConfig
from motion_intent.core.data_types import Direction, Landmark, PoseFrame
from motion_intent.core.orchestrator import DetectionOrchestrator
from motion_intent.core.persistence import ModelStore
from motion_intent.core.remote_classifier import RemoteVerdict


class AlwaysIntentional:
    """Trained classifier stand-in that marks every movement intentional."""

    is_trained = True
    is_training = False

    def __init__(self, error=None):
        self.error = error

    def predict(self, features):
        if self.error is not None:
            raise self.error
        return True, 0.9


class FixedRemote:
    enabled = True

    def __init__(self, verdict):
        self.verdict = verdict

    def should_consult(self, features):
        return True

    def classify(self, features):
        return self.verdict


class SlowRemote(FixedRemote):
    """Remote stand-in that answers only once released."""

    def __init__(self, verdict):
        super().__init__(verdict)
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def classify(self, features):
        self.calls += 1
        self.started.set()
        self.release.wait(5.0)
        return self.verdict


def reach_frames(n, step=10.0, dt=1 / 30, landmark='right_wrist', confidence=1.0):
    return [
        PoseFrame(landmarks=(Landmark(landmark, 100.0 + i * step, 200.0, confidence),),
                  timestamp=i * dt)
        for i in range(n)
    ]


def make_detector(classifier=None, **options):
    options.setdefault('tracked_landmarks', ('right_wrist',))
    return DetectionOrchestrator(DetectorConfig(**options), classifier=classifier)


def test_no_results_below_min_history():
    detector = make_detector()
    for frame in reach_frames(9):
        assert detector.process_frame(frame) == []
    assert len(detector.state.history) == 9


def test_heuristic_detects_reach():
    detector = make_detector()
    frames = frames_from_positions(linear_reach(10, speed=300.0), 'right_wrist')

    results = []
    for frame in frames:
        results = detector.process_frame(frame)

    assert len(results) == 1
    result = results[0]
    assert result.landmark == 'right_wrist'
    assert result.is_intentional
    assert result.source == 'heuristic'
    assert result.direction == Direction.RIGHT
    assert result.velocity == pytest.approx(300.0)
    assert result.confidence == pytest.approx(0.92)


def test_cooldown_suppresses_repeats():
    detector = make_detector(AlwaysIntentional(), cooldown_period=0.25)
    frames = reach_frames(14, dt=0.125)

    verdicts = []
    for frame in frames:
        results = detector.process_frame(frame)
        if results:
            verdicts.append(results[0].is_intentional)

    # Intentional at t=1.125, suppressed at 1.25, allowed again at 1.375 (0.25 later)
    assert verdicts == [True, False, True, False, True]
    assert detector.state.last_intentional_times['right_wrist'] == pytest.approx(1.625)


def test_model_verdict_is_used_once_trained():
    detector = make_detector(AlwaysIntentional())
    results = []
    for frame in reach_frames(10):
        results = detector.process_frame(frame)
    assert results[0].source == 'model'
    assert results[0].confidence == 0.9


def test_model_capability_can_be_disabled():
    detector = make_detector(AlwaysIntentional(),
                             capabilities=DetectorCapabilities(use_trainable_model=False))
    results = []
    for frame in reach_frames(10):
        results = detector.process_frame(frame)
    assert results[0].source == 'heuristic'


def test_low_confidence_landmarks_are_skipped():
    detector = make_detector(AlwaysIntentional())
    for frame in reach_frames(12, confidence=0.4):
        assert detector.process_frame(frame) == []


def test_slow_unintentional_movement_is_not_reported():
    detector = make_detector()
    for frame in reach_frames(12, step=0.0):
        assert detector.process_frame(frame) == []


def test_frame_skip():
    detector = make_detector(frame_skip=1)
    for frame in reach_frames(6):
        detector.process_frame(frame)
    assert len(detector.state.history) == 3
    assert detector.state.frame_count == 6
    assert [f.timestamp for f in detector.state.history.window(3)] == pytest.approx([0, 2 / 30, 4 / 30])


def test_settings_are_clamped():
    detector = make_detector()
    detector.cooldown_period = 5.0
    assert detector.cooldown_period == DetectionConfig.MAX_COOLDOWN
    detector.cooldown_period = 0.0
    assert detector.cooldown_period == DetectionConfig.MIN_COOLDOWN
    detector.frame_skip = 10
    assert detector.frame_skip == DetectionConfig.MAX_FRAME_SKIP
    detector.frame_skip = -1
    assert detector.frame_skip == 0


def test_errors_are_counted_not_raised():
    detector = make_detector(AlwaysIntentional(error=RuntimeError("model exploded")))
    for frame in reach_frames(10):
        assert detector.process_frame(frame) == []

    status = detector.get_status()
    assert status.error_count == 1
    assert status.last_error == 'model exploded'


def test_more_confident_remote_verdict_wins():
    config = DetectorConfig(tracked_landmarks=('right_wrist',), remote_response_wait=2.0,
                            capabilities=DetectorCapabilities(use_remote_classifier=True))
    remote = FixedRemote(RemoteVerdict(is_intentional=False, confidence=0.99))

    with DetectionOrchestrator(config, remote_client=remote) as detector:
        assert detector.remote_enabled
        frames = frames_from_positions(linear_reach(10, speed=300.0), 'right_wrist')
        results = []
        for frame in frames:
            results = detector.process_frame(frame)

    assert not results[0].is_intentional
    assert results[0].source == 'remote'
    assert results[0].confidence == pytest.approx(0.99)
    assert not detector.remote_worker.is_alive()


def test_less_confident_remote_verdict_is_ignored():
    config = DetectorConfig(tracked_landmarks=('right_wrist',), remote_response_wait=2.0,
                            capabilities=DetectorCapabilities(use_remote_classifier=True))
    remote = FixedRemote(RemoteVerdict(is_intentional=False, confidence=0.5))

    with DetectionOrchestrator(config, classifier=AlwaysIntentional(), remote_client=remote) as detector:
        results = []
        for frame in reach_frames(10):
            results = detector.process_frame(frame)

    assert results[0].is_intentional
    assert results[0].source == 'model'


def test_slow_remote_keeps_one_request_per_landmark():
    config = DetectorConfig(tracked_landmarks=('right_wrist',), remote_response_wait=0.01,
                            remote_max_age=30.0,
                            capabilities=DetectorCapabilities(use_remote_classifier=True))
    remote = SlowRemote(RemoteVerdict(is_intentional=False, confidence=0.99))
    frames = frames_from_positions(linear_reach(20, speed=300.0), 'right_wrist')

    with DetectionOrchestrator(config, remote_client=remote) as detector:
        try:
            for frame in frames[:15]:
                results = detector.process_frame(frame)
            assert results[0].source == 'heuristic'
            assert remote.started.wait(2.0)
            assert remote.calls == 1
            assert detector.remote_worker.request_queue.qsize() == 0

            # The late verdict is used by the next frame
            in_flight = detector.state.remote_requests['right_wrist']
            remote.release.set()
            assert in_flight.result(timeout=2.0) is not None
            results = detector.process_frame(frames[15])
        finally:
            remote.release.set()

    assert results[0].source == 'remote'
    assert results[0].confidence == pytest.approx(0.99)
    assert 'right_wrist' not in detector.state.remote_requests


def test_remote_without_endpoint_is_off():
    config = DetectorConfig(capabilities=DetectorCapabilities(use_remote_classifier=True))
    detector = DetectionOrchestrator(config)
    assert not detector.remote_enabled


def test_calibration_status_and_clear():
    detector = make_detector(AlwaysIntentional())
    for frame in reach_frames(10):
        detector.process_frame(frame)

    assert detector.add_calibration_sample(True) == 1
    status = detector.get_status()
    assert status.calibration_samples == 1
    assert status.intentional_samples == 1
    assert status.unintentional_samples == 0
    assert status.calibration_quality == detector.calibration.quality
    assert detector.state.last_intentional_times

    detector.clear_calibration()
    assert detector.get_status().calibration_samples == 0
    assert detector.calibration_quality == 0
    assert detector.state.last_intentional_times == {}


def test_train_save_and_load(tmp_path):
    store = ModelStore(tmp_path)
    detector = make_detector(epochs=5)
    detector.calibration.add_samples(generate_synthetic_samples(40, seed=9))

    result = detector.train_model()
    assert result.success
    assert detector.get_status().is_model_trained
    assert detector.save_model(store, 'alice')

    restored = make_detector()
    assert restored.load_model(store, 'alice')
    assert restored.user_id == 'alice'
    assert restored.get_status().is_model_trained
    assert restored.calibration_quality == detector.calibration.quality

    assert not make_detector().load_model(store, 'bob')


def test_oversized_stored_architecture_loads_as_untrained(tmp_path):
    store = ModelStore(tmp_path)
    detector = make_detector(epochs=5)
    detector.calibration.add_samples(generate_synthetic_samples(40, seed=9))
    assert detector.train_model().success

    state = detector.classifier.serialize_model('alice')
    state['parameters'].update(hidden_units=[10 ** 7, 10 ** 7], weights=[], biases=[])
    store.save('alice', state)

    restored = make_detector()
    assert not restored.load_model(store, 'alice')
    assert not restored.get_status().is_model_trained


def test_save_without_model(tmp_path):
    assert not make_detector().save_model(ModelStore(tmp_path), 'alice')


def test_training_refusal_is_reported():
    detector = make_detector()
    result = detector.train_model()
    assert not result.success
    assert result.reason == 'insufficient_samples'


def test_diagnostics():
    detector = make_detector()
    for frame in reach_frames(12):
        detector.process_frame(frame)

    diagnostics = detector.run_diagnostics()
    assert diagnostics['version'] == __version__
    assert diagnostics['detectors']['heuristic']
    assert not diagnostics['detectors']['remote']
    assert diagnostics['performance']['process_frame']['samples'] == 12
    assert diagnostics['settings']['history_capacity'] == 60
    assert diagnostics['errors']['count'] == 0


def test_reset_keeps_calibration():
    detector = make_detector()
    for frame in reach_frames(12):
        detector.process_frame(frame)
    detector.add_calibration_sample(False)

    detector.reset()
    assert len(detector.state.history) == 0
    assert detector.state.movement_states == {}
    assert detector.state.frame_count == 0
    assert detector.get_status().calibration_samples == 1
