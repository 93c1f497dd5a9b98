"""
Tests for the camera pose source, with OpenCV capture and MediaPipe Pose faked.
"""

import pytest

pytest.importorskip('cv2')
mediapipe = pytest.importorskip('mediapipe')
if not hasattr(mediapipe, 'solutions'):
    pytest.skip('mediapipe build without the Pose solution', allow_module_level=True)

from motion_intent.sources import camera_source  # noqa: E402
from motion_intent.sources.camera_source import CameraPoseSource  # noqa: E402


class FakePose:
    def __init__(self, **kwargs):
        self.closed = False

    def close(self):
        self.closed = True


class FakeCapture:
    def __init__(self, port, opened=True):
        self.opened = opened
        self.released = False

    def set(self, prop, value):
        return True

    def isOpened(self):
        return self.opened

    def release(self):
        self.released = True


@pytest.fixture
def fake_pose(monkeypatch):
    monkeypatch.setattr(camera_source.mp_pose, 'Pose', FakePose)


def test_failed_open_releases_everything(monkeypatch, fake_pose):
    captures = []

    def unavailable(port):
        captures.append(FakeCapture(port, opened=False))
        return captures[-1]

    monkeypatch.setattr(camera_source.cv, 'VideoCapture', unavailable)
    source = CameraPoseSource(camera_port=3)

    with pytest.raises(RuntimeError):
        with source:
            pass

    assert source.pose.closed
    assert captures[0].released
    assert source.cap is None


def test_context_manager_closes_on_exit(monkeypatch, fake_pose):
    monkeypatch.setattr(camera_source.cv, 'VideoCapture', FakeCapture)

    with CameraPoseSource() as source:
        capture = source.cap
        assert not source.pose.closed

    assert source.pose.closed
    assert capture.released
