"""
Tests for the MediaPipe landmark mapping.
"""

from types import SimpleNamespace

import pytest

from motion_intent.core.data_types import LandmarkName
from motion_intent.sources.landmark_map import MEDIAPIPE_POSE_INDEX, to_pose_frame


def pose(n=33, visibility=0.9):
    points = [SimpleNamespace(x=0.5, y=0.25, visibility=visibility) for _ in range(n)]
    if n > 16:
        points[16] = SimpleNamespace(x=0.75, y=0.5, visibility=visibility)
    return points


def test_every_tracked_landmark_is_mapped():
    assert set(MEDIAPIPE_POSE_INDEX) == set(LandmarkName)


def test_coordinates_are_scaled_to_pixels():
    frame = to_pose_frame(pose(), timestamp=1.5, width=640, height=480)

    assert frame.timestamp == 1.5
    assert len(frame.landmarks) == len(MEDIAPIPE_POSE_INDEX)
    wrist = frame.get('right_wrist')
    assert (wrist.x, wrist.y) == pytest.approx((480.0, 240.0))
    assert wrist.confidence == pytest.approx(0.9)
    assert frame.get('nose').x == pytest.approx(320.0)


def test_selected_names_only():
    frame = to_pose_frame(pose(), 0.0, 100, 100, names=['left_wrist', 'nose'])
    assert [lm.name.value for lm in frame.landmarks] == ['left_wrist', 'nose']


def test_visibility_is_clamped():
    frame = to_pose_frame(pose(visibility=1.7), 0.0, 100, 100)
    assert all(lm.confidence == 1.0 for lm in frame.landmarks)


def test_short_landmark_list():
    frame = to_pose_frame(pose(n=10), 0.0, 100, 100)
    assert {lm.name.value for lm in frame.landmarks} == {'nose', 'left_eye', 'right_eye'}
    assert frame.get('right_wrist') is None
