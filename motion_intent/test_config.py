"""
Tests for the injectable detector configuration.
"""

import json

import pytest

from motion_intent.config import (
    TRACKED_LANDMARKS,
    DetectionConfig,
    DetectorCapabilities,
    DetectorConfig,
)
from motion_intent.core.data_types import LandmarkName


def test_defaults_come_from_constant_classes():
    config = DetectorConfig()
    assert config.cooldown_period == DetectionConfig.COOLDOWN_PERIOD
    assert config.tracked_landmarks == TRACKED_LANDMARKS
    assert config.capabilities == DetectorCapabilities()


def test_tracked_landmarks_match_vocabulary():
    assert set(TRACKED_LANDMARKS) == {name.value for name in LandmarkName}


def test_from_dict():
    config = DetectorConfig.from_dict({
        'cooldown_period': 0.5,
        'tracked_landmarks': ['nose'],
        'capabilities': {'use_remote_classifier': True},
    })
    assert config.cooldown_period == 0.5
    assert config.tracked_landmarks == ('nose',)
    assert config.capabilities.use_remote_classifier
    assert config.capabilities.use_trainable_model


def test_unknown_options_are_rejected():
    with pytest.raises(ValueError, match='cooldown'):
        DetectorConfig.from_dict({'cooldown': 0.5})


def test_from_json(tmp_path):
    path = tmp_path / 'detector.json'
    path.write_text(json.dumps({'epochs': 7, 'frame_skip': 2}))

    config = DetectorConfig.from_json(path)
    assert config.epochs == 7
    assert config.frame_skip == 2
