"""
Detection Module - Movement features and rule-based intentionality.

This module provides:
- Kinematic feature extraction with movement start/end tracking (feature_extractor.py)
- Heuristic intentionality scoring (heuristic.py)
"""

from .feature_extractor import FeatureExtractor, MovementState
from .heuristic import HeuristicClassifier, HeuristicVerdict

__all__ = [
    'FeatureExtractor',
    'MovementState',
    'HeuristicClassifier',
    'HeuristicVerdict',
]
