"""
Classifier Module - Personalised intention classifier.

This module provides:
- Numpy feed-forward network with Adam (network.py)
- Class balancing strategies (augmentation.py)
- Trainable classifier with serialization (trainable_classifier.py)
- Synthetic trajectories for training without a camera (synthetic.py)
"""

from .augmentation import BalancingStrategy, JitterOversampler, NoBalancing
from .network import IntentionNetwork
from .trainable_classifier import FEATURE_NAMES, TrainableClassifier, encode_features

__all__ = [
    'BalancingStrategy',
    'JitterOversampler',
    'NoBalancing',
    'IntentionNetwork',
    'FEATURE_NAMES',
    'TrainableClassifier',
    'encode_features',
]
