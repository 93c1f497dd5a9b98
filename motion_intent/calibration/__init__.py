"""
Calibration Module - Labelled sample collection and quality scoring.
"""

from .calibration_manager import CalibrationManager, CalibrationQuality

__all__ = [
    'CalibrationManager',
    'CalibrationQuality',
]
