"""
Motion Intent - Movement-intention detection from body landmarks

Decides, per tracked landmark and per frame, whether the latest motion was a
deliberate control gesture or incidental movement (tremor, sway, fidgeting),
and personalises that decision through a guided calibration.

Main components:
- config: Constants and the injectable DetectorConfig
- core: Data types, errors, orchestrator, workers, persistence, remote client
- detection: Feature extraction and the heuristic classifier
- classifier: Trainable network, class balancing, synthetic data
- calibration: Sample collection and calibration quality
- sources: Pose source adapters (MediaPipe landmark mapping, camera loop)
- utils: History buffer and performance monitoring
"""

__version__ = "1.0.0"
