"""
Sources Module - Pose source adapters.

- MediaPipe Pose landmark mapping (landmark_map.py)
- OpenCV + MediaPipe camera loop (camera_source.py, optional `camera` extra;
  not imported here)
"""

from .landmark_map import MEDIAPIPE_POSE_INDEX, to_pose_frame

__all__ = [
    'MEDIAPIPE_POSE_INDEX',
    'to_pose_frame',
]
