"""
Mapping from MediaPipe Pose landmarks to the tracked landmark vocabulary.

MediaPipe reports 33 pose landmarks with normalised x/y coordinates and a
visibility score. Only the points in the vocabulary are kept, scaled to pixel
units so that velocities come out in px/s.
"""

from typing import Any, Dict, Iterable, Optional, Sequence

from motion_intent.core.data_types import Landmark, LandmarkName, PoseFrame

MEDIAPIPE_POSE_INDEX: Dict[LandmarkName, int] = {
    LandmarkName.NOSE: 0,
    LandmarkName.LEFT_EYE: 2,
    LandmarkName.RIGHT_EYE: 5,
    LandmarkName.LEFT_SHOULDER: 11,
    LandmarkName.RIGHT_SHOULDER: 12,
    LandmarkName.LEFT_ELBOW: 13,
    LandmarkName.RIGHT_ELBOW: 14,
    LandmarkName.LEFT_WRIST: 15,
    LandmarkName.RIGHT_WRIST: 16,
    LandmarkName.LEFT_PINKY: 17,
    LandmarkName.RIGHT_PINKY: 18,
    LandmarkName.LEFT_INDEX: 19,
    LandmarkName.RIGHT_INDEX: 20,
    LandmarkName.LEFT_THUMB: 21,
    LandmarkName.RIGHT_THUMB: 22,
}
" Pose landmark index of every tracked point. "


def to_pose_frame(
    pose_landmarks: Sequence[Any],
    timestamp: float,
    width: int,
    height: int,
    names: Optional[Iterable[str]] = None,
) -> PoseFrame:
    """
    Convert a MediaPipe pose landmark list into a PoseFrame.

    :param pose_landmarks: Landmarks with normalised `x`, `y` and `visibility` attributes,
        indexed as in MediaPipe Pose.
    :param timestamp: Capture time of the frame (seconds).
    :param width: Image width used to scale x.
    :param height: Image height used to scale y.
    :param names: Landmark names to keep; all mapped landmarks by default.
    :return: A PoseFrame in pixel units.
    """

    wanted = (
        [LandmarkName(name) for name in names]
        if names is not None
        else list(MEDIAPIPE_POSE_INDEX)
    )

    landmarks = []
    for name in wanted:
        index = MEDIAPIPE_POSE_INDEX[name]
        if index >= len(pose_landmarks):
            continue

        point = pose_landmarks[index]
        confidence = float(getattr(point, "visibility", 1.0))
        landmarks.append(
            Landmark(
                name=name,
                x=float(point.x) * width,
                y=float(point.y) * height,
                confidence=min(1.0, max(0.0, confidence)),
            )
        )

    return PoseFrame(landmarks=tuple(landmarks), timestamp=timestamp)
