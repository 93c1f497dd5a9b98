"""
Camera pose source.

Captures frames with OpenCV, runs MediaPipe Pose on them and yields PoseFrame
objects. Requires the optional `camera` dependencies (opencv-python,
mediapipe); the detector itself never imports this module.
"""

import logging
import time

import cv2 as cv
import mediapipe as mp

from motion_intent.sources.landmark_map import to_pose_frame

logger = logging.getLogger(__name__)

mp_pose = mp.solutions.pose


class CameraPoseSource:
    """
    Iterates PoseFrame objects from a camera.
    """

    def __init__(self, camera_port=0, width=640, height=480, model_complexity=1,
                 min_detection_confidence=0.5, min_tracking_confidence=0.5):
        """
        Initialize the camera source.

        Args:
            camera_port (int): OpenCV camera index
            width (int): Requested capture width
            height (int): Requested capture height
            model_complexity (int): MediaPipe Pose model complexity (0-2)
            min_detection_confidence (float): MediaPipe detection confidence
            min_tracking_confidence (float): MediaPipe tracking confidence
        """
        self.camera_port = camera_port
        self.width = width
        self.height = height
        self.cap = None
        self.pose = mp_pose.Pose(
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self.stopped = False

    def open(self):
        self.cap = cv.VideoCapture(self.camera_port)
        self.cap.set(cv.CAP_PROP_FRAME_WIDTH, self.width)
        self.cap.set(cv.CAP_PROP_FRAME_HEIGHT, self.height)
        if not self.cap.isOpened():
            raise RuntimeError(f"Cannot open camera {self.camera_port}")
        logger.info(f"Camera {self.camera_port} opened")
        return self

    def frames(self):
        """
        Yield (image, PoseFrame or None) for every captured frame until stopped.

        The PoseFrame is None when no person is detected.
        """
        if self.cap is None:
            self.open()

        while not self.stopped:
            ret, image = self.cap.read()
            if not ret:
                logger.warning("Camera returned no frame, stopping")
                break

            timestamp = time.monotonic()
            h, w = image.shape[:2]
            results = self.pose.process(cv.cvtColor(image, cv.COLOR_BGR2RGB))

            if results.pose_landmarks is None:
                yield image, None
                continue

            yield image, to_pose_frame(results.pose_landmarks.landmark, timestamp, w, h)

    def stop(self):
        self.stopped = True

    def close(self):
        self.stopped = True
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        self.pose.close()
        logger.info("Camera source closed")

    def __enter__(self):
        try:
            return self.open()
        except Exception:
            self.close()
            raise

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
