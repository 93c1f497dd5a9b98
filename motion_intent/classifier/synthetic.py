"""
Synthetic landmark trajectories for training and testing without a camera.

Intentional movements are modelled as linear reaches in one of the four
directions; unintentional ones as tremor (sign alternation every frame), slow
resting sway and small back-and-forth fidgets. Trajectories are turned into
PoseFrame sequences and run through the real FeatureExtractor, so the
resulting CalibrationSample objects carry the same features a live session
would produce.
"""

import logging

import numpy as np

from motion_intent.core.data_types import CalibrationSample, Landmark, PoseFrame
from motion_intent.detection.feature_extractor import FeatureExtractor

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0
DEFAULT_LANDMARK = 'right_wrist'

REACH_DIRECTIONS = {
    'right': (1.0, 0.0),
    'left': (-1.0, 0.0),
    'down': (0.0, 1.0),
    'up': (0.0, -1.0),
}

UNINTENTIONAL_KINDS = ('tremor', 'sway', 'fidget')


def frames_from_positions(positions, landmark=DEFAULT_LANDMARK, fps=DEFAULT_FPS,
                          start_time=0.0, confidence=1.0):
    """
    Build one PoseFrame per position.

    Args:
        positions (array-like): (n, 2) pixel positions
        landmark (str): Landmark name carried by every frame
        fps (float): Frame rate used for the timestamps
        start_time (float): Timestamp of the first frame (seconds)
        confidence (float): Detection confidence of every landmark

    Returns:
        list: PoseFrame sequence, oldest first
    """
    return [
        PoseFrame(landmarks=(Landmark(landmark, float(x), float(y), confidence),),
                  timestamp=start_time + i / fps)
        for i, (x, y) in enumerate(np.asarray(positions, dtype=float))
    ]


def linear_reach(n_frames, start=(320.0, 240.0), direction='right', speed=200.0,
                 fps=DEFAULT_FPS, noise=0.0, rng=None):
    """
    Straight movement at constant speed.

    Args:
        direction (str): 'up', 'down', 'left' or 'right'
        speed (float): Pixels per second
        noise (float): Standard deviation of along-track position noise (pixels)

    Returns:
        numpy.ndarray: (n_frames, 2) positions
    """
    ux, uy = REACH_DIRECTIONS[direction]
    t = np.arange(n_frames) / fps
    along = speed * t
    if noise > 0:
        rng = rng if rng is not None else np.random.default_rng()
        along = along + rng.normal(0.0, noise, size=n_frames)
    return np.column_stack([start[0] + ux * along, start[1] + uy * along])


def tremor(n_frames, center=(320.0, 240.0), amplitude=5.0, drift=(0.0, 0.0), fps=DEFAULT_FPS):
    """
    Horizontal oscillation changing sign every frame, optionally superimposed
    on a constant drift (pixels per second).
    """
    t = np.arange(n_frames) / fps
    alternation = amplitude * np.where(np.arange(n_frames) % 2 == 0, 1.0, -1.0)
    return np.column_stack([center[0] + drift[0] * t + alternation,
                            center[1] + drift[1] * t])


def sway(n_frames, center=(320.0, 240.0), amplitude=2.0, period=2.0, fps=DEFAULT_FPS,
         phase=0.0):
    """
    Slow sinusoidal resting sway.
    """
    t = np.arange(n_frames) / fps
    angle = 2.0 * np.pi * t / period + phase
    return np.column_stack([center[0] + amplitude * np.sin(angle),
                            center[1] + 0.5 * amplitude * np.cos(angle)])


def fidget(n_frames, center=(320.0, 240.0), amplitude=6.0, period_frames=6):
    """
    Back-and-forth triangle wave returning to its origin every period.
    """
    phase = (np.arange(n_frames) % period_frames) / period_frames
    triangle = 1.0 - np.abs(2.0 * phase - 1.0)
    return np.column_stack([center[0] + amplitude * triangle,
                            np.full(n_frames, center[1])])


def features_for_trajectory(positions, landmark=DEFAULT_LANDMARK, fps=DEFAULT_FPS,
                            extractor=None, start_time=0.0):
    """
    Feed a trajectory frame by frame to a feature extractor.

    The extractor sees a growing history, exactly as it would during live
    detection, so the movement state machine evolves over the trajectory.

    Args:
        positions (array-like): (n, 2) pixel positions
        extractor (FeatureExtractor, optional): Extractor to use; a fresh one by default

    Returns:
        MovementFeatures: Features after the last frame, or None if unavailable
    """
    extractor = extractor if extractor is not None else FeatureExtractor()
    frames = frames_from_positions(positions, landmark, fps, start_time)

    features = None
    for i in range(1, len(frames) + 1):
        features = extractor.extract_features(frames[:i], landmark)
    return features


def random_trajectory(intentional, n_frames, fps, rng):
    """
    Draw one trajectory of the given class.

    Returns:
        tuple: (positions, kind)
    """
    center = (rng.uniform(150.0, 490.0), rng.uniform(120.0, 360.0))

    if intentional:
        direction = str(rng.choice(list(REACH_DIRECTIONS)))
        speed = rng.uniform(150.0, 450.0)
        return linear_reach(n_frames, center, direction, speed, fps,
                            noise=rng.uniform(0.0, 0.5), rng=rng), f'reach_{direction}'

    kind = str(rng.choice(UNINTENTIONAL_KINDS))
    if kind == 'tremor':
        drift = (rng.uniform(-60.0, 60.0), rng.uniform(-20.0, 20.0))
        positions = tremor(n_frames, center, rng.uniform(3.0, 8.0), drift, fps)
    elif kind == 'sway':
        positions = sway(n_frames, center, rng.uniform(1.0, 3.0), rng.uniform(1.5, 3.0), fps,
                         phase=rng.uniform(0.0, 2.0 * np.pi))
    else:
        positions = fidget(n_frames, center, rng.uniform(4.0, 10.0), int(rng.integers(4, 9)))
    return positions, kind


def generate_synthetic_samples(num_samples=100, intentional_fraction=0.5, n_frames=20,
                               fps=DEFAULT_FPS, landmark=DEFAULT_LANDMARK, seed=None):
    """
    Generate labelled calibration samples from synthetic trajectories.

    Args:
        num_samples (int): Number of samples to generate
        intentional_fraction (float): Fraction of intentional samples
        n_frames (int): Frames per trajectory (must cover the minimum history)
        fps (float): Frame rate
        landmark (str): Landmark name of the samples
        seed (int, optional): Random seed

    Returns:
        list: CalibrationSample list
    """
    rng = np.random.default_rng(seed)
    n_intentional = int(round(num_samples * intentional_fraction))

    logger.info(f"Generating {num_samples} synthetic samples "
                f"({n_intentional} intentional, {num_samples - n_intentional} unintentional)...")

    samples = []
    for i in range(num_samples):
        intentional = i < n_intentional
        positions, _ = random_trajectory(intentional, n_frames, fps, rng)
        features = features_for_trajectory(positions, landmark, fps)
        if features is None:
            logger.debug(f"Synthetic trajectory {i} produced no features")
            continue
        samples.append(CalibrationSample(features=features, is_intentional=intentional))

    order = rng.permutation(len(samples))
    return [samples[i] for i in order]
