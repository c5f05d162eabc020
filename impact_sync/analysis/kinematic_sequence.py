"""
Kinematic sequence analysis from a pose keypoint time series.

Segment orientations are 2D angles (degrees) of keypoint vectors in image
space. Frame-to-frame absolute angle deltas, wrapped across the +/-180
degree seam, serve as a proxy for angular velocity; multiplying by the
frame rate converts a per-frame delta to degrees per second.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from impact_sync.pose.base import PoseKeypointSet
from impact_sync.utils.angles import angle_deltas, angular_difference

logger = logging.getLogger(__name__)

# Keypoint vectors defining each body segment (start -> end)
PELVIS_SEGMENT = ("left_hip", "right_hip")
TORSO_SEGMENT = ("left_shoulder", "right_shoulder")
ARM_SEGMENT = ("right_shoulder", "right_elbow")
REQUIRED_KEYPOINTS = sorted(set(PELVIS_SEGMENT + TORSO_SEGMENT + ARM_SEGMENT))


def segment_angle(pose: PoseKeypointSet, start_keypoint: str, end_keypoint: str) -> float:
    """
    Orientation of the vector between two keypoints, in degrees.

    Returns 0 when either keypoint is missing (no person detected).
    """
    vector = pose.segment_vector(start_keypoint, end_keypoint)
    if vector is None:
        return 0.0
    return math.degrees(math.atan2(vector[1], vector[0]))


def pelvis_angle(pose: PoseKeypointSet) -> float:
    """Pelvis rotation from the hip pair."""
    return segment_angle(pose, *PELVIS_SEGMENT)


def torso_angle(pose: PoseKeypointSet) -> float:
    """Upper torso rotation from the shoulder pair."""
    return segment_angle(pose, *TORSO_SEGMENT)


def arm_angle(pose: PoseKeypointSet) -> float:
    """Lead arm orientation from the right shoulder to the right elbow."""
    return segment_angle(pose, *ARM_SEGMENT)


def angle_series(
    poses: Sequence[PoseKeypointSet],
    angle_fn: Callable[[PoseKeypointSet], float],
) -> np.ndarray:
    """Segment angle for every frame, index-aligned with ``poses``."""
    return np.array([angle_fn(pose) for pose in poses], dtype=float)


def find_max_pelvis_velocity_frame(pelvis_angles: Sequence[float], impact_frame: int) -> int:
    """
    Frame of peak pelvis angular velocity before impact.

    Scans ``[1, impact_frame)`` for the largest wrapped frame-to-frame
    angle change. The first occurrence wins ties. Returns 0 when no frame
    in range has a positive change.
    """
    end = min(impact_frame, len(pelvis_angles))
    max_frame = 0
    max_delta = 0.0
    for i in range(1, end):
        delta = angular_difference(pelvis_angles[i], pelvis_angles[i - 1])
        if delta > max_delta:
            max_delta = delta
            max_frame = i
    return max_frame


def find_negative_move_frame(pelvis_angles: Sequence[float], max_pelvis_frame: int) -> int:
    """
    Start of the load phase.

    Heuristic: the frame in ``[0, max_pelvis_frame)`` with the smallest
    absolute pelvis rotation. The first occurrence wins ties. Returns 0 for
    an empty range.
    """
    end = min(max_pelvis_frame, len(pelvis_angles))
    min_frame = 0
    min_rotation = math.inf
    for i in range(end):
        rotation = abs(pelvis_angles[i])
        if rotation < min_rotation:
            min_rotation = rotation
            min_frame = i
    return min_frame


def peak_segment_velocity(angles: Sequence[float], frame_rate: float) -> float:
    """Largest absolute frame-to-frame angle change over all frames, in deg/s."""
    if len(angles) < 2:
        return 0.0
    deltas = angle_deltas(angles)
    return float(deltas.max()) * frame_rate


@dataclass(frozen=True)
class KinematicSequenceResult:
    """
    Swing timing and raw peak segment velocities.

    ``tempo_ratio`` is None when the fire phase has zero duration.
    """
    impact_frame: int
    total_frames: int
    frame_rate: float
    load_duration_ms: float
    fire_duration_ms: float
    tempo_ratio: Optional[float]
    negative_move_frame: int
    max_pelvis_frame: int
    pelvis_max_velocity: float
    torso_max_velocity: float
    arm_max_velocity: float

    @property
    def frame_interval_ms(self) -> float:
        return 1000.0 / self.frame_rate

    @property
    def has_tempo(self) -> bool:
        return self.tempo_ratio is not None

    def to_dict(self) -> Dict:
        return asdict(self)


def analyze_kinematic_sequence(
    poses: List[PoseKeypointSet],
    impact_frame: int,
    frame_rate: float,
) -> KinematicSequenceResult:
    """
    Detect load/fire phase boundaries and peak segment velocities.

    Args:
        poses: One keypoint set per sampled frame, in frame order.
        impact_frame: Known contact frame index from the recording.
        frame_rate: Sampling rate of ``poses`` in frames per second.

    Returns:
        KinematicSequenceResult. Identical input always yields identical output.
    """
    if frame_rate <= 0:
        raise ValueError(f"Frame rate must be positive, got {frame_rate}")
    if impact_frame < 0:
        raise ValueError(f"Impact frame must be non-negative, got {impact_frame}")

    if impact_frame >= len(poses):
        logger.warning(
            f"Impact frame {impact_frame} is beyond the {len(poses)} analyzed frames; "
            "phase detection is limited to the available frames"
        )

    pelvis = angle_series(poses, pelvis_angle)
    torso = angle_series(poses, torso_angle)
    arm = angle_series(poses, arm_angle)

    max_pelvis_frame = find_max_pelvis_velocity_frame(pelvis, impact_frame)
    negative_move_frame = find_negative_move_frame(pelvis, max_pelvis_frame)

    interval_ms = 1000.0 / frame_rate
    load_duration_ms = (max_pelvis_frame - negative_move_frame) * interval_ms
    fire_duration_ms = (impact_frame - max_pelvis_frame) * interval_ms
    tempo_ratio = load_duration_ms / fire_duration_ms if fire_duration_ms > 0 else None

    if tempo_ratio is None:
        logger.warning("Fire phase has zero duration; tempo ratio is undefined")

    result = KinematicSequenceResult(
        impact_frame=impact_frame,
        total_frames=len(poses),
        frame_rate=frame_rate,
        load_duration_ms=load_duration_ms,
        fire_duration_ms=fire_duration_ms,
        tempo_ratio=tempo_ratio,
        negative_move_frame=negative_move_frame,
        max_pelvis_frame=max_pelvis_frame,
        pelvis_max_velocity=peak_segment_velocity(pelvis, frame_rate),
        torso_max_velocity=peak_segment_velocity(torso, frame_rate),
        arm_max_velocity=peak_segment_velocity(arm, frame_rate),
    )

    logger.info(
        f"Kinematic sequence: negative move {negative_move_frame}, max pelvis {max_pelvis_frame}, "
        f"impact {impact_frame}, load {load_duration_ms:.1f}ms, fire {fire_duration_ms:.1f}ms"
    )
    return result
