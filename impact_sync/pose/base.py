"""Keypoint types and the pose backend interface."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from impact_sync.exceptions import KeypointProviderBusyError

logger = logging.getLogger(__name__)

# COCO 17 keypoint order; every backend reports these names
COCO_KEYPOINTS = [
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
]


@dataclass
class KeypointData:
    """
    One body landmark in image space.

    Attributes:
        name: COCO keypoint name (e.g. "left_hip").
        x: Horizontal position in pixels.
        y: Vertical position in pixels (down is positive).
        z: Model depth estimate, if the backend produces one.
        confidence: Detection confidence (0-1).
        is_occluded: Confidence fell below the backend's detection threshold.
    """
    name: str
    x: float
    y: float
    z: Optional[float] = None
    confidence: float = 1.0
    is_occluded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "confidence": self.confidence,
            "is_occluded": self.is_occluded,
        }


@dataclass
class PoseKeypointSet:
    """
    Pose of the single tracked person in one frame.

    A frame with no detected person is represented by an empty set with
    ``overall_score == 0`` so that keypoint sets stay index-aligned with
    the frames they came from.

    Attributes:
        frame_index: Index of the source frame.
        timestamp_ms: Timestamp of the source frame.
        keypoints: Detected keypoints.
        overall_score: Whole-pose detection score (0-1).
        model_name: Name of the model that produced this result.
    """
    frame_index: int
    timestamp_ms: float = 0.0
    keypoints: List[KeypointData] = field(default_factory=list)
    overall_score: float = 0.0
    model_name: str = ""

    @classmethod
    def empty(cls, frame_index: int, timestamp_ms: float = 0.0, model_name: str = "") -> "PoseKeypointSet":
        """Placeholder for a frame in which no person was detected."""
        return cls(frame_index=frame_index, timestamp_ms=timestamp_ms, model_name=model_name)

    @property
    def is_valid(self) -> bool:
        return bool(self.keypoints)

    def get_keypoint(self, name: str) -> Optional[KeypointData]:
        return next((kp for kp in self.keypoints if kp.name == name), None)

    def keypoint_array(self) -> np.ndarray:
        """(N, 3) array of [x, y, confidence]; empty when no person was found."""
        if not self.keypoints:
            return np.empty((0, 3))
        return np.array([[kp.x, kp.y, kp.confidence] for kp in self.keypoints])

    def segment_vector(self, start_keypoint: str, end_keypoint: str) -> Optional[np.ndarray]:
        """
        Image-plane vector from one keypoint to another.

        Returns None if either keypoint is missing.
        """
        start = self.get_keypoint(start_keypoint)
        end = self.get_keypoint(end_keypoint)
        if start is None or end is None:
            return None
        return np.array([end.x - start.x, end.y - start.y])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame_index": self.frame_index,
            "timestamp_ms": self.timestamp_ms,
            "keypoints": [kp.to_dict() for kp in self.keypoints],
            "overall_score": self.overall_score,
            "model_name": self.model_name,
        }


class PoseBackend(ABC):
    """
    Single-person pose estimator.

    A backend wraps one stateful detector instance. It is initialized once
    per analysis run, invoked once per frame in order, and cleaned up when
    the run ends. Backends are not reentrant: one analysis run owns an
    instance at a time (see ``KeypointProvider``).
    """

    def __init__(self, min_detection_confidence: float = 0.5):
        self.min_detection_confidence = min_detection_confidence
        self._is_initialized = False
        self._in_use = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend name stored with analyses."""

    @property
    def keypoint_names(self) -> List[str]:
        return list(COCO_KEYPOINTS)

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def in_use(self) -> bool:
        """Whether an analysis run currently owns this backend."""
        return self._in_use

    def claim(self) -> None:
        """
        Mark the backend as owned by one analysis run.

        Raises:
            KeypointProviderBusyError: If another run already owns it.
        """
        if self._in_use:
            raise KeypointProviderBusyError(
                f"Pose backend '{self.name}' is owned by another analysis run"
            )
        self._in_use = True

    def release_claim(self) -> None:
        self._in_use = False

    @abstractmethod
    def initialize(self) -> None:
        """Load the model. Called once before the first frame of a run."""

    @abstractmethod
    def process_frame(
        self,
        frame: np.ndarray,
        frame_index: int = 0,
        timestamp_ms: float = 0.0,
    ) -> PoseKeypointSet:
        """
        Estimate the pose in one BGR frame.

        Returns:
            PoseKeypointSet; empty if no person was detected.
        """

    def cleanup(self) -> None:
        """Release the model."""
        self._is_initialized = False
