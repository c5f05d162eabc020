"""Ultralytics YOLO-Pose estimation backend (COCO 17 keypoints)."""

import logging
from typing import Optional

import numpy as np

from impact_sync.pose.base import COCO_KEYPOINTS, KeypointData, PoseBackend, PoseKeypointSet

logger = logging.getLogger(__name__)


class YoloPoseBackend(PoseBackend):
    """
    YOLO-Pose backend.

    Single-stage person detection plus keypoints. When several people are
    in frame, the highest-confidence detection is taken as the hitter.
    """

    def __init__(
        self,
        model_name: str = "yolov8n-pose.pt",
        min_detection_confidence: float = 0.5,
        device: Optional[str] = None,
    ):
        """
        Initialize the YOLO-Pose backend.

        Args:
            model_name: Ultralytics pose weights.
            min_detection_confidence: Minimum person confidence.
            device: Device to run the model on (cuda, cpu, mps or auto).
        """
        super().__init__(min_detection_confidence)
        self.model_name = model_name
        self.device = device
        self._model = None

    @property
    def name(self) -> str:
        return "yolo"

    def initialize(self) -> None:
        """Load the YOLO-Pose model."""
        if self._is_initialized:
            return

        try:
            from ultralytics import YOLO
        except ImportError:
            raise ImportError(
                "ultralytics package is required for YOLO-Pose. "
                "Install with: pip install ultralytics"
            )

        logger.info(f"Loading YOLO-Pose model: {self.model_name}")
        self._model = YOLO(self.model_name)
        self._is_initialized = True

    def process_frame(
        self,
        frame: np.ndarray,
        frame_index: int = 0,
        timestamp_ms: float = 0.0,
    ) -> PoseKeypointSet:
        if not self._is_initialized:
            self.initialize()

        results = self._model(
            frame,
            conf=self.min_detection_confidence,
            device=self.device,
            verbose=False,
        )

        if not results or results[0].keypoints is None or results[0].boxes is None:
            return PoseKeypointSet.empty(frame_index, timestamp_ms, self.name)

        boxes = results[0].boxes
        if len(boxes) == 0:
            logger.debug(f"No person detected in frame {frame_index}")
            return PoseKeypointSet.empty(frame_index, timestamp_ms, self.name)

        confidences = boxes.conf.cpu().numpy()
        best = int(np.argmax(confidences))
        kps = results[0].keypoints.data[best].cpu().numpy()  # (17, 3): x, y, conf

        keypoints = [
            KeypointData(
                name=COCO_KEYPOINTS[idx],
                x=float(x),
                y=float(y),
                confidence=float(conf),
                is_occluded=float(conf) < self.min_detection_confidence,
            )
            for idx, (x, y, conf) in enumerate(kps[: len(COCO_KEYPOINTS)])
        ]

        return PoseKeypointSet(
            frame_index=frame_index,
            timestamp_ms=timestamp_ms,
            keypoints=keypoints,
            overall_score=float(confidences[best]),
            model_name=self.name,
        )

    def cleanup(self) -> None:
        self._model = None
        self._is_initialized = False
        logger.debug("YOLO-Pose model released")
