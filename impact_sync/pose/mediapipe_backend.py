"""MediaPipe Pose Landmarker backend (Tasks API), reported as COCO keypoints."""

import logging
import urllib.request
from pathlib import Path

import cv2
import numpy as np

from impact_sync.pose.base import COCO_KEYPOINTS, KeypointData, PoseBackend, PoseKeypointSet

logger = logging.getLogger(__name__)

MODEL_BASE_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker"

# complexity -> landmarker variant
MODEL_VARIANTS = {0: "lite", 1: "full", 2: "heavy"}

# Index of each COCO keypoint among the 33 MediaPipe landmarks
COCO_TO_MEDIAPIPE = {
    "nose": 0,
    "left_eye": 2,
    "right_eye": 5,
    "left_ear": 7,
    "right_ear": 8,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}


def model_url(model_complexity: int) -> str:
    variant = MODEL_VARIANTS.get(model_complexity, "full")
    return f"{MODEL_BASE_URL}/pose_landmarker_{variant}/float16/1/pose_landmarker_{variant}.task"


class MediaPipeBackend(PoseBackend):
    """
    MediaPipe Pose Landmarker in single-person IMAGE mode.

    Landmarks are converted to pixel coordinates and reduced to the COCO
    subset so downstream segment definitions work for every backend.
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_complexity: int = 1,
        cache_dir: str = "~/.cache/mediapipe",
    ):
        """
        Args:
            min_detection_confidence: Minimum confidence for pose detection.
            min_tracking_confidence: Minimum confidence for pose tracking.
            model_complexity: 0=lite, 1=full, 2=heavy.
            cache_dir: Where downloaded model bundles are kept.
        """
        super().__init__(min_detection_confidence)
        self.min_tracking_confidence = min_tracking_confidence
        self.model_complexity = model_complexity
        self.cache_dir = Path(cache_dir).expanduser()
        self._landmarker = None
        self._mp = None

    @property
    def name(self) -> str:
        return "mediapipe"

    def initialize(self) -> None:
        """Create the Pose Landmarker, downloading the model bundle if needed."""
        if self._is_initialized:
            return

        try:
            import mediapipe as mp
            from mediapipe.tasks import python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise ImportError(
                f"mediapipe package error: {e}. "
                "Install with: pip install mediapipe"
            )

        options = vision.PoseLandmarkerOptions(
            base_options=python.BaseOptions(model_asset_path=self._ensure_model()),
            running_mode=vision.RunningMode.IMAGE,
            num_poses=1,
            min_pose_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
            output_segmentation_masks=False,
        )
        self._mp = mp
        self._landmarker = vision.PoseLandmarker.create_from_options(options)
        self._is_initialized = True
        logger.info(f"MediaPipe Pose Landmarker ready ({MODEL_VARIANTS.get(self.model_complexity, 'full')})")

    def _ensure_model(self) -> str:
        url = model_url(self.model_complexity)
        model_path = self.cache_dir / url.rsplit("/", 1)[-1]
        if not model_path.exists():
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Downloading MediaPipe model from {url}...")
            urllib.request.urlretrieve(url, model_path)
        return str(model_path)

    def process_frame(
        self,
        frame: np.ndarray,
        frame_index: int = 0,
        timestamp_ms: float = 0.0,
    ) -> PoseKeypointSet:
        if not self._is_initialized:
            self.initialize()

        mp_image = self._mp.Image(
            image_format=self._mp.ImageFormat.SRGB,
            data=cv2.cvtColor(frame, cv2.COLOR_BGR2RGB),
        )
        detection = self._landmarker.detect(mp_image)

        if not detection.pose_landmarks:
            logger.debug(f"No pose detected in frame {frame_index}")
            return PoseKeypointSet.empty(frame_index, timestamp_ms, self.name)

        landmarks = detection.pose_landmarks[0]
        world = detection.pose_world_landmarks[0] if detection.pose_world_landmarks else None
        h, w = frame.shape[:2]

        keypoints = []
        for name in COCO_KEYPOINTS:
            idx = COCO_TO_MEDIAPIPE[name]
            landmark = landmarks[idx]
            visibility = getattr(landmark, "visibility", None)
            confidence = float(visibility) if visibility is not None else 1.0
            keypoints.append(KeypointData(
                name=name,
                x=landmark.x * w,
                y=landmark.y * h,
                z=world[idx].z if world is not None else None,
                confidence=confidence,
                is_occluded=confidence < self.min_detection_confidence,
            ))

        return PoseKeypointSet(
            frame_index=frame_index,
            timestamp_ms=timestamp_ms,
            keypoints=keypoints,
            overall_score=float(np.mean([kp.confidence for kp in keypoints])),
            model_name=self.name,
        )

    def cleanup(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        self._is_initialized = False
        logger.debug("MediaPipe Pose Landmarker closed")
