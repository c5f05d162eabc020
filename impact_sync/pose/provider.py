"""Scoped keypoint provider: one pose backend instance per analysis run."""

import logging
from typing import Iterable, List, Optional

from tqdm import tqdm

from impact_sync.extraction.frame_extractor import ExtractedFrame
from impact_sync.pose.base import PoseBackend, PoseKeypointSet

logger = logging.getLogger(__name__)


class KeypointProvider:
    """
    Exclusive, scoped owner of a pose backend.

    Acquiring initializes the backend; releasing cleans it up, including
    when the run fails. A backend already owned by another provider cannot
    be acquired until that provider releases it.

    Example:
        with KeypointProvider(MediaPipeBackend()) as provider:
            keypoint_sets = provider.estimate(frames)
    """

    def __init__(self, backend: PoseBackend, show_progress: bool = False):
        self.backend = backend
        self.show_progress = show_progress
        self._acquired = False
        self._last_frame_index: Optional[int] = None

    @property
    def is_acquired(self) -> bool:
        return self._acquired

    def acquire(self) -> None:
        """Take ownership of the backend and initialize it."""
        if self._acquired:
            return
        self.backend.claim()
        try:
            self.backend.initialize()
        except Exception:
            self.backend.release_claim()
            raise

        self._acquired = True
        self._last_frame_index = None
        logger.debug(f"Acquired pose backend '{self.backend.name}'")

    def release(self) -> None:
        """Clean up the backend and give up ownership."""
        if not self._acquired:
            return
        try:
            self.backend.cleanup()
        finally:
            self.backend.release_claim()
            self._acquired = False
            logger.debug(f"Released pose backend '{self.backend.name}'")

    def estimate_frame(self, frame: ExtractedFrame) -> PoseKeypointSet:
        """
        Run the backend on one frame.

        Frames must arrive in strictly increasing index order. A frame with
        no detected person yields an empty keypoint set.
        """
        if not self._acquired:
            raise RuntimeError("KeypointProvider must be acquired before use")
        if self._last_frame_index is not None and frame.frame_index <= self._last_frame_index:
            raise ValueError(
                f"Frame {frame.frame_index} received after frame {self._last_frame_index}; "
                "frames must be processed in order"
            )
        self._last_frame_index = frame.frame_index

        result = self.backend.process_frame(frame.image, frame.frame_index, frame.timestamp_ms)
        if result is None or not result.keypoints:
            return PoseKeypointSet.empty(frame.frame_index, frame.timestamp_ms, self.backend.name)
        return result

    def estimate(self, frames: Iterable[ExtractedFrame]) -> List[PoseKeypointSet]:
        """
        Run the backend over a frame sequence.

        Returns:
            One PoseKeypointSet per frame, index-aligned with the input.
        """
        total = len(frames) if hasattr(frames, "__len__") else None
        iterator = frames
        if self.show_progress:
            iterator = tqdm(frames, total=total, desc=f"Pose estimation ({self.backend.name})")

        keypoint_sets = [self.estimate_frame(frame) for frame in iterator]

        detected = sum(1 for kps in keypoint_sets if kps.is_valid)
        logger.info(
            f"Pose estimated on {len(keypoint_sets)} frames with {self.backend.name} "
            f"({detected} with a detected person)"
        )
        return keypoint_sets

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def estimate_keypoints(
    frames: Iterable[ExtractedFrame],
    backend: PoseBackend,
    show_progress: bool = False,
) -> List[PoseKeypointSet]:
    """Acquire ``backend`` for one run over ``frames`` and release it afterwards."""
    with KeypointProvider(backend, show_progress=show_progress) as provider:
        return provider.estimate(frames)


def create_pose_backend(name: str, **kwargs) -> PoseBackend:
    """
    Build a pose backend by name.

    Args:
        name: "mediapipe" or "yolo".
        **kwargs: Backend constructor arguments.
    """
    if name == "mediapipe":
        from impact_sync.pose.mediapipe_backend import MediaPipeBackend
        return MediaPipeBackend(**kwargs)
    if name == "yolo":
        from impact_sync.pose.yolo_backend import YoloPoseBackend
        return YoloPoseBackend(**kwargs)
    raise ValueError(f"Unknown pose backend: {name}")
