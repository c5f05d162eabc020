"""Clip probing and incremental encoding with OpenCV."""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def fourcc_to_str(code: int) -> str:
    return "".join(chr((code >> 8 * i) & 0xFF) for i in range(4))


@dataclass(frozen=True)
class VideoInfo:
    """
    Container-reported properties of an encoded clip.

    Attributes:
        path: Path to the video file.
        width: Frame width in pixels.
        height: Frame height in pixels.
        fps: Encoded frame rate.
        total_frames: Frame count reported by the container.
        codec: Fourcc string.
    """
    path: str
    width: int
    height: int
    fps: float
    total_frames: int
    codec: str

    @property
    def duration_ms(self) -> float:
        """Clip length from frame count and rate; 0 when the rate is unknown."""
        if self.fps <= 0:
            return 0.0
        return self.total_frames * 1000.0 / self.fps

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "duration_ms": self.duration_ms}


def get_video_info(video_path: Union[str, Path]) -> Optional[VideoInfo]:
    """
    Read clip properties without decoding frames.

    Returns:
        VideoInfo, or None if OpenCV cannot open the file.
    """
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        logger.error(f"Could not open video: {video_path}")
        return None

    try:
        return VideoInfo(
            path=str(video_path),
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps=cap.get(cv2.CAP_PROP_FPS),
            total_frames=int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
            codec=fourcc_to_str(int(cap.get(cv2.CAP_PROP_FOURCC))),
        )
    finally:
        cap.release()


class ClipWriter:
    """
    Incremental video encoder.

    Frames are appended as they arrive; the underlying writer is opened
    lazily on the first frame so the frame size does not need to be known
    up front. ``close()`` finalizes the file, ``discard()`` releases the
    writer and removes whatever was written.
    """

    def __init__(
        self,
        output_path: Union[str, Path],
        fps: float,
        codec: str = "mp4v",
    ):
        self.output_path = Path(output_path)
        self.fps = fps
        self.codec = codec
        self.frames_written = 0

        self._writer = None
        self._size: Optional[Tuple[int, int]] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        """Whether the writer still accepts frames."""
        return not self._closed

    def write(self, frame: np.ndarray) -> None:
        """Append a BGR frame to the clip."""
        if self._closed:
            raise RuntimeError(f"Clip writer already closed: {self.output_path}")

        if self._writer is None:
            height, width = frame.shape[:2]
            self._size = (width, height)
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            fourcc = cv2.VideoWriter_fourcc(*self.codec)
            self._writer = cv2.VideoWriter(str(self.output_path), fourcc, self.fps, self._size)
            if not self._writer.isOpened():
                self._writer = None
                raise RuntimeError(
                    f"Could not open video writer for {self.output_path} (codec {self.codec})"
                )
            logger.debug(f"Opened clip writer: {self.output_path} {self._size} @ {self.fps}fps")

        if frame.shape[1::-1] != self._size:
            frame = cv2.resize(frame, self._size)
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)

        self._writer.write(frame)
        self.frames_written += 1

    def close(self) -> Path:
        """Finalize the clip and return its path."""
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        if not self._closed:
            logger.debug(f"Closed clip writer: {self.output_path} ({self.frames_written} frames)")
        self._closed = True
        return self.output_path

    def discard(self) -> None:
        """Release the writer and delete any partial output."""
        self.close()
        if self.output_path.exists():
            self.output_path.unlink()
            logger.debug(f"Discarded partial clip: {self.output_path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.discard()
        else:
            self.close()
        return False


def create_video_from_frames(
    frames: List[np.ndarray],
    output_path: str,
    fps: float = 30.0,
    codec: str = "mp4v",
) -> None:
    """
    Create a video file from a list of frames.

    Args:
        frames: List of frames as numpy arrays.
        output_path: Path for output video file.
        fps: Frames per second.
        codec: Video codec fourcc code.
    """
    if not frames:
        raise ValueError("No frames provided")

    with ClipWriter(output_path, fps=fps, codec=codec) as writer:
        for frame in frames:
            writer.write(frame)

    logger.info(f"Created video: {output_path} ({len(frames)} frames)")
