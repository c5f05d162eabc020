"""Decode a finished clip into timestamped frames at a fixed sampling rate."""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np
from tqdm import tqdm

from impact_sync.capture.session import RecordingArtifact, timestamp_to_frame_index
from impact_sync.exceptions import FrameDecodeError
from impact_sync.utils.video_utils import VideoInfo, get_video_info

logger = logging.getLogger(__name__)

# Guards floor() against 0.999... products when mapping sample times to source frames
_INDEX_EPSILON = 1e-6


@dataclass(frozen=True)
class ExtractedFrame:
    """
    A single decoded frame.

    Attributes:
        frame_index: Position in the sampled sequence (0-based).
        timestamp_ms: Sample time from clip start.
        image: BGR image.
    """
    frame_index: int
    timestamp_ms: float
    image: np.ndarray


def sample_count(duration_ms: float, frame_rate: float) -> int:
    """Number of samples taken from ``0`` to ``duration_ms`` inclusive."""
    if duration_ms < 0:
        return 0
    return timestamp_to_frame_index(duration_ms, frame_rate) + 1


def sample_timestamps(duration_ms: float, frame_rate: float) -> List[float]:
    """Sample times ``k * 1000 / frame_rate`` covering the clip duration."""
    interval_ms = 1000.0 / frame_rate
    return [k * interval_ms for k in range(sample_count(duration_ms, frame_rate))]


class FrameSequence:
    """
    Lazy, finite, restartable sequence of sampled frames.

    Every iteration reopens and decodes the clip from the start, so two
    iterations over the same sequence yield identical frames. Decoding
    failures raise FrameDecodeError.
    """

    def __init__(
        self,
        video_path: Union[str, Path],
        frame_rate: float,
        resize: Optional[Tuple[int, int]] = None,
        show_progress: bool = False,
    ):
        """
        Initialize the frame sequence.

        Args:
            video_path: Path to the encoded clip.
            frame_rate: Sampling rate in frames per second.
            resize: Optional (width, height) to resize frames.
            show_progress: Whether to show a progress bar while decoding.
        """
        if frame_rate <= 0:
            raise ValueError(f"Sampling frame rate must be positive, got {frame_rate}")

        self.video_path = Path(video_path)
        self.frame_rate = frame_rate
        self.resize = resize
        self.show_progress = show_progress
        self._info: Optional[VideoInfo] = None

    @property
    def info(self) -> VideoInfo:
        """Source clip information; raises FrameDecodeError if unreadable."""
        if self._info is None:
            info = get_video_info(str(self.video_path))
            if info is None:
                raise FrameDecodeError(f"Could not open video: {self.video_path}")
            if info.fps <= 0 or info.total_frames <= 0:
                raise FrameDecodeError(
                    f"Video has no decodable frames: {self.video_path} "
                    f"(fps={info.fps}, frames={info.total_frames})"
                )
            self._info = info
        return self._info

    @property
    def duration_ms(self) -> float:
        return self.info.duration_ms

    @property
    def interval_ms(self) -> float:
        return 1000.0 / self.frame_rate

    def timestamps(self) -> List[float]:
        return sample_timestamps(self.duration_ms, self.frame_rate)

    def __len__(self) -> int:
        return sample_count(self.duration_ms, self.frame_rate)

    def __iter__(self) -> Iterator[ExtractedFrame]:
        return self._generate()

    def _source_index(self, timestamp_ms: float) -> int:
        info = self.info
        index = int(math.floor(timestamp_ms * info.fps / 1000.0 + _INDEX_EPSILON))
        # The final sample lands on the clip end; hold the last decodable frame
        return min(index, info.total_frames - 1)

    def _generate(self) -> Iterator[ExtractedFrame]:
        timestamps = self.timestamps()

        cap = cv2.VideoCapture(str(self.video_path))
        if not cap.isOpened():
            raise FrameDecodeError(f"Could not open video: {self.video_path}")

        pbar = tqdm(total=len(timestamps), desc="Extracting frames") if self.show_progress else None

        next_position = 0
        last_image: Optional[np.ndarray] = None

        try:
            for frame_index, timestamp_ms in enumerate(timestamps):
                source_index = self._source_index(timestamp_ms)

                if source_index == next_position - 1 and last_image is not None:
                    # Repeated source frame; each sample owns its pixels
                    image = last_image.copy()
                else:
                    if source_index < next_position:
                        cap.set(cv2.CAP_PROP_POS_FRAMES, source_index)
                        next_position = source_index

                    while next_position < source_index:
                        if not cap.grab():
                            raise FrameDecodeError(
                                f"Could not decode frame {next_position} of {self.video_path}"
                            )
                        next_position += 1

                    ret, image = cap.read()
                    if not ret:
                        raise FrameDecodeError(
                            f"Could not decode frame {source_index} of {self.video_path}"
                        )
                    next_position = source_index + 1
                    last_image = image

                if self.resize is not None:
                    image = cv2.resize(image, self.resize)

                yield ExtractedFrame(
                    frame_index=frame_index,
                    timestamp_ms=timestamp_ms,
                    image=image,
                )

                if pbar:
                    pbar.update(1)
        finally:
            if pbar:
                pbar.close()
            cap.release()

        logger.debug(f"Extracted {len(timestamps)} frames from {self.video_path}")


def extract_frames(
    source: Union[str, Path, RecordingArtifact],
    frame_rate: Optional[float] = None,
    resize: Optional[Tuple[int, int]] = None,
    show_progress: bool = False,
) -> FrameSequence:
    """
    Build the sampled frame sequence of a clip.

    Args:
        source: Clip path or a RecordingArtifact.
        frame_rate: Sampling rate; defaults to the artifact's frame rate.
        resize: Optional (width, height) to resize frames.
        show_progress: Whether to show a progress bar while decoding.

    Returns:
        FrameSequence over the clip.

    Raises:
        FrameDecodeError: If the clip cannot be opened.
    """
    if isinstance(source, RecordingArtifact):
        video_path = source.video_path
        frame_rate = frame_rate or source.frame_rate
    else:
        video_path = Path(source)

    if frame_rate is None:
        raise ValueError("frame_rate is required when extracting from a path")

    sequence = FrameSequence(video_path, frame_rate, resize=resize, show_progress=show_progress)
    # Read clip info eagerly so an unreadable clip fails before any stage starts
    info = sequence.info
    logger.info(
        f"Sampling {len(sequence)} frames at {frame_rate:g}fps from {video_path} "
        f"({info.total_frames} source frames @ {info.fps:g}fps)"
    )
    return sequence
