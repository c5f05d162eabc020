"""Capture session state and the recording artifact it produces."""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from impact_sync.exceptions import RecorderStateError

logger = logging.getLogger(__name__)


def timestamp_to_frame_index(timestamp_ms: float, frame_rate: float) -> int:
    """Convert a timestamp (ms from clip start) to a frame index."""
    return int(math.floor(timestamp_ms * frame_rate / 1000.0))


def frame_index_to_timestamp(frame_index: int, frame_rate: float) -> float:
    """Convert a frame index to a timestamp in milliseconds."""
    return frame_index * 1000.0 / frame_rate


def compute_frame_indices(
    impact_elapsed_ms: float,
    post_impact_ms: float,
    frame_rate: float,
) -> Tuple[int, int]:
    """
    Compute clip frame bookkeeping for an impact-synchronized recording.

    Args:
        impact_elapsed_ms: Time from buffer start to the impact signal.
        post_impact_ms: Fixed capture window after the impact signal.
        frame_rate: Recording frame rate.

    Returns:
        Tuple of (total_frames, impact_frame_index).
    """
    total_frames = timestamp_to_frame_index(impact_elapsed_ms + post_impact_ms, frame_rate)
    impact_frame_index = timestamp_to_frame_index(impact_elapsed_ms, frame_rate)
    return total_frames, impact_frame_index


@dataclass
class MediaChunk:
    """
    A slice of captured media delivered by a capture stream.

    Attributes:
        sequence: Monotonic chunk number within the stream.
        captured_at: Clock time (seconds) at which the chunk was completed.
        frames: BGR video frames in capture order.
        audio: Optional mono audio samples covering the same interval.
        audio_sample_rate: Sample rate of ``audio`` in Hz.
    """
    sequence: int
    captured_at: float
    frames: List[np.ndarray] = field(default_factory=list)
    audio: Optional[np.ndarray] = None
    audio_sample_rate: Optional[int] = None


@dataclass
class ChunkRecord:
    """Bookkeeping kept for each chunk after its frames are encoded."""
    sequence: int
    captured_at: float
    frame_count: int
    audio_samples: int = 0


@dataclass
class CaptureSession:
    """
    Mutable state of one buffering session.

    ``impact_time`` stays ``None`` until the impact signal fires, which
    may happen at most once. A session finalizes into at most one clip.
    """
    buffer_start_time: float
    post_impact_duration_ms: float
    sampled_frame_rate: float
    impact_time: Optional[float] = None
    raw_media_chunks: List[ChunkRecord] = field(default_factory=list)
    finalized: bool = False

    @property
    def frames_buffered(self) -> int:
        return sum(chunk.frame_count for chunk in self.raw_media_chunks)

    @property
    def impact_elapsed_ms(self) -> Optional[float]:
        """Milliseconds from buffer start to impact, or None before impact."""
        if self.impact_time is None:
            return None
        return (self.impact_time - self.buffer_start_time) * 1000.0

    def add_chunk(self, chunk: MediaChunk) -> ChunkRecord:
        """Record a delivered chunk."""
        if self.finalized:
            raise RecorderStateError("Session already finalized")
        record = ChunkRecord(
            sequence=chunk.sequence,
            captured_at=chunk.captured_at,
            frame_count=len(chunk.frames),
            audio_samples=0 if chunk.audio is None else int(len(chunk.audio)),
        )
        self.raw_media_chunks.append(record)
        return record

    def mark_impact(self, impact_time: float) -> None:
        """Record the impact instant; a session accepts exactly one."""
        if self.impact_time is not None:
            raise RecorderStateError("Impact already recorded for this session")
        if impact_time < self.buffer_start_time:
            raise RecorderStateError("Impact precedes buffer start")
        self.impact_time = impact_time

    def discard(self) -> None:
        """Drop buffered chunk records."""
        self.raw_media_chunks.clear()


@dataclass(frozen=True)
class RecordingMetadata:
    """Timing metadata attached to a finished recording."""
    pre_impact_seconds: float
    post_impact_seconds: float
    frame_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pre_impact_seconds": self.pre_impact_seconds,
            "post_impact_seconds": self.post_impact_seconds,
            "frame_rate": self.frame_rate,
        }


@dataclass(frozen=True)
class RecordingArtifact:
    """
    Finished impact-synchronized clip.

    Attributes:
        video_path: Encoded clip on disk.
        impact_frame_index: Frame index of bat-ball contact.
        total_frames: Frame count of the clip at ``metadata.frame_rate``.
        impact_timestamp_ms: Impact time measured from buffer start.
        metadata: Pre/post impact durations and frame rate.
    """
    video_path: Path
    impact_frame_index: int
    total_frames: int
    impact_timestamp_ms: float
    metadata: RecordingMetadata

    def __post_init__(self):
        if not 0 <= self.impact_frame_index < self.total_frames:
            raise ValueError(
                f"Impact frame {self.impact_frame_index} outside clip of "
                f"{self.total_frames} frames"
            )

    @property
    def frame_rate(self) -> float:
        return self.metadata.frame_rate

    def video_bytes(self) -> bytes:
        """Read the encoded clip for hand-off to a storage collaborator."""
        return Path(self.video_path).read_bytes()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "video_path": str(self.video_path),
            "impact_frame_index": self.impact_frame_index,
            "total_frames": self.total_frames,
            "impact_timestamp_ms": self.impact_timestamp_ms,
            "metadata": self.metadata.to_dict(),
        }
