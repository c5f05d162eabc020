"""Shared fakes and fixtures."""

import asyncio
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

from impact_sync.capture.session import MediaChunk
from impact_sync.capture.streams import CaptureSource, CaptureStream
from impact_sync.exceptions import CaptureAcquisitionError, RecorderRuntimeError
from impact_sync.pose.base import KeypointData, PoseBackend, PoseKeypointSet
from impact_sync.utils.video_utils import create_video_from_frames


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStream(CaptureStream):
    """Delivers small blank chunks; can fail or carry audio on request."""

    def __init__(
        self,
        negotiated_frame_rate: float = 120.0,
        clock: Optional[FakeClock] = None,
        chunk_seconds: float = 0.0,
        fail_after: Optional[int] = None,
        audio_blocks: Optional[List[np.ndarray]] = None,
        frames_per_chunk: int = 2,
    ):
        super().__init__(negotiated_frame_rate)
        self.clock = clock
        self.chunk_seconds = chunk_seconds
        self.fail_after = fail_after
        self.audio_blocks = audio_blocks
        self.frames_per_chunk = frames_per_chunk
        self.chunks_read = 0

    async def read_chunk(self) -> Optional[MediaChunk]:
        await asyncio.sleep(0.001)
        if self._closed:
            return None
        if self.fail_after is not None and self.chunks_read >= self.fail_after:
            raise RecorderRuntimeError("camera unplugged")
        if self.clock is not None:
            self.clock.advance(self.chunk_seconds)

        audio = None
        if self.audio_blocks is not None:
            audio = self.audio_blocks[min(self.chunks_read, len(self.audio_blocks) - 1)]

        chunk = MediaChunk(
            sequence=self.chunks_read,
            captured_at=self.clock() if self.clock else 0.0,
            frames=[np.zeros((8, 8, 3), dtype=np.uint8) for _ in range(self.frames_per_chunk)],
            audio=audio,
            audio_sample_rate=1000 if audio is not None else None,
        )
        self.chunks_read += 1
        return chunk


class FakeCapture:
    """Stand-in for cv2.VideoCapture delivering one frame per ``frame_interval`` seconds."""

    def __init__(self, frame_interval: float = 0.005):
        self.frame_interval = frame_interval
        self.reads = 0
        self.released = False

    def read(self):
        time.sleep(self.frame_interval)
        if self.released:
            return False, None
        self.reads += 1
        return True, np.zeros((8, 8, 3), dtype=np.uint8)

    def release(self) -> None:
        self.released = True


class FakeSource(CaptureSource):
    def __init__(self, stream: Optional[FakeStream] = None, deny: bool = False):
        self.stream = stream or FakeStream()
        self.deny = deny
        self.requested_frame_rate = None

    async def open(self, frame_rate: float, chunk_interval_ms: float) -> CaptureStream:
        self.requested_frame_rate = frame_rate
        if self.deny:
            raise CaptureAcquisitionError("permission denied")
        return self.stream


class FakeWriter:
    """Clip writer stand-in tracking how it was released."""

    def __init__(self, path: Path, fps: float):
        self.path = Path(path)
        self.fps = fps
        self.frames_written = 0
        self.closed = False
        self.discarded = False

    def write(self, frame: np.ndarray) -> None:
        if self.closed:
            raise RuntimeError("writer closed")
        self.frames_written += 1

    def close(self) -> Path:
        self.closed = True
        return self.path

    def discard(self) -> None:
        self.closed = True
        self.discarded = True


class WriterFactory:
    def __init__(self):
        self.writers: List[FakeWriter] = []

    def __call__(self, path: Path, fps: float) -> FakeWriter:
        writer = FakeWriter(path, fps)
        self.writers.append(writer)
        return writer

    @property
    def last(self) -> FakeWriter:
        return self.writers[-1]


def make_pose(
    frame_index: int,
    pelvis_deg: float = 0.0,
    torso_deg: float = 0.0,
    arm_deg: float = 0.0,
    length: float = 100.0,
) -> PoseKeypointSet:
    """Pose whose hip, shoulder and arm vectors point at the given angles."""

    def endpoint(origin, degrees):
        radians = np.radians(degrees)
        return origin[0] + length * np.cos(radians), origin[1] + length * np.sin(radians)

    left_hip = (300.0, 500.0)
    right_hip = endpoint(left_hip, pelvis_deg)
    left_shoulder = (300.0, 300.0)
    right_shoulder = endpoint(left_shoulder, torso_deg)
    right_elbow = endpoint(right_shoulder, arm_deg)

    points = {
        "left_hip": left_hip,
        "right_hip": right_hip,
        "left_shoulder": left_shoulder,
        "right_shoulder": right_shoulder,
        "right_elbow": right_elbow,
    }
    keypoints = [
        KeypointData(name=name, x=float(x), y=float(y), confidence=0.9)
        for name, (x, y) in points.items()
    ]
    return PoseKeypointSet(frame_index=frame_index, keypoints=keypoints, overall_score=0.9, model_name="fake")


class FakePoseBackend(PoseBackend):
    """Returns a pose for every frame except those listed as empty."""

    def __init__(self, empty_frames=(), fail_on_frame: Optional[int] = None):
        super().__init__()
        self.empty_frames = set(empty_frames)
        self.fail_on_frame = fail_on_frame
        self.initialize_calls = 0
        self.cleanup_calls = 0
        self.processed: List[int] = []

    @property
    def name(self) -> str:
        return "fake"

    def initialize(self) -> None:
        self.initialize_calls += 1
        self._is_initialized = True

    def process_frame(self, frame, frame_index=0, timestamp_ms=0.0) -> PoseKeypointSet:
        if frame_index == self.fail_on_frame:
            raise RuntimeError("inference crashed")
        self.processed.append(frame_index)
        if frame_index in self.empty_frames:
            return PoseKeypointSet.empty(frame_index, timestamp_ms, self.name)
        pose = make_pose(frame_index, pelvis_deg=float(frame_index))
        pose.timestamp_ms = timestamp_ms
        return pose

    def cleanup(self) -> None:
        self.cleanup_calls += 1
        self._is_initialized = False


def write_test_clip(path: Path, num_frames: int, fps: float, size=(64, 48)) -> Path:
    """Write an MJPG clip whose frames differ in brightness."""
    width, height = size
    frames = [
        np.full((height, width, 3), (i * 9) % 256, dtype=np.uint8)
        for i in range(num_frames)
    ]
    create_video_from_frames(frames, str(path), fps=fps, codec="MJPG")
    return path


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def writer_factory():
    return WriterFactory()


@pytest.fixture
def test_clip(tmp_path):
    """26 frames at 25fps (1040 ms)."""
    return write_test_clip(tmp_path / "swing.avi", num_frames=26, fps=25.0)
