"""Tests for capture session bookkeeping and the recording artifact."""

from pathlib import Path

import pytest

from impact_sync.capture.session import (
    CaptureSession,
    MediaChunk,
    RecordingArtifact,
    RecordingMetadata,
    compute_frame_indices,
    frame_index_to_timestamp,
    timestamp_to_frame_index,
)
from impact_sync.exceptions import RecorderStateError


class TestFrameIndices:

    def test_reference_example(self):
        total, impact = compute_frame_indices(1500, 500, 120)
        assert total == 240
        assert impact == 180

    def test_floor_is_applied(self):
        # 1234ms at 30fps is 37.02 frames
        assert timestamp_to_frame_index(1234, 30) == 37

    def test_no_float_drift_on_exact_boundaries(self):
        # 700ms at 30fps is exactly 21 frames
        assert timestamp_to_frame_index(700, 30) == 21

    def test_frame_index_to_timestamp(self):
        assert frame_index_to_timestamp(180, 120) == 1500.0

    def test_indices_follow_the_impact_not_buffer_start(self):
        total_a, impact_a = compute_frame_indices(2000, 500, 60)
        total_b, impact_b = compute_frame_indices(3000, 500, 60)
        assert total_a - impact_a == total_b - impact_b == 30


class TestCaptureSession:

    def setup_method(self):
        self.session = CaptureSession(
            buffer_start_time=10.0,
            post_impact_duration_ms=500,
            sampled_frame_rate=120,
        )

    def test_impact_undefined_until_marked(self):
        assert self.session.impact_time is None
        assert self.session.impact_elapsed_ms is None

    def test_impact_elapsed_ms(self):
        self.session.mark_impact(11.5)
        assert self.session.impact_elapsed_ms == pytest.approx(1500.0)

    def test_second_impact_rejected(self):
        self.session.mark_impact(11.0)
        with pytest.raises(RecorderStateError):
            self.session.mark_impact(12.0)
        assert self.session.impact_time == 11.0

    def test_chunks_are_recorded_and_discarded(self):
        self.session.add_chunk(MediaChunk(sequence=0, captured_at=10.1, frames=[None, None]))
        self.session.add_chunk(MediaChunk(sequence=1, captured_at=10.2, frames=[None]))
        assert self.session.frames_buffered == 3
        self.session.discard()
        assert self.session.raw_media_chunks == []

    def test_finalized_session_rejects_chunks(self):
        self.session.finalized = True
        with pytest.raises(RecorderStateError):
            self.session.add_chunk(MediaChunk(sequence=0, captured_at=10.1))


class TestRecordingArtifact:

    def _artifact(self, impact, total, path=Path("clip.mp4")):
        return RecordingArtifact(
            video_path=path,
            impact_frame_index=impact,
            total_frames=total,
            impact_timestamp_ms=1500.0,
            metadata=RecordingMetadata(pre_impact_seconds=1.5, post_impact_seconds=0.5, frame_rate=120),
        )

    def test_valid_artifact(self):
        artifact = self._artifact(180, 240)
        assert artifact.frame_rate == 120
        assert artifact.to_dict()["metadata"]["post_impact_seconds"] == 0.5

    @pytest.mark.parametrize("impact,total", [(240, 240), (-1, 240), (0, 0)])
    def test_impact_must_lie_inside_clip(self, impact, total):
        with pytest.raises(ValueError):
            self._artifact(impact, total)

    def test_is_immutable(self):
        artifact = self._artifact(180, 240)
        with pytest.raises(AttributeError):
            artifact.total_frames = 10

    def test_video_bytes(self, tmp_path):
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(b"\x00\x01video")
        assert self._artifact(180, 240, clip).video_bytes() == b"\x00\x01video"
