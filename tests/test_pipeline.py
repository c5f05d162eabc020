"""Tests for the end-to-end swing analysis pipeline."""

import pytest

from conftest import FakePoseBackend
from impact_sync.capture.session import RecordingArtifact, RecordingMetadata
from impact_sync.database.schema import reset_engine
from impact_sync.exceptions import FrameDecodeError
from impact_sync.pipeline.orchestrator import PipelineConfig, SwingAnalysisPipeline
from impact_sync.tracking.bat_tracker import BatDetection, BatDetector


class ExplodingDetector(BatDetector):

    @property
    def name(self):
        return "exploding"

    def detect(self, image):
        raise RuntimeError("bat model crashed")


class ConstantRotationDetector(BatDetector):
    """Bat rotating 2 degrees per call at full confidence."""

    def __init__(self):
        self.calls = 0

    @property
    def name(self):
        return "constant"

    def detect(self, image):
        angle = 2.0 * self.calls
        self.calls += 1
        return BatDetection(detected=True, center_x=0.0, center_y=0.0, angle=angle, confidence=1.0)


class HeadOnlyPoseBackend(FakePoseBackend):

    @property
    def keypoint_names(self):
        return ["nose", "left_eye", "right_eye"]


@pytest.fixture
def database_url(tmp_path):
    reset_engine()
    yield f"sqlite:///{tmp_path / 'analysis.db'}"
    reset_engine()


def make_pipeline(bat_tracking=False, bat_detector=None, **overrides):
    config = PipelineConfig(bat_tracking=bat_tracking, show_progress=False, **overrides)
    return SwingAnalysisPipeline(config, pose_backend=FakePoseBackend(), bat_detector=bat_detector)


class TestAnalyze:

    def test_analyze_clip(self, test_clip):
        with make_pipeline() as pipeline:
            result = pipeline.analyze(test_clip, impact_frame=20, frame_rate=25)

        assert result.frames_analyzed == 27
        assert result.frames_with_pose == 27
        kin = result.kinematics
        assert kin.impact_frame == 20
        assert 0 <= kin.negative_move_frame <= kin.max_pelvis_frame <= kin.impact_frame
        # Fake pelvis turns 1 degree per frame: 25 deg/s raw, doubled by correction
        assert kin.pelvis_max_velocity == pytest.approx(25.0)
        assert result.metrics.pelvis_max_velocity == 50
        assert result.metrics.bat_max_velocity is None
        assert result.metrics.bat_tracking_reason == "bat tracking disabled"
        assert result.bat is None

    def test_backend_released_after_run(self, test_clip):
        pipeline = make_pipeline()
        pipeline.analyze(test_clip, impact_frame=10, frame_rate=25)
        backend = pipeline.pose_backend
        assert not backend.in_use
        assert backend.cleanup_calls == 1

    def test_impact_frame_from_artifact(self, test_clip):
        artifact = RecordingArtifact(
            video_path=test_clip,
            impact_frame_index=20,
            total_frames=26,
            impact_timestamp_ms=800.0,
            metadata=RecordingMetadata(pre_impact_seconds=0.8, post_impact_seconds=0.24, frame_rate=25.0),
        )
        result = make_pipeline().analyze(artifact)

        assert result.kinematics.impact_frame == 20
        assert result.kinematics.frame_rate == 25.0

    def test_impact_frame_rescaled_to_sampling_rate(self, test_clip):
        artifact = RecordingArtifact(
            video_path=test_clip,
            impact_frame_index=20,
            total_frames=26,
            impact_timestamp_ms=800.0,
            metadata=RecordingMetadata(pre_impact_seconds=0.8, post_impact_seconds=0.24, frame_rate=25.0),
        )
        result = make_pipeline().analyze(artifact, frame_rate=50)
        assert result.kinematics.impact_frame == 40

    def test_path_requires_impact_frame(self, test_clip):
        with pytest.raises(ValueError):
            make_pipeline().analyze(test_clip, frame_rate=25)

    def test_decode_failure_is_fatal(self, tmp_path):
        with pytest.raises(FrameDecodeError):
            make_pipeline().analyze(tmp_path / "missing.mp4", impact_frame=1, frame_rate=25)

    def test_backend_missing_segment_keypoints_rejected(self, test_clip):
        backend = HeadOnlyPoseBackend()
        pipeline = SwingAnalysisPipeline(PipelineConfig(show_progress=False), pose_backend=backend)
        with pytest.raises(ValueError, match="left_hip"):
            pipeline.analyze(test_clip, impact_frame=10, frame_rate=25)
        assert backend.initialize_calls == 0
        assert not backend.in_use


class TestBatStageIsolation:

    def test_bat_failure_leaves_pose_result_unchanged(self, test_clip):
        baseline = make_pipeline().analyze(test_clip, impact_frame=20, frame_rate=25)
        degraded = make_pipeline(bat_tracking=True, bat_detector=ExplodingDetector()).analyze(
            test_clip, impact_frame=20, frame_rate=25
        )

        assert degraded.kinematics == baseline.kinematics
        assert degraded.metrics.pelvis_max_velocity == baseline.metrics.pelvis_max_velocity
        assert degraded.metrics.bat_max_velocity is None
        assert not degraded.metrics.bat_tracking_available
        assert degraded.metrics.bat_tracking_reason.startswith("tracking error")

    def test_bat_velocity_is_corrected(self, test_clip):
        result = make_pipeline(bat_tracking=True, bat_detector=ConstantRotationDetector()).analyze(
            test_clip, impact_frame=20, frame_rate=25
        )
        # 2 degrees per 40ms frame = 50 deg/s, times 1.3
        assert result.bat.peak_velocity == pytest.approx(50.0)
        assert result.metrics.bat_max_velocity == 65
        assert result.metrics.bat_tracking_available


class TestPersistence:

    def test_save_results(self, test_clip, database_url):
        with make_pipeline(save_results=True, database_url=database_url) as pipeline:
            result = pipeline.analyze(test_clip, impact_frame=20, frame_rate=25, label="cage session")
            stored = pipeline.db_ops.get_analysis(result.analysis_id)

            assert stored is not None
            assert stored.label == "cage session"
            assert stored.pose_model == "fake"
            assert stored.peak_pelvis_rot_vel == result.metrics.pelvis_max_velocity
            assert stored.recording_id is None

    def test_save_artifact_recording(self, test_clip, database_url):
        artifact = RecordingArtifact(
            video_path=test_clip,
            impact_frame_index=20,
            total_frames=26,
            impact_timestamp_ms=800.0,
            metadata=RecordingMetadata(pre_impact_seconds=0.8, post_impact_seconds=0.24, frame_rate=25.0),
        )
        with make_pipeline(save_results=True, database_url=database_url) as pipeline:
            result = pipeline.analyze(artifact)
            recording = pipeline.db_ops.get_recording(result.recording_id)

            assert recording.impact_frame_index == 20
            assert [a.analysis_id for a in recording.analyses] == [result.analysis_id]
