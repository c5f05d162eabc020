"""Pipeline orchestrator: recording artifact to corrected swing metrics."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from impact_sync.analysis.calibration import CorrectedMetrics, CorrectionFactors, apply_bias_correction
from impact_sync.analysis.kinematic_sequence import (
    REQUIRED_KEYPOINTS,
    KinematicSequenceResult,
    analyze_kinematic_sequence,
)
from impact_sync.capture.session import RecordingArtifact, timestamp_to_frame_index
from impact_sync.database.operations import DatabaseOperations
from impact_sync.database.schema import get_engine, get_session_factory, init_db
from impact_sync.extraction.frame_extractor import FrameSequence, extract_frames
from impact_sync.pose.base import PoseBackend, PoseKeypointSet
from impact_sync.pose.provider import KeypointProvider, create_pose_backend
from impact_sync.tracking.bat_tracker import (
    DEFAULT_MIN_CONFIDENCE,
    BatDetector,
    BatTracker,
    BatTrackingResult,
    create_bat_detector,
    run_bat_stage,
)
from impact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class PipelineConfig:
    """
    Configuration for the swing analysis pipeline.

    Attributes:
        frame_rate: Sampling rate for analysis; None uses the recording's rate.
        pose_backend: Pose estimation backend name.
        pose_options: Extra pose backend constructor arguments.
        bat_tracking: Whether to run the optional bat tracking stage.
        bat_detector: Bat detector name ("hough" or "yolo").
        bat_options: Extra bat detector constructor arguments.
        bat_min_confidence: Lowest velocity-sample confidence counted in the peak.
        correction_factors: Per-segment velocity bias correction.
        database_url: Database connection URL.
        save_results: Whether to persist recordings and analyses.
        resize: Optional (width, height) applied to decoded frames.
        show_progress: Whether to show per-frame progress bars.
    """
    frame_rate: Optional[float] = None
    pose_backend: str = "mediapipe"
    pose_options: Dict[str, Any] = field(default_factory=dict)
    bat_tracking: bool = False
    bat_detector: str = "hough"
    bat_options: Dict[str, Any] = field(default_factory=dict)
    bat_min_confidence: float = DEFAULT_MIN_CONFIDENCE
    correction_factors: CorrectionFactors = field(default_factory=CorrectionFactors)
    database_url: str = "sqlite:///data/impact_sync.db"
    save_results: bool = False
    resize: Optional[Tuple[int, int]] = None
    show_progress: bool = True


@dataclass
class SwingAnalysisResult:
    """
    Everything produced by one analysis run.

    Attributes:
        metrics: Corrected metrics handed to persistence.
        kinematics: Raw kinematic sequence result.
        bat: Bat tracking outcome; None when the stage was disabled.
        frames_analyzed: Number of sampled frames.
        frames_with_pose: Frames in which a person was detected.
        recording_id: Stored recording row, when saved.
        analysis_id: Stored analysis row, when saved.
    """
    metrics: CorrectedMetrics
    kinematics: KinematicSequenceResult
    bat: Optional[BatTrackingResult] = None
    frames_analyzed: int = 0
    frames_with_pose: int = 0
    recording_id: Optional[int] = None
    analysis_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.metrics.to_report_record(),
            "frames_analyzed": self.frames_analyzed,
            "frames_with_pose": self.frames_with_pose,
            "recording_id": self.recording_id,
            "analysis_id": self.analysis_id,
        }


class SwingAnalysisPipeline:
    """
    Analysis of an impact-synchronized swing recording.

    Decodes the clip once into a restartable frame sequence consumed by two
    independent stages: pose keypoints feeding the kinematic analyzer
    (mandatory, failures propagate) and bat tracking (optional, failures
    degrade to "not available"). Raw velocities are bias-corrected and
    optionally persisted.

    Example:
        with SwingAnalysisPipeline(PipelineConfig(bat_tracking=True)) as pipeline:
            result = pipeline.analyze(artifact)
            print(result.metrics.tempo_ratio)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        pose_backend: Optional[PoseBackend] = None,
        bat_detector: Optional[BatDetector] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Pipeline configuration. Uses defaults if not provided.
            pose_backend: Pose backend instance; built from config if omitted.
            bat_detector: Bat detector instance; built from config if omitted.
        """
        self.config = config or PipelineConfig()

        self._pose_backend = pose_backend
        self._bat_detector = bat_detector
        self._db_ops: Optional[DatabaseOperations] = None
        self._session = None

    @property
    def pose_backend(self) -> PoseBackend:
        """Get or create the pose estimation backend."""
        if self._pose_backend is None:
            self._pose_backend = create_pose_backend(self.config.pose_backend, **self.config.pose_options)
        return self._pose_backend

    @property
    def bat_detector(self) -> BatDetector:
        """Get or create the bat detector."""
        if self._bat_detector is None:
            self._bat_detector = create_bat_detector(self.config.bat_detector, **self.config.bat_options)
        return self._bat_detector

    @property
    def db_ops(self) -> DatabaseOperations:
        """Get or create the database operations instance."""
        if self._db_ops is None:
            init_db(self.config.database_url)
            engine = get_engine(self.config.database_url)
            SessionLocal = get_session_factory(engine)
            self._session = SessionLocal()
            self._db_ops = DatabaseOperations(self._session)
        return self._db_ops

    def estimate_pose(self, frames: FrameSequence) -> List[PoseKeypointSet]:
        """Pose keypoints for every frame, with the backend held for this run only."""
        backend = self.pose_backend
        missing = [name for name in REQUIRED_KEYPOINTS if name not in backend.keypoint_names]
        if missing:
            raise ValueError(
                f"Pose backend '{backend.name}' does not report {', '.join(missing)}"
            )
        with KeypointProvider(backend, show_progress=self.config.show_progress) as provider:
            return provider.estimate(frames)

    def track_bat(self, frames: FrameSequence) -> BatTrackingResult:
        """Bat tracking inside its own error boundary; never raises."""
        try:
            tracker = BatTracker(
                self.bat_detector,
                min_confidence=self.config.bat_min_confidence,
                show_progress=self.config.show_progress,
            )
        except Exception as e:
            logger.warning(f"Bat detector unavailable: {e}")
            return BatTrackingResult.not_available(f"detector unavailable: {e}")
        return run_bat_stage(frames, tracker)

    def analyze(
        self,
        source: Union[str, Path, RecordingArtifact],
        impact_frame: Optional[int] = None,
        frame_rate: Optional[float] = None,
        label: Optional[str] = None,
    ) -> SwingAnalysisResult:
        """
        Analyze one swing recording.

        Args:
            source: Recording artifact or path to a clip.
            impact_frame: Contact frame at the sampling rate. Derived from the
                artifact's impact time when omitted; required for a bare path.
            frame_rate: Sampling rate; defaults to config, then the artifact's rate.
            label: Optional label stored with the analysis.

        Returns:
            SwingAnalysisResult with corrected metrics.

        Raises:
            FrameDecodeError: If the clip cannot be decoded.
        """
        artifact = source if isinstance(source, RecordingArtifact) else None
        frame_rate = frame_rate or self.config.frame_rate

        frames = extract_frames(
            source,
            frame_rate=frame_rate,
            resize=self.config.resize,
            show_progress=False,
        )
        frame_rate = frames.frame_rate

        if impact_frame is None:
            if artifact is None:
                raise ValueError("impact_frame is required when analyzing a clip path")
            impact_frame = timestamp_to_frame_index(artifact.impact_timestamp_ms, frame_rate)

        logger.info(f"Analyzing {frames.video_path} (impact frame {impact_frame} @ {frame_rate:g}fps)")

        poses = self.estimate_pose(frames)
        kinematics = analyze_kinematic_sequence(poses, impact_frame, frame_rate)

        bat_result = None
        bat_velocity = None
        bat_reason = None
        if self.config.bat_tracking:
            bat_result = self.track_bat(frames)
            bat_velocity = bat_result.peak_velocity
            bat_reason = bat_result.reason
        else:
            bat_reason = "bat tracking disabled"

        metrics = apply_bias_correction(
            kinematics,
            bat_velocity=bat_velocity,
            factors=self.config.correction_factors,
            bat_tracking_reason=bat_reason,
        )

        result = SwingAnalysisResult(
            metrics=metrics,
            kinematics=kinematics,
            bat=bat_result,
            frames_analyzed=len(poses),
            frames_with_pose=sum(1 for p in poses if p.is_valid),
        )

        if self.config.save_results:
            self._save(result, artifact, label)

        return result

    def _save(
        self,
        result: SwingAnalysisResult,
        artifact: Optional[RecordingArtifact],
        label: Optional[str],
    ) -> None:
        """Persist the recording (if any) and analysis."""
        if artifact is not None:
            recording = self.db_ops.create_recording(artifact)
            result.recording_id = recording.recording_id

        analysis = self.db_ops.create_analysis(
            result.metrics,
            recording_id=result.recording_id,
            label=label,
            pose_model=self.pose_backend.name,
        )
        result.analysis_id = analysis.analysis_id
        logger.info(f"Stored analysis {analysis.analysis_id}")

    def cleanup(self) -> None:
        """Clean up resources."""
        if self._session:
            self._session.close()
            self._session = None
            self._db_ops = None

        logger.debug("Pipeline resources cleaned up")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.cleanup()
        return False
