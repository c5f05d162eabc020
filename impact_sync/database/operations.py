"""Persistence operations for swing recordings and analyses."""

import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from impact_sync.analysis.calibration import CorrectedMetrics
from impact_sync.capture.session import RecordingArtifact
from impact_sync.database.models import SwingAnalysis, SwingRecording

logger = logging.getLogger(__name__)


class DatabaseOperations:
    """
    Create/read operations over swing records.

    Args:
        session: SQLAlchemy session instance.
    """

    def __init__(self, session: Session):
        self.session = session

    # ==================== Recording Operations ====================

    def create_recording(self, artifact: RecordingArtifact) -> SwingRecording:
        """Store a finalized recording artifact."""
        recording = SwingRecording(
            video_path=str(artifact.video_path),
            impact_frame_index=artifact.impact_frame_index,
            total_frames=artifact.total_frames,
            frame_rate=artifact.frame_rate,
            impact_timestamp_ms=artifact.impact_timestamp_ms,
            pre_impact_seconds=artifact.metadata.pre_impact_seconds,
            post_impact_seconds=artifact.metadata.post_impact_seconds,
        )
        self.session.add(recording)
        self.session.commit()
        logger.debug(f"Created recording: {recording}")
        return recording

    def get_recording(self, recording_id: int) -> Optional[SwingRecording]:
        return self.session.get(SwingRecording, recording_id)

    # ==================== Analysis Operations ====================

    def create_analysis(
        self,
        metrics: CorrectedMetrics,
        recording_id: Optional[int] = None,
        label: Optional[str] = None,
        pose_model: Optional[str] = None,
    ) -> SwingAnalysis:
        """
        Store corrected metrics as a report record.

        Args:
            metrics: Corrected swing metrics.
            recording_id: Recording the metrics came from, if stored.
            label: Free-form label for the report.
            pose_model: Pose backend used for the analysis.
        """
        record = metrics.to_report_record()
        analysis = SwingAnalysis(
            recording_id=recording_id,
            label=label,
            pose_model=pose_model,
            impact_frame=record["impact_frame"],
            total_frames=record["total_frames"],
            frame_rate=record["frame_rate"],
            load_duration_ms=record["load_duration_ms"],
            fire_duration_ms=record["fire_duration_ms"],
            tempo_ratio=record["tempo_ratio"],
            negative_move_frame=record["negative_move_frame"],
            max_pelvis_frame=record["max_pelvis_frame"],
            negative_move_time_ms=record["negative_move_time_ms"],
            max_pelvis_turn_time_ms=record["max_pelvis_turn_time_ms"],
            max_shoulder_turn_time_ms=record["max_shoulder_turn_time_ms"],
            tempo_ratio_score=record["tempo_ratio_score"],
            fire_duration_score=record["fire_duration_score"],
            body_score=record["body_score"],
            kinematic_sequence_gap=record["kinematic_sequence_gap"],
            peak_pelvis_rot_vel=record["peak_pelvis_rot_vel"],
            peak_shoulder_rot_vel=record["peak_shoulder_rot_vel"],
            peak_arm_rot_vel=record["peak_arm_rot_vel"],
            peak_bat_speed=record["peak_bat_speed"],
            bat_tracking_available=record["bat_tracking_available"],
            bat_tracking_reason=record["bat_tracking_reason"],
        )
        self.session.add(analysis)
        self.session.commit()
        logger.debug(f"Created analysis: {analysis}")
        return analysis

    def get_analysis(self, analysis_id: int) -> Optional[SwingAnalysis]:
        return self.session.get(SwingAnalysis, analysis_id)

    def get_analyses_for_recording(self, recording_id: int) -> List[SwingAnalysis]:
        stmt = (
            select(SwingAnalysis)
            .where(SwingAnalysis.recording_id == recording_id)
            .order_by(SwingAnalysis.analysis_id)
        )
        return list(self.session.scalars(stmt))

    # ==================== Statistics ====================

    def get_database_stats(self) -> Dict[str, int]:
        """Row counts per table."""
        return {
            "recordings": self.session.query(func.count(SwingRecording.recording_id)).scalar(),
            "analyses": self.session.query(func.count(SwingAnalysis.analysis_id)).scalar(),
            "analyses_with_bat_speed": self.session.query(func.count(SwingAnalysis.analysis_id))
            .filter(SwingAnalysis.peak_bat_speed.isnot(None))
            .scalar(),
        }
