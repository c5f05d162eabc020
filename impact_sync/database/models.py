"""SQLAlchemy models for recorded swings and their analyses."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class SwingRecording(Base):
    """
    A finalized impact-synchronized clip.

    Attributes:
        video_path: Location of the encoded clip.
        impact_frame_index: Contact frame within the clip.
        total_frames: Frame count of the clip at ``frame_rate``.
        impact_timestamp_ms: Contact time from buffer start.
    """
    __tablename__ = "swing_recordings"

    recording_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    video_path: Mapped[str] = mapped_column(String(500), nullable=False)
    impact_frame_index: Mapped[int] = mapped_column(Integer, nullable=False)
    total_frames: Mapped[int] = mapped_column(Integer, nullable=False)
    frame_rate: Mapped[float] = mapped_column(Float, nullable=False)
    impact_timestamp_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pre_impact_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    post_impact_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    analyses: Mapped[List["SwingAnalysis"]] = relationship(
        "SwingAnalysis", back_populates="recording", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<SwingRecording(id={self.recording_id}, impact={self.impact_frame_index}/"
            f"{self.total_frames} @ {self.frame_rate}fps)>"
        )


class SwingAnalysis(Base):
    """
    Corrected kinematic metrics for one recording.

    Velocities are in degrees per second after bias correction. Nullable
    metrics are undefined rather than zero (tempo with a zero-length fire
    phase, bat speed when tracking was not available).
    """
    __tablename__ = "swing_analyses"

    analysis_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recording_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("swing_recordings.recording_id"), nullable=True, index=True
    )
    label: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pose_model: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Timing
    impact_frame: Mapped[int] = mapped_column(Integer, nullable=False)
    total_frames: Mapped[int] = mapped_column(Integer, nullable=False)
    frame_rate: Mapped[float] = mapped_column(Float, nullable=False)
    load_duration_ms: Mapped[float] = mapped_column(Float, nullable=False)
    fire_duration_ms: Mapped[float] = mapped_column(Float, nullable=False)
    tempo_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    negative_move_frame: Mapped[int] = mapped_column(Integer, nullable=False)
    max_pelvis_frame: Mapped[int] = mapped_column(Integer, nullable=False)
    negative_move_time_ms: Mapped[float] = mapped_column(Float, nullable=False)
    max_pelvis_turn_time_ms: Mapped[float] = mapped_column(Float, nullable=False)
    max_shoulder_turn_time_ms: Mapped[float] = mapped_column(Float, nullable=False)

    # Scores
    tempo_ratio_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    fire_duration_score: Mapped[float] = mapped_column(Float, nullable=False)
    body_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    kinematic_sequence_gap: Mapped[float] = mapped_column(Float, nullable=False)

    # Corrected peak velocities
    peak_pelvis_rot_vel: Mapped[int] = mapped_column(Integer, nullable=False)
    peak_shoulder_rot_vel: Mapped[int] = mapped_column(Integer, nullable=False)
    peak_arm_rot_vel: Mapped[int] = mapped_column(Integer, nullable=False)
    peak_bat_speed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bat_tracking_available: Mapped[bool] = mapped_column(Boolean, default=False)
    bat_tracking_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    recording: Mapped[Optional["SwingRecording"]] = relationship(
        "SwingRecording", back_populates="analyses"
    )

    def __repr__(self) -> str:
        return (
            f"<SwingAnalysis(id={self.analysis_id}, tempo={self.tempo_ratio}, "
            f"pelvis={self.peak_pelvis_rot_vel}, torso={self.peak_shoulder_rot_vel})>"
        )
