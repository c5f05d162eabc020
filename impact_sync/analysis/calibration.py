"""
Empirical bias correction of camera-derived peak velocities.

2D pose and object velocities systematically underestimate values measured
with marker-based reference systems. Each segment gets a fixed
multiplicative factor applied to the raw estimate.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from impact_sync.analysis.kinematic_sequence import KinematicSequenceResult

logger = logging.getLogger(__name__)

# Ideal swing targets used by the report scores
TARGET_TEMPO_RATIO = 3.0
TARGET_FIRE_DURATION_MS = 150.0


@dataclass(frozen=True)
class CorrectionFactors:
    """Per-segment velocity multipliers."""
    pelvis: float = 2.0
    upper_torso: float = 1.4
    arm: float = 2.2
    bat: float = 1.3

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CorrectionFactors":
        if not data:
            return cls()
        known = {k: float(v) for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


@dataclass(frozen=True)
class CorrectedMetrics:
    """
    Final swing metrics: kinematic timing plus corrected peak velocities.

    ``bat_max_velocity`` is None when bat tracking was disabled or not
    available; ``bat_tracking_available`` distinguishes the two from a true
    reading.
    """
    impact_frame: int
    total_frames: int
    frame_rate: float
    load_duration_ms: float
    fire_duration_ms: float
    tempo_ratio: Optional[float]
    negative_move_frame: int
    max_pelvis_frame: int
    pelvis_max_velocity: int
    torso_max_velocity: int
    arm_max_velocity: int
    bat_max_velocity: Optional[int] = None
    bat_tracking_available: bool = False
    bat_tracking_reason: Optional[str] = None
    factors: CorrectionFactors = field(default_factory=CorrectionFactors)

    def _frame_time_ms(self, frame: int) -> float:
        return frame * (1000.0 / self.frame_rate)

    @property
    def tempo_ratio_score(self) -> Optional[float]:
        if self.tempo_ratio is None:
            return None
        return _clamp_score(100 - abs(self.tempo_ratio - TARGET_TEMPO_RATIO) * 20)

    @property
    def fire_duration_score(self) -> float:
        return _clamp_score(100 - abs(self.fire_duration_ms - TARGET_FIRE_DURATION_MS) / 2)

    @property
    def kinematic_sequence_gap(self) -> float:
        """Torso-over-pelvis velocity gain, scaled to tens of deg/s."""
        return max(0.0, (self.torso_max_velocity - self.pelvis_max_velocity) / 10)

    @property
    def body_score(self) -> Optional[float]:
        tempo_score = self.tempo_ratio_score
        if tempo_score is None:
            return None
        return (tempo_score + self.fire_duration_score) / 2

    def to_report_record(self) -> Dict[str, Any]:
        """Flat record handed to the persistence collaborator."""
        return {
            "impact_frame": self.impact_frame,
            "total_frames": self.total_frames,
            "frame_rate": self.frame_rate,
            "load_duration_ms": self.load_duration_ms,
            "fire_duration_ms": self.fire_duration_ms,
            "tempo_ratio": self.tempo_ratio,
            "negative_move_frame": self.negative_move_frame,
            "max_pelvis_frame": self.max_pelvis_frame,
            "negative_move_time_ms": self._frame_time_ms(self.negative_move_frame),
            "max_pelvis_turn_time_ms": self._frame_time_ms(self.max_pelvis_frame),
            "max_shoulder_turn_time_ms": self._frame_time_ms(self.impact_frame),
            "tempo_ratio_score": self.tempo_ratio_score,
            "fire_duration_score": self.fire_duration_score,
            "body_score": self.body_score,
            "kinematic_sequence_gap": self.kinematic_sequence_gap,
            "peak_pelvis_rot_vel": self.pelvis_max_velocity,
            "peak_shoulder_rot_vel": self.torso_max_velocity,
            "peak_arm_rot_vel": self.arm_max_velocity,
            "peak_bat_speed": self.bat_max_velocity,
            "bat_tracking_available": self.bat_tracking_available,
            "bat_tracking_reason": self.bat_tracking_reason,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def apply_bias_correction(
    result: KinematicSequenceResult,
    bat_velocity: Optional[float] = None,
    factors: Optional[CorrectionFactors] = None,
    bat_tracking_reason: Optional[str] = None,
) -> CorrectedMetrics:
    """
    Scale raw peak velocities by their correction factors.

    Always computed from the raw result, so repeated application to the same
    input gives the same output.

    Args:
        result: Raw kinematic sequence result.
        bat_velocity: Raw bat peak angular velocity, or None if not available.
        factors: Correction factors (defaults apply when omitted).
        bat_tracking_reason: Why bat velocity is absent, if it is.

    Returns:
        CorrectedMetrics with integer deg/s velocities.
    """
    factors = factors or CorrectionFactors()

    corrected_bat = round_half_up(bat_velocity * factors.bat) if bat_velocity is not None else None

    metrics = CorrectedMetrics(
        impact_frame=result.impact_frame,
        total_frames=result.total_frames,
        frame_rate=result.frame_rate,
        load_duration_ms=result.load_duration_ms,
        fire_duration_ms=result.fire_duration_ms,
        tempo_ratio=result.tempo_ratio,
        negative_move_frame=result.negative_move_frame,
        max_pelvis_frame=result.max_pelvis_frame,
        pelvis_max_velocity=round_half_up(result.pelvis_max_velocity * factors.pelvis),
        torso_max_velocity=round_half_up(result.torso_max_velocity * factors.upper_torso),
        arm_max_velocity=round_half_up(result.arm_max_velocity * factors.arm),
        bat_max_velocity=corrected_bat,
        bat_tracking_available=bat_velocity is not None,
        bat_tracking_reason=None if bat_velocity is not None else bat_tracking_reason,
        factors=factors,
    )

    logger.debug(
        f"Corrected velocities: pelvis {metrics.pelvis_max_velocity}, "
        f"torso {metrics.torso_max_velocity}, arm {metrics.arm_max_velocity}, "
        f"bat {metrics.bat_max_velocity}"
    )
    return metrics
