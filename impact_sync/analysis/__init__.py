"""Kinematic sequence analysis and velocity bias correction."""

from impact_sync.analysis.calibration import (
    CorrectedMetrics,
    CorrectionFactors,
    apply_bias_correction,
    round_half_up,
)
from impact_sync.analysis.kinematic_sequence import (
    KinematicSequenceResult,
    analyze_kinematic_sequence,
    arm_angle,
    find_max_pelvis_velocity_frame,
    find_negative_move_frame,
    peak_segment_velocity,
    pelvis_angle,
    torso_angle,
)

__all__ = [
    "CorrectedMetrics",
    "CorrectionFactors",
    "apply_bias_correction",
    "round_half_up",
    "KinematicSequenceResult",
    "analyze_kinematic_sequence",
    "arm_angle",
    "find_max_pelvis_velocity_frame",
    "find_negative_move_frame",
    "peak_segment_velocity",
    "pelvis_angle",
    "torso_angle",
]
