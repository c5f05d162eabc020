"""Optional bat tracking stage."""

from impact_sync.tracking.bat_tracker import (
    BatDetection,
    BatDetector,
    BatPosition,
    BatTracker,
    BatTrackingResult,
    BatVelocity,
    HoughLineBatDetector,
    YoloBatDetector,
    calculate_bat_angular_velocity,
    create_bat_detector,
    get_max_bat_velocity,
    run_bat_stage,
)

__all__ = [
    "BatDetection",
    "BatDetector",
    "BatPosition",
    "BatTracker",
    "BatTrackingResult",
    "BatVelocity",
    "HoughLineBatDetector",
    "YoloBatDetector",
    "calculate_bat_angular_velocity",
    "create_bat_detector",
    "get_max_bat_velocity",
    "run_bat_stage",
]
