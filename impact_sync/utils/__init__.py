"""Utility modules for impact-sync capture and analysis."""

from impact_sync.utils.logging_config import LoggingSettings, configure_logging, get_logger, setup_logging
from impact_sync.utils.video_utils import ClipWriter, VideoInfo, get_video_info

__all__ = [
    "LoggingSettings",
    "configure_logging",
    "setup_logging",
    "get_logger",
    "ClipWriter",
    "VideoInfo",
    "get_video_info",
]
