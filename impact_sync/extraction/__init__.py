"""Frame extraction from finished clips."""

from impact_sync.extraction.frame_extractor import (
    ExtractedFrame,
    FrameSequence,
    extract_frames,
    sample_count,
    sample_timestamps,
)

__all__ = [
    "ExtractedFrame",
    "FrameSequence",
    "extract_frames",
    "sample_count",
    "sample_timestamps",
]
