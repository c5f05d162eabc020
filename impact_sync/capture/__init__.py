"""Impact-synchronized capture: capture sources, session state and the recorder."""

from impact_sync.capture.audio_impact import AudioImpactDetector, ImpactDetectionResult
from impact_sync.capture.recorder import ImpactSyncRecorder, RecorderConfig, RecorderState
from impact_sync.capture.session import (
    CaptureSession,
    MediaChunk,
    RecordingArtifact,
    RecordingMetadata,
    compute_frame_indices,
    frame_index_to_timestamp,
    timestamp_to_frame_index,
)
from impact_sync.capture.streams import CaptureSource, CaptureStream, OpenCVCameraSource

__all__ = [
    "AudioImpactDetector",
    "ImpactDetectionResult",
    "ImpactSyncRecorder",
    "RecorderConfig",
    "RecorderState",
    "CaptureSession",
    "MediaChunk",
    "RecordingArtifact",
    "RecordingMetadata",
    "compute_frame_indices",
    "frame_index_to_timestamp",
    "timestamp_to_frame_index",
    "CaptureSource",
    "CaptureStream",
    "OpenCVCameraSource",
]
