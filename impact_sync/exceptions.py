"""Exception types raised by the capture and analysis pipeline."""


class ImpactSyncError(Exception):
    """Base class for all impact-sync errors."""


class CaptureAcquisitionError(ImpactSyncError):
    """Camera or microphone could not be acquired (denied or unavailable)."""


class RecorderRuntimeError(ImpactSyncError):
    """The capture stream or clip writer failed while a session was active."""


class RecordingCancelledError(ImpactSyncError):
    """The session was cancelled; no recording artifact was produced."""


class RecorderStateError(ImpactSyncError):
    """An operation was requested in a state that does not allow it."""


class FrameDecodeError(ImpactSyncError):
    """The recorded clip could not be opened or decoded."""


class KeypointProviderBusyError(ImpactSyncError):
    """The keypoint provider is already owned by another analysis run."""
