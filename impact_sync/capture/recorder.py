"""Impact-synchronized recorder: continuous buffer frozen around a contact instant."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from impact_sync.capture.audio_impact import AudioImpactDetector
from impact_sync.capture.session import (
    CaptureSession,
    MediaChunk,
    RecordingArtifact,
    RecordingMetadata,
    compute_frame_indices,
)
from impact_sync.capture.streams import CaptureSource, CaptureStream
from impact_sync.exceptions import (
    CaptureAcquisitionError,
    RecorderRuntimeError,
    RecorderStateError,
    RecordingCancelledError,
)
from impact_sync.utils.logging_config import LoggerMixin
from impact_sync.utils.video_utils import ClipWriter


class RecorderState(Enum):
    """Recorder lifecycle states."""
    IDLE = "idle"
    BUFFERING = "buffering"
    CAPTURING_POST_IMPACT = "capturing_post_impact"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = (RecorderState.COMPLETED, RecorderState.CANCELLED, RecorderState.FAILED)
ACTIVE_STATES = (RecorderState.BUFFERING, RecorderState.CAPTURING_POST_IMPACT)


@dataclass
class RecorderConfig:
    """
    Configuration for the impact-synchronized recorder.

    Attributes:
        frame_rate: Requested capture frame rate.
        post_impact_ms: Fixed capture window after the impact signal.
        buffer_seconds: Pre-impact buffer that must fill before an impact is accepted.
        chunk_interval_ms: Target duration of each delivered chunk.
        min_quality_frame_rate: Negotiated rates below this produce a quality warning.
        codec: Fourcc of the output clip.
        output_dir: Directory for finished clips.
        file_extension: Extension of the output clip.
        auto_detect_impact: Trigger the impact from the audio channel.
        audio_impact_threshold: Normalized amplitude for audio impact detection.
    """
    frame_rate: float = 120.0
    post_impact_ms: float = 500.0
    buffer_seconds: float = 2.0
    chunk_interval_ms: float = 100.0
    min_quality_frame_rate: float = 60.0
    codec: str = "mp4v"
    output_dir: str = "data/recordings"
    file_extension: str = "mp4"
    auto_detect_impact: bool = False
    audio_impact_threshold: float = 0.75


WriterFactory = Callable[[Path, float], ClipWriter]


class ImpactSyncRecorder(LoggerMixin):
    """
    Capture state machine producing impact-synchronized clips.

    ``idle -> buffering -> capturing_post_impact -> finalizing -> completed``,
    with ``cancelled`` reachable from any non-terminal state and ``failed``
    from the active states. The capture stream and the clip writer are
    released on every exit path.

    Example:
        recorder = ImpactSyncRecorder(OpenCVCameraSource(0))
        async with recorder:
            await recorder.start_buffering()
            ...
            recorder.trigger_impact()
            artifact = await recorder.wait_for_artifact()
    """

    def __init__(
        self,
        source: CaptureSource,
        config: Optional[RecorderConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        writer_factory: Optional[WriterFactory] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the recorder.

        Args:
            source: Capture source to acquire the stream from.
            config: Recorder configuration. Uses defaults if not provided.
            clock: Monotonic clock in seconds (impact timing is measured with it).
            writer_factory: Builds the clip writer for (path, fps).
            on_warning: Called with non-fatal quality warnings.
        """
        self.source = source
        self.config = config or RecorderConfig()
        self.clock = clock
        self.writer_factory = writer_factory or self._default_writer
        self.on_warning = on_warning

        self.state = RecorderState.IDLE
        self.session: Optional[CaptureSession] = None
        self.negotiated_frame_rate: Optional[float] = None
        self.artifact: Optional[RecordingArtifact] = None

        self._stream: Optional[CaptureStream] = None
        self._writer: Optional[ClipWriter] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._post_impact_task: Optional[asyncio.Task] = None
        self._result: Optional[asyncio.Future] = None
        self._audio_detector: Optional[AudioImpactDetector] = None

    def _default_writer(self, path: Path, fps: float) -> ClipWriter:
        return ClipWriter(path, fps=fps, codec=self.config.codec)

    # ==================== Status ====================

    @property
    def buffer_progress(self) -> float:
        """Fraction (0-1) of the pre-impact buffer filled so far."""
        if self.session is None or self.state not in ACTIVE_STATES:
            return 0.0
        if self.config.buffer_seconds <= 0:
            return 1.0
        elapsed = self.clock() - self.session.buffer_start_time
        return min(elapsed / self.config.buffer_seconds, 1.0)

    @property
    def is_buffer_ready(self) -> bool:
        return self.buffer_progress >= 1.0

    @property
    def resources_released(self) -> bool:
        """True when neither the stream nor the clip writer is held."""
        return self._stream is None and self._writer is None

    # ==================== Transitions ====================

    async def start_buffering(self) -> None:
        """
        Acquire the capture stream and start continuous chunked recording.

        Raises:
            RecorderStateError: If the recorder is not idle.
            CaptureAcquisitionError: If the camera cannot be acquired.
            RecorderRuntimeError: If the clip writer cannot be created.
        """
        if self.state is not RecorderState.IDLE:
            raise RecorderStateError(f"Cannot start buffering from state {self.state.value}")

        cfg = self.config
        try:
            self._stream = await self.source.open(cfg.frame_rate, cfg.chunk_interval_ms)
        except CaptureAcquisitionError:
            self.state = RecorderState.FAILED
            self.logger.error("Camera access denied or not available")
            raise
        except Exception as e:
            self.state = RecorderState.FAILED
            self.logger.error(f"Failed to acquire capture stream: {e}")
            raise CaptureAcquisitionError(f"Failed to acquire capture stream: {e}") from e

        if self.state is not RecorderState.IDLE:
            # Cancelled while waiting for the device
            self._release(discard=True)
            raise RecordingCancelledError("Recording cancelled during stream acquisition")

        negotiated = self._stream.negotiated_frame_rate or cfg.frame_rate
        self.negotiated_frame_rate = negotiated
        if negotiated < cfg.min_quality_frame_rate:
            message = f"Camera supports {negotiated:g}fps. Results may be less accurate."
            self.logger.warning(message)
            if self.on_warning:
                self.on_warning(message)

        output_path = Path(cfg.output_dir) / (
            f"impact-sync-{datetime.now().strftime('%Y%m%d-%H%M%S-%f')}.{cfg.file_extension}"
        )
        try:
            self._writer = self.writer_factory(output_path, negotiated)
        except Exception as e:
            self._release(discard=True)
            self.state = RecorderState.FAILED
            raise RecorderRuntimeError(f"Could not create clip writer: {e}") from e

        if cfg.auto_detect_impact:
            self._audio_detector = AudioImpactDetector(cfg.audio_impact_threshold)

        loop = asyncio.get_running_loop()
        self._result = loop.create_future()
        # Mark exceptions as retrieved so unobserved cancellations stay quiet
        self._result.add_done_callback(lambda f: f.cancelled() or f.exception())

        self.session = CaptureSession(
            buffer_start_time=self.clock(),
            post_impact_duration_ms=cfg.post_impact_ms,
            sampled_frame_rate=negotiated,
        )
        self.state = RecorderState.BUFFERING
        self._pump_task = loop.create_task(self._pump())
        self.logger.info(f"Buffering started at {negotiated:g}fps -> {output_path}")

    def trigger_impact(self) -> None:
        """
        Mark the impact instant and start the fixed post-impact window.

        Raises:
            RecorderStateError: If not buffering, the impact already fired,
                or the pre-impact buffer is not full yet.
        """
        if self.state is not RecorderState.BUFFERING:
            raise RecorderStateError(f"Impact not accepted in state {self.state.value}")
        if not self.is_buffer_ready:
            raise RecorderStateError(
                f"Pre-impact buffer not ready ({self.buffer_progress:.0%} of "
                f"{self.config.buffer_seconds:g}s)"
            )

        self.session.mark_impact(self.clock())
        self.state = RecorderState.CAPTURING_POST_IMPACT
        self._post_impact_task = asyncio.get_running_loop().create_task(
            self._capture_post_impact()
        )
        self.logger.info(
            f"Impact at {self.session.impact_elapsed_ms:.0f}ms; "
            f"capturing {self.config.post_impact_ms:g}ms post-impact"
        )

    async def wait_for_artifact(self) -> RecordingArtifact:
        """
        Wait for the session to finish.

        Returns:
            The finished RecordingArtifact.

        Raises:
            RecordingCancelledError: If the session was cancelled.
            RecorderRuntimeError: If the session failed.
        """
        if self._result is None:
            raise RecorderStateError("Recorder has not started buffering")
        return await self._result

    def cancel(self) -> None:
        """
        Abort the session.

        Releases the stream and clip writer immediately and discards all
        buffered media. No artifact is emitted.
        """
        if self.state in TERMINAL_STATES:
            return

        previous = self.state
        self._release(discard=True)
        self.state = RecorderState.CANCELLED
        if self._result is not None and not self._result.done():
            self._result.set_exception(RecordingCancelledError("Recording cancelled"))
        self.logger.info(f"Recording cancelled (was {previous.value})")

    # ==================== Internals ====================

    async def _pump(self) -> None:
        """Pull chunks from the stream until it is stopped or the session ends."""
        try:
            while self.state in ACTIVE_STATES or self.state is RecorderState.FINALIZING:
                chunk = await self._stream.read_chunk()
                if self.state in TERMINAL_STATES:
                    break
                if chunk is None:
                    if self._stream.is_stopping:
                        break
                    raise RecorderRuntimeError("Capture stream ended unexpectedly")
                self._consume_chunk(chunk)
                if self._stream.is_stopping:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(e)

    def _consume_chunk(self, chunk: MediaChunk) -> None:
        for frame in chunk.frames:
            self._writer.write(frame)
        self.session.add_chunk(chunk)

        if self._audio_detector is not None and chunk.audio is not None:
            result = self._audio_detector.process_block(chunk.audio, chunk.audio_sample_rate)
            if result.detected and self.state is RecorderState.BUFFERING and self.is_buffer_ready:
                self.logger.info(
                    f"Impact auto-detected (confidence {result.confidence:.0%}, "
                    f"background level {self._audio_detector.background_level:.2f})"
                )
                self.trigger_impact()

    async def _capture_post_impact(self) -> None:
        await asyncio.sleep(self.config.post_impact_ms / 1000.0)
        if self.state is RecorderState.CAPTURING_POST_IMPACT:
            await self._finalize()

    async def _drain_pump(self) -> None:
        """Stop the stream and wait for the pump to write the chunk in flight."""
        task = self._pump_task
        self._stream.stop()
        if task is None:
            return
        timeout = max(1.0, 3 * self.config.chunk_interval_ms / 1000.0)
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            self.logger.warning("Capture stream did not stop in time; last chunk dropped")
            task.cancel()
        self._pump_task = None

    async def _finalize(self) -> None:
        """Flush the last chunk, stop recording and assemble the artifact."""
        self.state = RecorderState.FINALIZING
        session = self.session
        await self._drain_pump()
        if self.state is not RecorderState.FINALIZING:
            # Failed or cancelled while draining
            return

        try:
            if self._writer.frames_written == 0:
                raise RecorderRuntimeError("No frames were captured")
            video_path = self._writer.close()
            frame_rate = session.sampled_frame_rate
            impact_elapsed_ms = session.impact_elapsed_ms
            total_frames, impact_frame_index = compute_frame_indices(
                impact_elapsed_ms, session.post_impact_duration_ms, frame_rate
            )
            artifact = RecordingArtifact(
                video_path=Path(video_path),
                impact_frame_index=impact_frame_index,
                total_frames=total_frames,
                impact_timestamp_ms=impact_elapsed_ms,
                metadata=RecordingMetadata(
                    pre_impact_seconds=impact_elapsed_ms / 1000.0,
                    post_impact_seconds=session.post_impact_duration_ms / 1000.0,
                    frame_rate=frame_rate,
                ),
            )
        except Exception as e:
            self._fail(e)
            return

        session.finalized = True
        self._release(discard=False)
        self.artifact = artifact
        self.state = RecorderState.COMPLETED
        self._result.set_result(artifact)
        self.logger.info(
            f"Captured {artifact.total_frames} frames! "
            f"Impact at frame {artifact.impact_frame_index}."
        )

    def _fail(self, error: BaseException) -> None:
        if self.state in TERMINAL_STATES:
            return
        self.logger.error(f"Recording error occurred: {error}")
        self._release(discard=True)
        self.state = RecorderState.FAILED
        if self._result is not None and not self._result.done():
            if isinstance(error, RecorderRuntimeError):
                failure = error
            else:
                failure = RecorderRuntimeError(f"Recording error occurred: {error}")
                failure.__cause__ = error
            self._result.set_exception(failure)

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def _release(self, discard: bool) -> None:
        """Release stream and writer; with ``discard`` also drop buffered media."""
        self._cancel_task(self._pump_task)
        self._cancel_task(self._post_impact_task)
        self._pump_task = None
        self._post_impact_task = None

        try:
            if self._writer is not None:
                if discard:
                    self._writer.discard()
                else:
                    self._writer.close()
        finally:
            self._writer = None
            try:
                if self._stream is not None:
                    self._stream.close()
            finally:
                self._stream = None
                if discard and self.session is not None:
                    self.session.discard()
                if self._audio_detector is not None:
                    self._audio_detector.reset()
                    self._audio_detector = None

    # ==================== Scoped use ====================

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        # Teardown before completion cancels the session
        self.cancel()
        return False
