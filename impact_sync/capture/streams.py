"""Capture sources: where the recorder gets its camera (and audio) chunks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple, Union

import cv2
import numpy as np

from impact_sync.capture.session import MediaChunk
from impact_sync.exceptions import CaptureAcquisitionError, RecorderRuntimeError

logger = logging.getLogger(__name__)


class CaptureStream(ABC):
    """
    An open, exclusively owned capture stream.

    Streams deliver media in chunks of roughly ``chunk_interval_ms``.
    Only the recorder session that opened a stream may read from it.
    After ``stop()`` the chunk being read is returned early with whatever
    it holds, and later reads return None.
    """

    def __init__(self, negotiated_frame_rate: float):
        self.negotiated_frame_rate = negotiated_frame_rate
        self._closed = False
        self._stopping = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    @abstractmethod
    async def read_chunk(self) -> Optional[MediaChunk]:
        """
        Wait for the next chunk.

        Returns:
            The next MediaChunk, or None if the stream has ended.
        """
        pass

    def stop(self) -> None:
        """Flush the chunk in progress and end the stream after it."""
        self._stopping = True

    def close(self) -> None:
        """Release the underlying device. Safe to call more than once."""
        self._closed = True


class CaptureSource(ABC):
    """Factory for capture streams (camera + optional microphone)."""

    @abstractmethod
    async def open(self, frame_rate: float, chunk_interval_ms: float) -> CaptureStream:
        """
        Acquire a capture stream.

        Args:
            frame_rate: Requested frame rate (best effort).
            chunk_interval_ms: Target duration of each delivered chunk.

        Returns:
            An open CaptureStream.

        Raises:
            CaptureAcquisitionError: If the device is denied or unavailable.
        """
        pass


class OpenCVCameraStream(CaptureStream):
    """
    Chunked reader over an open ``cv2.VideoCapture`` device.

    ``cap.read()`` blocks for a frame time, so it runs in a worker thread.
    The device is released only once no read is in flight.
    """

    def __init__(
        self,
        cap: "cv2.VideoCapture",
        negotiated_frame_rate: float,
        chunk_interval_ms: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(negotiated_frame_rate)
        self._cap = cap
        self.chunk_interval_ms = chunk_interval_ms
        self.clock = clock
        self._sequence = 0
        self._pending_read: Optional[asyncio.Future] = None

    async def _read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        self._pending_read = asyncio.ensure_future(asyncio.to_thread(self._cap.read))
        # Shielded so a cancelled pump never releases the device mid-read
        return await asyncio.shield(self._pending_read)

    async def read_chunk(self) -> Optional[MediaChunk]:
        if self._closed or self._stopping:
            return None

        chunk_start = self.clock()
        frames = []

        while not self._stopping and (self.clock() - chunk_start) * 1000.0 < self.chunk_interval_ms:
            ret, frame = await self._read_frame()
            if self._closed:
                return None
            if not ret:
                raise RecorderRuntimeError("Camera stopped delivering frames")
            frames.append(frame)

        if not frames:
            return None

        chunk = MediaChunk(
            sequence=self._sequence,
            captured_at=self.clock(),
            frames=frames,
        )
        self._sequence += 1
        return chunk

    def _release_capture(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug("Camera released")

    def close(self) -> None:
        super().close()
        pending = self._pending_read
        if pending is not None and not pending.done():
            pending.add_done_callback(lambda _: self._release_capture())
        else:
            self._release_capture()


class OpenCVCameraSource(CaptureSource):
    """
    Camera capture through OpenCV.

    OpenCV delivers video only; chunks from this source carry no audio.
    """

    def __init__(
        self,
        device: Union[int, str] = 0,
        width: int = 1280,
        height: int = 720,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.device = device
        self.width = width
        self.height = height
        self.clock = clock

    async def open(self, frame_rate: float, chunk_interval_ms: float) -> CaptureStream:
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            raise CaptureAcquisitionError(f"Camera not available: {self.device}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, frame_rate)

        negotiated = cap.get(cv2.CAP_PROP_FPS) or frame_rate
        logger.info(
            f"Camera {self.device} opened: requested {frame_rate}fps, "
            f"negotiated {negotiated}fps"
        )

        return OpenCVCameraStream(
            cap,
            negotiated_frame_rate=negotiated,
            chunk_interval_ms=chunk_interval_ms,
            clock=self.clock,
        )
