"""Audio-based detection of the bat-ball contact sound."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class ImpactDetectionResult:
    """
    Outcome of an impact-sound check.

    Attributes:
        detected: Whether an impact was found.
        timestamp_ms: Time of the impact from listening start (0 if not detected).
        confidence: Detection confidence (0-1).
    """
    detected: bool
    timestamp_ms: float = 0.0
    confidence: float = 0.0


def normalize_samples(samples: np.ndarray) -> np.ndarray:
    """Scale integer PCM to [-1, 1]; float samples pass through."""
    samples = np.asarray(samples)
    if np.issubdtype(samples.dtype, np.integer):
        info = np.iinfo(samples.dtype)
        if info.min == 0:
            # Unsigned PCM is centred on the midpoint (e.g. 128 for uint8)
            mid = (info.max + 1) / 2.0
            return (samples.astype(np.float64) - mid) / mid
        return samples.astype(np.float64) / float(info.max)
    return samples.astype(np.float64)


def peak_amplitude(samples: np.ndarray) -> float:
    """Peak absolute amplitude of a block of samples."""
    if samples is None or len(samples) == 0:
        return 0.0
    return float(np.max(np.abs(normalize_samples(samples))))


class AudioImpactDetector:
    """
    Streaming detector for the contact sound.

    Each audio block is reduced to its peak amplitude. An impact is a
    block whose peak exceeds ``impact_threshold`` and is at least
    ``background_ratio`` times the running mean of all peaks seen so far.
    """

    def __init__(
        self,
        impact_threshold: float = 0.75,
        background_ratio: float = 3.0,
    ):
        self.impact_threshold = impact_threshold
        self.background_ratio = background_ratio
        self.reset()

    def reset(self) -> None:
        """Forget background statistics."""
        self._background = 0.0
        self._blocks_seen = 0
        self._max_amplitude = 0.0
        self._elapsed_ms = 0.0
        self._current_level = 0.0

    @property
    def current_level(self) -> float:
        """Peak amplitude of the most recent block (for level meters)."""
        return self._current_level

    @property
    def background_level(self) -> float:
        return self._background

    def process_block(
        self,
        samples: np.ndarray,
        sample_rate: Optional[int] = None,
    ) -> ImpactDetectionResult:
        """
        Feed one block of audio.

        Args:
            samples: Mono samples (float in [-1, 1] or integer PCM).
            sample_rate: Sample rate, used to advance the detector clock.

        Returns:
            ImpactDetectionResult for this block.
        """
        amplitude = peak_amplitude(samples)
        self._current_level = amplitude

        self._blocks_seen += 1
        self._background = (
            self._background * (self._blocks_seen - 1) + amplitude
        ) / self._blocks_seen
        self._max_amplitude = max(self._max_amplitude, amplitude)

        block_start_ms = self._elapsed_ms
        if sample_rate:
            self._elapsed_ms += len(samples) * 1000.0 / sample_rate

        is_spike = amplitude > self.impact_threshold
        is_significant = amplitude > self._background * self.background_ratio

        if is_spike and is_significant:
            confidence = min(amplitude / self._max_amplitude, 1.0)
            logger.debug(
                f"Impact sound at {block_start_ms:.0f}ms "
                f"(amplitude={amplitude:.2f}, background={self._background:.2f})"
            )
            return ImpactDetectionResult(
                detected=True,
                timestamp_ms=block_start_ms,
                confidence=confidence,
            )

        return ImpactDetectionResult(detected=False)

    @staticmethod
    def analyze_recorded_audio(
        samples: np.ndarray,
        sample_rate: int,
        impact_threshold: float = 0.75,
    ) -> ImpactDetectionResult:
        """
        Locate the impact in a finished recording.

        The loudest sample is taken as the impact if it exceeds the
        threshold.

        Args:
            samples: Mono samples of the whole recording.
            sample_rate: Sample rate in Hz.
            impact_threshold: Minimum normalized amplitude.

        Returns:
            ImpactDetectionResult with the impact timestamp.
        """
        if samples is None or len(samples) == 0:
            return ImpactDetectionResult(detected=False)

        magnitudes = np.abs(normalize_samples(samples))
        impact_index = int(np.argmax(magnitudes))
        max_amplitude = float(magnitudes[impact_index])

        if max_amplitude > impact_threshold:
            return ImpactDetectionResult(
                detected=True,
                timestamp_ms=impact_index * 1000.0 / sample_rate,
                confidence=min(max_amplitude, 1.0),
            )

        return ImpactDetectionResult(detected=False)
