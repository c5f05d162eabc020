"""
Bat tracking across a sampled frame sequence.

Each frame is searched for the bat independently; adjacent detected frames
give an angular velocity sample, and the robust peak is the largest sample
whose confidence clears a threshold. Tracking is an optional stage: any
failure is reported as "not available" rather than raised.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
from tqdm import tqdm

from impact_sync.extraction.frame_extractor import ExtractedFrame
from impact_sync.utils.angles import angular_difference

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.6


@dataclass
class BatDetection:
    """Bat found (or not) in a single image."""
    detected: bool
    bbox: Optional[Tuple[float, float, float, float]] = None  # x, y, width, height
    center_x: Optional[float] = None
    center_y: Optional[float] = None
    angle: Optional[float] = None  # degrees from horizontal
    confidence: float = 0.0

    @classmethod
    def missing(cls) -> "BatDetection":
        return cls(detected=False)


@dataclass
class BatPosition:
    frame_index: int
    timestamp_ms: float
    detected: bool
    x: Optional[float] = None
    y: Optional[float] = None
    angle: Optional[float] = None
    confidence: float = 0.0


@dataclass
class BatVelocity:
    timestamp_ms: float
    velocity: float  # deg/s
    confidence: float
    detected: bool


@dataclass
class BatTrackingResult:
    """
    Outcome of the bat tracking stage.

    ``peak_velocity`` is None when tracking is not available, in which case
    ``reason`` says why (never detected, low confidence, or a stage error).
    """
    positions: List[BatPosition] = field(default_factory=list)
    velocities: List[BatVelocity] = field(default_factory=list)
    peak_velocity: Optional[float] = None
    reason: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.peak_velocity is not None

    @property
    def frames_detected(self) -> int:
        return sum(1 for p in self.positions if p.detected)

    @classmethod
    def not_available(
        cls,
        reason: str,
        positions: Optional[List[BatPosition]] = None,
        velocities: Optional[List[BatVelocity]] = None,
    ) -> "BatTrackingResult":
        return cls(
            positions=positions or [],
            velocities=velocities or [],
            peak_velocity=None,
            reason=reason,
        )


def calculate_bat_angular_velocity(
    positions: Sequence[BatPosition],
    angle_period: float = 360.0,
) -> List[BatVelocity]:
    """
    Angular velocity for each adjacent pair of positions.

    A pair is valid only when the bat was detected in both frames; the
    sample confidence is the lower of the two detection confidences.
    """
    velocities = []
    for prev, curr in zip(positions, positions[1:]):
        delta_s = (curr.timestamp_ms - prev.timestamp_ms) / 1000.0
        valid = (
            prev.detected and curr.detected
            and prev.angle is not None and curr.angle is not None
            and delta_s > 0
        )
        if not valid:
            velocities.append(BatVelocity(
                timestamp_ms=curr.timestamp_ms,
                velocity=0.0,
                confidence=0.0,
                detected=False,
            ))
            continue

        velocities.append(BatVelocity(
            timestamp_ms=curr.timestamp_ms,
            velocity=angular_difference(curr.angle, prev.angle, angle_period) / delta_s,
            confidence=min(prev.confidence, curr.confidence),
            detected=True,
        ))
    return velocities


def get_max_bat_velocity(
    velocities: Sequence[BatVelocity],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> Optional[float]:
    """Peak velocity over confident samples, or None if there are none."""
    valid = [v.velocity for v in velocities if v.detected and v.confidence >= min_confidence]
    if not valid:
        return None
    return max(valid)


class BatDetector(ABC):
    """Single-image bat detector."""

    # Orientation period of reported angles: 180 for undirected line segments
    angle_period: float = 360.0

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    def initialize(self) -> None:
        pass

    @abstractmethod
    def detect(self, image: np.ndarray) -> BatDetection:
        pass

    def cleanup(self) -> None:
        pass


class HoughLineBatDetector(BatDetector):
    """
    Edge-based bat detector.

    Finds the longest straight edge segment (Canny + probabilistic Hough) and
    treats it as the bat. Confidence grows with segment length relative to
    the frame diagonal.
    """

    angle_period = 180.0

    def __init__(
        self,
        canny_low: int = 50,
        canny_high: int = 150,
        hough_threshold: int = 50,
        min_length_fraction: float = 0.1,
        max_line_gap: int = 10,
        full_confidence_fraction: float = 0.3,
    ):
        """
        Args:
            canny_low: Lower Canny hysteresis threshold.
            canny_high: Upper Canny hysteresis threshold.
            hough_threshold: Accumulator votes required for a line.
            min_length_fraction: Shortest accepted segment, as a fraction of the diagonal.
            max_line_gap: Largest gap (pixels) bridged within a segment.
            full_confidence_fraction: Segment length (fraction of diagonal) scored 1.0.
        """
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.hough_threshold = hough_threshold
        self.min_length_fraction = min_length_fraction
        self.max_line_gap = max_line_gap
        self.full_confidence_fraction = full_confidence_fraction

    @property
    def name(self) -> str:
        return "hough"

    def detect(self, image: np.ndarray) -> BatDetection:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)

        h, w = gray.shape[:2]
        diagonal = math.hypot(w, h)
        lines = cv2.HoughLinesP(
            edges,
            1,
            np.pi / 180,
            self.hough_threshold,
            minLineLength=max(1, int(diagonal * self.min_length_fraction)),
            maxLineGap=self.max_line_gap,
        )
        if lines is None or len(lines) == 0:
            return BatDetection.missing()

        segments = lines.reshape(-1, 4).astype(float)
        lengths = np.hypot(segments[:, 2] - segments[:, 0], segments[:, 3] - segments[:, 1])
        best = int(np.argmax(lengths))
        x1, y1, x2, y2 = segments[best]
        length = float(lengths[best])

        angle = math.degrees(math.atan2(y2 - y1, x2 - x1)) % 180.0

        return BatDetection(
            detected=True,
            bbox=(min(x1, x2), min(y1, y2), abs(x2 - x1), abs(y2 - y1)),
            center_x=(x1 + x2) / 2,
            center_y=(y1 + y2) / 2,
            angle=angle,
            confidence=min(1.0, length / (diagonal * self.full_confidence_fraction)),
        )


class YoloBatDetector(BatDetector):
    """
    Keypoint-model bat detector.

    Expects an ultralytics pose model trained on bat keypoints with the knob
    first and the cap second. The angle runs knob to cap.
    """

    KNOB_INDEX = 0
    CAP_INDEX = 1

    def __init__(
        self,
        weights: Union[str, Path],
        conf_threshold: float = 0.25,
        keypoint_threshold: float = 0.5,
        device: Optional[str] = None,
    ):
        self.weights = Path(weights)
        self.conf_threshold = conf_threshold
        self.keypoint_threshold = keypoint_threshold
        self.device = device
        self._model = None

    @property
    def name(self) -> str:
        return "yolo"

    def initialize(self) -> None:
        if self._model is not None:
            return
        if not self.weights.exists():
            raise FileNotFoundError(f"Bat model weights not found: {self.weights}")

        from ultralytics import YOLO

        logger.info(f"Loading bat keypoint model: {self.weights}")
        self._model = YOLO(str(self.weights))

    def detect(self, image: np.ndarray) -> BatDetection:
        if self._model is None:
            self.initialize()

        results = self._model(image, conf=self.conf_threshold, device=self.device, verbose=False)
        if not results or results[0].keypoints is None or results[0].boxes is None:
            return BatDetection.missing()

        boxes = results[0].boxes
        if len(boxes) == 0:
            return BatDetection.missing()

        confidences = boxes.conf.cpu().numpy()
        best = int(np.argmax(confidences))
        kps = results[0].keypoints.data[best].cpu().numpy()

        knob, cap = kps[self.KNOB_INDEX], kps[self.CAP_INDEX]
        if knob[2] < self.keypoint_threshold or cap[2] < self.keypoint_threshold:
            return BatDetection.missing()

        x1, y1, x2, y2 = boxes.xyxy[best].cpu().numpy().tolist()
        return BatDetection(
            detected=True,
            bbox=(x1, y1, x2 - x1, y2 - y1),
            center_x=float(knob[0] + cap[0]) / 2,
            center_y=float(knob[1] + cap[1]) / 2,
            angle=math.degrees(math.atan2(cap[1] - knob[1], cap[0] - knob[0])),
            confidence=float(confidences[best]),
        )

    def cleanup(self) -> None:
        self._model = None


class BatTracker:
    """
    Tracks the bat through a frame sequence with a single-image detector.

    Example:
        tracker = BatTracker(HoughLineBatDetector())
        result = tracker.track(frames)
        if result.available:
            print(result.peak_velocity)
    """

    def __init__(
        self,
        detector: BatDetector,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        show_progress: bool = False,
    ):
        self.detector = detector
        self.min_confidence = min_confidence
        self.show_progress = show_progress

    def track_positions(self, frames: Iterable[ExtractedFrame]) -> List[BatPosition]:
        """Per-frame bat position, one entry per frame in order."""
        iterator = frames
        if self.show_progress:
            total = len(frames) if hasattr(frames, "__len__") else None
            iterator = tqdm(frames, total=total, desc=f"Bat tracking ({self.detector.name})")

        positions = []
        for frame in iterator:
            detection = self.detector.detect(frame.image)
            if detection.detected:
                positions.append(BatPosition(
                    frame_index=frame.frame_index,
                    timestamp_ms=frame.timestamp_ms,
                    detected=True,
                    x=detection.center_x,
                    y=detection.center_y,
                    angle=detection.angle,
                    confidence=detection.confidence,
                ))
            else:
                positions.append(BatPosition(
                    frame_index=frame.frame_index,
                    timestamp_ms=frame.timestamp_ms,
                    detected=False,
                ))
        return positions

    def track(self, frames: Iterable[ExtractedFrame]) -> BatTrackingResult:
        """Track the bat and compute its robust peak angular velocity."""
        self.detector.initialize()
        try:
            positions = self.track_positions(frames)
        finally:
            self.detector.cleanup()

        velocities = calculate_bat_angular_velocity(positions, self.detector.angle_period)
        peak = get_max_bat_velocity(velocities, self.min_confidence)

        result = BatTrackingResult(positions=positions, velocities=velocities, peak_velocity=peak)
        logger.info(f"Bat detected in {result.frames_detected}/{len(positions)} frames")

        if peak is None:
            result.reason = (
                "bat not detected"
                if result.frames_detected == 0
                else f"no velocity sample with confidence >= {self.min_confidence}"
            )
        return result


def run_bat_stage(frames: Iterable[ExtractedFrame], tracker: BatTracker) -> BatTrackingResult:
    """
    Run bat tracking inside its own error boundary.

    Any exception is logged and turned into a "not available" result so the
    pose analysis is never affected.
    """
    try:
        return tracker.track(frames)
    except Exception as e:
        logger.warning(f"Bat tracking failed, continuing without bat velocity: {e}", exc_info=True)
        return BatTrackingResult.not_available(f"tracking error: {e}")


def create_bat_detector(name: str, **kwargs) -> BatDetector:
    """Build a bat detector by name ("hough" or "yolo")."""
    if name == "hough":
        return HoughLineBatDetector(**kwargs)
    if name == "yolo":
        return YoloBatDetector(**kwargs)
    raise ValueError(f"Unknown bat detector: {name}")
