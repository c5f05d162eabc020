"""Tests for bat tracking and its robust peak velocity."""

import cv2
import numpy as np
import pytest

from impact_sync.extraction.frame_extractor import ExtractedFrame
from impact_sync.tracking.bat_tracker import (
    BatDetection,
    BatDetector,
    BatPosition,
    BatTracker,
    HoughLineBatDetector,
    calculate_bat_angular_velocity,
    create_bat_detector,
    get_max_bat_velocity,
    run_bat_stage,
)
from impact_sync.utils.angles import angle_deltas, angular_difference


class ScriptedDetector(BatDetector):
    """Returns one pre-baked detection per call."""

    def __init__(self, detections, fail_at=None):
        self.detections = list(detections)
        self.fail_at = fail_at
        self.calls = 0
        self.cleaned_up = False

    @property
    def name(self):
        return "scripted"

    def detect(self, image):
        if self.calls == self.fail_at:
            raise RuntimeError("detector crashed")
        detection = self.detections[self.calls]
        self.calls += 1
        return detection

    def cleanup(self):
        self.cleaned_up = True


def seen(angle, confidence=0.9):
    return BatDetection(detected=True, center_x=0.0, center_y=0.0, angle=angle, confidence=confidence)


def make_frames(count, interval_ms=10.0):
    return [
        ExtractedFrame(frame_index=i, timestamp_ms=i * interval_ms, image=np.zeros((4, 4, 3), dtype=np.uint8))
        for i in range(count)
    ]


class TestAngularVelocity:

    def test_velocity_from_real_timestamps(self):
        positions = [
            BatPosition(0, 0.0, True, angle=0.0, confidence=0.9),
            BatPosition(1, 10.0, True, angle=10.0, confidence=0.8),
            BatPosition(2, 20.0, True, angle=30.0, confidence=0.7),
        ]
        velocities = calculate_bat_angular_velocity(positions)

        assert [v.velocity for v in velocities] == pytest.approx([1000.0, 2000.0])
        assert [v.confidence for v in velocities] == [0.8, 0.7]
        assert all(v.detected for v in velocities)

    def test_pair_needs_both_detections(self):
        positions = [
            BatPosition(0, 0.0, True, angle=0.0, confidence=0.9),
            BatPosition(1, 10.0, False),
            BatPosition(2, 20.0, True, angle=50.0, confidence=0.9),
        ]
        velocities = calculate_bat_angular_velocity(positions)
        assert not any(v.detected for v in velocities)
        assert all(v.velocity == 0 for v in velocities)

    def test_zero_angle_is_a_valid_reading(self):
        positions = [
            BatPosition(0, 0.0, True, angle=0.0, confidence=0.9),
            BatPosition(1, 10.0, True, angle=5.0, confidence=0.9),
        ]
        assert calculate_bat_angular_velocity(positions)[0].detected

    def test_orientation_wraps(self):
        assert angular_difference(179.0, -179.0) == pytest.approx(2.0)
        assert angular_difference(175.0, 5.0, period=180.0) == pytest.approx(10.0)

    def test_series_deltas_wrap(self):
        deltas = angle_deltas([178.0, -178.0, 170.0], period=360.0)
        assert deltas == pytest.approx([4.0, 12.0])


class TestRobustPeak:

    def test_low_confidence_spike_ignored(self):
        positions = [
            BatPosition(0, 0.0, True, angle=0.0, confidence=0.9),
            BatPosition(1, 10.0, True, angle=10.0, confidence=0.9),
            BatPosition(2, 20.0, True, angle=100.0, confidence=0.3),
        ]
        velocities = calculate_bat_angular_velocity(positions)
        assert get_max_bat_velocity(velocities, min_confidence=0.6) == pytest.approx(1000.0)

    def test_no_confident_samples(self):
        assert get_max_bat_velocity([], min_confidence=0.6) is None


class TestBatTracker:

    def test_track_reports_peak(self):
        detector = ScriptedDetector([seen(0), seen(10), seen(30)])
        result = BatTracker(detector).track(make_frames(3))

        assert result.available
        assert result.peak_velocity == pytest.approx(2000.0)
        assert len(result.positions) == 3
        assert result.frames_detected == 3
        assert detector.cleaned_up

    def test_never_detected_is_not_available(self):
        detector = ScriptedDetector([BatDetection.missing()] * 4)
        result = BatTracker(detector).track(make_frames(4))

        assert not result.available
        assert result.peak_velocity is None
        assert result.reason == "bat not detected"
        assert len(result.positions) == 4

    def test_low_confidence_is_not_available(self):
        detector = ScriptedDetector([seen(0, 0.2), seen(10, 0.2)])
        result = BatTracker(detector, min_confidence=0.6).track(make_frames(2))

        assert not result.available
        assert "confidence" in result.reason
        assert result.frames_detected == 2

    def test_stage_error_is_contained(self):
        detector = ScriptedDetector([seen(0), seen(10), seen(20)], fail_at=1)
        result = run_bat_stage(make_frames(3), BatTracker(detector))

        assert not result.available
        assert result.reason.startswith("tracking error")
        assert detector.cleaned_up


class TestHoughLineBatDetector:

    def test_detects_line_orientation(self):
        image = np.zeros((200, 200, 3), dtype=np.uint8)
        cv2.line(image, (20, 180), (180, 20), (255, 255, 255), 4)
        detection = HoughLineBatDetector().detect(image)

        assert detection.detected
        # Image y grows downward, so the rising line is at -45 (135 undirected)
        assert angular_difference(detection.angle, 135.0, period=180.0) < 3.0
        assert 0 < detection.confidence <= 1.0

    def test_blank_frame(self):
        detection = HoughLineBatDetector().detect(np.zeros((100, 100, 3), dtype=np.uint8))
        assert not detection.detected

    def test_factory(self):
        assert isinstance(create_bat_detector("hough"), HoughLineBatDetector)
        with pytest.raises(ValueError):
            create_bat_detector("radar")
