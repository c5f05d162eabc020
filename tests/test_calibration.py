"""Tests for velocity bias correction and the report record."""

import pytest

from impact_sync.analysis.calibration import (
    CorrectedMetrics,
    CorrectionFactors,
    apply_bias_correction,
    round_half_up,
)
from impact_sync.analysis.kinematic_sequence import KinematicSequenceResult


def make_result(**overrides):
    values = dict(
        impact_frame=60,
        total_frames=72,
        frame_rate=120.0,
        load_duration_ms=300.0,
        fire_duration_ms=150.0,
        tempo_ratio=2.0,
        negative_move_frame=6,
        max_pelvis_frame=42,
        pelvis_max_velocity=300.0,
        torso_max_velocity=500.0,
        arm_max_velocity=400.0,
    )
    values.update(overrides)
    return KinematicSequenceResult(**values)


class TestRounding:

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (2.4, 2), (0.5, 1), (0.0, 0)])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestBiasCorrection:

    def test_default_factors(self):
        metrics = apply_bias_correction(make_result(), bat_velocity=1000.0)

        assert metrics.pelvis_max_velocity == 600
        assert metrics.torso_max_velocity == 700
        assert metrics.arm_max_velocity == 880
        assert metrics.bat_max_velocity == 1300
        assert metrics.bat_tracking_available

    def test_rounds_each_field(self):
        metrics = apply_bias_correction(make_result(pelvis_max_velocity=123.25, arm_max_velocity=10.0))
        # 123.25 * 2.0 = 246.5 rounds up; 10 * 2.2 = 22.000000000000004
        assert metrics.pelvis_max_velocity == 247
        assert metrics.arm_max_velocity == 22

    def test_not_cumulative(self):
        raw = make_result()
        first = apply_bias_correction(raw)
        second = apply_bias_correction(raw)
        assert first == second
        assert first.pelvis_max_velocity == round_half_up(raw.pelvis_max_velocity * 2.0)

    def test_custom_factors(self):
        factors = CorrectionFactors(pelvis=1.0, upper_torso=1.0, arm=1.0, bat=1.0)
        metrics = apply_bias_correction(make_result(), bat_velocity=812.4, factors=factors)
        assert metrics.pelvis_max_velocity == 300
        assert metrics.bat_max_velocity == 812

    def test_factors_from_config(self):
        factors = CorrectionFactors.from_dict({"pelvis": 2.5, "unknown": 9})
        assert factors.pelvis == 2.5
        assert factors.arm == 2.2
        assert CorrectionFactors.from_dict(None) == CorrectionFactors()

    def test_missing_bat_is_flagged_not_zero(self):
        metrics = apply_bias_correction(make_result(), bat_velocity=None, bat_tracking_reason="bat not detected")
        assert metrics.bat_max_velocity is None
        assert not metrics.bat_tracking_available
        assert metrics.bat_tracking_reason == "bat not detected"

    def test_timing_passes_through(self):
        metrics = apply_bias_correction(make_result(tempo_ratio=None, fire_duration_ms=0.0))
        assert metrics.tempo_ratio is None
        assert metrics.fire_duration_ms == 0.0
        assert metrics.max_pelvis_frame == 42


class TestReportRecord:

    def test_scores(self):
        metrics = apply_bias_correction(make_result(tempo_ratio=2.0, fire_duration_ms=170.0))
        record = metrics.to_report_record()

        assert record["tempo_ratio_score"] == pytest.approx(80.0)
        assert record["fire_duration_score"] == pytest.approx(90.0)
        assert record["body_score"] == pytest.approx(85.0)
        # (700 - 600) / 10
        assert record["kinematic_sequence_gap"] == pytest.approx(10.0)

    def test_event_times(self):
        record = apply_bias_correction(make_result()).to_report_record()
        assert record["negative_move_time_ms"] == pytest.approx(50.0)
        assert record["max_pelvis_turn_time_ms"] == pytest.approx(350.0)
        assert record["max_shoulder_turn_time_ms"] == pytest.approx(500.0)

    def test_scores_are_clamped(self):
        metrics = apply_bias_correction(make_result(tempo_ratio=12.0, fire_duration_ms=600.0))
        assert metrics.tempo_ratio_score == 0.0
        assert metrics.fire_duration_score == 0.0

    def test_gap_never_negative(self):
        metrics = apply_bias_correction(make_result(pelvis_max_velocity=900.0, torso_max_velocity=100.0))
        assert metrics.kinematic_sequence_gap == 0.0

    def test_undefined_tempo_leaves_scores_undefined(self):
        metrics = apply_bias_correction(make_result(tempo_ratio=None))
        assert metrics.tempo_ratio_score is None
        assert metrics.body_score is None
        assert isinstance(metrics, CorrectedMetrics)
