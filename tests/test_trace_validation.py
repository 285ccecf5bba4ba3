"""
Unit tests for territory/core/validation/trace.py

Covers each anti-cheat check in isolation and the combined verdict:
1. Shape: sample count, coordinate range, activity type
2. Speed: sustained vehicle speed is an error, a short burst is not
3. Acceleration: erratic speed changes are a warning
4. GPS quality: jumps are an error, poor accuracy a warning
5. Capture time: short recordings are a warning
"""

import pytest

from territory.core.models import (
    ActivityType,
    ErrorCode,
    GPSSample,
    Trace,
    WarningCode,
)
from territory.core.validation import (
    analyze_acceleration,
    analyze_capture_time,
    analyze_gps_quality,
    analyze_speed,
    validate_trace,
)

START_LAT = 45.96
START_LNG = -66.65
T0_MS = 1700000000000


class TestShapeChecks:
    """Structural problems short-circuit validation"""

    def test_empty_trace(self, rules):
        verdict = validate_trace(Trace(samples=[], activity_type="run"), rules)
        assert not verdict.valid
        assert verdict.errors == [ErrorCode.MALFORMED_TRACE]
        assert verdict.stats.sample_count == 0

    def test_single_sample(self, rules):
        trace = Trace(samples=[GPSSample(START_LAT, START_LNG, T0_MS)], activity_type="run")
        verdict = validate_trace(trace, rules)
        assert verdict.errors == [ErrorCode.MALFORMED_TRACE]
        assert verdict.messages == ["At least two GPS points required"]

    def test_out_of_range_coordinate(self, rules):
        trace = Trace(samples=[
            GPSSample(START_LAT, START_LNG, T0_MS),
            GPSSample(95.0, START_LNG, T0_MS + 10000),
        ])
        verdict = validate_trace(trace, rules)
        assert verdict.errors == [ErrorCode.MALFORMED_TRACE]
        assert verdict.stats.max_speed == 0.0

    def test_unknown_activity_type(self, rules, make_trace):
        trace = make_trace([33.3] * 30, activity_type="swim")
        verdict = validate_trace(trace, rules)
        assert not verdict.valid
        assert verdict.errors == [ErrorCode.UNKNOWN_ACTIVITY_TYPE]
        assert "swim" in verdict.messages[0]

    def test_malformed_and_unknown_reported_together(self, rules):
        verdict = validate_trace(Trace(samples=[], activity_type="skate"), rules)
        assert verdict.errors == [ErrorCode.MALFORMED_TRACE, ErrorCode.UNKNOWN_ACTIVITY_TYPE]

    def test_activity_type_is_case_insensitive(self, make_trace):
        assert make_trace([10.0], activity_type="CYCLE").activity_type is ActivityType.CYCLE


class TestValidTrace:
    """A plausible run passes cleanly"""

    def test_steady_run_is_valid(self, rules, straight_run):
        verdict = validate_trace(straight_run, rules)
        assert verdict.valid
        assert verdict.errors == []
        assert verdict.warnings == []
        assert verdict.messages == []

    def test_two_point_trace_is_valid(self, rules, make_trace):
        """1000 m in 300 s between just two fixes"""
        verdict = validate_trace(make_trace([1000.0], dt_s=300.0), rules)
        assert verdict.valid
        assert verdict.errors == []
        assert verdict.warnings == []
        assert verdict.stats.sample_count == 2
        assert verdict.stats.max_speed == pytest.approx(3.33, rel=1e-2)

    def test_stats(self, rules, straight_run):
        stats = validate_trace(straight_run, rules).stats
        assert stats.sample_count == 31
        assert stats.distance_m == pytest.approx(999, rel=1e-2)
        assert stats.max_speed == pytest.approx(3.33, rel=1e-2)
        assert stats.avg_speed == pytest.approx(3.33, rel=1e-2)
        assert stats.total_time == pytest.approx(300.0)
        assert stats.stationary_time == 0.0
        assert stats.avg_accuracy == pytest.approx(5.0)
        assert stats.straightness == pytest.approx(1.0)
        assert stats.jumps == 0

    def test_deterministic(self, rules, straight_run):
        assert validate_trace(straight_run, rules).to_dict() == validate_trace(straight_run, rules).to_dict()

    def test_uses_default_rules(self, straight_run, monkeypatch, tmp_path):
        monkeypatch.setenv("TERRITORY_RULES_PATH", str(tmp_path / "missing.yml"))
        assert validate_trace(straight_run).valid


class TestVehicleSpeed:
    """Sustained high speed"""

    def test_sustained_vehicle_speed_rejected(self, rules, make_trace):
        trace = make_trace([300.0] * 8, dt_s=10.0)
        verdict = validate_trace(trace, rules)
        assert not verdict.valid
        assert ErrorCode.VEHICLE_SPEED_DETECTED in verdict.errors
        assert verdict.stats.max_speed == pytest.approx(30.0, rel=1e-2)
        assert verdict.stats.vehicle_segments == 3
        message = verdict.messages[verdict.errors.index(ErrorCode.VEHICLE_SPEED_DETECTED)]
        assert message.startswith("Vehicle-like speed detected: 10")
        assert "limit: 20.0 km/h" in message

    def test_limit_in_message_follows_activity(self, rules, make_trace):
        trace = make_trace([300.0] * 8, dt_s=10.0, activity_type="cycle")
        verdict = validate_trace(trace, rules)
        assert any("limit: 40.0 km/h" in m for m in verdict.messages)

    def test_short_burst_allowed(self, rules, make_trace):
        """Five fast segments in a row are tolerated"""
        trace = make_trace([33.3] * 10 + [300.0] * 5 + [33.3] * 10, dt_s=10.0)
        verdict = validate_trace(trace, rules)
        assert ErrorCode.VEHICLE_SPEED_DETECTED not in verdict.errors
        assert verdict.stats.vehicle_segments == 0

    def test_zero_dt_segment_does_not_reset_run(self, rules, make_trace):
        steps = [300.0] * 3 + [0.0] + [300.0] * 3
        dts = [10.0] * 3 + [0.0] + [10.0] * 3
        analysis = analyze_speed(make_trace(steps, dt_s=dts).samples, rules.validation)
        assert analysis.vehicle_segments == 1


class TestAcceleration:
    """Erratic acceleration"""

    def test_erratic_acceleration_is_warning(self, rules, make_trace):
        trace = make_trace([2.0, 30.0] * 4, dt_s=2.0)
        verdict = validate_trace(trace, rules)
        assert verdict.valid
        assert WarningCode.ERRATIC_ACCELERATION in verdict.warnings
        assert verdict.stats.suspicious_accel == 7
        assert verdict.stats.max_acceleration == pytest.approx(7.0, rel=2e-2)

    def test_long_segments_ignored(self, rules, make_trace):
        analysis = analyze_acceleration(make_trace([2.0, 300.0] * 4, dt_s=20.0).samples, rules.validation)
        assert analysis.max_acceleration == 0.0
        assert analysis.suspicious_count == 0

    def test_steady_pace(self, rules, straight_run):
        analysis = analyze_acceleration(straight_run.samples, rules.validation)
        assert analysis.max_acceleration == pytest.approx(0.0, abs=1e-6)


class TestGpsQuality:
    """Jumps, accuracy and straightness"""

    def test_gps_jumps_rejected(self, rules, make_trace):
        trace = make_trace([150.0, -150.0] * 4, dt_s=4.0)
        verdict = validate_trace(trace, rules)
        assert not verdict.valid
        assert ErrorCode.TOO_MANY_GPS_JUMPS in verdict.errors
        assert verdict.stats.jumps == 8
        assert "Too many GPS jumps detected (8) - possible fake GPS" in verdict.messages

    def test_all_errors_listed_together(self, rules, make_trace):
        trace = make_trace([150.0] * 8, dt_s=4.0)
        verdict = validate_trace(trace, rules)
        assert verdict.errors == [ErrorCode.VEHICLE_SPEED_DETECTED, ErrorCode.TOO_MANY_GPS_JUMPS]

    def test_low_accuracy_is_warning(self, rules, make_trace):
        trace = make_trace([33.3] * 30, accuracy=80.0)
        verdict = validate_trace(trace, rules)
        assert verdict.valid
        assert verdict.warnings == [WarningCode.LOW_GPS_ACCURACY]
        assert verdict.messages == ["Low GPS accuracy: 80m"]

    def test_missing_accuracy(self, rules, make_trace):
        analysis = analyze_gps_quality(make_trace([33.3] * 5, accuracy=None).samples, rules.validation)
        assert analysis.avg_accuracy is None

    def test_zigzag_is_not_straight(self, rules):
        samples = [
            GPSSample(START_LAT + i * 0.0003, START_LNG + (0.0003 if i % 2 else 0.0), T0_MS + i * 10000)
            for i in range(10)
        ]
        analysis = analyze_gps_quality(samples, rules.validation)
        assert analysis.straightness == 0.0


class TestCaptureTime:
    """Total and stationary time"""

    def test_short_recording_is_warning(self, rules, short_run):
        verdict = validate_trace(short_run, rules)
        assert verdict.valid
        assert verdict.warnings == [WarningCode.INSUFFICIENT_CAPTURE_TIME]
        assert verdict.messages == ["Insufficient capture time: 90s (minimum 180s)"]

    def test_stationary_time(self, rules, make_trace):
        trace = make_trace([0.0] * 5 + [33.3] * 5, dt_s=10.0)
        analysis = analyze_capture_time(trace.samples, rules.validation)
        assert analysis.total_time == pytest.approx(100.0)
        assert analysis.stationary_time == pytest.approx(50.0)

    def test_backwards_timestamps_skipped(self, rules, make_trace):
        trace = make_trace([33.3, 33.3, 33.3], dt_s=[10.0, -5.0, 10.0])
        analysis = analyze_capture_time(trace.samples, rules.validation)
        assert analysis.total_time == pytest.approx(20.0)
