"""
Trace Validator

Anti-cheat analysis deciding whether a GPS trace is a genuine human run or
ride. Checks run cheapest first:

1. Shape (sample count, coordinate range, activity type) - short-circuits
2. Speed (sustained vehicle speed)                        - error
3. Acceleration (erratic speed changes)                   - warning
4. GPS quality (jumps, accuracy, straightness)            - error / warning
5. Capture time (total and stationary time)               - warning

Every check after the shape check runs even when an earlier one failed, so a
verdict lists all errors together. Statistics are recorded regardless of the
outcome.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from territory.core.geo.primitives import bearing_deviation, distance_meters, path_length_meters
from territory.core.models import (
    ActivityType,
    ErrorCode,
    GPSSample,
    Trace,
    ValidationVerdict,
    WarningCode,
)
from territory.rulebook import ClaimRules, ValidationThresholds, load_rules
from territory.utils.constants import KMH_PER_MPS, MS_PER_SECOND
from territory.utils.error_handling import log_function_entry

logger = logging.getLogger(__name__)


@dataclass
class SpeedAnalysis:
    max_speed: float = 0.0
    avg_speed: float = 0.0
    vehicle_segments: int = 0


@dataclass
class AccelerationAnalysis:
    max_acceleration: float = 0.0
    suspicious_count: int = 0


@dataclass
class GpsQualityAnalysis:
    jumps: int = 0
    avg_accuracy: Optional[float] = None
    straightness: float = 0.0


@dataclass
class CaptureTimeAnalysis:
    total_time: float = 0.0
    stationary_time: float = 0.0


def _elapsed_seconds(a: GPSSample, b: GPSSample) -> float:
    return (b.timestamp_ms - a.timestamp_ms) / MS_PER_SECOND


def _valid_coordinate(sample: GPSSample) -> bool:
    return (math.isfinite(sample.lat) and math.isfinite(sample.lng) and
            abs(sample.lat) <= 90.0 and abs(sample.lng) <= 180.0)


def analyze_speed(samples: Sequence[GPSSample], thresholds: ValidationThresholds) -> SpeedAnalysis:
    """
    Per-segment speeds and sustained vehicle-speed detection.

    Segments with non-positive elapsed time are skipped and do not break a
    run of high-speed segments. Each segment beyond the allowed run length
    counts as one vehicle segment.
    """
    result = SpeedAnalysis()
    total_speed = 0.0
    speed_count = 0
    consecutive_high = 0

    for i in range(1, len(samples)):
        a, b = samples[i-1], samples[i]
        dt = _elapsed_seconds(a, b)
        if dt <= 0:
            continue

        speed = distance_meters(a, b) / dt
        result.max_speed = max(result.max_speed, speed)
        total_speed += speed
        speed_count += 1

        if speed > thresholds.vehicle_speed_mps:
            consecutive_high += 1
            if consecutive_high > thresholds.vehicle_max_consecutive:
                result.vehicle_segments += 1
        else:
            consecutive_high = 0

    result.avg_speed = total_speed / speed_count if speed_count > 0 else 0.0
    return result


def analyze_acceleration(samples: Sequence[GPSSample], thresholds: ValidationThresholds) -> AccelerationAnalysis:
    """
    Sudden speed changes between consecutive segments.

    Only segments with 0 < dt <= window are considered; the first considered
    segment only seeds the previous speed. A change above the threshold over
    a short segment counts as suspicious.
    """
    result = AccelerationAnalysis()
    prev_speed = 0.0

    for i in range(1, len(samples)):
        a, b = samples[i-1], samples[i]
        dt = _elapsed_seconds(a, b)
        if dt <= 0 or dt > thresholds.acceleration_window_s:
            continue

        speed = distance_meters(a, b) / dt
        if prev_speed > 0:
            accel = abs(speed - prev_speed) / dt
            result.max_acceleration = max(result.max_acceleration, accel)
            if accel > thresholds.acceleration_mps2 and dt < thresholds.acceleration_short_dt_s:
                result.suspicious_count += 1
        prev_speed = speed

    return result


def analyze_gps_quality(samples: Sequence[GPSSample], thresholds: ValidationThresholds) -> GpsQualityAnalysis:
    """Jump count, mean reported accuracy and straightness ratio."""
    result = GpsQualityAnalysis()

    for i in range(1, len(samples)):
        a, b = samples[i-1], samples[i]
        dt = _elapsed_seconds(a, b)
        if 0 < dt < thresholds.jump_window_s and distance_meters(a, b) > thresholds.jump_distance_m:
            result.jumps += 1

    accuracies = [s.accuracy_m for s in samples if s.accuracy_m is not None]
    if accuracies:
        result.avg_accuracy = sum(accuracies) / len(accuracies)

    straight_segments = 0
    for i in range(2, len(samples)):
        deviation = bearing_deviation(samples[i-2], samples[i-1], samples[i])
        if abs(deviation) < thresholds.straight_deviation_deg:
            straight_segments += 1
    result.straightness = straight_segments / max(1, len(samples) - 2)

    return result


def analyze_capture_time(samples: Sequence[GPSSample], thresholds: ValidationThresholds) -> CaptureTimeAnalysis:
    """Total elapsed time and time spent (nearly) stationary."""
    result = CaptureTimeAnalysis()

    for i in range(1, len(samples)):
        a, b = samples[i-1], samples[i]
        dt = _elapsed_seconds(a, b)
        if dt <= 0:
            continue
        result.total_time += dt
        if distance_meters(a, b) < thresholds.stationary_distance_m:
            result.stationary_time += dt

    return result


def _check_shape(trace: Trace, verdict: ValidationVerdict) -> Optional[ActivityType]:
    samples = trace.samples
    if len(samples) < 2:
        verdict.add_error(ErrorCode.MALFORMED_TRACE, "At least two GPS points required")
    elif not all(_valid_coordinate(s) for s in samples):
        verdict.add_error(ErrorCode.MALFORMED_TRACE, "Invalid lat/lng in GPS points")

    if not isinstance(trace.activity_type, ActivityType):
        allowed = ", ".join(a.value for a in ActivityType)
        verdict.add_error(
            ErrorCode.UNKNOWN_ACTIVITY_TYPE,
            f"Invalid activity type '{trace.activity_type}'. Must be one of: {allowed}"
        )
    return None if not verdict.valid else trace.activity_type


@log_function_entry
def validate_trace(trace: Trace, rules: Optional[ClaimRules] = None) -> ValidationVerdict:
    """
    Validate a trace for territory claiming.

    Pure function: no I/O, no shared state. Never raises for a malformed but
    parseable trace; problems are reported in the verdict.

    Args:
        trace: Submitted trace
        rules: Claim rules (defaults to the process-wide rules)

    Returns:
        ValidationVerdict with errors, warnings and statistics
    """
    rules = rules or load_rules()
    thresholds = rules.validation
    verdict = ValidationVerdict()
    verdict.stats.sample_count = len(trace.samples)

    activity = _check_shape(trace, verdict)
    if activity is None:
        logger.warning(f"Trace rejected by shape check: {[str(e) for e in verdict.errors]}")
        return verdict

    samples = trace.samples
    profile = rules.speed_profile(activity)
    stats = verdict.stats
    stats.distance_m = path_length_meters(samples)

    speed = analyze_speed(samples, thresholds)
    stats.max_speed = speed.max_speed
    stats.avg_speed = speed.avg_speed
    stats.vehicle_segments = speed.vehicle_segments
    if speed.vehicle_segments > 0:
        verdict.add_error(
            ErrorCode.VEHICLE_SPEED_DETECTED,
            f"Vehicle-like speed detected: {speed.max_speed * KMH_PER_MPS:.1f} km/h "
            f"(limit: {profile.max_mps * KMH_PER_MPS:.1f} km/h)"
        )

    accel = analyze_acceleration(samples, thresholds)
    stats.max_acceleration = accel.max_acceleration
    stats.suspicious_accel = accel.suspicious_count
    if accel.suspicious_count > thresholds.max_suspicious_accel:
        verdict.add_warning(
            WarningCode.ERRATIC_ACCELERATION,
            f"Unusual acceleration patterns detected ({accel.suspicious_count} events)"
        )

    quality = analyze_gps_quality(samples, thresholds)
    stats.jumps = quality.jumps
    stats.avg_accuracy = quality.avg_accuracy
    stats.straightness = quality.straightness
    if quality.jumps > thresholds.max_jumps:
        verdict.add_error(
            ErrorCode.TOO_MANY_GPS_JUMPS,
            f"Too many GPS jumps detected ({quality.jumps}) - possible fake GPS"
        )
    if quality.avg_accuracy is not None and quality.avg_accuracy > thresholds.low_accuracy_m:
        verdict.add_warning(WarningCode.LOW_GPS_ACCURACY, f"Low GPS accuracy: {quality.avg_accuracy:.0f}m")

    capture = analyze_capture_time(samples, thresholds)
    stats.total_time = capture.total_time
    stats.stationary_time = capture.stationary_time
    if capture.total_time < thresholds.min_capture_time_s:
        verdict.add_warning(
            WarningCode.INSUFFICIENT_CAPTURE_TIME,
            f"Insufficient capture time: {capture.total_time:.0f}s "
            f"(minimum {thresholds.min_capture_time_s:.0f}s)"
        )

    logger.debug(f"Validation stats ({activity}): {stats.to_dict()}")
    if not verdict.valid:
        logger.warning(f"Trace rejected: {[str(e) for e in verdict.errors]}")
    return verdict
