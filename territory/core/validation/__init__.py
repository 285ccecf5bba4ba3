from territory.core.validation.trace import (
    analyze_acceleration,
    analyze_capture_time,
    analyze_gps_quality,
    analyze_speed,
    validate_trace,
)

__all__ = [
    "analyze_acceleration",
    "analyze_capture_time",
    "analyze_gps_quality",
    "analyze_speed",
    "validate_trace",
]
