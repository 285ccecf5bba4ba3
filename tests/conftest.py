"""
Shared fixtures for run-territory tests.

Traces are built around Fredericton (45.96°N, 66.65°W). One degree of
latitude is ~111.2 km on the Haversine sphere, so north-going steps are
given in meters and converted here.
"""

import math

import pytest

from territory.core.models import GPSSample, Trace
from territory.rulebook import ClaimRules, clear_cache

METERS_PER_DEG_LAT = 6371000.0 * math.pi / 180.0
START_LAT = 45.96
START_LNG = -66.65
T0_MS = 1700000000000


def build_trace(steps_m, dt_s=10.0, activity_type="run", accuracy=5.0,
                start=(START_LAT, START_LNG)):
    """
    Trace heading north from start.

    Args:
        steps_m: Meters moved between consecutive samples
        dt_s: Seconds between samples (a number or one value per step)
    """
    if not isinstance(dt_s, (list, tuple)):
        dt_s = [dt_s] * len(steps_m)
    lat, lng = start
    t = T0_MS
    samples = [GPSSample(lat=lat, lng=lng, timestamp_ms=t, accuracy_m=accuracy)]
    for step, dt in zip(steps_m, dt_s):
        lat += step / METERS_PER_DEG_LAT
        t += int(dt * 1000)
        samples.append(GPSSample(lat=lat, lng=lng, timestamp_ms=t, accuracy_m=accuracy))
    return Trace(samples=samples, activity_type=activity_type)


@pytest.fixture
def rules():
    """Built-in default rules, independent of any YAML on disk."""
    return ClaimRules()


@pytest.fixture
def straight_run():
    """~1 km run due north over 300 s (3.33 m/s)."""
    return build_trace([33.3] * 30, dt_s=10.0)


@pytest.fixture
def short_run():
    """~300 m run due north over 90 s."""
    return build_trace([33.3] * 9, dt_s=10.0)


@pytest.fixture(autouse=True)
def _fresh_rules_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def make_trace():
    """Factory for north-going traces (see build_trace)."""
    return build_trace
