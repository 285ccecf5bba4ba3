"""
Unit tests for territory/core/claim/geometry.py

The claim polygon is the trace path buffered by 50 m:
1. Containment: every trace point lies inside the polygon
2. Width: points ~40 m off the path are inside, ~70 m off are outside
3. Tiles: every sample's own tile is touched, each tile once
4. Fallback: a path with a single distinct position tiles its samples
"""

import logging
import time

import pytest
from shapely.geometry import Point, Polygon

from territory.core.claim import build_claim_geometry, buffer_path
from territory.core.claim.geometry import DegeneratePathError, local_metric_crs, unwrap_path
from territory.core.grid import tile_bounds, tile_id_for
from territory.core.models import GPSSample, LatLng, Trace
from territory.core.validation import validate_trace

# Meters per degree of longitude at ~45.96°N
METERS_PER_DEG_LNG = 77260.0


def _antimeridian_run(n=40):
    """Run heading east at -16.8° across the antimeridian, ~32 m every 10 s."""
    samples = []
    for i in range(n):
        lng = 179.997 + i * 0.0003
        if lng >= 180.0:
            lng -= 360.0
        samples.append(GPSSample(-16.8, lng, 1700000000000 + i * 10000, 5.0))
    return Trace(samples=samples, activity_type="run")


class TestBufferPath:
    """Metric buffering of a lng/lat path"""

    def test_returns_wgs84_polygon(self, straight_run):
        polygon = buffer_path(straight_run.path(), 50.0, 8)
        assert isinstance(polygon, Polygon)
        min_lng, min_lat, max_lng, max_lat = polygon.bounds
        assert -66.66 < min_lng < max_lng < -66.64
        assert 45.95 < min_lat < max_lat < 45.98

    def test_contains_every_trace_point(self, straight_run):
        polygon = buffer_path(straight_run.path(), 50.0, 8)
        for s in straight_run.samples:
            assert polygon.contains(Point(s.lng, s.lat))

    def test_buffer_width_in_meters(self, straight_run):
        polygon = buffer_path(straight_run.path(), 50.0, 8)
        mid = straight_run.samples[15]
        assert polygon.contains(Point(mid.lng + 40.0 / METERS_PER_DEG_LNG, mid.lat))
        assert polygon.contains(Point(mid.lng - 40.0 / METERS_PER_DEG_LNG, mid.lat))
        assert not polygon.contains(Point(mid.lng + 70.0 / METERS_PER_DEG_LNG, mid.lat))

    def test_round_cap_past_the_end(self, straight_run):
        polygon = buffer_path(straight_run.path(), 50.0, 8)
        last = straight_run.samples[-1]
        assert polygon.contains(Point(last.lng, last.lat + 40.0 / 111195.0))

    def test_single_position_is_degenerate(self):
        with pytest.raises(DegeneratePathError):
            buffer_path([(-66.65, 45.96), (-66.65, 45.96)], 50.0, 8)

    def test_local_crs_is_metric(self):
        crs = local_metric_crs(LatLng(45.96, -66.65))
        assert crs.axis_info[0].unit_name == "metre"

    def test_unwrap_path_across_antimeridian(self):
        path = unwrap_path([(179.999, -16.8), (-179.999, -16.8), (-179.998, -16.8)])
        assert [p[0] for p in path] == pytest.approx([179.999, 180.001, 180.002])

    def test_unwrap_path_leaves_ordinary_path_alone(self, straight_run):
        assert unwrap_path(straight_run.path()) == straight_run.path()

    def test_buffer_across_antimeridian_stays_local(self):
        polygon = buffer_path(_antimeridian_run().path(), 50.0, 8)
        min_lng, _, max_lng, _ = polygon.bounds
        assert max_lng - min_lng < 0.05
        assert polygon.contains(Point(180.0003, -16.8))
        assert polygon.contains(Point(179.998, -16.8))


class TestBuildClaimGeometry:
    """Claim polygon to touched tiles"""

    def test_touches_every_sample_tile(self, rules, straight_run):
        geometry = build_claim_geometry(straight_run, rules)
        assert not geometry.used_fallback
        for s in straight_run.samples:
            assert tile_id_for(s.lat, s.lng) in geometry.touched_tiles

    def test_tiles_distinct_and_deterministic(self, rules, straight_run):
        first = build_claim_geometry(straight_run, rules)
        second = build_claim_geometry(straight_run, rules)
        assert len(first.touched_tiles) == len(set(first.touched_tiles))
        assert first.touched_tiles == second.touched_tiles

    def test_buffer_spills_into_neighbouring_tiles(self, rules, straight_run):
        geometry = build_claim_geometry(straight_run, rules)
        sample_tiles = {tile_id_for(s.lat, s.lng) for s in straight_run.samples}
        assert len(geometry.touched_tiles) > len(sample_tiles)

    def test_stationary_trace_falls_back_to_sample_tiles(self, rules):
        trace = Trace(samples=[
            GPSSample(45.96, -66.65, 1700000000000),
            GPSSample(45.96, -66.65, 1700000010000),
            GPSSample(45.96, -66.65, 1700000020000),
        ])
        geometry = build_claim_geometry(trace, rules)
        assert geometry.used_fallback
        assert geometry.buffered_polygon is None
        assert geometry.touched_tiles == (tile_id_for(45.96, -66.65),)

    def test_fallback_logs_a_single_warning(self, rules, caplog):
        trace = Trace(samples=[
            GPSSample(45.96, -66.65, 1700000000000),
            GPSSample(45.96, -66.65, 1700000010000),
        ])
        with caplog.at_level(logging.WARNING):
            build_claim_geometry(trace, rules)
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "DegeneratePathError" in warnings[0].getMessage()

    def test_trace_across_antimeridian_claims_local_tiles(self, rules):
        trace = _antimeridian_run()
        assert validate_trace(trace, rules).valid

        geometry = build_claim_geometry(trace, rules)
        assert not geometry.used_fallback
        assert len(geometry.touched_tiles) < 100
        for s in trace.samples:
            assert tile_id_for(s.lat, s.lng) in geometry.touched_tiles
        for tile_id in geometry.touched_tiles:
            b = tile_bounds(tile_id)
            assert b.min_lng > 179.9 or b.max_lng < -179.9
            assert -16.81 < b.min_lat < -16.79

    def test_long_diagonal_ride_is_fast(self, rules):
        """400 samples over 0.4° x 0.4°"""
        samples = [
            GPSSample(45.76 + i * 0.001, -66.65 + i * 0.001, 1700000000000 + i * 15000, 5.0)
            for i in range(401)
        ]
        trace = Trace(samples=samples, activity_type="cycle")
        start = time.perf_counter()
        geometry = build_claim_geometry(trace, rules)
        elapsed = time.perf_counter() - start
        assert elapsed < 3.0
        assert not geometry.used_fallback
        assert len(geometry.touched_tiles) == len(set(geometry.touched_tiles))
        for s in samples[::50]:
            assert tile_id_for(s.lat, s.lng) in geometry.touched_tiles
