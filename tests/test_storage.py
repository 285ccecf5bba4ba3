"""
Unit tests for territory/storage.py

The store commits claim results all-or-nothing, guarded by the ownership
state each update was computed against.
"""

import pytest

from territory.core.models import BoundingBox, TileOwnership
from territory.core.pipeline import resolve_claim
from territory.storage import OwnershipStore, submit_trace
from territory.utils.error_handling import ClaimConflictError


class FlakyStore(OwnershipStore):
    """Store whose first `failures` commits lose a race."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def commit(self, result, claimant_id=None, trace=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ClaimConflictError("simulated race", tile_ids=(result.touched_tiles[0],))
        return super().commit(result, claimant_id=claimant_id, trace=trace)


class TestCommit:
    """Atomic commit with compare-and-swap"""

    def test_commit_applies_updates(self, rules, straight_run):
        store = OwnershipStore()
        result = resolve_claim(straight_run, "u1", {}, rules)
        store.commit(result)
        for tile_id in result.touched_tiles:
            assert store.get(tile_id) == TileOwnership(tile_id, "u1", 1)
        assert len(store.history()) == len(result.touched_tiles)
        assert len(store.owned_by("u1")) == len(result.touched_tiles)

    def test_stale_result_rejected(self, rules, straight_run):
        store = OwnershipStore()
        stale = resolve_claim(straight_run, "u2", store.snapshot(), rules)
        store.commit(resolve_claim(straight_run, "u1", store.snapshot(), rules))
        before = store.snapshot()

        with pytest.raises(ClaimConflictError) as exc_info:
            store.commit(stale)

        assert set(exc_info.value.tile_ids) == set(stale.touched_tiles)
        assert store.snapshot() == before

    def test_run_recorded_with_trace(self, rules, straight_run):
        store = OwnershipStore()
        run = store.commit(resolve_claim(straight_run, "u1", {}, rules), claimant_id="u1", trace=straight_run)
        assert run is not None
        assert store.runs("u1") == [run]
        assert run.distance_km == pytest.approx(1.0, rel=2e-2)

    def test_snapshot_subset(self, rules, straight_run):
        store = OwnershipStore()
        result = resolve_claim(straight_run, "u1", {}, rules)
        store.commit(result)
        wanted = result.touched_tiles[:2] + ["s0000000"]
        assert set(store.snapshot(wanted)) == set(result.touched_tiles[:2])

    def test_snapshot_bbox(self, rules, straight_run):
        store = OwnershipStore()
        store.commit(resolve_claim(straight_run, "u1", {}, rules))
        near = BoundingBox(45.959, 45.961, -66.651, -66.649)
        far = BoundingBox(10.0, 11.0, 10.0, 11.0)
        assert store.snapshot_bbox(near)
        assert store.snapshot_bbox(far) == {}


class TestSubmitTrace:
    """Validate, resolve and commit with retries"""

    def test_submit_valid_trace(self, rules, straight_run):
        store = OwnershipStore()
        outcome = submit_trace(store, straight_run, "u1", rules)
        assert outcome.accepted
        assert outcome.run_id == store.runs("u1")[0].run_id
        assert all(store.get(t).owner_id == "u1" for t in outcome.claim.touched_tiles)

    def test_invalid_trace_not_committed(self, rules, make_trace):
        store = OwnershipStore()
        outcome = submit_trace(store, make_trace([300.0] * 8), "u1", rules)
        assert not outcome.accepted
        assert outcome.run_id is None
        assert store.snapshot() == {}
        assert store.runs() == []

    def test_rival_takeover(self, rules, straight_run):
        store = OwnershipStore()
        submit_trace(store, straight_run, "u1", rules)
        outcome = submit_trace(store, straight_run, "u2", rules)
        tiles = outcome.claim.touched_tiles
        assert all(store.get(t) == TileOwnership(t, "u2", 1) for t in tiles)
        assert [h.to_owner_id for h in store.history(tiles[0])] == ["u1", "u2"]
        assert store.owned_by("u1") == []

    def test_retries_after_conflict(self, rules, straight_run):
        store = FlakyStore(failures=2)
        outcome = submit_trace(store, straight_run, "u1", rules, max_retries=3)
        assert outcome.accepted
        assert store.attempts == 3

    def test_gives_up_after_max_retries(self, rules, straight_run):
        store = FlakyStore(failures=5)
        with pytest.raises(ClaimConflictError):
            submit_trace(store, straight_run, "u1", rules, max_retries=3)
        assert store.attempts == 3
        assert store.snapshot() == {}
