"""
In-Memory Ownership Store for Run-Territory

Reference persistence adapter for the caller side of the pipeline. The core
never touches this module; the ingestion layer reads a snapshot here, calls
the core, and commits the returned updates.

Commits are all-or-nothing. Each update is guarded by the (owner_id,
strength) it was computed against, so two claims racing on a shared tile
cannot both apply; the loser gets ClaimConflictError and is resolved again
against a fresh snapshot by submit_trace.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
import logging
import threading

import shortuuid

from territory.core.claim.geometry import build_claim_geometry
from territory.core.models import (
    BoundingBox,
    ClaimOutcome,
    ClaimResult,
    OwnershipTransfer,
    TileOwnership,
    Trace,
)
from territory.core.grid.tiles import tile_bounds
from territory.core.pipeline import resolve_claim, validate_trace
from territory.rulebook import ClaimRules, load_rules
from territory.utils.constants import DEFAULT_COMMIT_RETRIES
from territory.utils.error_handling import ClaimConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredRun:
    """A committed trace with the summary the caller keeps for user stats."""
    run_id: str
    claimant_id: str
    trace: Trace
    distance_km: float
    tiles_touched: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class OwnershipStore:
    """
    Process-local tile ownership table with claim history.

    Rows are created on first claim and never deleted.

    Example:
        store = OwnershipStore()
        outcome = submit_trace(store, trace, "user-1")
        store.get(outcome.claim.touched_tiles[0])
    """

    def __init__(self):
        self._tiles: Dict[str, TileOwnership] = {}
        self._history: List[OwnershipTransfer] = []
        self._runs: List[StoredRun] = []
        self._lock = threading.Lock()

    def get(self, tile_id: str) -> Optional[TileOwnership]:
        with self._lock:
            return self._tiles.get(tile_id)

    def snapshot(self, tile_ids: Optional[Iterable[str]] = None) -> Dict[str, TileOwnership]:
        """
        Consistent copy of ownership rows.

        Args:
            tile_ids: Tiles to include (default: whole table). Unknown ids are
                simply absent, which means unclaimed.
        """
        with self._lock:
            if tile_ids is None:
                return dict(self._tiles)
            return {t: self._tiles[t] for t in tile_ids if t in self._tiles}

    def snapshot_bbox(self, bbox: BoundingBox) -> Dict[str, TileOwnership]:
        """Rows whose tile rectangle overlaps a bounding box."""
        with self._lock:
            rows = dict(self._tiles)
        result = {}
        for tile_id, row in rows.items():
            b = tile_bounds(tile_id)
            if (b.min_lat <= bbox.max_lat and b.max_lat >= bbox.min_lat and
                    b.min_lng <= bbox.max_lng and b.max_lng >= bbox.min_lng):
                result[tile_id] = row
        return result

    def commit(
        self,
        result: ClaimResult,
        claimant_id: Optional[str] = None,
        trace: Optional[Trace] = None
    ) -> Optional[StoredRun]:
        """
        Atomically apply a claim result.

        Args:
            result: Output of resolve_claim
            claimant_id: Claimant, required to record the run
            trace: Original trace, recorded alongside the updates

        Returns:
            StoredRun if a trace was recorded, else None

        Raises:
            ClaimConflictError: If any touched tile changed since the snapshot
        """
        with self._lock:
            conflicts = []
            for update in result.updates:
                current = self._tiles.get(update.tile_id)
                owner = current.owner_id if current is not None else None
                strength = current.strength if current is not None else 0
                if (owner, strength) != (update.previous_owner_id, update.previous_strength):
                    conflicts.append(update.tile_id)
            if conflicts:
                raise ClaimConflictError(
                    f"{len(conflicts)} tile(s) changed since snapshot: {conflicts[:5]}",
                    tile_ids=tuple(conflicts),
                )

            for update in result.updates:
                self._tiles[update.tile_id] = TileOwnership(
                    tile_id=update.tile_id,
                    owner_id=update.owner_id,
                    strength=update.strength,
                )
            self._history.extend(result.transfers)

            run = None
            if trace is not None and claimant_id is not None:
                run = StoredRun(
                    run_id=shortuuid.uuid(),
                    claimant_id=claimant_id,
                    trace=trace,
                    distance_km=result.distance_km,
                    tiles_touched=len(result.touched_tiles),
                )
                self._runs.append(run)

        logger.info(f"Committed {len(result.updates)} tile updates ({len(result.transfers)} flips)")
        return run

    def history(self, tile_id: Optional[str] = None) -> List[OwnershipTransfer]:
        with self._lock:
            if tile_id is None:
                return list(self._history)
            return [t for t in self._history if t.tile_id == tile_id]

    def owned_by(self, owner_id: str) -> List[TileOwnership]:
        with self._lock:
            return [row for row in self._tiles.values() if row.owner_id == owner_id and row.strength > 0]

    def runs(self, claimant_id: Optional[str] = None) -> List[StoredRun]:
        with self._lock:
            if claimant_id is None:
                return list(self._runs)
            return [r for r in self._runs if r.claimant_id == claimant_id]


def submit_trace(
    store: OwnershipStore,
    trace: Trace,
    claimant_id: str,
    rules: Optional[ClaimRules] = None,
    max_retries: int = DEFAULT_COMMIT_RETRIES
) -> ClaimOutcome:
    """
    Validate, resolve and commit a trace, retrying on concurrent updates.

    The claim geometry is built once; each attempt re-reads the snapshot for
    the touched tiles and resolves ownership again.

    Raises:
        ClaimConflictError: If every attempt hit a conflicting update
    """
    rules = rules or load_rules()
    verdict = validate_trace(trace, rules)
    if not verdict.valid:
        return ClaimOutcome(verdict=verdict)

    geometry = build_claim_geometry(trace, rules)
    last_error: Optional[ClaimConflictError] = None
    for attempt in range(1, max_retries + 1):
        snapshot = store.snapshot(geometry.touched_tiles)
        result = resolve_claim(trace, claimant_id, snapshot, rules, geometry=geometry)
        try:
            run = store.commit(result, claimant_id=claimant_id, trace=trace)
            return ClaimOutcome(verdict=verdict, claim=result, run_id=run.run_id if run else None)
        except ClaimConflictError as e:
            last_error = e
            logger.warning(f"Claim conflict for {claimant_id} (attempt {attempt}/{max_retries}): {e}")

    raise ClaimConflictError(
        f"Could not commit claim for {claimant_id} after {max_retries} attempts",
        tile_ids=last_error.tile_ids if last_error else None,
    )
