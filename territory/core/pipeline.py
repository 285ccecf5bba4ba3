"""
Run-to-Territory Pipeline

Entry points called by the ingestion layer:

- validate_trace(trace) -> ValidationVerdict
- resolve_claim(trace, claimant_id, snapshot) -> ClaimResult
- process_trace(trace, claimant_id, snapshot) -> ClaimOutcome
  (validation first, claim work only for valid traces)

Nothing here performs I/O or keeps state between calls. The caller reads the
ownership snapshot before the call and commits the returned updates
atomically afterwards, re-invoking with a fresh snapshot on conflict.
"""

import logging
from typing import Mapping, Optional

from territory.core.claim.geometry import build_claim_geometry
from territory.core.claim.ownership import resolve_ownership
from territory.core.geo.primitives import path_length_meters
from territory.core.grid.tiles import tile_area_km2
from territory.core.models import ClaimGeometry, ClaimOutcome, ClaimResult, TileOwnership, Trace
from territory.core.validation.trace import validate_trace
from territory.rulebook import ClaimRules, load_rules
from territory.utils.constants import METERS_PER_KM
from territory.utils.error_handling import log_function_entry

logger = logging.getLogger(__name__)

__all__ = ["validate_trace", "resolve_claim", "process_trace"]


def resolve_claim(
    trace: Trace,
    claimant_id: str,
    snapshot: Mapping[str, TileOwnership],
    rules: Optional[ClaimRules] = None,
    geometry: Optional[ClaimGeometry] = None
) -> ClaimResult:
    """
    Claim polygon, touched tiles and ownership updates for a trace.

    Call only after validate_trace reported valid=True.

    Args:
        trace: Validated trace
        claimant_id: User making the claim
        snapshot: Current ownership of (at least) the tiles the trace touches
        rules: Claim rules (defaults to the process-wide rules)
        geometry: Claim geometry already built for this trace, reused when a
            caller retries against a fresh snapshot

    Returns:
        ClaimResult for the caller to persist atomically
    """
    rules = rules or load_rules()
    if geometry is None:
        geometry = build_claim_geometry(trace, rules)
    result = resolve_ownership(geometry.touched_tiles, claimant_id, snapshot)

    result.buffered_polygon = geometry.buffered_polygon
    result.distance_km = path_length_meters(trace.samples) / METERS_PER_KM
    result.area_km2 = sum(tile_area_km2(t, rules.grid.precision) for t in result.touched_tiles)

    logger.info(
        f"Claim for {claimant_id}: {len(result.touched_tiles)} tiles touched, "
        f"{len(result.transfers)} flipped, {result.distance_km:.2f} km"
    )
    return result


@log_function_entry
def process_trace(
    trace: Trace,
    claimant_id: str,
    snapshot: Mapping[str, TileOwnership],
    rules: Optional[ClaimRules] = None
) -> ClaimOutcome:
    """
    Validate a trace and, only if it is valid, resolve its claim.

    No geometry work is done for invalid traces.
    """
    rules = rules or load_rules()
    verdict = validate_trace(trace, rules)
    if not verdict.valid:
        return ClaimOutcome(verdict=verdict)
    return ClaimOutcome(verdict=verdict, claim=resolve_claim(trace, claimant_id, snapshot, rules))
