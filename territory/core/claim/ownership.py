"""
Ownership Resolver

Applies one claimant's touched tiles to a snapshot of tile ownership:

    unclaimed            -> claimant, strength 1, flipped
    owned by claimant    -> strength + 1
    owned by someone else-> strength - 1; at 0 the claimant takes it with
                            strength 1 (flipped), otherwise the existing owner
                            keeps it at the reduced strength

The snapshot is never mutated. Tiles are independent, so the only effect of
processing order is the order of the returned updates.
"""

import logging
from typing import Iterable, List, Mapping, Optional

from territory.core.models import ClaimResult, OwnershipTransfer, TileOwnership, TileUpdate

logger = logging.getLogger(__name__)


def resolve_tile(tile_id: str, claimant_id: str, current: Optional[TileOwnership]) -> TileUpdate:
    """New state for a single tile claimed by claimant_id."""
    if current is None or not current.is_claimed:
        return TileUpdate(
            tile_id=tile_id,
            owner_id=claimant_id,
            strength=1,
            flipped=True,
            previous_owner_id=current.owner_id if current is not None else None,
            previous_strength=current.strength if current is not None else 0,
        )

    if current.owner_id == claimant_id:
        return TileUpdate(
            tile_id=tile_id,
            owner_id=claimant_id,
            strength=current.strength + 1,
            flipped=False,
            previous_owner_id=current.owner_id,
            previous_strength=current.strength,
        )

    strength = current.strength - 1
    if strength <= 0:
        return TileUpdate(
            tile_id=tile_id,
            owner_id=claimant_id,
            strength=1,
            flipped=True,
            previous_owner_id=current.owner_id,
            previous_strength=current.strength,
        )
    return TileUpdate(
        tile_id=tile_id,
        owner_id=current.owner_id,
        strength=strength,
        flipped=False,
        previous_owner_id=current.owner_id,
        previous_strength=current.strength,
    )


def resolve_ownership(
    touched_tiles: Iterable[str],
    claimant_id: str,
    snapshot: Mapping[str, TileOwnership]
) -> ClaimResult:
    """
    Ownership updates for a claim against one consistent snapshot.

    Args:
        touched_tiles: Tile ids in discovery order; repeats are applied once
        claimant_id: User making the claim
        snapshot: Current ownership by tile id; absent tiles are unclaimed

    Returns:
        ClaimResult with one update per distinct touched tile and a transfer
        record for every flip
    """
    if not claimant_id:
        raise ValueError("claimant_id is required")

    tiles: List[str] = list(dict.fromkeys(touched_tiles))
    result = ClaimResult(touched_tiles=tiles)
    for tile_id in tiles:
        update = resolve_tile(tile_id, claimant_id, snapshot.get(tile_id))
        result.updates.append(update)
        if update.flipped:
            from_owner = update.previous_owner_id if update.previous_strength > 0 else None
            result.transfers.append(OwnershipTransfer(tile_id, from_owner, claimant_id))

    logger.debug(
        f"Resolved {len(tiles)} tiles for {claimant_id}: "
        f"{len(result.transfers)} flipped"
    )
    return result
