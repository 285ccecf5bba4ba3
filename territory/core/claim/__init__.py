from territory.core.claim.geometry import build_claim_geometry, buffer_path
from territory.core.claim.ownership import resolve_ownership, resolve_tile

__all__ = [
    "build_claim_geometry",
    "buffer_path",
    "resolve_ownership",
    "resolve_tile",
]
