"""
API Routes for Trace Validation and Territory Claims

Thin ingestion glue over the core pipeline:

- POST /api/traces/validate  - verdict only
- POST /api/claims/resolve   - verdict + ownership updates against a snapshot
                               supplied in the request (stateless)
- POST /api/claims/submit    - verdict + updates committed to the process store
- GET  /api/tiles/{tile_id}  - tile rectangle, area and current ownership

Rejected traces return 422 with the verdict's error codes. Invalid tile ids
and broken snapshot rows return 400. Exhausted commit retries return 409.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from territory.api.models import (
    ClaimResponse,
    ErrorResponse,
    ResolveRequest,
    ResolveResponse,
    SubmitRequest,
    SubmitResponse,
    TileResponse,
    TraceRequest,
    VerdictResponse,
)
from territory.core.grid.tiles import tile_area_km2, tile_polygon
from territory.core.models import ValidationVerdict
from territory.core.pipeline import process_trace, validate_trace
from territory.rulebook import ClaimRules, load_rules
from territory.storage import OwnershipStore, submit_trace
from territory.utils.error_handling import ClaimConflictError, PreconditionError

# Create router
router = APIRouter()
logger = logging.getLogger(__name__)

_store = OwnershipStore()


def get_store() -> OwnershipStore:
    """Process-wide ownership store (override in tests)."""
    return _store


def get_rules() -> ClaimRules:
    return load_rules()


def _error(code: int, message: str, verdict: Optional[ValidationVerdict] = None) -> JSONResponse:
    body = ErrorResponse(
        code=code,
        error=message,
        errors=[str(e) for e in verdict.errors] if verdict is not None else [],
        verdict=VerdictResponse.from_verdict(verdict) if verdict is not None else None,
    )
    return JSONResponse(status_code=code, content=body.model_dump())


@router.post("/api/traces/validate", response_model=VerdictResponse)
def validate_trace_endpoint(request: TraceRequest, rules: ClaimRules = Depends(get_rules)):
    """Run anti-cheat validation on a trace."""
    verdict = validate_trace(request.to_trace(), rules)
    return VerdictResponse.from_verdict(verdict)


@router.post(
    "/api/claims/resolve",
    response_model=ResolveResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def resolve_claim_endpoint(request: ResolveRequest, rules: ClaimRules = Depends(get_rules)):
    """
    Validate a trace and compute ownership updates against the given snapshot.

    Nothing is persisted; the caller commits the updates.
    """
    try:
        snapshot = request.to_snapshot()
        outcome = process_trace(request.to_trace(), request.claimant_id, snapshot, rules)
    except PreconditionError as e:
        logger.warning(f"Bad resolve request: {e}")
        return _error(400, str(e))

    if not outcome.accepted:
        return _error(422, "Trace rejected", outcome.verdict)

    return ResolveResponse(
        verdict=VerdictResponse.from_verdict(outcome.verdict),
        claim=ClaimResponse.from_result(outcome.claim),
    )


@router.post(
    "/api/claims/submit",
    response_model=SubmitResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def submit_claim_endpoint(
    request: SubmitRequest,
    store: OwnershipStore = Depends(get_store),
    rules: ClaimRules = Depends(get_rules),
):
    """Validate a trace, resolve its claim and commit it to the store."""
    try:
        outcome = submit_trace(store, request.to_trace(), request.claimant_id, rules)
    except ClaimConflictError as e:
        return _error(409, e.message)

    if not outcome.accepted:
        return _error(422, "Trace rejected", outcome.verdict)

    return SubmitResponse(
        run_id=outcome.run_id,
        verdict=VerdictResponse.from_verdict(outcome.verdict),
        claim=ClaimResponse.from_result(outcome.claim),
    )


@router.get("/api/tiles/{tile_id}", response_model=TileResponse, responses={400: {"model": ErrorResponse}})
def get_tile(
    tile_id: str,
    store: OwnershipStore = Depends(get_store),
    rules: ClaimRules = Depends(get_rules),
):
    """Tile rectangle, area and current ownership."""
    precision = rules.grid.precision
    try:
        ring = tile_polygon(tile_id, precision)
    except PreconditionError as e:
        return _error(400, str(e))

    row = store.get(tile_id)
    return TileResponse(
        tile_id=tile_id,
        polygon=[list(p) for p in ring],
        area_km2=tile_area_km2(tile_id, precision),
        owner_id=row.owner_id if row is not None else None,
        strength=row.strength if row is not None else 0,
    )
