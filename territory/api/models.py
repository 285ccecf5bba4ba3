"""
Pydantic Models for the Run-Territory API

Request models deserialize incoming traces and ownership snapshots into core
types; response models mirror the core results. Coordinate ranges are not
enforced here: out-of-range points reach the validator and come back as a
MalformedTrace verdict rather than a schema error.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from territory.core.models import (
    ClaimResult,
    GPSSample,
    TileOwnership,
    Trace,
    ValidationVerdict,
)


class GPSPointRequest(BaseModel):
    """
    One GPS fix as sent by the mobile client.

    Attributes:
        lat: Latitude in degrees
        lng: Longitude in degrees
        timestamp: Epoch milliseconds
        accuracy: Horizontal accuracy in meters (optional)
    """
    lat: float
    lng: float
    timestamp: int = Field(..., description="Epoch milliseconds")
    accuracy: Optional[float] = Field(default=None, ge=0, description="Horizontal accuracy in meters")

    def to_sample(self) -> GPSSample:
        return GPSSample(lat=self.lat, lng=self.lng, timestamp_ms=self.timestamp, accuracy_m=self.accuracy)


class TraceRequest(BaseModel):
    """Request model for POST /api/traces/validate."""
    points: List[GPSPointRequest] = Field(default_factory=list, description="GPS points in recording order")
    activity_type: str = Field(default="run", description="Activity type (run, cycle)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "activity_type": "run",
                "points": [
                    {"lat": 45.9620, "lng": -66.6500, "timestamp": 1700000000000, "accuracy": 8.0},
                    {"lat": 45.9710, "lng": -66.6500, "timestamp": 1700000300000, "accuracy": 6.5}
                ]
            }
        }
    }

    def to_trace(self) -> Trace:
        return Trace(samples=tuple(p.to_sample() for p in self.points), activity_type=self.activity_type)


class TileOwnershipModel(BaseModel):
    tile_id: str
    owner_id: Optional[str] = None
    strength: int = Field(default=0, ge=0)

    def to_ownership(self) -> TileOwnership:
        return TileOwnership(tile_id=self.tile_id, owner_id=self.owner_id, strength=self.strength)


class SubmitRequest(TraceRequest):
    """Request model for POST /api/claims/submit."""
    claimant_id: str = Field(..., min_length=1, description="User making the claim")


class ResolveRequest(SubmitRequest):
    """
    Request model for POST /api/claims/resolve.

    snapshot carries current ownership of the area; tiles not listed are
    unclaimed.
    """
    snapshot: List[TileOwnershipModel] = Field(default_factory=list)

    def to_snapshot(self) -> Dict[str, TileOwnership]:
        return {row.tile_id: row.to_ownership() for row in self.snapshot}


class VerdictResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_verdict(cls, verdict: ValidationVerdict) -> "VerdictResponse":
        return cls(**verdict.to_dict())


class TileUpdateModel(BaseModel):
    tile_id: str
    owner_id: str
    strength: int
    flipped: bool
    previous_owner_id: Optional[str] = None
    previous_strength: int = 0


class OwnershipTransferModel(BaseModel):
    tile_id: str
    from_owner_id: Optional[str] = None
    to_owner_id: str


class ClaimResponse(BaseModel):
    touched_tiles: List[str]
    updates: List[TileUpdateModel]
    transfers: List[OwnershipTransferModel] = Field(default_factory=list)
    distance_km: float = 0.0
    area_km2: float = 0.0
    buffered_polygon: Optional[Dict[str, Any]] = Field(default=None, description="GeoJSON Polygon")

    @classmethod
    def from_result(cls, result: ClaimResult) -> "ClaimResponse":
        return cls(**result.to_dict())


class ResolveResponse(BaseModel):
    status: str = "OK"
    verdict: VerdictResponse
    claim: ClaimResponse


class SubmitResponse(ResolveResponse):
    run_id: Optional[str] = None


class TileResponse(BaseModel):
    tile_id: str
    polygon: List[List[float]] = Field(..., description="Closed ring of [lng, lat] pairs")
    area_km2: float
    owner_id: Optional[str] = None
    strength: int = 0


class ErrorResponse(BaseModel):
    """Error response with status, HTTP code and message."""
    status: str = Field(default="ERROR")
    code: int
    error: str
    errors: List[str] = Field(default_factory=list)
    verdict: Optional[VerdictResponse] = None
