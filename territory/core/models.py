"""
Run-Territory Data Models

Defines the core data structures flowing through the run-to-territory pipeline:
GPS samples and traces going in, validation verdicts and ownership updates
coming out. Activity types are a closed enum with an exhaustive speed-profile
mapping (see territory.rulebook).
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from shapely.geometry import Polygon, mapping

from territory.utils.error_handling import InvalidOwnershipError


class ActivityType(str, Enum):
    """
    Declared activity type of a trace.

    Values are lowercase codes matching the ingestion payload. Walking and
    running share the `run` band.
    """
    RUN = 'run'
    CYCLE = 'cycle'

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> Optional["ActivityType"]:
        """Return the matching member, or None for an unsupported value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class ErrorCode(str, Enum):
    """Validation errors. Any error makes a trace unusable for claiming."""
    MALFORMED_TRACE = 'MalformedTrace'
    UNKNOWN_ACTIVITY_TYPE = 'UnknownActivityType'
    VEHICLE_SPEED_DETECTED = 'VehicleSpeedDetected'
    TOO_MANY_GPS_JUMPS = 'TooManyGpsJumps'

    def __str__(self) -> str:
        return self.value


class WarningCode(str, Enum):
    """Advisory findings. Warnings never flip a verdict to invalid."""
    ERRATIC_ACCELERATION = 'ErraticAcceleration'
    LOW_GPS_ACCURACY = 'LowGpsAccuracy'
    INSUFFICIENT_CAPTURE_TIME = 'InsufficientCaptureTime'

    def __str__(self) -> str:
        return self.value


class LatLng(NamedTuple):
    """A WGS84 coordinate in decimal degrees."""
    lat: float
    lng: float


@dataclass(frozen=True)
class ActivitySpeedProfile:
    """Plausible sustained speed band for an activity, in m/s."""
    min_mps: float
    max_mps: float
    label: str = ""


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def center(self) -> LatLng:
        return LatLng((self.min_lat + self.max_lat) / 2.0, (self.min_lng + self.max_lng) / 2.0)

    def contains(self, lat: float, lng: float) -> bool:
        return (self.min_lat <= lat <= self.max_lat and
                self.min_lng <= lng <= self.max_lng)


@dataclass(frozen=True)
class GPSSample:
    """
    One GPS fix.

    Attributes:
        lat: Latitude in degrees
        lng: Longitude in degrees
        timestamp_ms: Epoch milliseconds; non-decreasing within a trace
        accuracy_m: Reported horizontal accuracy in meters, if the device gave one
    """
    lat: float
    lng: float
    timestamp_ms: int
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class Trace:
    """
    An ordered GPS recording of a single run or ride. Immutable once built.

    activity_type holds an ActivityType for supported values; anything else is
    kept verbatim so the validator can report UnknownActivityType.
    """
    samples: Tuple[GPSSample, ...]
    activity_type: Union[ActivityType, str] = ActivityType.RUN

    def __post_init__(self):
        """Freeze samples into a tuple and normalize the activity type."""
        object.__setattr__(self, "samples", tuple(self.samples))
        parsed = ActivityType.parse(self.activity_type)
        if parsed is not None:
            object.__setattr__(self, "activity_type", parsed)

    def __len__(self) -> int:
        return len(self.samples)

    def path(self) -> List[Tuple[float, float]]:
        """Ordered (lng, lat) pairs for geometry construction."""
        return [(s.lng, s.lat) for s in self.samples]


@dataclass(frozen=True)
class TileOwnership:
    """
    Current ownership of one tile.

    owner_id None with strength 0 is an unclaimed tile, the same as the tile
    being absent from a snapshot.
    """
    tile_id: str
    owner_id: Optional[str] = None
    strength: int = 0

    def __post_init__(self):
        if not isinstance(self.strength, int) or self.strength < 0:
            raise InvalidOwnershipError(
                f"Tile {self.tile_id}: strength must be a non-negative integer, got {self.strength!r}"
            )
        if self.owner_id is None and self.strength > 0:
            raise InvalidOwnershipError(
                f"Tile {self.tile_id}: strength {self.strength} without an owner"
            )

    @property
    def is_claimed(self) -> bool:
        return self.owner_id is not None and self.strength > 0


@dataclass
class ValidationStats:
    """Diagnostic statistics accumulated by every validation check."""
    sample_count: int = 0
    distance_m: float = 0.0
    max_speed: float = 0.0  # m/s
    avg_speed: float = 0.0  # m/s
    vehicle_segments: int = 0
    max_acceleration: float = 0.0  # m/s²
    suspicious_accel: int = 0
    jumps: int = 0
    avg_accuracy: Optional[float] = None  # meters, None if no sample reported accuracy
    straightness: float = 0.0  # fraction of near-straight triples
    total_time: float = 0.0  # seconds
    stationary_time: float = 0.0  # seconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationVerdict:
    """
    Outcome of validate_trace.

    Errors make the trace unusable for claiming; warnings are advisory.
    messages holds one human-readable line per error/warning, in check order.
    """
    valid: bool = True
    errors: List[ErrorCode] = field(default_factory=list)
    warnings: List[WarningCode] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    stats: ValidationStats = field(default_factory=ValidationStats)

    def add_error(self, code: ErrorCode, message: str) -> None:
        self.valid = False
        self.errors.append(code)
        self.messages.append(message)

    def add_warning(self, code: WarningCode, message: str) -> None:
        self.warnings.append(code)
        self.messages.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [str(e) for e in self.errors],
            "warnings": [str(w) for w in self.warnings],
            "messages": list(self.messages),
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class TileUpdate:
    """
    New state for one touched tile.

    previous_owner_id / previous_strength echo the snapshot the update was
    computed against; persistence uses them as the compare-and-swap guard.
    """
    tile_id: str
    owner_id: str
    strength: int
    flipped: bool
    previous_owner_id: Optional[str] = None
    previous_strength: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OwnershipTransfer:
    """A flip event (first claim or takeover) for the claim-history log."""
    tile_id: str
    from_owner_id: Optional[str]
    to_owner_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ClaimGeometry:
    """
    Claim area for a trace.

    buffered_polygon is None when buffering failed for a degenerate path and
    touched_tiles came from tiling the raw samples instead.
    """
    touched_tiles: Tuple[str, ...]
    buffered_polygon: Optional[Polygon] = None

    @property
    def used_fallback(self) -> bool:
        return self.buffered_polygon is None


@dataclass
class ClaimResult:
    """Ownership deltas for one claim, to be committed atomically by the caller."""
    touched_tiles: List[str] = field(default_factory=list)
    updates: List[TileUpdate] = field(default_factory=list)
    transfers: List[OwnershipTransfer] = field(default_factory=list)
    distance_km: float = 0.0
    area_km2: float = 0.0
    buffered_polygon: Optional[Polygon] = None

    @property
    def flipped_tiles(self) -> List[str]:
        return [u.tile_id for u in self.updates if u.flipped]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "touched_tiles": list(self.touched_tiles),
            "updates": [u.to_dict() for u in self.updates],
            "transfers": [t.to_dict() for t in self.transfers],
            "distance_km": self.distance_km,
            "area_km2": self.area_km2,
            "buffered_polygon": mapping(self.buffered_polygon) if self.buffered_polygon is not None else None,
        }


@dataclass
class ClaimOutcome:
    """Validation verdict plus, for valid traces only, the claim result."""
    verdict: ValidationVerdict
    claim: Optional[ClaimResult] = None
    run_id: Optional[str] = None  # set once a store has committed the claim

    @property
    def accepted(self) -> bool:
        return self.verdict.valid and self.claim is not None


OwnershipSnapshot = Dict[str, TileOwnership]
PointLike = Union[GPSSample, LatLng]
PointSequence = Sequence[PointLike]
