# territory/rulebook.py
"""
Single Source of Truth (SSOT) for claim rules.

This module is the ONLY place that reads claim_rules.yml. Every tunable the
validator, grid scan and claim builder use comes from a ClaimRules instance;
values the YAML omits fall back to territory.utils.constants.

Expected YAML structure:
    version: "1.0"
    activities:
      run:   { min_mps: 0.56, max_mps: 5.56, label: "Running/Walking" }
      cycle: { min_mps: 2.78, max_mps: 11.11, label: "Cycling" }
    validation:
      vehicle_speed_mps: 6.94
      ...
    grid:   { precision: 7, scan_step_deg: 0.0005, scan_margin_deg: 0.0015 }
    claim:  { buffer_km: 0.05, quad_segs: 8 }
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Mapping
import yaml
import pathlib
import functools
import logging

from territory.core.models import ActivitySpeedProfile, ActivityType
from territory.utils import constants as C
from territory.utils.env import env_str
from territory.utils.error_handling import RulebookError

logger = logging.getLogger(__name__)

# ---------- Data Models ----------

DEFAULT_SPEED_PROFILES: Dict[ActivityType, ActivitySpeedProfile] = {
    ActivityType.RUN: ActivitySpeedProfile(C.RUN_MIN_MPS, C.RUN_MAX_MPS, "Running/Walking"),
    ActivityType.CYCLE: ActivitySpeedProfile(C.CYCLE_MIN_MPS, C.CYCLE_MAX_MPS, "Cycling"),
}

@dataclass(frozen=True)
class ValidationThresholds:
    """Anti-cheat thresholds used by the trace validator."""
    vehicle_speed_mps: float = C.VEHICLE_SPEED_THRESHOLD_MPS
    vehicle_max_consecutive: int = C.VEHICLE_MAX_CONSECUTIVE_SEGMENTS
    acceleration_mps2: float = C.ACCELERATION_THRESHOLD_MPS2
    acceleration_window_s: float = C.ACCELERATION_WINDOW_SECONDS
    acceleration_short_dt_s: float = C.ACCELERATION_SHORT_DT_SECONDS
    max_suspicious_accel: int = C.MAX_SUSPICIOUS_ACCELERATIONS
    jump_distance_m: float = C.GPS_JUMP_DISTANCE_M
    jump_window_s: float = C.GPS_JUMP_WINDOW_SECONDS
    max_jumps: int = C.MAX_GPS_JUMPS
    low_accuracy_m: float = C.LOW_ACCURACY_THRESHOLD_M
    straight_deviation_deg: float = C.STRAIGHT_DEVIATION_DEGREES
    stationary_distance_m: float = C.STATIONARY_DISTANCE_M
    min_capture_time_s: float = C.MIN_CAPTURE_TIME_SECONDS

@dataclass(frozen=True)
class GridSettings:
    """Tile grid precision and scan parameters."""
    precision: int = C.TILE_PRECISION
    scan_step_deg: float = C.TILE_SCAN_STEP_DEG
    scan_margin_deg: float = C.TILE_SCAN_MARGIN_DEG

@dataclass(frozen=True)
class ClaimSettings:
    """Claim polygon buffering parameters."""
    buffer_km: float = C.CLAIM_BUFFER_KM
    quad_segs: int = C.CLAIM_BUFFER_QUAD_SEGS

@dataclass(frozen=True)
class ClaimRules:
    """Complete rule set for one process."""
    version: str = "defaults"
    speed_profiles: Mapping[ActivityType, ActivitySpeedProfile] = field(
        default_factory=lambda: dict(DEFAULT_SPEED_PROFILES)
    )
    validation: ValidationThresholds = field(default_factory=ValidationThresholds)
    grid: GridSettings = field(default_factory=GridSettings)
    claim: ClaimSettings = field(default_factory=ClaimSettings)

    def __post_init__(self):
        missing = [a.value for a in ActivityType if a not in self.speed_profiles]
        if missing:
            raise RulebookError(f"No speed profile for activity types: {missing}")

    def speed_profile(self, activity: ActivityType) -> ActivitySpeedProfile:
        return self.speed_profiles[activity]

# ---------- Loader / SSOT ----------

def _rules_path(path: Optional[str] = None) -> pathlib.Path:
    return pathlib.Path(path or env_str(C.RULES_PATH_ENV, C.DEFAULT_RULES_PATH))

@functools.lru_cache(maxsize=4)
def _load_yaml(path: Optional[str] = None) -> Dict[str, Any]:
    """Load rules YAML (cached). Missing file means defaults."""
    p = _rules_path(path)
    if not p.exists():
        logger.info(f"No claim rules at {p}, using built-in defaults")
        return {}
    logger.info(f"Loading claim rules from {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RulebookError(f"Failed to parse {p}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RulebookError(f"{p} must contain a mapping at the top level")
    return data

def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise RulebookError(f"Section '{key}' must be a mapping")
    return value

def _pick(section: Dict[str, Any], cls) -> Dict[str, Any]:
    """Keep only keys the dataclass knows about."""
    known = set(cls.__dataclass_fields__)
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in section.items() if k in known}

def build_rules(data: Dict[str, Any]) -> ClaimRules:
    """Build ClaimRules from a parsed YAML mapping."""
    profiles = dict(DEFAULT_SPEED_PROFILES)
    for key, band in _section(data, "activities").items():
        activity = ActivityType.parse(key)
        if activity is None:
            logger.warning(f"Ignoring rules for unsupported activity type '{key}'")
            continue
        if not isinstance(band, dict):
            raise RulebookError(f"Activity '{key}' must be a mapping")
        base = profiles[activity]
        profile = ActivitySpeedProfile(
            min_mps=float(band.get("min_mps", base.min_mps)),
            max_mps=float(band.get("max_mps", base.max_mps)),
            label=str(band.get("label", base.label)),
        )
        if profile.min_mps < 0 or profile.max_mps <= profile.min_mps:
            raise RulebookError(f"Invalid speed band for '{key}': {profile}")
        profiles[activity] = profile

    try:
        grid = GridSettings(**_pick(_section(data, "grid"), GridSettings))
        claim = ClaimSettings(**_pick(_section(data, "claim"), ClaimSettings))
        validation = ValidationThresholds(**_pick(_section(data, "validation"), ValidationThresholds))
    except TypeError as e:
        raise RulebookError(f"Invalid claim rules: {e}") from e

    if grid.scan_step_deg <= 0 or grid.scan_margin_deg < 0:
        raise RulebookError(f"Invalid grid scan settings: {grid}")
    if claim.buffer_km <= 0 or claim.quad_segs < 1:
        raise RulebookError(f"Invalid claim settings: {claim}")

    return ClaimRules(
        version=str(data.get("version", "defaults")),
        speed_profiles=profiles,
        validation=validation,
        grid=grid,
        claim=claim,
    )

@functools.lru_cache(maxsize=4)
def load_rules(path: Optional[str] = None) -> ClaimRules:
    """Load and cache the process-wide ClaimRules."""
    rules = build_rules(_load_yaml(path))
    logger.info(f"Claim rules version: {rules.version}")
    return rules

def version(path: Optional[str] = None) -> str:
    """Get rules version."""
    return load_rules(path).version

def clear_cache() -> None:
    """Drop cached rules (tests and config reloads)."""
    _load_yaml.cache_clear()
    load_rules.cache_clear()
