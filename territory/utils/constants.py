"""
Application Constants

This module contains all application-wide constants to avoid magic numbers
and improve maintainability. Values here are the defaults; config/claim_rules.yml
may override the tunable ones (see territory.rulebook).
"""

# Earth model
EARTH_RADIUS_M = 6371000.0

# Distance / time conversion
METERS_PER_KM = 1000.0
MS_PER_SECOND = 1000.0
KMH_PER_MPS = 3.6

# Activity speed bands (m/s)
RUN_MIN_MPS = 0.56    # 2 km/h
RUN_MAX_MPS = 5.56    # 20 km/h
CYCLE_MIN_MPS = 2.78  # 10 km/h
CYCLE_MAX_MPS = 11.11  # 40 km/h

# Vehicle detection
VEHICLE_SPEED_THRESHOLD_MPS = 6.94  # 25 km/h
VEHICLE_MAX_CONSECUTIVE_SEGMENTS = 5

# Acceleration analysis
ACCELERATION_THRESHOLD_MPS2 = 5.0
ACCELERATION_WINDOW_SECONDS = 10.0
ACCELERATION_SHORT_DT_SECONDS = 3.0
MAX_SUSPICIOUS_ACCELERATIONS = 3

# GPS quality analysis
GPS_JUMP_DISTANCE_M = 100.0
GPS_JUMP_WINDOW_SECONDS = 5.0
MAX_GPS_JUMPS = 5
LOW_ACCURACY_THRESHOLD_M = 50.0
STRAIGHT_DEVIATION_DEGREES = 5.0

# Capture time analysis
STATIONARY_DISTANCE_M = 5.0
MIN_CAPTURE_TIME_SECONDS = 180.0

# Tile grid (geohash)
TILE_PRECISION = 7  # ~150m cells
GEOHASH_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
# Precision 7 cell edge is 360/2^18 = 180/2^17 = 0.001373 degrees on both axes
TILE_SCAN_STEP_DEG = 0.0005
TILE_SCAN_MARGIN_DEG = 0.0015

# Claim geometry
CLAIM_BUFFER_KM = 0.05  # ~50m buffer around path
CLAIM_BUFFER_QUAD_SEGS = 8

# Persistence
DEFAULT_COMMIT_RETRIES = 3

# Configuration
DEFAULT_RULES_PATH = "config/claim_rules.yml"
RULES_PATH_ENV = "TERRITORY_RULES_PATH"
