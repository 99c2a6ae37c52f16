"""Configuration management."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
# Try to load from standard locations
env_paths = [
    Path("/etc/ridetrack/.env"),  # Production location
    Path(".env"),  # Current directory
    Path(__file__).parent.parent.parent / ".env",  # Project root
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    # Fallback: try default load_dotenv() behavior
    load_dotenv()

# Dry run mode (no outgoing HTTP for routing or geocoding)
DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Earth model
EARTH_RADIUS_KM = 6371.0

# Position stream (trip accuracy settings)
POSITION_HIGH_ACCURACY = True
POSITION_MAXIMUM_AGE = 0  # never accept cached fixes
POSITION_TIMEOUT_SECONDS = 10.0  # per-fix timeout

# GPS receiver on serial (NMEA 0183)
GPS_SERIAL_PORT = os.getenv("GPS_SERIAL_PORT", "/dev/ttyACM0")
GPS_SERIAL_BAUDRATE = int(os.getenv("GPS_SERIAL_BAUDRATE", "9600"))

# Routing providers (OSRM compatible, primary first)
PRIMARY_ROUTING_URL = os.getenv(
    "PRIMARY_ROUTING_URL", "https://routing.openstreetmap.de/routed-car"
)
FALLBACK_ROUTING_URL = os.getenv(
    "FALLBACK_ROUTING_URL", "https://router.project-osrm.org"
)
ROUTING_PROFILE = "driving"
ROUTING_TIMEOUT = 10  # seconds

# Route stabilization: minimum displacement before refetching
ROUTE_REFETCH_THRESHOLD_M = 30.0

# Nominatim geocoding API
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
NOMINATIM_RATE_LIMIT_SECONDS = 1  # Nominatim requires max 1 request per second
NOMINATIM_TIMEOUT = 5  # seconds
GEOCODE_COUNTRY = os.getenv("GEOCODE_COUNTRY", "Brazil")
GEOCODE_COUNTRY_CODES = os.getenv("GEOCODE_COUNTRY_CODES", "br")
GEOCODE_MIN_QUERY_LENGTH = 3
GEOCODE_SUGGESTION_LIMIT = 5

# Map viewport
VIEWPORT_PADDING = (80, 80)  # pixels
VIEWPORT_MAX_ZOOM = 17
VIEWPORT_ROUTE_SAMPLE_STEP = 10  # every Nth route vertex is used for bounds

# Project information
PROJECT_NAME = "Ride Tracking Engine"
USER_AGENT = "RideTrackingEngine/1.0"
