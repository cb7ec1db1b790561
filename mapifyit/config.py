"""
MapifyIt configuration.

Module-level defaults; every value can be overridden with a MAPIFY_* environment
variable so the same code runs against other regions without edits.
"""
import os

# Region
REGION_NAME = os.environ.get("MAPIFY_REGION", "islamabad")

# Islamabad bounding box: 33.60-33.75N, 73.00-73.15E (min_lon, min_lat, max_lon, max_lat)
REGION_BBOX = tuple(
    float(v) for v in os.environ.get("MAPIFY_REGION_BBOX", "73.00,33.60,73.15,33.75").split(",")
)

# Inline boundary used when no boundary file is available (lon, lat ring)
FALLBACK_BOUNDARY_RING = [
    (72.90, 33.55),
    (73.20, 33.55),
    (73.20, 33.80),
    (72.90, 33.80),
    (72.90, 33.55),
]

# Geodesy
EARTH_RADIUS_M = float(os.environ.get("MAPIFY_EARTH_RADIUS_M", "6371000.0"))

# Normalization
DEDUP_RADIUS_M = float(os.environ.get("MAPIFY_DEDUP_RADIUS_M", "50"))
UNNAMED_POI = "Unnamed POI"
NAME_TAG_PRIORITY = ("name", "amenity", "shop", "tourism")
CATEGORY_RULES_YML = os.environ.get("MAPIFY_CATEGORY_RULES_YML", "").strip() or None

# Spatial index
GRID_TARGET_PER_CELL = int(os.environ.get("MAPIFY_GRID_TARGET_PER_CELL", "12"))

# Queries
SEARCH_LIMIT = int(os.environ.get("MAPIFY_SEARCH_LIMIT", "20"))
BUFFER_SEGMENTS = int(os.environ.get("MAPIFY_BUFFER_SEGMENTS", "64"))

# Overpass API (raw POI source)
OVERPASS_URL = os.environ.get("MAPIFY_OVERPASS_URL", "https://overpass-api.de/api/interpreter")
OVERPASS_TIMEOUT = float(os.environ.get("MAPIFY_OVERPASS_TIMEOUT", "30"))
OVERPASS_FILTERS = {
    "amenity": ["restaurant", "cafe", "hospital", "school", "bank", "fuel", "place_of_worship", "clinic", "pharmacy"],
    "tourism": ["attraction", "museum", "hotel"],
    "shop": ["mall", "supermarket"],
}

# Landmarks served when Overpass is unreachable and the fallback is requested (name, lon, lat, category_group)
FALLBACK_POIS = [
    ("F-8 Markaz", 73.0479, 33.6844, "Commercial"),
    ("F-10 Markaz", 73.0450, 33.6900, "Commercial"),
    ("Centaurus Mall", 73.0623, 33.7135, "Commercial"),
    ("Pakistan Monument", 73.0678, 33.6934, "Cultural"),
    ("Faisal Mosque", 73.0366, 33.7294, "Religious"),
]
