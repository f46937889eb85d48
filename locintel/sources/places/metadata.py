"""
Metadata for the venue provider APIs.

Defines request field lists, category codes, sort mappings and the
body-level status codes the Google Places API reports.
"""

from typing import Dict, List

# =============================================================================
# FOURSQUARE
# =============================================================================

FOURSQUARE_BASE_URL = "https://api.foursquare.com/v3"

# /places/search rejects larger pages
FOURSQUARE_MAX_LIMIT = 50

FOURSQUARE_VENUE_FIELDS: List[str] = [
    "fsq_id",
    "name",
    "location",
    "geocodes",
    "categories",
    "chains",
    "distance",
    "popularity",
    "rating",
    "price",
    "hours",
    "website",
    "tel",
    "email",
    "verified",
    "stats",
]

FOURSQUARE_STATS_FIELDS: List[str] = [
    "visits_by_day",
    "visits_by_hour",
    "popularity_by_hour",
    "demographic_breakdown",
]

FOURSQUARE_EVENT_FIELDS: List[str] = [
    "fsq_id",
    "name",
    "description",
    "start_time",
    "end_time",
    "location",
    "geocodes",
    "category",
    "stats",
]

FOURSQUARE_EVENTS_LIMIT = 100

# Food and Dining root category plus common restaurant groups
FOURSQUARE_FOOD_AND_DINING = "13000"

FOURSQUARE_CATEGORY_CODES: Dict[str, List[str]] = {
    "all_dining": [FOURSQUARE_FOOD_AND_DINING],
    "fast_food": ["13145", "13146"],
    "casual_dining": ["13065", "13066"],
    "fine_dining": ["13064"],
    "cafe": ["13032", "13033"],
    "pizza": ["13064"],
    "asian": ["13072", "13073"],
    "mexican": ["13074"],
    "italian": ["13066"],
}

FOURSQUARE_SORT_VALUES: Dict[str, str] = {
    "popularity": "POPULARITY",
    "distance": "DISTANCE",
    "prominence": "RELEVANCE",
}

# =============================================================================
# GOOGLE PLACES
# =============================================================================

GOOGLE_PLACES_BASE_URL = "https://maps.googleapis.com/maps/api/place"

GOOGLE_NEARBY_TYPE = "restaurant"

GOOGLE_DETAIL_FIELDS: List[str] = [
    "place_id",
    "name",
    "geometry",
    "types",
    "vicinity",
    "formatted_address",
    "formatted_phone_number",
    "opening_hours",
    "website",
    "rating",
    "user_ratings_total",
    "price_level",
    "business_status",
]

# Body-level "status" values
GOOGLE_STATUS_OK = "OK"
GOOGLE_STATUS_ZERO_RESULTS = "ZERO_RESULTS"
GOOGLE_STATUS_NOT_FOUND = "NOT_FOUND"
GOOGLE_STATUS_OVER_QUERY_LIMIT = "OVER_QUERY_LIMIT"
GOOGLE_STATUS_REQUEST_DENIED = "REQUEST_DENIED"
GOOGLE_STATUS_INVALID_REQUEST = "INVALID_REQUEST"
GOOGLE_STATUS_UNKNOWN_ERROR = "UNKNOWN_ERROR"

GOOGLE_SUCCESS_STATUSES = {GOOGLE_STATUS_OK, GOOGLE_STATUS_ZERO_RESULTS}

# Ratings count treated as maximal popularity (log10(1 + n) / 4 == 1)
GOOGLE_POPULARITY_SATURATION_EXPONENT = 4.0

# =============================================================================
# HEALTH PROBE
# =============================================================================

# New York City
HEALTH_PROBE_LATITUDE = 40.7128
HEALTH_PROBE_LONGITUDE = -74.0060


def expand_foursquare_categories(category_filter) -> List[str]:
    """
    Turn a category filter into Foursquare category codes.

    Named groups (``cafe``, ``fast_food``...) expand to their codes; anything
    else is passed through as a raw code. An empty filter means all dining.
    """
    codes: List[str] = []
    for item in sorted(category_filter):
        for code in FOURSQUARE_CATEGORY_CODES.get(item, [item]):
            if code not in codes:
                codes.append(code)
    return codes or [FOURSQUARE_FOOD_AND_DINING]
