"""
Canonical venue mapping.

Pure functions converting raw provider payloads into ``Venue``. Only the
name and coordinates are required; everything else is optional and
normalized onto shared scales:

- popularity in [0, 1]
- rating on a 5-point scale
- price level in 1..4
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from locintel.core.api_errors import VenueMappingError
from locintel.core.geo import safe_float
from locintel.core.schemas import (
    AgeGroup,
    DailyVisits,
    Demographics,
    GeoPoint,
    HourlyVisits,
    SourceProvider,
    Venue,
    VenueCategory,
    VisitStats,
    utc_now,
)
from locintel.sources.places.metadata import GOOGLE_POPULARITY_SATURATION_EXPONENT

logger = logging.getLogger(__name__)

# Google types that describe every place and say nothing about the venue
GENERIC_GOOGLE_TYPES = {"point_of_interest", "establishment"}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _price_level(value: Any) -> Optional[int]:
    price = safe_float(value)
    if price is None:
        return None
    return int(_clamp(round(price), 1, 4))


def _require_name(raw: Dict[str, Any], source: str) -> str:
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise VenueMappingError("Venue is missing a name", source=source, field="name")
    return name.strip()


def _require_point(lat: Any, lng: Any, source: str) -> GeoPoint:
    latitude = safe_float(lat)
    longitude = safe_float(lng)
    if latitude is None or longitude is None:
        raise VenueMappingError(
            "Venue is missing coordinates", source=source, field="location"
        )
    try:
        return GeoPoint(latitude=latitude, longitude=longitude)
    except ValueError as e:
        raise VenueMappingError(
            f"Venue coordinates out of range: {latitude},{longitude}",
            source=source,
            field="location",
        ) from e


# =============================================================================
# Foursquare
# =============================================================================


def from_foursquare(raw: Dict[str, Any], fetched_at: Optional[datetime] = None) -> Venue:
    """
    Map a Foursquare Places v3 result to a Venue.

    Args:
        raw: Place dictionary from /places/search or /places/{id}
        fetched_at: When the payload was fetched (defaults to now)

    Raises:
        VenueMappingError: If name or coordinates are missing
    """
    source = SourceProvider.FOURSQUARE.value
    name = _require_name(raw, source)

    location = raw.get("location") or {}
    main = (raw.get("geocodes") or {}).get("main") or {}
    point = _require_point(
        main.get("latitude", location.get("latitude")),
        main.get("longitude", location.get("longitude")),
        source,
    )

    categories = [
        VenueCategory(id=str(c.get("id", "")), name=c.get("name", ""))
        for c in raw.get("categories") or []
        if isinstance(c, dict) and c.get("name")
    ]
    chains = [
        c.get("name") for c in raw.get("chains") or [] if isinstance(c, dict) and c.get("name")
    ]

    popularity = safe_float(raw.get("popularity"))
    if popularity is not None:
        popularity = _clamp(popularity, 0.0, 1.0)

    rating = safe_float(raw.get("rating"))
    if rating is not None:
        # Foursquare rates on a 10-point scale
        rating = _clamp(rating / 2.0, 0.0, 5.0)

    hours = raw.get("hours")

    return Venue(
        id=str(raw.get("fsq_id") or raw.get("id") or ""),
        name=name,
        location=point,
        address=location.get("formatted_address") or location.get("address"),
        categories=categories,
        chain_affiliation=chains,
        distance_meters=safe_float(raw.get("distance")),
        popularity_score=popularity,
        rating=rating,
        price_level=_price_level(raw.get("price")),
        hours=hours if isinstance(hours, dict) else None,
        website=raw.get("website"),
        phone=raw.get("tel"),
        email=raw.get("email"),
        verified=bool(raw.get("verified", False)),
        source_provider=SourceProvider.FOURSQUARE,
        stats=raw.get("stats") or {},
        fetched_at=fetched_at or utc_now(),
    )


# =============================================================================
# Google Places
# =============================================================================


def google_popularity(user_ratings_total: Any) -> Optional[float]:
    """Log-scaled popularity from a ratings count (10,000 ratings == 1.0)."""
    count = safe_float(user_ratings_total)
    if count is None or count < 0:
        return None
    return min(1.0, math.log10(1 + count) / GOOGLE_POPULARITY_SATURATION_EXPONENT)


def _google_categories(types: List[Any]) -> List[VenueCategory]:
    return [
        VenueCategory(id=t, name=t.replace("_", " ").title())
        for t in types
        if isinstance(t, str) and t not in GENERIC_GOOGLE_TYPES
    ]


def from_google_place(raw: Dict[str, Any], fetched_at: Optional[datetime] = None) -> Venue:
    """
    Map a Google Places nearby-search or details result to a Venue.

    Google never reports chain affiliation. The ratings count is kept in
    ``stats`` and drives the normalized popularity.

    Raises:
        VenueMappingError: If name or coordinates are missing
    """
    source = SourceProvider.GOOGLE.value
    name = _require_name(raw, source)

    geo = ((raw.get("geometry") or {}).get("location")) or {}
    point = _require_point(geo.get("lat"), geo.get("lng"), source)

    rating = safe_float(raw.get("rating"))
    if rating is not None:
        rating = _clamp(rating, 0.0, 5.0)

    ratings_total = raw.get("user_ratings_total")
    stats: Dict[str, Any] = {}
    if ratings_total is not None:
        stats["user_ratings_total"] = ratings_total
    if raw.get("business_status"):
        stats["business_status"] = raw["business_status"]

    hours = raw.get("opening_hours")

    return Venue(
        id=str(raw.get("place_id") or ""),
        name=name,
        location=point,
        address=raw.get("formatted_address") or raw.get("vicinity"),
        categories=_google_categories(raw.get("types") or []),
        chain_affiliation=[],
        popularity_score=google_popularity(ratings_total),
        rating=rating,
        price_level=_price_level(raw.get("price_level")),
        hours=hours if isinstance(hours, dict) else None,
        website=raw.get("website"),
        phone=raw.get("formatted_phone_number") or raw.get("international_phone_number"),
        verified=False,
        source_provider=SourceProvider.GOOGLE,
        stats=stats,
        fetched_at=fetched_at or utc_now(),
    )


# =============================================================================
# Visit statistics
# =============================================================================


def _int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    number = safe_float(value)
    return int(round(number)) if number is not None else default


def visit_stats_from_foursquare(venue_id: str, raw: Dict[str, Any]) -> VisitStats:
    """
    Map a Foursquare /places/{id}/stats payload to VisitStats.

    Unrecognized or malformed rows are skipped rather than failing the
    whole payload.
    """
    by_day = []
    for row in raw.get("visits_by_day") or []:
        if not isinstance(row, dict):
            continue
        by_day.append(
            DailyVisits(
                day=str(row.get("date") or row.get("day") or ""),
                visits=_int(row.get("visits")),
                avg_duration_minutes=_int(row.get("avg_duration"), None),
            )
        )

    popularity_by_hour = {}
    for row in raw.get("popularity_by_hour") or []:
        if isinstance(row, dict) and row.get("hour") is not None:
            popularity_by_hour[_int(row.get("hour"))] = _int(row.get("popularity"))

    by_hour = []
    for row in raw.get("visits_by_hour") or []:
        if not isinstance(row, dict):
            continue
        hour = _int(row.get("hour"), -1)
        if not 0 <= hour <= 23:
            continue
        visits = _int(row.get("visits"))
        by_hour.append(
            HourlyVisits(
                hour=hour,
                visits=visits,
                avg_visits=_int(row.get("avg_visits"), visits),
                popularity_score=_int(
                    row.get("popularity_score"), popularity_by_hour.get(hour, 0)
                ),
            )
        )

    demographics = None
    breakdown = raw.get("demographic_breakdown")
    if isinstance(breakdown, dict):
        age_groups = [
            AgeGroup(range=str(g.get("range")), percentage=_int(g.get("percentage")))
            for g in breakdown.get("age_groups") or []
            if isinstance(g, dict) and g.get("range")
        ]
        gender = breakdown.get("gender")
        demographics = Demographics(
            age_groups=age_groups,
            gender={k: _int(v) for k, v in gender.items()}
            if isinstance(gender, dict)
            else {"male": 50, "female": 50, "other": 0},
            estimated=False,
        )

    total = _int(raw.get("total_daily_visits"))
    if not total and by_day:
        total = round(sum(d.visits for d in by_day) / len(by_day))

    comparison = {
        k: v
        for k, v in ((k, safe_float(v)) for k, v in (raw.get("comparison_data") or {}).items())
        if v is not None
    }

    return VisitStats(
        venue_id=venue_id,
        estimated=False,
        visits_by_day=by_day,
        visits_by_hour=by_hour,
        demographics=demographics,
        comparison=comparison,
        total_daily_visits=total,
        confidence_level=0.9,
    )
