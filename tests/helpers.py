"""
Shared test helpers: fake clock and provider payload builders.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from locintel.core.schemas import GeoPoint, SourceProvider, Venue, VenueCategory

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for limiter and cache tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_venue(
    venue_id: str = "v1",
    name: str = "Cafe Uno",
    latitude: float = 40.7128,
    longitude: float = -74.0060,
    popularity: Optional[float] = 0.5,
    rating: Optional[float] = 4.0,
    price_level: Optional[int] = 2,
    categories: Optional[List[str]] = None,
    chains: Optional[List[str]] = None,
    website: Optional[str] = "https://example.com",
    **extra: Any,
) -> Venue:
    """Canonical Foursquare venue with sensible defaults."""
    return Venue(
        id=venue_id,
        name=name,
        location=GeoPoint(latitude=latitude, longitude=longitude),
        categories=[VenueCategory(id=str(i), name=n) for i, n in enumerate(["Restaurant"] if categories is None else categories)],
        chain_affiliation=chains or [],
        popularity_score=popularity,
        rating=rating,
        price_level=price_level,
        website=website,
        source_provider=extra.pop("source_provider", SourceProvider.FOURSQUARE),
        fetched_at=FIXED_NOW,
        **extra,
    )


def foursquare_place(
    fsq_id: str = "4b0588f1f964a52079c525e3",
    name: str = "Joe's Pizza",
    latitude: float = 40.7306,
    longitude: float = -73.9866,
    **fields: Any,
) -> Dict[str, Any]:
    """Raw Foursquare v3 place payload."""
    place: Dict[str, Any] = {
        "fsq_id": fsq_id,
        "name": name,
        "geocodes": {"main": {"latitude": latitude, "longitude": longitude}},
        "location": {"formatted_address": "7 Carmine St, New York, NY 10014"},
        "categories": [{"id": 13064, "name": "Pizzeria"}],
        "distance": 350,
        "popularity": 0.92,
        "rating": 8.8,
        "price": 1,
    }
    place.update(fields)
    return place


def google_place(
    place_id: str = "ChIJN1t_tDeuEmsRUsoyG83frY4",
    name: str = "Pho Bac",
    lat: float = 47.6062,
    lng: float = -122.3321,
    **fields: Any,
) -> Dict[str, Any]:
    """Raw Google Places nearby-search result."""
    place: Dict[str, Any] = {
        "place_id": place_id,
        "name": name,
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "types": ["restaurant", "food", "point_of_interest", "establishment"],
        "vicinity": "1314 S Jackson St, Seattle",
        "rating": 4.5,
        "user_ratings_total": 999,
        "price_level": 1,
        "business_status": "OPERATIONAL",
    }
    place.update(fields)
    return place
