"""
Local events lookup with traffic-impact scoring.

Events always come from Foursquare. When no Foursquare key is configured
the service reports itself unavailable and the report marks the events
section accordingly.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from locintel.core.api_errors import ConfigurationError
from locintel.core.geo import safe_float
from locintel.core.schemas import GeoPoint, LocalEvent
from locintel.sources.places.foursquare import FoursquareClient

logger = logging.getLogger(__name__)

# Score contributions
BASE_IMPACT = 50
HIGH_IMPACT_THRESHOLD = 70

DISTANCE_IMPACT = ((0.5, 30), (1.0, 20), (2.0, 10))
FAR_DISTANCE_KM = 5.0
FAR_DISTANCE_PENALTY = -20

CATEGORY_IMPACT = (
    (("food", "festival"), 15),
    (("sports", "concert"), 10),
    (("business", "conference"), 5),
)


def event_impact_score(event: LocalEvent) -> int:
    """
    Expected foot-traffic impact of an event on a nearby restaurant, 0-100.

    Events without coordinates count as far away.
    """
    score = BASE_IMPACT

    distance = event.distance_km
    if distance is None:
        score += FAR_DISTANCE_PENALTY
    else:
        for limit, points in DISTANCE_IMPACT:
            if distance < limit:
                score += points
                break
        else:
            if distance > FAR_DISTANCE_KM:
                score += FAR_DISTANCE_PENALTY

    attendance = event.expected_attendance
    if attendance is not None:
        if attendance > 5000:
            score += 20
        elif attendance > 1000:
            score += 10
        elif attendance < 100:
            score -= 10

    category = (event.category or "").lower()
    for keywords, points in CATEGORY_IMPACT:
        if any(k in category for k in keywords):
            score += points
            break

    return max(0, min(100, score))


def _event_point(raw: Dict[str, Any]) -> Optional[GeoPoint]:
    main = (raw.get("geocodes") or {}).get("main") or {}
    location = raw.get("location") or {}
    lat = safe_float(main.get("latitude", location.get("latitude", raw.get("latitude"))))
    lng = safe_float(main.get("longitude", location.get("longitude", raw.get("longitude"))))
    if lat is None or lng is None:
        return None
    try:
        return GeoPoint(latitude=lat, longitude=lng)
    except ValueError:
        return None


def event_from_foursquare(raw: Dict[str, Any], origin: GeoPoint) -> Optional[LocalEvent]:
    """
    Map a raw Foursquare event and score it against ``origin``.

    Returns:
        LocalEvent, or None when the event has no name
    """
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    category = raw.get("category")
    if isinstance(category, dict):
        category = category.get("name")

    stats = raw.get("stats") or {}
    attendance = safe_float(stats.get("expected_attendance", raw.get("expected_attendance")))

    point = _event_point(raw)
    event = LocalEvent(
        id=raw.get("fsq_id") or raw.get("id"),
        name=name.strip(),
        description=raw.get("description"),
        category=category if isinstance(category, str) else None,
        starts_at=raw.get("start_time"),
        ends_at=raw.get("end_time"),
        location=point,
        expected_attendance=int(attendance) if attendance is not None else None,
        distance_km=round(origin.distance_km(point), 3) if point else None,
    )
    return event.model_copy(update={"traffic_impact_score": event_impact_score(event)})


class EventsService:
    """Upcoming local events around a point, scored for traffic impact."""

    def __init__(self, client: Optional[FoursquareClient] = None):
        self.client = client

    @property
    def available(self) -> bool:
        return self.client is not None

    async def find_events(
        self,
        center: GeoPoint,
        radius_meters: int = 5000,
        days_ahead: int = 30,
        today: Optional[date] = None,
    ) -> List[LocalEvent]:
        """
        Events within ``radius_meters`` over the next ``days_ahead`` days.

        Raises:
            ConfigurationError: If no events source is configured
        """
        if self.client is None:
            raise ConfigurationError(
                "Events lookup requires FOURSQUARE_API_KEY",
                source="events",
                missing_config="FOURSQUARE_API_KEY",
            )

        raws = await self.client.search_events(center, radius_meters, days_ahead, today=today)
        events = [e for e in (event_from_foursquare(r, center) for r in raws) if e is not None]
        events.sort(key=lambda e: e.traffic_impact_score, reverse=True)

        logger.info(
            f"Found {len(events)} events around {center.as_ll()} "
            f"within {radius_meters}m over {days_ahead} days"
        )
        return events

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
