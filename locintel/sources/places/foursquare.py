"""
Foursquare Places API client.

Used for venue search, details, visit statistics and local events.
API Docs: https://developer.foursquare.com/docs/places-api/
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from locintel.core.api_errors import AuthenticationError, NotFoundError
from locintel.core.http_client import BaseProviderClient
from locintel.core.schemas import GeoPoint, SearchQuery
from locintel.sources.places import metadata

logger = logging.getLogger(__name__)


class FoursquareClient(BaseProviderClient):
    """
    Foursquare Places v3 client.

    Authenticates with the raw API key in the ``Authorization`` header.
    Returns raw provider payloads; mapping to canonical venues happens in
    the mapper.
    """

    SOURCE_NAME = "foursquare"
    BASE_URL = metadata.FOURSQUARE_BASE_URL
    API_KEY_ENV = "FOURSQUARE_API_KEY"

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["Authorization"] = self.api_key
        return headers

    async def search(self, query: SearchQuery) -> List[Dict[str, Any]]:
        """
        Search venues around a point.

        Args:
            query: Search center, radius, categories, limit and sort

        Returns:
            Raw venue dictionaries
        """
        params = {
            "ll": query.center.as_ll(),
            "radius": query.radius_meters,
            "categories": ",".join(
                metadata.expand_foursquare_categories(query.category_filter)
            ),
            "limit": min(query.limit, metadata.FOURSQUARE_MAX_LIMIT),
            "sort": metadata.FOURSQUARE_SORT_VALUES[query.sort_hint.value],
            "fields": ",".join(metadata.FOURSQUARE_VENUE_FIELDS),
        }

        data = await self.get("/places/search", params=params, resource_id="places/search")
        results = data.get("results", []) if isinstance(data, dict) else []
        logger.info(
            f"Foursquare search at {query.center.as_ll()} r={query.radius_meters}m "
            f"returned {len(results)} results"
        )
        return results

    async def details(self, venue_id: str) -> Optional[Dict[str, Any]]:
        """
        Get detailed information about a specific place.

        Returns:
            Raw place dictionary, or None if the id is unknown
        """
        params = {"fields": ",".join(metadata.FOURSQUARE_VENUE_FIELDS)}
        try:
            return await self.get(
                f"/places/{venue_id}", params=params, resource_id=f"places/{venue_id}"
            )
        except NotFoundError:
            logger.info(f"Foursquare venue {venue_id} not found")
            return None

    async def visit_stats(self, venue_id: str) -> Optional[Dict[str, Any]]:
        """
        Get visit statistics for a place.

        Stats require premium API access; a 403 or 404 yields None so
        callers fall back to estimates.
        """
        params = {"fields": ",".join(metadata.FOURSQUARE_STATS_FIELDS)}
        try:
            return await self.get(
                f"/places/{venue_id}/stats",
                params=params,
                resource_id=f"places/{venue_id}/stats",
            )
        except AuthenticationError as e:
            if e.status_code == 403:
                logger.warning("Venue stats require premium Foursquare API access")
                return None
            raise
        except NotFoundError:
            return None

    async def search_events(
        self,
        center: GeoPoint,
        radius_meters: int,
        days_ahead: int = 30,
        today: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search local events within a date window.

        Returns:
            Raw event dictionaries; empty when the events API is not
            available to this key (403)
        """
        start = today or date.today()
        end = start + timedelta(days=days_ahead)
        params = {
            "ll": center.as_ll(),
            "radius": radius_meters,
            "limit": metadata.FOURSQUARE_EVENTS_LIMIT,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "fields": ",".join(metadata.FOURSQUARE_EVENT_FIELDS),
        }
        try:
            data = await self.get("/events/search", params=params, resource_id="events/search")
        except AuthenticationError as e:
            if e.status_code == 403:
                logger.warning("Events API may require premium Foursquare API access")
                return []
            raise

        return data.get("results", []) if isinstance(data, dict) else []

    async def _probe(self) -> None:
        await self.get(
            "/places/search",
            params={
                "ll": f"{metadata.HEALTH_PROBE_LATITUDE},{metadata.HEALTH_PROBE_LONGITUDE}",
                "limit": 1,
            },
            resource_id="health",
            max_attempts=1,
        )
