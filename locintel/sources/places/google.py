"""
Google Places API client.

Uses the legacy Places web service (nearby search and place details).
Google reports most failures as HTTP 200 with a body-level ``status``
field, so those are classified here.
API Docs: https://developers.google.com/maps/documentation/places/web-service
"""
import logging
from typing import Any, Dict, List, Optional

from locintel.core.api_errors import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    RetryableError,
    ValidationError,
)
from locintel.core.http_client import BaseProviderClient
from locintel.core.schemas import SearchQuery, SortHint
from locintel.sources.places import metadata

logger = logging.getLogger(__name__)


class GooglePlacesClient(BaseProviderClient):
    """
    Google Places client.

    Authenticates with the ``key`` query parameter.
    """

    SOURCE_NAME = "google"
    BASE_URL = metadata.GOOGLE_PLACES_BASE_URL
    API_KEY_ENV = "GOOGLE_PLACES_API_KEY"

    def __init__(self, *args, language: str = "en", **kwargs):
        super().__init__(*args, **kwargs)
        self.language = language

    def _add_auth_to_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params["key"] = self.api_key
        params.setdefault("language", self.language)
        return params

    def _check_api_error(self, data: Any, resource_id: str) -> Optional[APIError]:
        """Classify Google's body-level status codes."""
        if not isinstance(data, dict):
            return None

        status = data.get("status")
        if status is None or status in metadata.GOOGLE_SUCCESS_STATUSES:
            return None

        message = data.get("error_message") or f"Google Places status {status}"

        if status == metadata.GOOGLE_STATUS_OVER_QUERY_LIMIT:
            return RateLimitError(message=message, source=self.SOURCE_NAME, response_data=data)
        if status == metadata.GOOGLE_STATUS_REQUEST_DENIED:
            return AuthenticationError(
                message=message, source=self.SOURCE_NAME, status_code=403, response_data=data
            )
        if status == metadata.GOOGLE_STATUS_INVALID_REQUEST:
            return ValidationError(message=message, source=self.SOURCE_NAME, response_data=data)
        if status == metadata.GOOGLE_STATUS_NOT_FOUND:
            return NotFoundError(
                message=message, source=self.SOURCE_NAME, resource_id=resource_id, response_data=data
            )
        if status == metadata.GOOGLE_STATUS_UNKNOWN_ERROR:
            return RetryableError(message=message, source=self.SOURCE_NAME, response_data=data)

        return RetryableError(
            message=f"Unexpected Google Places status {status}: {message}",
            source=self.SOURCE_NAME,
            response_data=data,
        )

    async def search(self, query: SearchQuery) -> List[Dict[str, Any]]:
        """
        Nearby search for restaurants.

        Distance ordering uses ``rankby=distance``, which Google does not
        allow together with ``radius``.
        """
        params: Dict[str, Any] = {
            "location": query.center.as_ll(),
            "type": metadata.GOOGLE_NEARBY_TYPE,
        }
        if query.sort_hint == SortHint.DISTANCE:
            params["rankby"] = "distance"
        else:
            params["radius"] = query.radius_meters

        keywords = [c for c in sorted(query.category_filter) if not c.isdigit()]
        if keywords:
            params["keyword"] = " ".join(keywords)

        data = await self.get("/nearbysearch/json", params=params, resource_id="nearbysearch")
        results = data.get("results", [])[: query.limit]
        logger.info(
            f"Google nearby search at {query.center.as_ll()} r={query.radius_meters}m "
            f"returned {len(results)} results"
        )
        return results

    async def details(self, place_id: str) -> Optional[Dict[str, Any]]:
        """
        Get place details.

        Returns:
            The ``result`` object, or None for an unknown place id
        """
        params = {
            "place_id": place_id,
            "fields": ",".join(metadata.GOOGLE_DETAIL_FIELDS),
        }
        try:
            data = await self.get("/details/json", params=params, resource_id=place_id)
        except (NotFoundError, ValidationError):
            # INVALID_REQUEST is what Google returns for malformed ids
            logger.info(f"Google place {place_id} not found")
            return None

        if data.get("status") == metadata.GOOGLE_STATUS_ZERO_RESULTS:
            return None
        return data.get("result")

    async def _probe(self) -> None:
        await self.get(
            "/nearbysearch/json",
            params={
                "location": f"{metadata.HEALTH_PROBE_LATITUDE},{metadata.HEALTH_PROBE_LONGITUDE}",
                "radius": 1,
                "type": "point_of_interest",
            },
            resource_id="health",
            max_attempts=1,
        )
