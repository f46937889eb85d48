"""
Location provider abstraction.

One provider is active per deployment. Each variant wraps its HTTP client
and maps raw payloads to canonical venues; the facade adds distance
filling and cache-aside access on top of whichever variant is selected.

Capabilities:
- find_nearby(): venues around a point
- get_details(): a single venue by provider id
- get_visit_stats(): visit statistics (Foursquare only)
- health_check(): provider probe, never raises
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from locintel.core.api_errors import UnsupportedCapabilityError, VenueMappingError
from locintel.core.cache import CacheAsideStore, build_cache_key, venue_cache_key
from locintel.core.config import Settings
from locintel.core.rate_limiter import SlidingWindowRateLimiter
from locintel.core.retry import RetryPolicy
from locintel.core.schemas import ProviderHealth, SearchQuery, Venue, VisitStats
from locintel.sources.places import mapper
from locintel.sources.places.foursquare import FoursquareClient
from locintel.sources.places.google import GooglePlacesClient

logger = logging.getLogger(__name__)


def map_venues(
    raws: Iterable[Dict[str, Any]],
    map_one: Callable[[Dict[str, Any]], Venue],
    source: str,
) -> List[Venue]:
    """Map raw venues, skipping the ones that cannot be mapped."""
    venues: List[Venue] = []
    for raw in raws:
        try:
            venues.append(map_one(raw))
        except VenueMappingError as e:
            logger.warning(f"[{source}] Skipping unmappable venue: {e.message}")
    return venues


class LocationProvider(ABC):
    """
    Abstract base class for venue providers.

    Subclasses must implement find_nearby() and get_details(); visit
    statistics are optional and raise UnsupportedCapabilityError by default.
    """

    name: str = "base"
    supports_visit_stats: bool = False

    @abstractmethod
    async def find_nearby(self, query: SearchQuery) -> List[Venue]:
        """Search venues around ``query.center``."""

    @abstractmethod
    async def get_details(self, venue_id: str) -> Optional[Venue]:
        """Get a venue by provider id; None if unknown."""

    async def get_visit_stats(self, venue_id: str) -> Optional[VisitStats]:
        raise UnsupportedCapabilityError("visit_stats", source=self.name)

    @abstractmethod
    async def health_check(self) -> ProviderHealth:
        """Probe the provider."""

    async def close(self) -> None:
        return None


class FoursquareProvider(LocationProvider):
    """Foursquare Places: search, details and premium visit statistics."""

    name = "foursquare"
    supports_visit_stats = True

    def __init__(self, client: FoursquareClient):
        self.client = client

    async def find_nearby(self, query: SearchQuery) -> List[Venue]:
        raws = await self.client.search(query)
        return map_venues(raws, mapper.from_foursquare, self.name)

    async def get_details(self, venue_id: str) -> Optional[Venue]:
        raw = await self.client.details(venue_id)
        if raw is None:
            return None
        return mapper.from_foursquare(raw)

    async def get_visit_stats(self, venue_id: str) -> Optional[VisitStats]:
        raw = await self.client.visit_stats(venue_id)
        if not raw:
            return None
        return mapper.visit_stats_from_foursquare(venue_id, raw)

    async def health_check(self) -> ProviderHealth:
        return await self.client.health_check()

    async def close(self) -> None:
        await self.client.close()


class GooglePlacesProvider(LocationProvider):
    """Google Places: search and details. No visit statistics."""

    name = "google"
    supports_visit_stats = False

    def __init__(self, client: GooglePlacesClient):
        self.client = client

    async def find_nearby(self, query: SearchQuery) -> List[Venue]:
        raws = await self.client.search(query)
        return map_venues(raws, mapper.from_google_place, self.name)

    async def get_details(self, venue_id: str) -> Optional[Venue]:
        raw = await self.client.details(venue_id)
        if raw is None:
            return None
        return mapper.from_google_place(raw)

    async def health_check(self) -> ProviderHealth:
        return await self.client.health_check()

    async def close(self) -> None:
        await self.client.close()


class LocationProviderFacade:
    """
    Entry point the analyses use to reach the active provider.

    Search results are cached under the ``search`` category and venue
    details under ``venue``. Visit statistics are not cached here; the
    traffic analysis that consumes them is.
    """

    def __init__(self, provider: LocationProvider, cache: Optional[CacheAsideStore] = None):
        self.provider = provider
        self.cache = cache

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def supports_visit_stats(self) -> bool:
        return self.provider.supports_visit_stats

    def search_cache_key(self, query: SearchQuery) -> str:
        return build_cache_key(
            "search",
            query.center,
            query.radius_meters,
            f"{self.provider.name}:{query.cache_discriminator()}",
        )

    async def find_nearby(self, query: SearchQuery, force_refresh: bool = False) -> List[Venue]:
        """
        Venues around a point, served from cache when possible.

        ``distance_meters`` is filled from the query center when the
        provider did not report it.
        """
        key = self.search_cache_key(query)

        if self.cache and not force_refresh:
            cached = await self.cache.get(key)
            if cached is not None:
                return [Venue.model_validate(v) for v in cached]

        venues = await self.provider.find_nearby(query)
        venues = [self._with_distance(v, query) for v in venues]

        if self.cache:
            await self.cache.set(key, [v.model_dump(mode="json") for v in venues])

        return venues

    @staticmethod
    def _with_distance(venue: Venue, query: SearchQuery) -> Venue:
        if venue.distance_meters is not None:
            return venue
        distance = venue.location.distance_km(query.center) * 1000
        return venue.model_copy(update={"distance_meters": round(distance, 1)})

    async def get_details(self, venue_id: str, force_refresh: bool = False) -> Optional[Venue]:
        """A single venue, served from cache when possible."""
        key = venue_cache_key(self.provider.name, venue_id)

        if self.cache and not force_refresh:
            cached = await self.cache.get(key)
            if cached is not None:
                return Venue.model_validate(cached)

        venue = await self.provider.get_details(venue_id)
        if venue is not None and self.cache:
            await self.cache.set(key, venue.model_dump(mode="json"))
        return venue

    async def get_visit_stats(self, venue_id: str) -> Optional[VisitStats]:
        """
        Visit statistics for a venue.

        Raises:
            UnsupportedCapabilityError: If the provider has no visit statistics
        """
        return await self.provider.get_visit_stats(venue_id)

    async def health_check(self) -> ProviderHealth:
        return await self.provider.health_check()

    async def close(self) -> None:
        await self.provider.close()


# =============================================================================
# Factories
# =============================================================================


def create_rate_limiter(settings: Settings, provider_name: str) -> SlidingWindowRateLimiter:
    """Build the process-wide limiter for a provider."""
    if provider_name == "google":
        capacity = settings.google_places_requests_per_window
    else:
        capacity = settings.foursquare_requests_per_window
    return SlidingWindowRateLimiter(
        capacity=capacity,
        window_seconds=settings.rate_limit_window_seconds,
        name=provider_name,
    )


def create_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.max_retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        max_retry_after=settings.retry_after_max_seconds,
    )


def create_foursquare_client(
    settings: Settings,
    rate_limiter: SlidingWindowRateLimiter,
    retry_policy: Optional[RetryPolicy] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FoursquareClient:
    return FoursquareClient(
        api_key=settings.require_foursquare_api_key(),
        rate_limiter=rate_limiter,
        retry_policy=retry_policy or create_retry_policy(settings),
        base_url=settings.foursquare_base_url,
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )


def create_location_provider(
    settings: Settings,
    rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    retry_policy: Optional[RetryPolicy] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LocationProvider:
    """
    Build the provider selected by ``settings.location_provider``.

    Raises:
        ConfigurationError: If the selected provider has no API key
    """
    provider_name = settings.location_provider
    limiter = rate_limiter or create_rate_limiter(settings, provider_name)
    policy = retry_policy or create_retry_policy(settings)

    if provider_name == "google":
        client = GooglePlacesClient(
            api_key=settings.require_google_places_api_key(),
            rate_limiter=limiter,
            retry_policy=policy,
            base_url=settings.google_places_base_url,
            timeout=settings.request_timeout_seconds,
            transport=transport,
            language=settings.google_places_language,
        )
        provider: LocationProvider = GooglePlacesProvider(client)
    else:
        provider = FoursquareProvider(
            create_foursquare_client(settings, limiter, policy, transport)
        )

    logger.info(f"Location provider: {provider.name}")
    return provider
