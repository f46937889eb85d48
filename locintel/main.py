"""
Main FastAPI application.

Builds the process-wide collaborators (rate limiters, cache, provider
clients, repository) once at startup and hands them to the service.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from locintel.analysis.events import EventsService
from locintel.analysis.traffic import TrafficAnalyzer
from locintel.api.v1 import location_intelligence
from locintel.core import database
from locintel.core.cache import CacheAsideStore, InMemoryCacheBackend, NullCacheBackend
from locintel.core.config import Settings, get_settings
from locintel.core.repository import SqlAlchemyReportRepository
from locintel.services.location_intelligence import LocationIntelligenceService
from locintel.sources.places.provider import (
    FoursquareProvider,
    LocationProviderFacade,
    create_foursquare_client,
    create_location_provider,
    create_rate_limiter,
    create_retry_policy,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def build_service(settings: Settings) -> LocationIntelligenceService:
    """
    Wire the service from settings.

    Raises:
        ConfigurationError: If the selected provider has no credentials
    """
    settings.require_provider_credentials()

    if settings.cache_enabled:
        backend = InMemoryCacheBackend(max_size=settings.cache_max_entries)
    else:
        backend = NullCacheBackend()
    cache = CacheAsideStore(backend, ttls=settings.cache_ttl)

    retry_policy = create_retry_policy(settings)
    provider = create_location_provider(settings, retry_policy=retry_policy)
    facade = LocationProviderFacade(provider, cache)

    # Events always come from Foursquare; reuse the provider client when it is one
    if isinstance(provider, FoursquareProvider):
        events_service = EventsService(provider.client)
    elif settings.get_foursquare_api_key():
        events_client = create_foursquare_client(
            settings, create_rate_limiter(settings, "foursquare"), retry_policy
        )
        events_service = EventsService(events_client)
    else:
        logger.warning("FOURSQUARE_API_KEY not set - local events disabled")
        events_service = EventsService()

    engine = database.create_db_engine(settings.database_url)
    database.create_tables(engine)
    repository = SqlAlchemyReportRepository(engine)

    return LocationIntelligenceService(
        facade=facade,
        repository=repository,
        cache=cache,
        traffic_analyzer=TrafficAnalyzer(facade),
        events_service=events_service,
        competition_config=settings.competition,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Runs on startup and shutdown.
    """
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting Location Intelligence Service")
    logger.info(f"Location provider: {settings.location_provider}")
    logger.info(f"Cache enabled: {settings.cache_enabled}")

    if getattr(app.state, "location_service", None) is None:
        try:
            app.state.location_service = build_service(settings)
        except Exception as e:
            logger.error(f"Failed to initialize location intelligence service: {e}")
            raise

    yield

    # Shutdown
    logger.info("Shutting down")
    await app.state.location_service.close()


def create_app(service: Optional[LocationIntelligenceService] = None) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        service: Prebuilt service (tests); built from settings at startup otherwise
    """
    app = FastAPI(
        title="Location Intelligence Service",
        description="Location intelligence reports from third-party venue data",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.location_service = service
    app.include_router(location_intelligence.router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
