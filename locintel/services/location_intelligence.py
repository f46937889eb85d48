"""
Location Intelligence Service - report orchestrator.

Generates a location report for a stored restaurant:
1. CACHE CHECK: return the cached report unless a refresh is forced
2. FETCH: competitor, traffic and events sections run concurrently, each
   cache-aside with its own TTL; a failing section becomes a placeholder
3. AGGREGATE: location score (traffic 40 / competition 40 / market 20)
   and threshold-rule recommendations
4. PERSIST: cache the report unless a section failed, and hand it to the
   repository
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

import pydantic

from locintel.analysis import competition
from locintel.analysis.events import HIGH_IMPACT_THRESHOLD, EventsService
from locintel.analysis.traffic import TrafficAnalyzer
from locintel.core.api_errors import ConfigurationError, NotFoundError, ValidationError
from locintel.core.cache import CacheAsideStore, build_cache_key
from locintel.core.config import CompetitionScoringConfig
from locintel.core.repository import ReportRepository
from locintel.core.schemas import (
    CompetitorAnalysisResult,
    GeoPoint,
    LocalEvent,
    LocationReport,
    OpportunityLevel,
    Recommendation,
    ReportOptions,
    ReportSection,
    SearchQuery,
    SectionStatus,
    SortHint,
    TrafficAnalysis,
    utc_now,
)
from locintel.sources.places.metadata import FOURSQUARE_FOOD_AND_DINING
from locintel.sources.places.provider import LocationProviderFacade

logger = logging.getLogger(__name__)

COMPETITOR_SEARCH_LIMIT = 50

# Score weights
TRAFFIC_WEIGHT = 0.4
TRAFFIC_MAX_POINTS = 40
COMPETITION_MAX_POINTS = 40
MARKET_WEIGHT = 0.2
NEUTRAL_TRAFFIC_POINTS = 20
NEUTRAL_COMPETITION_POINTS = 20

CompetitorSection = ReportSection[CompetitorAnalysisResult]
TrafficSection = ReportSection[TrafficAnalysis]
EventsSection = ReportSection[List[LocalEvent]]


def calculate_market_potential(
    traffic: Optional[TrafficAnalysis],
    competitors: Optional[CompetitorAnalysisResult],
) -> int:
    """Market potential, 0-100, from whichever sections are available."""
    potential = 50

    if traffic is not None:
        if traffic.average_daily_visits > 200:
            potential += 20
        elif traffic.average_daily_visits > 100:
            potential += 10
        elif traffic.average_daily_visits < 50:
            potential -= 15

    if competitors is not None:
        if competitors.density_per_km2 < 5:
            potential += 15
        elif competitors.density_per_km2 > 15:
            potential -= 15

        if competitors.opportunity_level == OpportunityLevel.HIGH:
            potential += 15
        elif competitors.opportunity_level == OpportunityLevel.LOW:
            potential -= 10

    return max(0, min(100, potential))


def calculate_location_score(
    traffic: Optional[TrafficAnalysis],
    competitors: Optional[CompetitorAnalysisResult],
) -> int:
    """
    Overall location score, 0-100.

    Unavailable sections contribute a neutral 20 points; an area without
    competitors has no competition score and also counts as neutral.
    """
    if traffic is not None:
        traffic_points = min(TRAFFIC_MAX_POINTS, traffic.opportunity_score * TRAFFIC_WEIGHT)
    else:
        traffic_points = NEUTRAL_TRAFFIC_POINTS

    competition_score = competitors.competition_score if competitors is not None else None
    if competition_score is not None:
        competition_points = max(0, COMPETITION_MAX_POINTS - competition_score * 0.4)
    else:
        competition_points = NEUTRAL_COMPETITION_POINTS

    market_points = calculate_market_potential(traffic, competitors) * MARKET_WEIGHT

    return max(0, min(100, round(traffic_points + competition_points + market_points)))


def generate_recommendations(
    traffic: Optional[TrafficAnalysis],
    competitors: Optional[CompetitorAnalysisResult],
    events: Optional[List[LocalEvent]],
) -> List[Recommendation]:
    recommendations = []

    if traffic is not None and traffic.average_daily_visits < 100:
        recommendations.append(
            Recommendation(
                category="marketing",
                priority="high",
                title="Boost Local Awareness",
                description="Low foot traffic area requires strong marketing and community engagement",
                expected_impact="Medium",
            )
        )

    if traffic is not None and traffic.peak_hours:
        peak_text = ", ".join(f"{h}:00" for h in traffic.peak_hours)
        recommendations.append(
            Recommendation(
                category="operations",
                priority="medium",
                title="Optimize Staffing for Peak Hours",
                description=(
                    f"Peak traffic hours are {peak_text}. "
                    f"Consider adjusting staff schedules and inventory"
                ),
                expected_impact="High",
            )
        )

    competition_score = competitors.competition_score if competitors is not None else None
    if competition_score is not None and competition_score > 70:
        recommendations.append(
            Recommendation(
                category="strategy",
                priority="high",
                title="Strong Differentiation Required",
                description="High competition area requires unique value proposition and exceptional service",
                expected_impact="High",
            )
        )

    high_impact = [e for e in events or [] if e.traffic_impact_score > HIGH_IMPACT_THRESHOLD]
    if high_impact:
        recommendations.append(
            Recommendation(
                category="events",
                priority="medium",
                title="Leverage Local Events",
                description=(
                    f"{len(high_impact)} high-impact events coming up. "
                    f"Consider event-specific promotions"
                ),
                expected_impact="Medium",
            )
        )

    if competitors is not None and competitors.opportunities:
        recommendations.append(
            Recommendation(
                category="opportunity",
                priority="medium",
                title="Market Gap Opportunities",
                description=competitors.opportunities[0],
                expected_impact="Medium",
            )
        )

    return recommendations


class LocationIntelligenceService:
    """
    Orchestrates report generation over the provider facade, analyses,
    cache and repository. All collaborators are passed in.
    """

    def __init__(
        self,
        facade: LocationProviderFacade,
        repository: ReportRepository,
        cache: CacheAsideStore,
        traffic_analyzer: Optional[TrafficAnalyzer] = None,
        events_service: Optional[EventsService] = None,
        competition_config: Optional[CompetitionScoringConfig] = None,
    ):
        self.facade = facade
        self.repository = repository
        self.cache = cache
        self.traffic_analyzer = traffic_analyzer or TrafficAnalyzer(facade)
        self.events_service = events_service or EventsService()
        self.competition_config = competition_config or CompetitionScoringConfig()

    # =========================================================================
    # Report generation
    # =========================================================================

    @staticmethod
    def validate_options(
        options: Union[ReportOptions, Dict[str, Any], None]
    ) -> ReportOptions:
        """
        Validate report options before any network or cache access.

        Raises:
            ValidationError: If an option is out of range
        """
        if options is None:
            return ReportOptions()
        if isinstance(options, ReportOptions):
            return options
        try:
            return ReportOptions.model_validate(options)
        except pydantic.ValidationError as e:
            invalid = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
            raise ValidationError(
                message=f"Invalid report options: {invalid}",
                source="location_intelligence",
                invalid_params=invalid,
            ) from e

    def report_cache_key(
        self, restaurant_id: str, center: GeoPoint, options: ReportOptions
    ) -> str:
        """
        Report key. Every option that shapes a section is part of it, so a
        cached report is only served for the same request.
        """
        if options.include_events:
            events_part = f"e{options.events_radius_meters}-{options.events_days_ahead}d"
        else:
            events_part = "noevents"
        extra = f"{restaurant_id}:t{options.traffic_radius_meters}:{events_part}"
        return build_cache_key("report", center, options.radius_meters, extra)

    async def generate_report(
        self,
        restaurant_id: str,
        options: Union[ReportOptions, Dict[str, Any], None] = None,
    ) -> LocationReport:
        """
        Generate (or serve from cache) the location report for a restaurant.

        Args:
            restaurant_id: Stored restaurant id
            options: Radii, refresh and events options

        Returns:
            LocationReport

        Raises:
            ValidationError: Invalid options or restaurant id
            NotFoundError: Unknown restaurant
        """
        options = self.validate_options(options)
        if not restaurant_id or not restaurant_id.strip():
            raise ValidationError(
                message="restaurant_id is required",
                source="location_intelligence",
                invalid_params={"restaurant_id": "empty"},
            )

        restaurant = await self.repository.get_restaurant_by_id(restaurant_id)
        if restaurant is None:
            raise NotFoundError(
                message="Restaurant not found",
                source="location_intelligence",
                resource_id=restaurant_id,
            )

        center = restaurant.location
        report_key = self.report_cache_key(restaurant_id, center, options)

        if not options.force_refresh:
            cached = await self.cache.get(report_key)
            if cached is not None:
                logger.info(f"Serving cached location report for {restaurant_id}")
                return LocationReport.model_validate(cached)

        logger.info(f"Generating location report for restaurant {restaurant_id}")

        results = await asyncio.gather(
            self._competitor_section(center, options),
            self._traffic_section(center, options),
            self._events_section(center, options),
            return_exceptions=True,
        )
        competitor_section = self._section_or_placeholder("competitor", CompetitorSection, results[0])
        traffic_section = self._section_or_placeholder("traffic", TrafficSection, results[1])
        events_section = self._section_or_placeholder("events", EventsSection, results[2])

        competitors = competitor_section.data if competitor_section.available else None
        traffic = traffic_section.data if traffic_section.available else None
        events = events_section.data if events_section.available else None

        # A report with a failed section is not cached, so the next request retries it
        degraded = any(isinstance(result, Exception) for result in results)

        generated_at = utc_now()
        report = LocationReport(
            restaurant_id=restaurant.id,
            restaurant_name=restaurant.name,
            location=center,
            address=restaurant.address,
            radius_meters=options.radius_meters,
            location_score=calculate_location_score(traffic, competitors),
            competitor_analysis=competitor_section,
            traffic_analysis=traffic_section,
            events=events_section,
            recommendations=generate_recommendations(traffic, competitors, events),
            generated_at=generated_at,
        )
        if not degraded:
            report.cache_expires_at = generated_at + timedelta(
                seconds=self.cache.ttl_for(report_key)
            )

        await self._persist(report_key, report, cache_report=not degraded)
        logger.info(
            f"Location report for {restaurant_id} generated: score={report.location_score}"
        )
        return report

    def _section_or_placeholder(
        self, name: str, section_type: Type[ReportSection], result: Any
    ) -> ReportSection:
        """Turn a gather result into a section; failures become unavailable."""
        if isinstance(result, ReportSection):
            return result
        if isinstance(result, ConfigurationError) or not isinstance(result, Exception):
            # Cancellation and configuration errors abort the whole report
            raise result
        logger.warning(f"{name} section unavailable: {type(result).__name__}: {result}")
        return section_type(status=SectionStatus.UNAVAILABLE, reason=str(result))

    async def _cached_section(
        self,
        key: str,
        section_type: Type[ReportSection],
        loader: Callable[[], Awaitable[Any]],
        force_refresh: bool,
    ) -> ReportSection:
        """Cache-aside load of one section's data under its own key and TTL."""
        if not force_refresh:
            cached = await self.cache.get(key)
            if cached is not None:
                return section_type.model_validate({"data": cached, "cached": True})

        section = section_type(data=await loader())
        await self.cache.set(key, section.model_dump(mode="json")["data"])
        return section

    async def _competitor_section(
        self, center: GeoPoint, options: ReportOptions
    ) -> ReportSection:
        async def load() -> CompetitorAnalysisResult:
            query = SearchQuery(
                center=center,
                radius_meters=options.radius_meters,
                category_filter=frozenset({FOURSQUARE_FOOD_AND_DINING}),
                limit=COMPETITOR_SEARCH_LIMIT,
                sort_hint=SortHint.POPULARITY,
            )
            venues = await self.facade.find_nearby(query, force_refresh=options.force_refresh)
            return competition.analyze(venues, center, self.competition_config)

        return await self._cached_section(
            build_cache_key("competitor", center, options.radius_meters, self.facade.name),
            CompetitorSection,
            load,
            options.force_refresh,
        )

    async def _traffic_section(self, center: GeoPoint, options: ReportOptions) -> ReportSection:
        async def load() -> TrafficAnalysis:
            return await self.traffic_analyzer.analyze_area(
                center, options.traffic_radius_meters, force_refresh=options.force_refresh
            )

        return await self._cached_section(
            build_cache_key("traffic", center, options.traffic_radius_meters, self.facade.name),
            TrafficSection,
            load,
            options.force_refresh,
        )

    async def _events_section(self, center: GeoPoint, options: ReportOptions) -> ReportSection:
        if not options.include_events:
            return EventsSection(status=SectionStatus.SKIPPED, reason="Events not requested")
        if not self.events_service.available:
            return EventsSection(
                status=SectionStatus.UNAVAILABLE, reason="No events source configured"
            )

        async def load() -> List[LocalEvent]:
            return await self.events_service.find_events(
                center, options.events_radius_meters, options.events_days_ahead
            )

        return await self._cached_section(
            build_cache_key(
                "events", center, options.events_radius_meters, f"{options.events_days_ahead}d"
            ),
            EventsSection,
            load,
            options.force_refresh,
        )

    async def _persist(
        self, report_key: str, report: LocationReport, cache_report: bool = True
    ) -> None:
        if cache_report:
            await self.cache.set(report_key, report.model_dump(mode="json"))
        else:
            logger.info(
                f"Report for {report.restaurant_id} has unavailable sections; not caching it"
            )
        try:
            await self.repository.store_report(report)
        except Exception as e:
            logger.warning(f"Failed to store report for {report.restaurant_id}: {e}")

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def invalidate_area(self, center: GeoPoint, radius_meters: Optional[int] = None) -> bool:
        """Drop cached search, analysis and report entries around a point."""
        return await self.cache.invalidate_area(center, radius_meters)

    async def health_status(self) -> Dict[str, Any]:
        """
        Provider, cache and database health. Never raises.

        Returns:
            Dictionary with overall status and per-component details
        """
        provider = await self.facade.health_check()
        cache_stats = await self.cache.stats()

        try:
            database_ok = await self.repository.ping()
            database_error = None
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            database_ok = False
            database_error = str(e)

        healthy = provider.status == "healthy" and database_ok
        return {
            "status": "healthy" if healthy else "degraded",
            "provider": provider.model_dump(mode="json"),
            "cache": cache_stats,
            "database": {"status": "healthy" if database_ok else "unhealthy", "error": database_error},
            "events_available": self.events_service.available,
            "checked_at": utc_now().isoformat(),
        }

    async def close(self) -> None:
        await self.facade.close()
        await self.events_service.close()
