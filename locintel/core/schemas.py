"""
Pydantic schemas for the location intelligence domain.

The JSON form of these models (``model_dump(mode="json")``) is the value
format stored in the cache and returned by the HTTP layer.
"""
import enum
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from locintel.core.geo import DEDUP_PRECISION, haversine_km, round_coordinates

T = TypeVar("T")


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Geography & queries
# =============================================================================


class GeoPoint(BaseModel):
    """WGS84 point in floating point degrees. Immutable."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def distance_km(self, other: "GeoPoint") -> float:
        """Great-circle distance to another point."""
        return haversine_km(self.latitude, self.longitude, other.latitude, other.longitude)

    def as_ll(self) -> str:
        """``lat,lng`` string used by provider query parameters."""
        return f"{self.latitude},{self.longitude}"


class SortHint(str, enum.Enum):
    """Result ordering requested from the provider."""
    POPULARITY = "popularity"
    DISTANCE = "distance"
    PROMINENCE = "prominence"


class SourceProvider(str, enum.Enum):
    """Venue data providers."""
    FOURSQUARE = "foursquare"
    GOOGLE = "google"


class SearchQuery(BaseModel):
    """A nearby-venue search. Built per request and used to derive cache keys."""
    model_config = ConfigDict(frozen=True)

    center: GeoPoint
    radius_meters: int = Field(..., gt=0)
    category_filter: FrozenSet[str] = Field(default_factory=frozenset)
    limit: int = Field(default=50, gt=0)
    sort_hint: SortHint = SortHint.POPULARITY

    def cache_discriminator(self) -> str:
        """Stable suffix distinguishing queries that share center and radius."""
        categories = ",".join(sorted(self.category_filter)) or "*"
        return f"{self.sort_hint.value}:{self.limit}:{categories}"


# =============================================================================
# Canonical venue
# =============================================================================


class VenueCategory(BaseModel):
    """Provider category with its provider-scoped identifier."""
    id: str
    name: str


class Venue(BaseModel):
    """
    Provider-independent representation of a place of business.

    ``(source_provider, id)`` is the identity. ``popularity_score`` is
    normalized to [0, 1] and ``rating`` to a 5-point scale by the mapper.
    """

    id: str
    name: str
    location: GeoPoint
    address: Optional[str] = None
    categories: List[VenueCategory] = Field(default_factory=list)
    chain_affiliation: List[str] = Field(default_factory=list)
    distance_meters: Optional[float] = None
    popularity_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    price_level: Optional[int] = Field(default=None, ge=1, le=4)
    hours: Optional[Dict[str, Any]] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    verified: bool = False
    source_provider: SourceProvider
    stats: Dict[str, Any] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> Tuple[str, str]:
        """Identity of the venue across the pipeline."""
        return (self.source_provider.value, self.id)

    @property
    def dedup_key(self) -> Tuple[str, str, str]:
        """Best-effort cross-provider match key (name, location to ~100 m)."""
        lat, lng = round_coordinates(
            self.location.latitude, self.location.longitude, DEDUP_PRECISION
        )
        return (self.name.strip().lower(), lat, lng)

    @property
    def popularity_percent(self) -> Optional[float]:
        """Popularity on the 0-100 scale used by the scoring rules."""
        if self.popularity_score is None:
            return None
        return self.popularity_score * 100.0

    @property
    def category_names(self) -> List[str]:
        return [c.name for c in self.categories]


# =============================================================================
# Visit statistics & traffic
# =============================================================================


class HourlyVisits(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    visits: int = 0
    avg_visits: int = 0
    popularity_score: int = 0


class DailyVisits(BaseModel):
    day: str
    visits: int = 0
    avg_duration_minutes: Optional[int] = None


class AgeGroup(BaseModel):
    range: str
    percentage: int


class Demographics(BaseModel):
    age_groups: List[AgeGroup] = Field(default_factory=list)
    gender: Dict[str, int] = Field(
        default_factory=lambda: {"male": 50, "female": 50, "other": 0}
    )
    estimated: bool = True


class VisitStats(BaseModel):
    """Visit statistics for one venue, either provider-reported or estimated."""

    venue_id: str
    estimated: bool = False
    visits_by_day: List[DailyVisits] = Field(default_factory=list)
    visits_by_hour: List[HourlyVisits] = Field(default_factory=list)
    demographics: Optional[Demographics] = None
    comparison: Dict[str, float] = Field(default_factory=dict)
    total_daily_visits: int = 0
    confidence_level: float = 0.5


class HourlyTraffic(BaseModel):
    hour: int
    total_visits: int = 0
    avg_popularity: float = 0.0


class TrafficTrend(BaseModel):
    period: str
    growth_rate: float
    description: str


class TrafficAnalysis(BaseModel):
    """Area foot-traffic profile around a point."""

    center: GeoPoint
    radius_meters: int
    total_venues: int = 0
    average_daily_visits: int = 0
    total_daily_visits: int = 0
    peak_hours: List[int] = Field(default_factory=list)
    hourly_distribution: List[HourlyTraffic] = Field(default_factory=list)
    demographic_profile: Demographics = Field(default_factory=Demographics)
    competition_density: float = 0.0
    opportunity_score: int = Field(default=0, ge=0, le=100)
    trends: List[TrafficTrend] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)
    confidence_level: float = 0.0
    estimated_data: bool = True
    generated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Competition
# =============================================================================


class OpportunityLevel(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CompetitorProfile(BaseModel):
    """A top competitor with rule-based strengths and weaknesses."""

    id: str
    name: str
    source_provider: SourceProvider
    rating: Optional[float] = None
    price_level: Optional[int] = None
    popularity: Optional[float] = None
    distance_meters: Optional[float] = None
    categories: List[str] = Field(default_factory=list)
    chain_affiliation: List[str] = Field(default_factory=list)
    website: Optional[str] = None
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class MarketAnalysis(BaseModel):
    opportunity_level: OpportunityLevel
    message: str
    competition_density_level: str = "low"
    average_market_rating: float = 0.0
    average_market_price: float = 0.0
    recommendations: List[str] = Field(default_factory=list)


class CompetitorAnalysisResult(BaseModel):
    """Density/quality/opportunity scores derived from a venue list."""

    total_competitors: int = 0
    density_per_km2: float = 0.0
    avg_rating: float = 0.0
    avg_price: float = 0.0
    avg_popularity: float = 0.0
    top_competitors: List[CompetitorProfile] = Field(default_factory=list, max_length=10)
    opportunity_level: OpportunityLevel = OpportunityLevel.HIGH
    overall_score: int = Field(default=0, ge=0, le=100)
    market_analysis: Optional[MarketAnalysis] = None
    competitive_advantages: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    analysis_radius_km: float = 2.0
    generated_at: datetime = Field(default_factory=utc_now)

    @property
    def competition_score(self) -> Optional[int]:
        """
        Competition pressure score, or None when there are no competitors.

        The canned first-mover ``overall_score`` is not a measure of
        competition and must not be read as one.
        """
        if self.total_competitors == 0:
            return None
        return self.overall_score


# =============================================================================
# Events
# =============================================================================


class LocalEvent(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    location: Optional[GeoPoint] = None
    expected_attendance: Optional[int] = None
    traffic_impact_score: int = Field(default=50, ge=0, le=100)
    distance_km: Optional[float] = None


# =============================================================================
# Report
# =============================================================================


class SectionStatus(str, enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    SKIPPED = "skipped"


class ReportSection(BaseModel, Generic[T]):
    """One sub-analysis of a report, possibly replaced by a placeholder."""

    status: SectionStatus = SectionStatus.AVAILABLE
    data: Optional[T] = None
    reason: Optional[str] = None
    cached: bool = False

    @property
    def available(self) -> bool:
        return self.status == SectionStatus.AVAILABLE and self.data is not None


class Recommendation(BaseModel):
    category: str
    priority: str
    title: str
    description: str
    expected_impact: str


class ReportOptions(BaseModel):
    """Per-request report generation options."""

    radius_meters: int = Field(default=2000, gt=0, le=50000)
    traffic_radius_meters: int = Field(default=1000, gt=0, le=50000)
    events_radius_meters: int = Field(default=5000, gt=0, le=100000)
    events_days_ahead: int = Field(default=30, ge=1, le=365)
    force_refresh: bool = False
    include_events: bool = True


class RestaurantLocation(BaseModel):
    """Persistence read model for the restaurant a report is generated for."""

    id: str
    name: str
    location: GeoPoint
    address: Optional[str] = None


class LocationReport(BaseModel):
    restaurant_id: str
    restaurant_name: str
    location: GeoPoint
    address: Optional[str] = None
    radius_meters: int
    location_score: int = Field(..., ge=0, le=100)
    competitor_analysis: ReportSection[CompetitorAnalysisResult]
    traffic_analysis: ReportSection[TrafficAnalysis]
    events: ReportSection[List[LocalEvent]]
    recommendations: List[Recommendation] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)
    cache_expires_at: Optional[datetime] = None


class ProviderHealth(BaseModel):
    provider: str
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None
    rate_limit: Dict[str, Any] = Field(default_factory=dict)
