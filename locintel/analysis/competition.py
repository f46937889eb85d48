"""
Competitive analysis engine.

Pure transform from a venue list to competition metrics: density, market
averages, an overall competition score, top competitors with rule-based
strengths and weaknesses, and market-level threats and opportunities.

No network or cache access happens here; every threshold comes from
CompetitionScoringConfig.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional, Sequence

from locintel.core.config import CompetitionScoringConfig
from locintel.core.geo import density_per_km2
from locintel.core.schemas import (
    CompetitorAnalysisResult,
    CompetitorProfile,
    GeoPoint,
    MarketAnalysis,
    OpportunityLevel,
    Venue,
    utc_now,
)

logger = logging.getLogger(__name__)

# Rating and popularity cut-offs for competitor annotations
EXCELLENT_RATING = 4.5
POOR_RATING = 3.5
HIGH_POPULARITY = 80.0
LOW_POPULARITY = 50.0
COMPETITIVE_PRICE = 2
SATURATED_MARKET_COUNT = 10


def _average(values: Sequence[Optional[float]]) -> float:
    present = [v for v in values if v is not None]
    if not present:
        return 0.0
    return sum(present) / len(present)


# =============================================================================
# Scoring
# =============================================================================


def opportunity_level_for(density: float, config: CompetitionScoringConfig) -> OpportunityLevel:
    if density < config.opportunity_high_density:
        return OpportunityLevel.HIGH
    if density < config.opportunity_medium_density:
        return OpportunityLevel.MEDIUM
    return OpportunityLevel.LOW


def calculate_competition_score(
    density: float,
    avg_rating: float,
    avg_price: float,
    avg_popularity: float,
    config: CompetitionScoringConfig,
) -> int:
    """
    Overall competition score, 0-100 (higher means tougher competition).

    Args:
        density: Competitors per km²
        avg_rating: Mean 5-point rating
        avg_price: Mean price level
        avg_popularity: Mean popularity on 0-100
        config: Thresholds and points
    """
    density_score = min(density * config.density_multiplier, config.density_cap)

    if avg_rating > config.rating_high_threshold:
        quality_score = config.quality_points_high
    elif avg_rating > config.rating_mid_threshold:
        quality_score = config.quality_points_mid
    else:
        quality_score = config.quality_points_low

    if avg_price < config.price_low_threshold:
        price_score = config.price_points_low
    elif avg_price < config.price_mid_threshold:
        price_score = config.price_points_mid
    else:
        price_score = config.price_points_high

    if avg_popularity > config.popularity_high_threshold:
        popularity_score = config.popularity_points_high
    elif avg_popularity > config.popularity_mid_threshold:
        popularity_score = config.popularity_points_mid
    else:
        popularity_score = config.popularity_points_low

    total = round(density_score + quality_score + price_score + popularity_score)
    return int(max(0, min(config.max_score, total)))


# =============================================================================
# Competitor profiles
# =============================================================================


def competitor_strengths(venue: Venue) -> List[str]:
    strengths = []
    if venue.rating is not None and venue.rating >= EXCELLENT_RATING:
        strengths.append("Excellent customer ratings")
    popularity = venue.popularity_percent
    if popularity is not None and popularity >= HIGH_POPULARITY:
        strengths.append("High popularity and foot traffic")
    if venue.chain_affiliation:
        strengths.append("Established brand recognition")
    if venue.price_level is not None and venue.price_level <= COMPETITIVE_PRICE:
        strengths.append("Competitive pricing")
    return strengths


def competitor_weaknesses(venue: Venue) -> List[str]:
    weaknesses = []
    if venue.rating is not None and venue.rating < POOR_RATING:
        weaknesses.append("Below-average customer satisfaction")
    popularity = venue.popularity_percent
    if popularity is not None and popularity < LOW_POPULARITY:
        weaknesses.append("Low customer traffic")
    if not venue.website:
        weaknesses.append("Limited online presence")
    return weaknesses


def build_competitor_profile(venue: Venue) -> CompetitorProfile:
    return CompetitorProfile(
        id=venue.id,
        name=venue.name,
        source_provider=venue.source_provider,
        rating=venue.rating,
        price_level=venue.price_level,
        popularity=venue.popularity_percent,
        distance_meters=venue.distance_meters,
        categories=venue.category_names,
        chain_affiliation=list(venue.chain_affiliation),
        website=venue.website,
        strengths=competitor_strengths(venue),
        weaknesses=competitor_weaknesses(venue),
    )


def top_competitors(venues: Sequence[Venue], count: int) -> List[CompetitorProfile]:
    """Most popular venues first; venues without popularity rank last."""
    ranked = sorted(venues, key=lambda v: -(v.popularity_score or 0.0))
    return [build_competitor_profile(v) for v in ranked[:count]]


# =============================================================================
# Market insights
# =============================================================================


def market_recommendations(
    density: float, avg_rating: float, avg_price: float, config: CompetitionScoringConfig
) -> List[str]:
    recommendations = []

    if density < config.opportunity_high_density:
        recommendations.append("Consider premium positioning due to low competition")
        recommendations.append("Focus on building brand awareness in the area")
    elif density >= config.opportunity_medium_density:
        recommendations.append("Strong differentiation strategy required")
        recommendations.append("Consider unique cuisine or dining experience")

    if avg_rating < config.rating_mid_threshold:
        recommendations.append("Opportunity to lead with superior service quality")
    elif avg_rating > 4.2:
        recommendations.append("High-quality competition requires excellence in execution")

    if avg_price < config.price_low_threshold:
        recommendations.append("Opportunity for mid-range or premium positioning")
    elif avg_price > config.price_mid_threshold:
        recommendations.append("Consider value positioning or unique value proposition")

    return recommendations


_POSITION_MESSAGES = {
    OpportunityLevel.HIGH: "Low competition density creates excellent market opportunity",
    OpportunityLevel.MEDIUM: "Moderate competition with room for differentiation",
    OpportunityLevel.LOW: "High competition requires strong differentiation strategy",
}


def analyze_market_position(
    density: float, avg_rating: float, avg_price: float, config: CompetitionScoringConfig
) -> MarketAnalysis:
    level = opportunity_level_for(density, config)
    return MarketAnalysis(
        opportunity_level=level,
        message=_POSITION_MESSAGES[level],
        competition_density_level={
            OpportunityLevel.HIGH: "low",
            OpportunityLevel.MEDIUM: "medium",
            OpportunityLevel.LOW: "high",
        }[level],
        average_market_rating=round(avg_rating, 2),
        average_market_price=round(avg_price, 2),
        recommendations=market_recommendations(density, avg_rating, avg_price, config),
    )


def competitive_advantages(avg_rating: float, avg_price: float, avg_popularity: float) -> List[str]:
    advantages = []
    if avg_rating < 4.0:
        advantages.append("Service quality differentiation opportunity")
    if avg_price > 2.5:
        advantages.append("Value pricing opportunity")
    if avg_popularity < 70:
        advantages.append("Marketing and brand awareness opportunity")
    advantages.append("New entrant can leverage latest technology and trends")
    advantages.append("Opportunity to learn from competitor weaknesses")
    return advantages


def identify_threats(venues: Sequence[Venue]) -> List[str]:
    threats = []

    high_rated = [v for v in venues if v.rating is not None and v.rating >= EXCELLENT_RATING]
    if high_rated:
        threats.append(f"{len(high_rated)} high-rated competitors (4.5+ stars)")

    budget = [v for v in venues if v.price_level is not None and v.price_level <= 1]
    if budget:
        threats.append(f"{len(budget)} budget-friendly competitors")

    chains = [v for v in venues if v.chain_affiliation]
    if chains:
        threats.append(f"{len(chains)} established chain restaurants")

    if len(venues) > SATURATED_MARKET_COUNT:
        threats.append("Highly saturated market with intense competition")

    return threats


def identify_opportunities(venues: Sequence[Venue], level: OpportunityLevel) -> List[str]:
    opportunities = []

    # Cuisine gaps: categories seen at most twice
    cuisine_counts = Counter(name for v in venues for name in v.category_names)
    underrepresented = [name for name, count in cuisine_counts.items() if count <= 2]
    if underrepresented:
        opportunities.append(f"Underrepresented cuisines: {', '.join(underrepresented[:3])}")

    price_counts = Counter(v.price_level for v in venues if v.price_level is not None)
    if price_counts[1] < 3:
        opportunities.append("Budget-friendly dining gap in market")
    if price_counts[4] < 2:
        opportunities.append("Premium dining opportunity")

    if level == OpportunityLevel.HIGH:
        opportunities.append("Low competition allows for market leadership")

    opportunities.append("Opportunity to leverage social media and modern marketing")
    return opportunities


# =============================================================================
# Entry point
# =============================================================================


def first_mover_result(
    config: CompetitionScoringConfig, now: Optional[datetime] = None
) -> CompetitorAnalysisResult:
    """Canned result for an area with no competitors."""
    return CompetitorAnalysisResult(
        total_competitors=0,
        density_per_km2=0.0,
        top_competitors=[],
        opportunity_level=OpportunityLevel.HIGH,
        overall_score=config.first_mover_score,
        market_analysis=MarketAnalysis(
            opportunity_level=OpportunityLevel.HIGH,
            message="Low competition area with good market opportunity",
            competition_density_level="low",
            recommendations=market_recommendations(0.0, config.rating_high_threshold, 2.0, config)[:2],
        ),
        competitive_advantages=["First mover advantage", "Low competition"],
        threats=[],
        opportunities=["Market leadership potential", "Brand establishment"],
        analysis_radius_km=config.analysis_radius_km,
        generated_at=now or utc_now(),
    )


def analyze(
    venues: Sequence[Venue],
    origin: GeoPoint,
    config: Optional[CompetitionScoringConfig] = None,
    now: Optional[datetime] = None,
) -> CompetitorAnalysisResult:
    """
    Analyze the competitive landscape around ``origin``.

    Args:
        venues: Competitor venues (any provider)
        origin: Location being evaluated
        config: Scoring thresholds (defaults to CompetitionScoringConfig())
        now: Timestamp for the result, for deterministic output

    Returns:
        CompetitorAnalysisResult
    """
    config = config or CompetitionScoringConfig()

    if not venues:
        logger.debug(f"No competitors around {origin.as_ll()}, first-mover result")
        return first_mover_result(config, now)

    avg_rating = _average([v.rating for v in venues])
    avg_price = _average([v.price_level for v in venues])
    avg_popularity = _average([v.popularity_percent for v in venues])

    density = density_per_km2(len(venues), config.analysis_radius_km)
    level = opportunity_level_for(density, config)

    overall = calculate_competition_score(density, avg_rating, avg_price, avg_popularity, config)

    logger.debug(
        f"Competition around {origin.as_ll()}: {len(venues)} venues, "
        f"density={density:.2f}/km², score={overall}"
    )

    return CompetitorAnalysisResult(
        total_competitors=len(venues),
        density_per_km2=round(density, 2),
        avg_rating=round(avg_rating, 2),
        avg_price=round(avg_price, 2),
        avg_popularity=round(avg_popularity, 1),
        top_competitors=top_competitors(venues, config.top_competitor_count),
        opportunity_level=level,
        overall_score=overall,
        market_analysis=analyze_market_position(density, avg_rating, avg_price, config),
        competitive_advantages=competitive_advantages(avg_rating, avg_price, avg_popularity),
        threats=identify_threats(venues),
        opportunities=identify_opportunities(venues, level),
        analysis_radius_km=config.analysis_radius_km,
        generated_at=now or utc_now(),
    )
