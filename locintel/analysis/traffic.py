"""
Foot traffic analysis for an area.

Builds an area traffic profile from the restaurants around a point:
1. Search dining venues through the location provider facade
2. Collect visit statistics per venue (provider-reported when the provider
   offers them, estimated from venue attributes otherwise)
3. Aggregate hourly distribution, peak hours, demographics and trends
4. Derive an opportunity score, insights and a confidence level

Estimation draws from an injected ``random.Random`` so tests can seed it.
"""
import asyncio
import logging
import random
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from locintel.core.api_errors import APIError, UnsupportedCapabilityError
from locintel.core.geo import density_per_km2
from locintel.core.schemas import (
    AgeGroup,
    DailyVisits,
    Demographics,
    GeoPoint,
    HourlyTraffic,
    HourlyVisits,
    SearchQuery,
    SortHint,
    TrafficAnalysis,
    TrafficTrend,
    Venue,
    VisitStats,
    utc_now,
)
from locintel.sources.places.metadata import FOURSQUARE_FOOD_AND_DINING
from locintel.sources.places.provider import LocationProviderFacade

logger = logging.getLogger(__name__)

AREA_SEARCH_LIMIT = 50

AGE_RANGES = ("18-24", "25-34", "35-44", "45-54", "55+")

# Age distribution by price level: budget, upscale, everything else
AGE_DISTRIBUTION_BUDGET = (35, 30, 20, 10, 5)
AGE_DISTRIBUTION_UPSCALE = (10, 25, 30, 25, 10)
AGE_DISTRIBUTION_DEFAULT = (20, 30, 25, 15, 10)

WEEKDAY_MULTIPLIERS: Tuple[Tuple[str, float], ...] = (
    ("monday", 0.8),
    ("tuesday", 0.9),
    ("wednesday", 0.9),
    ("thursday", 1.0),
    ("friday", 1.2),
    ("saturday", 1.3),
    ("sunday", 1.1),
)

# Trend period -> (comparison key, spread of estimated growth)
TREND_PERIODS: Tuple[Tuple[str, str, float], ...] = (
    ("week", "week_over_week", 0.4),
    ("month", "month_over_month", 0.6),
    ("year", "year_over_year", 0.8),
)

BASE_HOURLY_MULTIPLIER = 0.02

# (first hour, last hour, share of daily visits); first match wins
HOURLY_PATTERNS: Dict[str, List[Tuple[int, int, float]]] = {
    "cafe": [
        (7, 9, 0.12),
        (10, 11, 0.08),
        (14, 16, 0.10),
        (12, 13, 0.06),
        (17, 19, 0.04),
        (0, 6, 0.01),
        (21, 23, 0.01),
    ],
    "fast_food": [
        (11, 13, 0.15),
        (17, 19, 0.12),
        (14, 16, 0.05),
        (19, 21, 0.08),
        (0, 10, 0.01),
        (23, 23, 0.01),
    ],
    "bar": [
        (17, 19, 0.08),
        (20, 23, 0.15),
        (0, 2, 0.10),
        (3, 15, 0.01),
    ],
    "restaurant": [
        (11, 13, 0.12),
        (17, 20, 0.15),
        (14, 16, 0.04),
        (21, 22, 0.06),
        (0, 10, 0.01),
        (23, 23, 0.01),
    ],
}

EMPTY_AREA_OPPORTUNITY = 95
EMPTY_AREA_CONFIDENCE = 0.2
EMPTY_AREA_INSIGHTS = [
    "No dining establishments found in area",
    "Excellent opportunity for first-mover advantage",
    "Market research recommended to understand demand",
]


# =============================================================================
# Estimation helpers
# =============================================================================


def venue_type(venue: Venue) -> str:
    """Coarse venue type used to pick an hourly traffic pattern."""
    names = " ".join(venue.category_names).lower()
    if "cafe" in names or "coffee" in names:
        return "cafe"
    if "fast" in names or "quick" in names:
        return "fast_food"
    if "bar" in names or "nightlife" in names:
        return "bar"
    return "restaurant"


def hourly_multiplier(hour: int, kind: str) -> float:
    """Share of daily visits expected in a given hour for a venue type."""
    for first, last, share in HOURLY_PATTERNS.get(kind, HOURLY_PATTERNS["restaurant"]):
        if first <= hour <= last:
            return share
    return BASE_HOURLY_MULTIPLIER


def estimate_confidence(venue: Venue) -> float:
    """Confidence of an estimate, from how much the venue tells us."""
    confidence = 0.5
    if venue.popularity_score is not None:
        confidence += 0.2
    if venue.rating is not None:
        confidence += 0.15
    if venue.price_level is not None:
        confidence += 0.1
    if venue.verified:
        confidence += 0.1
    if venue.categories:
        confidence += 0.05
    return round(min(0.9, confidence), 2)


def estimate_demographics(price_level: int, rng: random.Random) -> Demographics:
    if price_level <= 1:
        distribution = AGE_DISTRIBUTION_BUDGET
    elif price_level >= 3:
        distribution = AGE_DISTRIBUTION_UPSCALE
    else:
        distribution = AGE_DISTRIBUTION_DEFAULT

    male = 45 + rng.random() * 10
    female = 45 + rng.random() * 10
    male_share = round(male / (male + female) * 100)

    return Demographics(
        age_groups=[AgeGroup(range=r, percentage=p) for r, p in zip(AGE_RANGES, distribution)],
        gender={"male": male_share, "female": 100 - male_share, "other": 0},
        estimated=True,
    )


def estimate_visit_stats(venue: Venue, rng: random.Random) -> VisitStats:
    """
    Estimate visit statistics from popularity, rating and price.

    Args:
        venue: Canonical venue
        rng: Random source for the hourly, weekly and trend noise

    Returns:
        VisitStats flagged ``estimated=True``
    """
    popularity = venue.popularity_percent if venue.popularity_percent is not None else 50.0
    rating = venue.rating if venue.rating is not None else 3.0
    price_level = venue.price_level if venue.price_level is not None else 2

    base = round(popularity / 100 * 500 * rating / 5)
    daily = max(base, 20)
    kind = venue_type(venue)

    by_hour = []
    for hour in range(24):
        multiplier = hourly_multiplier(hour, kind) * (0.8 + rng.random() * 0.4)
        visits = round(daily * multiplier)
        by_hour.append(
            HourlyVisits(
                hour=hour,
                visits=visits,
                avg_visits=round(visits * (0.9 + rng.random() * 0.2)),
                popularity_score=round(min(100, visits / (daily * 0.15) * 100)),
            )
        )

    by_day = [
        DailyVisits(
            day=day,
            visits=round(daily * multiplier * (0.9 + rng.random() * 0.2)),
            avg_duration_minutes=round(45 + rng.random() * 30),
        )
        for day, multiplier in WEEKDAY_MULTIPLIERS
    ]

    comparison = {
        key: round((rng.random() - 0.5) * spread, 4) for _, key, spread in TREND_PERIODS
    }

    return VisitStats(
        venue_id=venue.id,
        estimated=True,
        visits_by_day=by_day,
        visits_by_hour=by_hour,
        demographics=estimate_demographics(price_level, rng),
        comparison=comparison,
        total_daily_visits=daily,
        confidence_level=estimate_confidence(venue),
    )


# =============================================================================
# Aggregation helpers
# =============================================================================


def daily_visits_of(stats: VisitStats) -> int:
    if stats.total_daily_visits:
        return stats.total_daily_visits
    if stats.visits_by_day:
        return round(sum(d.visits for d in stats.visits_by_day) / len(stats.visits_by_day))
    return 0


def hourly_distribution(all_stats: Sequence[VisitStats]) -> List[HourlyTraffic]:
    totals: Dict[int, int] = defaultdict(int)
    scores: Dict[int, List[int]] = defaultdict(list)
    for stats in all_stats:
        for row in stats.visits_by_hour:
            totals[row.hour] += row.visits
            if row.popularity_score > 0:
                scores[row.hour].append(row.popularity_score)

    return [
        HourlyTraffic(
            hour=hour,
            total_visits=totals[hour],
            avg_popularity=round(sum(scores[hour]) / len(scores[hour]), 1) if scores[hour] else 0.0,
        )
        for hour in range(24)
    ]


def peak_hours(distribution: Sequence[HourlyTraffic], count: int = 3) -> List[int]:
    """Busiest hours of the day, in clock order."""
    busy = [h for h in distribution if h.total_visits > 0]
    ranked = sorted(busy, key=lambda h: h.total_visits, reverse=True)[:count]
    return sorted(h.hour for h in ranked)


def demographic_profile(all_stats: Sequence[VisitStats]) -> Demographics:
    """Mean age and gender split across venues that report demographics."""
    with_demographics = [s.demographics for s in all_stats if s.demographics is not None]
    if not with_demographics:
        return Demographics()

    age_totals: Dict[str, List[int]] = defaultdict(list)
    gender_totals: Dict[str, List[int]] = defaultdict(list)
    for demographics in with_demographics:
        for group in demographics.age_groups:
            age_totals[group.range].append(group.percentage)
        for key, value in demographics.gender.items():
            gender_totals[key].append(value)

    ordered_ranges = [r for r in AGE_RANGES if r in age_totals]
    ordered_ranges += [r for r in age_totals if r not in AGE_RANGES]

    return Demographics(
        age_groups=[
            AgeGroup(range=r, percentage=round(sum(age_totals[r]) / len(age_totals[r])))
            for r in ordered_ranges
        ],
        gender={k: round(sum(v) / len(v)) for k, v in gender_totals.items()},
        estimated=all(d.estimated for d in with_demographics),
    )


def opportunity_score(average_daily_visits: int, density: float, peaks: Sequence[int]) -> int:
    """
    Area opportunity, 0-100.

    Traffic volume contributes up to 40 points, low venue density up to 40
    and spread of peak hours across the day up to 20.
    """
    traffic_score = min(100.0, average_daily_visits / 200 * 40)
    density_score = max(0.0, 40 - density * 5)
    if len(peaks) >= 2:
        diversity = min(1.0, (max(peaks) - min(peaks)) / 12)
    else:
        diversity = 0.0
    return int(min(100, round(traffic_score + density_score + diversity * 20)))


def describe_growth(rate: float) -> str:
    percent = round(rate * 100, 1)
    if rate > 0.1:
        return f"Strong growth (+{percent}%)"
    if rate > 0.05:
        return f"Moderate growth (+{percent}%)"
    if rate > -0.05:
        return "Stable traffic patterns"
    if rate > -0.1:
        return f"Slight decline ({percent}%)"
    return f"Declining traffic ({percent}%)"


def traffic_trends(all_stats: Sequence[VisitStats]) -> List[TrafficTrend]:
    trends = []
    for period, key, _ in TREND_PERIODS:
        rates = [s.comparison[key] for s in all_stats if key in s.comparison]
        if not rates:
            continue
        rate = sum(rates) / len(rates)
        trends.append(
            TrafficTrend(period=period, growth_rate=round(rate, 4), description=describe_growth(rate))
        )
    return trends


def _age_share(profile: Demographics, ranges: Sequence[str]) -> int:
    return sum(g.percentage for g in profile.age_groups if g.range in ranges)


def traffic_insights(
    average_daily_visits: int,
    density: float,
    peaks: Sequence[int],
    profile: Demographics,
) -> List[str]:
    insights = []

    if average_daily_visits > 300:
        insights.append("High-traffic area with strong customer base")
    elif average_daily_visits > 150:
        insights.append("Moderate traffic area with good potential")
    else:
        insights.append("Lower traffic area - consider marketing strategies")

    if density < 5:
        insights.append("Low competition density provides market opportunity")
    elif density > 15:
        insights.append("High competition requires strong differentiation")

    morning = any(7 <= h <= 10 for h in peaks)
    lunch = any(11 <= h <= 14 for h in peaks)
    dinner = any(17 <= h <= 20 for h in peaks)
    if morning and lunch and dinner:
        insights.append("Consistent traffic throughout day - all-day dining opportunity")
    elif lunch and dinner:
        insights.append("Traditional meal-time peaks - standard restaurant hours optimal")
    elif morning:
        insights.append("Morning traffic peak - breakfast/cafe concept may work well")

    if _age_share(profile, ("18-24", "25-34")) > 60:
        insights.append("Young demographic - consider trendy, social media-friendly concepts")
    elif _age_share(profile, ("45-54", "55+")) > 40:
        insights.append("Mature demographic - focus on quality, service, and comfort")

    return insights


def analysis_confidence(venue_count: int, real_count: int) -> float:
    if venue_count == 0:
        return EMPTY_AREA_CONFIDENCE
    real_ratio = real_count / venue_count
    confidence = 0.3 + real_ratio * 0.5 + min(0.2, venue_count / 50 * 0.2)
    return round(min(0.9, confidence), 2)


# =============================================================================
# Analyzer
# =============================================================================


class TrafficAnalyzer:
    """
    Area foot-traffic analysis over the active location provider.

    Results are not cached here; the report orchestrator caches the whole
    analysis under the ``traffic`` category.
    """

    def __init__(self, facade: LocationProviderFacade, rng: Optional[random.Random] = None):
        self.facade = facade
        self.rng = rng or random.Random()

    async def venue_stats(self, venue: Venue) -> VisitStats:
        """
        Provider visit statistics for a venue, or an estimate.

        Provider failures fall back to an estimate instead of failing the
        area analysis.
        """
        if self.facade.supports_visit_stats:
            try:
                stats = await self.facade.get_visit_stats(venue.id)
            except UnsupportedCapabilityError:
                stats = None
            except APIError as e:
                logger.warning(f"Visit stats unavailable for {venue.id}, estimating: {e}")
                stats = None
            if stats is not None:
                return stats
        return estimate_visit_stats(venue, self.rng)

    async def analyze_area(
        self,
        center: GeoPoint,
        radius_meters: int = 1000,
        force_refresh: bool = False,
        now: Optional[datetime] = None,
    ) -> TrafficAnalysis:
        """
        Analyze foot traffic around a point.

        Args:
            center: Area center
            radius_meters: Search radius
            force_refresh: Bypass the venue search cache
            now: Timestamp for the result

        Returns:
            TrafficAnalysis
        """
        query = SearchQuery(
            center=center,
            radius_meters=radius_meters,
            category_filter=frozenset({FOURSQUARE_FOOD_AND_DINING}),
            limit=AREA_SEARCH_LIMIT,
            sort_hint=SortHint.POPULARITY,
        )
        venues = await self.facade.find_nearby(query, force_refresh=force_refresh)

        if not venues:
            logger.info(f"No venues around {center.as_ll()} r={radius_meters}m")
            return TrafficAnalysis(
                center=center,
                radius_meters=radius_meters,
                opportunity_score=EMPTY_AREA_OPPORTUNITY,
                insights=list(EMPTY_AREA_INSIGHTS),
                confidence_level=EMPTY_AREA_CONFIDENCE,
                estimated_data=True,
                generated_at=now or utc_now(),
            )

        all_stats = await asyncio.gather(*(self.venue_stats(v) for v in venues))
        return self.aggregate(center, radius_meters, venues, all_stats, now)

    def aggregate(
        self,
        center: GeoPoint,
        radius_meters: int,
        venues: Sequence[Venue],
        all_stats: Sequence[VisitStats],
        now: Optional[datetime] = None,
    ) -> TrafficAnalysis:
        """Fold per-venue statistics into the area profile."""
        total_daily = sum(daily_visits_of(s) for s in all_stats)
        average_daily = round(total_daily / len(venues))

        distribution = hourly_distribution(all_stats)
        peaks = peak_hours(distribution)
        profile = demographic_profile(all_stats)
        density = round(density_per_km2(len(venues), radius_meters / 1000), 2)
        real_count = sum(1 for s in all_stats if not s.estimated)

        logger.info(
            f"Traffic around {center.as_ll()}: {len(venues)} venues "
            f"({real_count} with provider stats), avg {average_daily} daily visits"
        )

        return TrafficAnalysis(
            center=center,
            radius_meters=radius_meters,
            total_venues=len(venues),
            average_daily_visits=average_daily,
            total_daily_visits=total_daily,
            peak_hours=peaks,
            hourly_distribution=distribution,
            demographic_profile=profile,
            competition_density=density,
            opportunity_score=opportunity_score(average_daily, density, peaks),
            trends=traffic_trends(all_stats),
            insights=traffic_insights(average_daily, density, peaks, profile),
            confidence_level=analysis_confidence(len(venues), real_count),
            estimated_data=real_count < len(venues),
            generated_at=now or utc_now(),
        )
