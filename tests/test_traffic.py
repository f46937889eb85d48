"""
Unit tests for locintel/analysis/traffic.py

Tests cover estimation, aggregation helpers and the area analyzer with a
mocked provider facade. Estimates are seeded for determinism.
"""
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from locintel.analysis import traffic
from locintel.analysis.traffic import TrafficAnalyzer
from locintel.core.api_errors import ProviderUnavailableError
from locintel.core.schemas import (
    AgeGroup,
    DailyVisits,
    Demographics,
    GeoPoint,
    HourlyTraffic,
    HourlyVisits,
    SortHint,
    VisitStats,
)
from helpers import FIXED_NOW, make_venue

CENTER = GeoPoint(latitude=40.7128, longitude=-74.0060)


def make_facade(venues, supports_visit_stats=False, stats=None):
    facade = MagicMock()
    facade.supports_visit_stats = supports_visit_stats
    facade.find_nearby = AsyncMock(return_value=venues)
    facade.get_visit_stats = AsyncMock(side_effect=stats)
    return facade


def provider_stats(venue_id: str, total: int = 300) -> VisitStats:
    return VisitStats(
        venue_id=venue_id,
        estimated=False,
        visits_by_hour=[
            HourlyVisits(hour=12, visits=60, popularity_score=90),
            HourlyVisits(hour=19, visits=80, popularity_score=100),
            HourlyVisits(hour=9, visits=20, popularity_score=30),
        ],
        demographics=Demographics(
            age_groups=[AgeGroup(range="25-34", percentage=50)],
            gender={"male": 40, "female": 60},
            estimated=False,
        ),
        comparison={"week_over_week": 0.12},
        total_daily_visits=total,
        confidence_level=0.9,
    )


class TestEstimation:

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "categories, kind",
        [
            (["Coffee Shop"], "cafe"),
            (["Café", "Cafe"], "cafe"),
            (["Fast Food Restaurant"], "fast_food"),
            (["Cocktail Bar"], "bar"),
            (["Italian Restaurant"], "restaurant"),
            ([], "restaurant"),
        ],
    )
    def test_venue_type(self, categories, kind):
        assert traffic.venue_type(make_venue(categories=categories)) == kind

    @pytest.mark.unit
    def test_hourly_multiplier(self):
        assert traffic.hourly_multiplier(12, "restaurant") == 0.12
        assert traffic.hourly_multiplier(18, "restaurant") == 0.15
        assert traffic.hourly_multiplier(8, "cafe") == 0.12
        assert traffic.hourly_multiplier(16, "bar") == traffic.BASE_HOURLY_MULTIPLIER
        assert traffic.hourly_multiplier(12, "food_truck") == 0.12

    @pytest.mark.unit
    def test_estimate_confidence(self):
        rich = make_venue(verified=True)
        bare = make_venue(popularity=None, rating=None, price_level=None, categories=[])

        assert traffic.estimate_confidence(rich) == 0.9
        assert traffic.estimate_confidence(bare) == 0.5

    @pytest.mark.unit
    def test_daily_visits_from_popularity_and_rating(self):
        rng = random.Random(1)

        assert traffic.estimate_visit_stats(make_venue(popularity=0.8, rating=5.0), rng).total_daily_visits == 400
        assert traffic.estimate_visit_stats(make_venue(popularity=None, rating=None), rng).total_daily_visits == 150
        # Floor for obscure venues
        assert traffic.estimate_visit_stats(make_venue(popularity=0.01, rating=1.0), rng).total_daily_visits == 20

    @pytest.mark.unit
    def test_estimates_are_deterministic_with_seed(self):
        venue = make_venue()

        first = traffic.estimate_visit_stats(venue, random.Random(42))
        second = traffic.estimate_visit_stats(venue, random.Random(42))

        assert first == second

    @pytest.mark.unit
    def test_estimate_shape(self):
        stats = traffic.estimate_visit_stats(make_venue(price_level=1), random.Random(3))

        assert stats.estimated is True
        assert [h.hour for h in stats.visits_by_hour] == list(range(24))
        assert [d.day for d in stats.visits_by_day][0] == "monday"
        assert len(stats.visits_by_day) == 7
        assert set(stats.comparison) == {"week_over_week", "month_over_month", "year_over_year"}
        assert -0.2 <= stats.comparison["week_over_week"] <= 0.2
        assert [g.percentage for g in stats.demographics.age_groups] == list(traffic.AGE_DISTRIBUTION_BUDGET)
        assert stats.demographics.gender["male"] + stats.demographics.gender["female"] == 100


class TestAggregation:

    @pytest.mark.unit
    def test_daily_visits_fallback_to_mean_of_days(self):
        stats = VisitStats(
            venue_id="v",
            visits_by_day=[DailyVisits(day="mon", visits=100), DailyVisits(day="tue", visits=200)],
        )

        assert traffic.daily_visits_of(stats) == 150
        assert traffic.daily_visits_of(VisitStats(venue_id="empty")) == 0

    @pytest.mark.unit
    def test_hourly_distribution_sums_venues(self):
        distribution = traffic.hourly_distribution([provider_stats("a"), provider_stats("b")])

        assert len(distribution) == 24
        assert distribution[12].total_visits == 120
        assert distribution[12].avg_popularity == 90.0
        assert distribution[3].total_visits == 0
        assert distribution[3].avg_popularity == 0.0

    @pytest.mark.unit
    def test_peak_hours_in_clock_order(self):
        distribution = [HourlyTraffic(hour=h, total_visits=0) for h in range(24)]
        for hour, visits in [(19, 90), (8, 40), (12, 70), (15, 10)]:
            distribution[hour] = HourlyTraffic(hour=hour, total_visits=visits)

        assert traffic.peak_hours(distribution) == [8, 12, 19]

    @pytest.mark.unit
    def test_peak_hours_ignore_empty_hours(self):
        distribution = [HourlyTraffic(hour=h, total_visits=0) for h in range(24)]
        distribution[18] = HourlyTraffic(hour=18, total_visits=5)

        assert traffic.peak_hours(distribution) == [18]

    @pytest.mark.unit
    def test_demographic_profile_averages(self):
        young = Demographics(
            age_groups=[AgeGroup(range="18-24", percentage=40), AgeGroup(range="25-34", percentage=40)],
            gender={"male": 50, "female": 50},
            estimated=False,
        )
        older = Demographics(
            age_groups=[AgeGroup(range="18-24", percentage=10), AgeGroup(range="55+", percentage=30)],
            gender={"male": 40, "female": 60},
            estimated=True,
        )

        profile = traffic.demographic_profile([
            VisitStats(venue_id="a", demographics=young),
            VisitStats(venue_id="b", demographics=older),
            VisitStats(venue_id="c"),
        ])

        assert [(g.range, g.percentage) for g in profile.age_groups] == [
            ("18-24", 25), ("25-34", 40), ("55+", 30),
        ]
        assert profile.gender == {"male": 45, "female": 55}
        assert profile.estimated is False

    @pytest.mark.unit
    def test_opportunity_score(self):
        assert traffic.opportunity_score(200, 0.0, [12, 18]) == 90
        assert traffic.opportunity_score(0, 10.0, []) == 0
        assert traffic.opportunity_score(100, 2.0, [12]) == 20 + 30

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "rate, description",
        [
            (0.15, "Strong growth (+15.0%)"),
            (0.07, "Moderate growth (+7.0%)"),
            (0.0, "Stable traffic patterns"),
            (-0.07, "Slight decline (-7.0%)"),
            (-0.2, "Declining traffic (-20.0%)"),
        ],
    )
    def test_describe_growth(self, rate, description):
        assert traffic.describe_growth(rate) == description

    @pytest.mark.unit
    def test_trends_skip_missing_periods(self):
        trends = traffic.traffic_trends([provider_stats("a"), provider_stats("b")])

        assert [t.period for t in trends] == ["week"]
        assert trends[0].growth_rate == 0.12

    @pytest.mark.unit
    def test_insights(self):
        profile = Demographics(
            age_groups=[AgeGroup(range="18-24", percentage=35), AgeGroup(range="25-34", percentage=30)]
        )

        insights = traffic.traffic_insights(350, 2.0, [8, 12, 18], profile)

        assert insights == [
            "High-traffic area with strong customer base",
            "Low competition density provides market opportunity",
            "Consistent traffic throughout day - all-day dining opportunity",
            "Young demographic - consider trendy, social media-friendly concepts",
        ]

    @pytest.mark.unit
    def test_insights_for_quiet_dense_area(self):
        profile = Demographics(
            age_groups=[AgeGroup(range="45-54", percentage=25), AgeGroup(range="55+", percentage=20)]
        )

        insights = traffic.traffic_insights(100, 20.0, [12, 19], profile)

        assert insights == [
            "Lower traffic area - consider marketing strategies",
            "High competition requires strong differentiation",
            "Traditional meal-time peaks - standard restaurant hours optimal",
            "Mature demographic - focus on quality, service, and comfort",
        ]

    @pytest.mark.unit
    def test_analysis_confidence(self):
        assert traffic.analysis_confidence(0, 0) == 0.2
        assert traffic.analysis_confidence(10, 10) == 0.84
        assert traffic.analysis_confidence(50, 0) == 0.5


class TestTrafficAnalyzer:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_area(self):
        analyzer = TrafficAnalyzer(make_facade([]), rng=random.Random(1))

        result = await analyzer.analyze_area(CENTER, 1000, now=FIXED_NOW)

        assert result.total_venues == 0
        assert result.opportunity_score == 95
        assert result.confidence_level == 0.2
        assert result.estimated_data is True
        assert result.insights == traffic.EMPTY_AREA_INSIGHTS
        assert result.generated_at == FIXED_NOW

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_search_query(self):
        facade = make_facade([])
        analyzer = TrafficAnalyzer(facade)

        await analyzer.analyze_area(CENTER, 750, force_refresh=True)

        query = facade.find_nearby.call_args.args[0]
        assert query.radius_meters == 750
        assert query.category_filter == frozenset({"13000"})
        assert query.limit == 50
        assert query.sort_hint == SortHint.POPULARITY
        assert facade.find_nearby.call_args.kwargs["force_refresh"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_provider_stats_used(self):
        venues = [make_venue("a"), make_venue("b")]
        facade = make_facade(
            venues, supports_visit_stats=True, stats=lambda venue_id: provider_stats(venue_id)
        )
        analyzer = TrafficAnalyzer(facade, rng=random.Random(1))

        result = await analyzer.analyze_area(CENTER, 1000)

        assert result.estimated_data is False
        assert result.total_venues == 2
        assert result.average_daily_visits == 300
        assert result.total_daily_visits == 600
        assert result.peak_hours == [9, 12, 19]
        assert result.competition_density == 0.64
        assert result.confidence_level == 0.81
        assert result.demographic_profile.gender == {"male": 40, "female": 60}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_estimate(self):
        venues = [make_venue("a"), make_venue("b")]

        def stats(venue_id):
            if venue_id == "a":
                raise ProviderUnavailableError("stats down", source="foursquare", attempts=3)
            return provider_stats(venue_id)

        facade = make_facade(venues, supports_visit_stats=True, stats=stats)
        analyzer = TrafficAnalyzer(facade, rng=random.Random(1))

        result = await analyzer.analyze_area(CENTER, 1000)

        assert result.estimated_data is True
        assert result.total_venues == 2
        # Venue a is estimated at 0.5 popularity, 4.0 rating
        assert result.total_daily_visits == 300 + 200

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_premium_stats_estimated(self):
        facade = make_facade([make_venue("a")], supports_visit_stats=True, stats=lambda venue_id: None)
        analyzer = TrafficAnalyzer(facade, rng=random.Random(1))

        result = await analyzer.analyze_area(CENTER, 1000)

        assert result.estimated_data is True
        assert result.total_daily_visits == 200

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_provider_without_stats_not_asked(self):
        facade = make_facade([make_venue("a")], supports_visit_stats=False)
        analyzer = TrafficAnalyzer(facade, rng=random.Random(1))

        result = await analyzer.analyze_area(CENTER, 1000)

        facade.get_visit_stats.assert_not_called()
        assert result.estimated_data is True
        assert len(result.hourly_distribution) == 24
        assert len(result.trends) == 3
