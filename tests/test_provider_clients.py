"""
Tests for the Foursquare and Google Places clients.

HTTP is served by httpx.MockTransport; no network access.
"""
import random
from datetime import date

import httpx
import pytest

from locintel.core.api_errors import (
    AuthenticationError,
    ConfigurationError,
    ProviderUnavailableError,
    ValidationError,
)
from locintel.core.rate_limiter import SlidingWindowRateLimiter
from locintel.core.retry import RetryPolicy
from locintel.core.schemas import GeoPoint, SearchQuery, SortHint
from locintel.sources.places.foursquare import FoursquareClient
from locintel.sources.places.google import GooglePlacesClient
from helpers import foursquare_place, google_place

NYC = GeoPoint(latitude=40.7128, longitude=-74.0060)


def _retry_policy(delays=None) -> RetryPolicy:
    async def _sleep(seconds: float) -> None:
        if delays is not None:
            delays.append(seconds)

    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, rng=random.Random(3), sleep=_sleep)


def _foursquare(handler, delays=None, limiter=None) -> FoursquareClient:
    return FoursquareClient(
        api_key="fsq-test-key",
        rate_limiter=limiter or SlidingWindowRateLimiter(capacity=100, name="foursquare"),
        retry_policy=_retry_policy(delays),
        transport=httpx.MockTransport(handler),
    )


def _google(handler) -> GooglePlacesClient:
    return GooglePlacesClient(
        api_key="g-test-key",
        rate_limiter=SlidingWindowRateLimiter(capacity=100, name="google"),
        retry_policy=_retry_policy(),
        transport=httpx.MockTransport(handler),
    )


# =============================================================================
# Foursquare
# =============================================================================


class TestFoursquareClient:

    @pytest.mark.unit
    def test_missing_key_raises(self):
        with pytest.raises(ConfigurationError):
            FoursquareClient(api_key=None, rate_limiter=SlidingWindowRateLimiter(capacity=1))

    @pytest.mark.asyncio
    async def test_search_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"results": [foursquare_place()]})

        client = _foursquare(handler)
        query = SearchQuery(
            center=NYC, radius_meters=1500, category_filter=frozenset({"cafe"}), limit=80
        )

        results = await client.search(query)
        await client.close()

        assert len(results) == 1
        assert seen["path"] == "/v3/places/search"
        assert seen["auth"] == "fsq-test-key"
        assert seen["params"]["ll"] == "40.7128,-74.006"
        assert seen["params"]["radius"] == "1500"
        assert seen["params"]["categories"] == "13032,13033"
        assert seen["params"]["limit"] == "50"
        assert seen["params"]["sort"] == "POPULARITY"

    @pytest.mark.asyncio
    async def test_details_not_found_returns_none(self):
        client = _foursquare(lambda r: httpx.Response(404, json={"message": "Not found"}))

        assert await client.details("missing") is None

    @pytest.mark.asyncio
    async def test_visit_stats_forbidden_returns_none(self):
        client = _foursquare(lambda r: httpx.Response(403, json={"message": "Premium only"}))

        assert await client.visit_stats("v1") is None

    @pytest.mark.asyncio
    async def test_events_forbidden_returns_empty(self):
        client = _foursquare(lambda r: httpx.Response(403, text="forbidden"))

        assert await client.search_events(NYC, 5000) == []

    @pytest.mark.asyncio
    async def test_events_date_window(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(dict(request.url.params))
            return httpx.Response(200, json={"results": [{"name": "Food Fair"}]})

        client = _foursquare(handler)
        events = await client.search_events(NYC, 5000, days_ahead=30, today=date(2026, 3, 1))

        assert events == [{"name": "Food Fair"}]
        assert seen["start_date"] == "2026-03-01"
        assert seen["end_date"] == "2026-03-31"
        assert seen["radius"] == "5000"

    @pytest.mark.asyncio
    async def test_unauthorized_not_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(401, text="bad key")

        client = _foursquare(handler)

        with pytest.raises(AuthenticationError):
            await client.search(SearchQuery(center=NYC, radius_meters=500))
        assert calls["n"] == 1

    @pytest.mark.asyncio
    async def test_server_errors_retried_then_unavailable(self):
        calls = {"n": 0}
        delays = []

        def handler(request):
            calls["n"] += 1
            return httpx.Response(503, text="maintenance")

        limiter = SlidingWindowRateLimiter(capacity=100, name="foursquare")
        client = _foursquare(handler, delays=delays, limiter=limiter)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await client.search(SearchQuery(center=NYC, radius_meters=500))

        assert calls["n"] == 3
        assert exc_info.value.attempts == 3
        assert len(delays) == 2
        # Every attempt passes through the rate limiter
        assert limiter.total_admitted == 3

    @pytest.mark.asyncio
    async def test_recovers_after_rate_limit_with_retry_after(self):
        responses = [
            httpx.Response(429, headers={"Retry-After": "4"}, text="slow down"),
            httpx.Response(200, json={"results": []}),
        ]
        delays = []
        client = _foursquare(lambda r: responses.pop(0), delays=delays)

        assert await client.search(SearchQuery(center=NYC, radius_meters=500)) == []
        assert delays == [4.0]

    @pytest.mark.asyncio
    async def test_network_error_becomes_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _foursquare(handler)

        with pytest.raises(ProviderUnavailableError):
            await client.details("v1")

    @pytest.mark.asyncio
    async def test_health_check_never_raises(self):
        client = _foursquare(lambda r: httpx.Response(500, text="down"))

        health = await client.health_check()

        assert health.provider == "foursquare"
        assert health.status == "unhealthy"
        assert health.error
        assert health.rate_limit["max"] == 100

    @pytest.mark.asyncio
    async def test_health_check_healthy(self):
        client = _foursquare(lambda r: httpx.Response(200, json={"results": []}))

        health = await client.health_check()

        assert health.status == "healthy"
        assert health.latency_ms is not None


# =============================================================================
# Google Places
# =============================================================================


class TestGooglePlacesClient:

    @pytest.mark.asyncio
    async def test_search_uses_key_param_and_radius(self):
        seen = {}

        def handler(request):
            seen.update(dict(request.url.params))
            seen["path"] = request.url.path
            return httpx.Response(200, json={"status": "OK", "results": [google_place()] * 3})

        client = _google(handler)
        query = SearchQuery(
            center=NYC, radius_meters=800, category_filter=frozenset({"13000", "ramen"}), limit=2
        )

        results = await client.search(query)

        assert len(results) == 2
        assert seen["path"].endswith("/nearbysearch/json")
        assert seen["key"] == "g-test-key"
        assert seen["radius"] == "800"
        assert seen["type"] == "restaurant"
        assert seen["keyword"] == "ramen"

    @pytest.mark.asyncio
    async def test_distance_sort_omits_radius(self):
        seen = {}

        def handler(request):
            seen.update(dict(request.url.params))
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})

        client = _google(handler)
        query = SearchQuery(center=NYC, radius_meters=800, sort_hint=SortHint.DISTANCE)

        assert await client.search(query) == []
        assert seen["rankby"] == "distance"
        assert "radius" not in seen

    @pytest.mark.asyncio
    async def test_request_denied_is_auth_error(self):
        client = _google(
            lambda r: httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "bad key"})
        )

        with pytest.raises(AuthenticationError):
            await client.search(SearchQuery(center=NYC, radius_meters=500))

    @pytest.mark.asyncio
    async def test_invalid_request_is_validation_error(self):
        client = _google(lambda r: httpx.Response(200, json={"status": "INVALID_REQUEST"}))

        with pytest.raises(ValidationError):
            await client.search(SearchQuery(center=NYC, radius_meters=500))

    @pytest.mark.asyncio
    async def test_over_query_limit_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(200, json={"status": "OVER_QUERY_LIMIT"})
            return httpx.Response(200, json={"status": "OK", "results": [google_place()]})

        client = _google(handler)

        results = await client.search(SearchQuery(center=NYC, radius_meters=500))

        assert len(results) == 1
        assert calls["n"] == 2

    @pytest.mark.asyncio
    async def test_unknown_error_exhausts_to_unavailable(self):
        client = _google(lambda r: httpx.Response(200, json={"status": "UNKNOWN_ERROR"}))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await client.search(SearchQuery(center=NYC, radius_meters=500))
        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["NOT_FOUND", "ZERO_RESULTS", "INVALID_REQUEST"])
    async def test_details_unknown_id_returns_none(self, status):
        client = _google(lambda r: httpx.Response(200, json={"status": status}))

        assert await client.details("nope") is None

    @pytest.mark.asyncio
    async def test_details_returns_result(self):
        client = _google(
            lambda r: httpx.Response(200, json={"status": "OK", "result": google_place()})
        )

        result = await client.details("ChIJN1t_tDeuEmsRUsoyG83frY4")

        assert result["name"] == "Pho Bac"
