"""
Tests for the FastAPI app and the location intelligence router.

The service is mocked; routes are exercised through TestClient.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from locintel.analysis.competition import first_mover_result
from locintel.core.api_errors import ConfigurationError, NotFoundError, ValidationError
from locintel.core.config import CompetitionScoringConfig, Settings
from locintel.core.schemas import GeoPoint, LocationReport, SectionStatus
from locintel.main import build_service, create_app
from locintel.services.location_intelligence import (
    CompetitorSection,
    EventsSection,
    TrafficSection,
)
from helpers import FIXED_NOW

BASE = "/api/v1/location-intelligence"


def sample_report() -> LocationReport:
    return LocationReport(
        restaurant_id="r1",
        restaurant_name="Tartine",
        location=GeoPoint(latitude=37.7614, longitude=-122.4241),
        radius_meters=1500,
        location_score=64,
        competitor_analysis=CompetitorSection(
            data=first_mover_result(CompetitionScoringConfig(), FIXED_NOW)
        ),
        traffic_analysis=TrafficSection(
            status=SectionStatus.UNAVAILABLE, reason="foursquare unavailable"
        ),
        events=EventsSection(status=SectionStatus.SKIPPED, reason="Events not requested"),
        generated_at=FIXED_NOW,
    )


@pytest.fixture
def service():
    mock = MagicMock()
    mock.generate_report = AsyncMock(return_value=sample_report())
    mock.invalidate_area = AsyncMock(return_value=True)
    mock.health_status = AsyncMock(return_value={"status": "healthy"})
    return mock


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service))


class TestReportEndpoint:

    @pytest.mark.unit
    def test_returns_report(self, client, service):
        response = client.get(f"{BASE}/reports/r1", params={"radius": 1500, "include_events": "false"})

        assert response.status_code == 200
        body = response.json()
        assert body["restaurant_name"] == "Tartine"
        assert body["location_score"] == 64
        assert body["competitor_analysis"]["status"] == "available"
        assert body["competitor_analysis"]["data"]["overall_score"] == 85
        assert body["traffic_analysis"] == {
            "status": "unavailable",
            "data": None,
            "reason": "foursquare unavailable",
            "cached": False,
        }
        service.generate_report.assert_awaited_once_with(
            "r1", {"force_refresh": False, "include_events": False, "radius_meters": 1500}
        )

    @pytest.mark.unit
    def test_default_options(self, client, service):
        client.get(f"{BASE}/reports/r1")

        service.generate_report.assert_awaited_once_with(
            "r1", {"force_refresh": False, "include_events": True}
        )

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error, status",
        [
            (ValidationError("Invalid report options"), 400),
            (NotFoundError("Restaurant not found", resource_id="r404"), 404),
            (ConfigurationError("FOURSQUARE_API_KEY is required"), 500),
        ],
    )
    def test_error_mapping(self, client, service, error, status):
        service.generate_report.side_effect = error

        response = client.get(f"{BASE}/reports/r1")

        assert response.status_code == status
        assert response.json()["detail"] == error.message

    @pytest.mark.unit
    def test_service_not_initialized(self):
        client = TestClient(create_app())

        response = client.get(f"{BASE}/reports/r1")

        assert response.status_code == 503


class TestCacheEndpoint:

    @pytest.mark.unit
    def test_invalidate(self, client, service):
        response = client.post(
            f"{BASE}/cache/invalidate",
            json={"latitude": 37.7614, "longitude": -122.4241, "radius_meters": 2000},
        )

        assert response.status_code == 200
        assert response.json() == {
            "invalidated": True,
            "latitude": 37.7614,
            "longitude": -122.4241,
            "radius_meters": 2000,
        }
        center, radius = service.invalidate_area.call_args.args
        assert center == GeoPoint(latitude=37.7614, longitude=-122.4241)
        assert radius == 2000

    @pytest.mark.unit
    def test_invalidate_rejects_bad_coordinates(self, client, service):
        response = client.post(f"{BASE}/cache/invalidate", json={"latitude": 95, "longitude": 0})

        assert response.status_code == 422
        service.invalidate_area.assert_not_called()


class TestHealthEndpoints:

    @pytest.mark.unit
    def test_service_health(self, client):
        response = client.get(f"{BASE}/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.unit
    def test_liveness(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestBuildService:

    @pytest.mark.unit
    def test_foursquare_provider_serves_events(self, clean_env):
        settings = Settings(foursquare_api_key="fsq-key", database_url="sqlite:///:memory:")

        service = build_service(settings)

        assert service.facade.name == "foursquare"
        assert service.events_service.available is True
        assert service.events_service.client is service.facade.provider.client

    @pytest.mark.unit
    def test_google_provider_with_separate_events_key(self, clean_env):
        settings = Settings(
            location_provider="google",
            google_places_api_key="g-key",
            foursquare_api_key="fsq-key",
            database_url="sqlite:///:memory:",
        )

        service = build_service(settings)

        assert service.facade.name == "google"
        assert service.events_service.available is True

    @pytest.mark.unit
    def test_google_provider_without_events(self, clean_env):
        settings = Settings(
            location_provider="google",
            google_places_api_key="g-key",
            database_url="sqlite:///:memory:",
            cache_enabled=False,
        )

        service = build_service(settings)

        assert service.events_service.available is False
        assert service.cache.backend.name == "null"

    @pytest.mark.unit
    def test_missing_provider_key(self, clean_env):
        with pytest.raises(ConfigurationError):
            build_service(Settings(database_url="sqlite:///:memory:"))
