"""
Tests for locintel/core/config.py
"""
import pytest

from locintel.core.api_errors import ConfigurationError
from locintel.core.config import CacheTTLSettings, Settings, get_settings


@pytest.mark.unit
def test_defaults(clean_env):
    settings = Settings()

    assert settings.location_provider == "foursquare"
    assert settings.max_retries == 3
    assert settings.rate_limit_window_seconds == 60.0
    assert settings.cache_ttl.report == 21600
    assert settings.competition.analysis_radius_km == 2.0


@pytest.mark.unit
def test_missing_provider_key_raises(clean_env):
    settings = Settings()

    with pytest.raises(ConfigurationError) as exc_info:
        settings.require_provider_credentials()

    assert exc_info.value.missing_config == "FOURSQUARE_API_KEY"


@pytest.mark.unit
def test_google_provider_requires_google_key(clean_env, monkeypatch):
    monkeypatch.setenv("LOCATION_PROVIDER", "google")
    monkeypatch.setenv("FOURSQUARE_API_KEY", "fsq-key")
    settings = Settings()

    with pytest.raises(ConfigurationError) as exc_info:
        settings.require_provider_credentials()

    assert exc_info.value.missing_config == "GOOGLE_PLACES_API_KEY"


@pytest.mark.unit
def test_env_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("FOURSQUARE_API_KEY", "fsq-key")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CACHE_TTL__TRAFFIC", "120")
    settings = Settings()

    assert settings.require_provider_credentials() == "fsq-key"
    assert settings.log_level == "DEBUG"
    assert settings.cache_ttl.traffic == 120


@pytest.mark.unit
def test_invalid_log_level(clean_env, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    with pytest.raises(ValueError):
        Settings()


@pytest.mark.unit
def test_get_settings_is_singleton(clean_env):
    assert get_settings() is get_settings()


@pytest.mark.unit
def test_ttl_lookup_by_category():
    ttls = CacheTTLSettings()

    assert ttls.for_category("venue") == 3600
    assert ttls.for_category("search") == 1800
    assert ttls.for_category("competitor") == 86400
    assert ttls.for_category("traffic") == 900
    assert ttls.for_category("events") == 7200
    with pytest.raises(KeyError):
        ttls.for_category("bogus")
