"""
Configuration module with strict validation.

Key principles:
- APP STARTUP requires credentials only for the selected location provider
- Cache TTLs and competition scoring thresholds are configuration, not literals
- All rate limits and retry settings are configurable
- Safe defaults for all optional settings
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from locintel.core.api_errors import ConfigurationError


class CacheTTLSettings(BaseModel):
    """Time-to-live per cache category, in seconds."""

    venue: int = Field(default=3600, ge=1, description="Venue details")
    search: int = Field(default=1800, ge=1, description="Provider search results")
    competitor: int = Field(default=86400, ge=1, description="Competitor analysis")
    traffic: int = Field(default=900, ge=1, description="Area traffic analysis")
    events: int = Field(default=7200, ge=1, description="Local events")
    report: int = Field(default=21600, ge=1, description="Full location report")

    def for_category(self, category: str) -> int:
        """Get the TTL for a cache key category."""
        try:
            return int(getattr(self, category))
        except AttributeError:
            raise KeyError(f"Unknown cache category: {category}") from None


class CompetitionScoringConfig(BaseModel):
    """
    Tunable thresholds for the competitive analysis engine.

    Defaults reproduce the reference market calibration: density capped at
    40 points, quality 30/20/10, price 20/15/10, popularity 10/7/5.
    """

    analysis_radius_km: float = Field(default=2.0, gt=0)

    density_multiplier: float = Field(default=10.0, ge=0)
    density_cap: float = Field(default=40.0, ge=0)

    rating_high_threshold: float = 4.0
    rating_mid_threshold: float = 3.5
    quality_points_high: float = 30.0
    quality_points_mid: float = 20.0
    quality_points_low: float = 10.0

    price_low_threshold: float = 2.0
    price_mid_threshold: float = 3.0
    price_points_low: float = 20.0
    price_points_mid: float = 15.0
    price_points_high: float = 10.0

    popularity_high_threshold: float = 80.0
    popularity_mid_threshold: float = 60.0
    popularity_points_high: float = 10.0
    popularity_points_mid: float = 7.0
    popularity_points_low: float = 5.0

    opportunity_high_density: float = 2.0
    opportunity_medium_density: float = 5.0

    max_score: int = 100
    first_mover_score: int = 85
    top_competitor_count: int = Field(default=5, ge=1)


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file. Nested settings use
    a double underscore, e.g. ``CACHE_TTL__TRAFFIC=600``.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Database (durable report storage)
    database_url: str = Field(
        default="sqlite:///./location_intelligence.db",
        description="SQLAlchemy connection URL for restaurants and stored reports"
    )

    # Provider selection (one active provider per deployment)
    location_provider: Literal["foursquare", "google"] = Field(
        default="foursquare",
        description="Active venue data provider"
    )

    # Foursquare Places
    foursquare_api_key: Optional[str] = Field(
        default=None,
        description="Foursquare Places API key - required when provider is foursquare"
    )
    foursquare_base_url: str = Field(default="https://api.foursquare.com/v3")
    foursquare_requests_per_window: int = Field(
        default=200,
        ge=1,
        description="Foursquare admissions per rate limit window"
    )

    # Google Places
    google_places_api_key: Optional[str] = Field(
        default=None,
        description="Google Places API key - required when provider is google"
    )
    google_places_base_url: str = Field(default="https://maps.googleapis.com/maps/api/place")
    google_places_requests_per_window: int = Field(default=100, ge=1)
    google_places_language: str = Field(default="en")

    # Rate Limiting
    rate_limit_window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Sliding window length for provider admission control"
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Retry Configuration
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts for a provider request"
    )
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0)
    retry_after_max_seconds: float = Field(
        default=120.0,
        ge=0,
        description="Upper bound on an honored Retry-After hint"
    )

    # Cache
    cache_enabled: bool = Field(default=True)
    cache_max_entries: int = Field(default=5000, ge=1)
    cache_ttl: CacheTTLSettings = Field(default_factory=CacheTTLSettings)

    # Analysis
    competition: CompetitionScoringConfig = Field(default_factory=CompetitionScoringConfig)
    default_report_radius_meters: int = Field(default=2000, gt=0)
    default_traffic_radius_meters: int = Field(default=1000, gt=0)
    default_events_radius_meters: int = Field(default=5000, gt=0)
    events_days_ahead: int = Field(default=30, ge=1, le=365)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    def require_foursquare_api_key(self) -> str:
        """
        Get the Foursquare API key, raising a clear error if missing.

        Raises:
            ConfigurationError: If the key is not configured
        """
        if not self.foursquare_api_key:
            raise ConfigurationError(
                "FOURSQUARE_API_KEY is required when LOCATION_PROVIDER=foursquare. "
                "Please set it in your .env file or environment variables.",
                source="foursquare",
                missing_config="FOURSQUARE_API_KEY",
            )
        return self.foursquare_api_key

    def require_google_places_api_key(self) -> str:
        """
        Get the Google Places API key, raising a clear error if missing.

        Raises:
            ConfigurationError: If the key is not configured
        """
        if not self.google_places_api_key:
            raise ConfigurationError(
                "GOOGLE_PLACES_API_KEY is required when LOCATION_PROVIDER=google. "
                "Please set it in your .env file or environment variables.",
                source="google",
                missing_config="GOOGLE_PLACES_API_KEY",
            )
        return self.google_places_api_key

    def require_provider_credentials(self) -> str:
        """Validate credentials for the active provider. Call once at startup."""
        if self.location_provider == "google":
            return self.require_google_places_api_key()
        return self.require_foursquare_api_key()

    def get_foursquare_api_key(self) -> Optional[str]:
        """
        Get the Foursquare key if configured.

        Events lookup uses Foursquare even when Google is the venue provider.
        """
        return self.foursquare_api_key


# Global settings instance, read only by the process entry point
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Components receive settings explicitly; this accessor exists for the
    entry point and for tests that reset state between runs.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """
    Reset the global settings instance.

    Useful for testing to ensure clean state between tests.
    """
    global _settings
    _settings = None
