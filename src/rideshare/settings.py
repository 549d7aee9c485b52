from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    url: str = "http://localhost:54321"
    key: str = ""

    model_config = SettingsConfigDict(env_prefix="SUPABASE_")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Supabase URL must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_credentials_provided(self) -> "BackendSettings":
        if not self.key:
            raise ValueError("Required credential not provided: SUPABASE_KEY")
        return self


class MapsSettings(BaseSettings):
    api_key: str = Field(
        default="",
        description="Google Maps key. Without it distances fall back to Haversine estimates.",
    )
    base_url: str = "https://maps.googleapis.com/maps/api"
    timeout_seconds: float = Field(default=5.0, gt=0.0, le=60.0)
    fallback_speed_kmh: float = Field(
        default=30.0,
        gt=0.0,
        le=120.0,
        description="Average city speed used when estimating durations without the API",
    )

    # Retry configuration for transient Maps failures
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=0.5, ge=0.0, le=5.0)
    retry_multiplier: float = Field(default=2.0, ge=1.0, le=5.0)

    model_config = SettingsConfigDict(env_prefix="GOOGLE_MAPS_")

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Maps base URL must start with http:// or https://")
        return v.rstrip("/")


class PricingSettings(BaseSettings):
    """Fare arithmetic shared by every vehicle type."""

    currency: str = "INR"
    convenience_fee: float = Field(default=10.0, ge=0.0)
    tax_rate: float = Field(default=0.18, ge=0.0, le=1.0, description="GST applied on the taxable amount")
    timezone: str = Field(
        default="Asia/Kolkata",
        description="Timezone used for time-of-day surge windows",
    )

    model_config = SettingsConfigDict(env_prefix="PRICING_")


class MatchingSettings(BaseSettings):
    """Driver search and acceptance polling configuration."""

    search_radius_km: float = Field(default=10.0, gt=0.0, le=100.0)
    max_attempts: int = Field(default=5, ge=1, le=20)
    attempt_interval_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="Wall-clock seconds between driver search attempts",
    )
    poll_interval_seconds: float = Field(default=2.0, ge=0.0, le=60.0)
    acceptance_timeout_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="How long a single round of notified drivers has to accept",
    )
    drivers_to_notify: int = Field(default=3, ge=1, le=20)
    booking_timeout_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="Pending bookings older than this are timed out and refunded",
    )
    arrival_minutes_per_km: float = Field(default=3.0, gt=0.0)

    model_config = SettingsConfigDict(env_prefix="MATCHING_")


class PaymentSettings(BaseSettings):
    key_id: str = ""
    key_secret: str = ""

    model_config = SettingsConfigDict(env_prefix="RAZORPAY_")


class PushSettings(BaseSettings):
    expo_url: str = "https://exp.host/--/api/v2/push/send"
    timeout_seconds: float = Field(default=10.0, gt=0.0, le=60.0)

    model_config = SettingsConfigDict(env_prefix="PUSH_")


class LoggingSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["text", "json"] = "text"
    environment: str = "development"

    model_config = SettingsConfigDict(env_prefix="LOG_")


class AppSettings(BaseSettings):
    share_base_url: str = Field(
        default="https://tcsygo.com",
        description="Public site used for trip-share, split-fare and invite links",
    )

    model_config = SettingsConfigDict(env_prefix="APP_")

    @field_validator("share_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class Settings(BaseSettings):
    backend: BackendSettings = Field(default_factory=BackendSettings)
    maps: MapsSettings = Field(default_factory=MapsSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    push: PushSettings = Field(default_factory=PushSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
