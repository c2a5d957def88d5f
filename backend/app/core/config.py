from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    debug: bool = Field(False, alias="STOPOVER_DEBUG")

    geocoder_provider: Literal["google", "nominatim", "bing", "azure", "mapbox"] = (
        Field("nominatim", alias="STOPOVER_GEOCODER_PROVIDER")
    )
    geocoder_user_agent: str = Field(
        "stopover-geocoder", alias="STOPOVER_GEOCODER_USER_AGENT"
    )
    geocoder_domain: str | None = Field(None, alias="STOPOVER_GEOCODER_DOMAIN")
    geocoder_api_key: str | None = Field(None, alias="STOPOVER_GEOCODER_API_KEY")
    geocoder_timeout: float = Field(10.0, alias="STOPOVER_GEOCODER_TIMEOUT")

    routing_provider: Literal["google", "haversine"] = Field(
        "google", alias="STOPOVER_ROUTING_PROVIDER"
    )
    google_maps_api_key: str | None = Field(
        None, alias="STOPOVER_GOOGLE_MAPS_API_KEY"
    )
    routing_timeout: float = Field(10.0, alias="STOPOVER_ROUTING_TIMEOUT")
    routing_travel_mode: Literal["DRIVING", "WALKING", "BICYCLING", "TRANSIT"] = (
        Field("DRIVING", alias="STOPOVER_ROUTING_TRAVEL_MODE")
    )

    # Presentation
    display_precision: int = Field(4, ge=0, le=8, alias="STOPOVER_DISPLAY_PRECISION")
    map_center_latitude: float = Field(
        23.0225, ge=-90.0, le=90.0, alias="STOPOVER_MAP_CENTER_LATITUDE"
    )
    map_center_longitude: float = Field(
        72.5714, ge=-180.0, le=180.0, alias="STOPOVER_MAP_CENTER_LONGITUDE"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("geocoder_provider", "routing_provider", mode="before")
    def _normalize_provider(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("routing_travel_mode", mode="before")
    def _normalize_travel_mode(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().upper()
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[call-arg]
