from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Literal, Mapping

from geopy.exc import (
    GeocoderQuotaExceeded,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
    GeopyError,
)
from geopy.geocoders import get_geocoder_for_service
from geopy.geocoders.base import Geocoder

from app.core.config import get_settings
from app.core.logging import get_logger
from app.domain.errors import ExternalServiceError, InvalidInput, NotFound
from app.domain.geometry import GeoPoint

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from app.core.config import Settings


GeocodeStatus = Literal["OK", "ZERO_RESULTS", "ERROR"]


_logger = get_logger(__name__)


class GeocodeConfigurationError(RuntimeError):
    """Raised when the geocoder cannot be configured with provided settings."""


@dataclass(slots=True)
class GeocodeResponse:
    status: GeocodeStatus
    latitude: float | None = None
    longitude: float | None = None
    label: str | None = None
    message: str | None = None


GeocodingService = Callable[[str], GeocodeResponse]


class GeopyGeocodingService:
    """Blocking geocoding backend built on the configured geopy provider."""

    def __init__(
        self,
        settings: "Settings | None" = None,
        geocoder: Geocoder | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._geocoder = geocoder

    def __call__(self, address: str) -> GeocodeResponse:
        return self.geocode(address)

    def geocode(self, address: str) -> GeocodeResponse:
        try:
            geocoder = self._get_geocoder()
        except GeocodeConfigurationError as exc:
            _logger.error("Geocoding misconfiguration", error=str(exc))
            return GeocodeResponse("ERROR", message=str(exc))

        kwargs: dict[str, object] = {"exactly_one": True}
        if self._settings.geocoder_provider == "nominatim":
            kwargs["addressdetails"] = True

        try:
            location = geocoder.geocode(address, **kwargs)
        except GeocoderQuotaExceeded:
            return GeocodeResponse("ERROR", message="Geocoding quota exceeded")
        except GeocoderTimedOut:
            return GeocodeResponse("ERROR", message="Geocoding timed out")
        except (GeocoderServiceError, GeocoderUnavailable, GeopyError) as exc:
            return GeocodeResponse("ERROR", message=str(exc))

        if location is None:
            return GeocodeResponse("ZERO_RESULTS", message="No geocoding candidates")

        label = getattr(location, "address", None)
        raw = getattr(location, "raw", None)
        if not label and isinstance(raw, Mapping):
            display_name = raw.get("display_name")
            if isinstance(display_name, str):
                label = display_name

        return GeocodeResponse(
            "OK",
            latitude=getattr(location, "latitude", None),
            longitude=getattr(location, "longitude", None),
            label=label or None,
        )

    def _get_geocoder(self) -> Geocoder:
        if self._geocoder is None:
            self._geocoder = _create_geocoder(self._settings)
        return self._geocoder


class GeocodeAdapter:
    """Resolve free-text addresses to coordinates.

    Each ``resolve`` makes exactly one request to the geocoding service and
    never retries; a failed lookup simply produces no point. Requests are
    serialized so only one is outstanding at a time.
    """

    def __init__(self, service: GeocodingService | None = None) -> None:
        self._service = service
        self._lock = asyncio.Lock()

    async def resolve(self, address: str) -> GeoPoint:
        point, _label = await self.resolve_labelled(address)
        return point

    async def resolve_labelled(self, address: str) -> tuple[GeoPoint, str | None]:
        query = (address or "").strip()
        if not query:
            raise InvalidInput("Address must not be empty")

        _logger.info("Geocoding lookup", query=query)

        async with self._lock:
            response = await asyncio.to_thread(self._get_service(), query)

        if response.status == "ZERO_RESULTS":
            _logger.info("Geocoding no match", query=query)
            raise NotFound(f"No location found for '{query}'")

        if response.status != "OK":
            _logger.warning(
                "Geocoding failed",
                query=query,
                status=response.status,
                error=response.message,
            )
            raise ExternalServiceError(response.message or "Geocoding failed")

        if response.latitude is None or response.longitude is None:
            # OK without a location is treated as no result
            raise NotFound(f"No location found for '{query}'")

        try:
            point = GeoPoint.checked(response.latitude, response.longitude)
        except InvalidInput as exc:
            _logger.warning("Geocoding returned invalid coordinates", query=query)
            raise ExternalServiceError("Invalid geocoder response") from exc

        _logger.info(
            "Geocoding success",
            query=query,
            latitude=point.lat,
            longitude=point.lng,
            label=response.label,
        )
        return point, response.label

    def _get_service(self) -> GeocodingService:
        if self._service is None:
            self._service = GeopyGeocodingService()
        return self._service


def _create_geocoder(settings: "Settings") -> Geocoder:
    provider = settings.geocoder_provider
    timeout = settings.geocoder_timeout
    user_agent = settings.geocoder_user_agent or "stopover-geocoder"

    if provider == "google":
        api_key = _require_api_key(
            provider, settings.geocoder_api_key or settings.google_maps_api_key
        )
        geocoder_cls = get_geocoder_for_service("googlev3")
        kwargs = {"api_key": api_key, "timeout": timeout, "user_agent": user_agent}
        if settings.geocoder_domain:
            kwargs["domain"] = settings.geocoder_domain
        return geocoder_cls(**kwargs)

    if provider == "nominatim":
        geocoder_cls = get_geocoder_for_service("nominatim")
        kwargs = {"user_agent": user_agent, "timeout": timeout}
        if settings.geocoder_domain:
            kwargs["domain"] = settings.geocoder_domain
        return geocoder_cls(**kwargs)

    if provider == "bing":
        api_key = _require_api_key(provider, settings.geocoder_api_key)
        geocoder_cls = get_geocoder_for_service("bing")
        return geocoder_cls(api_key=api_key, timeout=timeout, user_agent=user_agent)

    if provider == "azure":
        api_key = _require_api_key(provider, settings.geocoder_api_key)
        geocoder_cls = get_geocoder_for_service("azuremaps")
        return geocoder_cls(
            subscription_key=api_key, timeout=timeout, user_agent=user_agent
        )

    if provider == "mapbox":
        api_key = _require_api_key(provider, settings.geocoder_api_key)
        geocoder_cls = get_geocoder_for_service("mapbox")
        return geocoder_cls(
            api_key=api_key, timeout=timeout, user_agent=user_agent
        )

    raise GeocodeConfigurationError(f"Unsupported geocoder provider '{provider}'")


def _require_api_key(provider: str, value: str | None) -> str:
    if value and value.strip():
        return value.strip()
    raise GeocodeConfigurationError(
        f"Geocoder provider '{provider}' requires STOPOVER_GEOCODER_API_KEY to be set"
    )
