from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal, Mapping

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger
from app.domain.errors import ExternalServiceError
from app.domain.geometry import GeoPoint, haversine_distance
from app.domain.optimization import plan_round_trip
from app.schemas.routes import RouteLeg

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from app.core.config import Settings


TravelMode = Literal["DRIVING", "WALKING", "BICYCLING", "TRANSIT"]


_logger = get_logger(__name__)
_DIRECTIONS_ENDPOINT = "https://maps.googleapis.com/maps/api/directions/json"
_NO_ROUTE_STATUSES = {"ZERO_RESULTS", "NOT_FOUND"}
_AVERAGE_SPEED_MPS = 11.11


@dataclass(frozen=True, slots=True)
class Waypoint:
    location: GeoPoint
    stopover: bool = True


@dataclass(frozen=True, slots=True)
class RouteRequest:
    origin: GeoPoint
    destination: GeoPoint
    waypoints: tuple[Waypoint, ...]
    travel_mode: TravelMode = "DRIVING"
    optimize_waypoints: bool = True


@dataclass(slots=True)
class RouteResponse:
    """Ordered visit sequence plus whatever the provider returned for drawing.

    ``waypoint_order[i]`` is the index into the request's waypoints of the
    ``i``-th stop visited.
    """

    waypoint_order: list[int]
    legs: list[RouteLeg] = field(default_factory=list)
    payload: Mapping[str, Any] = field(default_factory=dict)
    provider: str = "unknown"


RouteCallable = Callable[[RouteRequest], Awaitable[RouteResponse]]


class GoogleDirectionsService:
    """Route client for the Google Directions web service."""

    provider = "google"

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    async def route(self, request: RouteRequest) -> RouteResponse:
        if not self._api_key:
            _logger.error("Directions request skipped", reason="missing_api_key")
            raise ExternalServiceError("Google Maps API key is not configured")
        return await asyncio.to_thread(self._fetch, request)

    def _fetch(self, request: RouteRequest) -> RouteResponse:
        params = build_directions_params(request)
        params["key"] = self._api_key

        try:
            if self._client is not None:
                response = self._client.get(
                    _DIRECTIONS_ENDPOINT, params=params, timeout=self._timeout
                )
            else:
                response = httpx.get(
                    _DIRECTIONS_ENDPOINT, params=params, timeout=self._timeout
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            _logger.warning("Directions request failed", error=str(exc))
            raise ExternalServiceError(f"Routing request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            _logger.warning("Directions response not JSON", error=str(exc))
            raise ExternalServiceError("Malformed routing response") from exc

        return parse_directions_response(body, len(request.waypoints))


def build_directions_params(request: RouteRequest) -> dict[str, str]:
    params = {
        "origin": request.origin.as_query(),
        "destination": request.destination.as_query(),
        "mode": request.travel_mode.lower(),
    }
    if request.waypoints:
        parts = [
            waypoint.location.as_query()
            if waypoint.stopover
            else f"via:{waypoint.location.as_query()}"
            for waypoint in request.waypoints
        ]
        if request.optimize_waypoints:
            parts.insert(0, "optimize:true")
        params["waypoints"] = "|".join(parts)
    return params


def parse_directions_response(body: Any, waypoint_count: int) -> RouteResponse:
    if not isinstance(body, Mapping):
        raise ExternalServiceError("Malformed routing response")

    status = body.get("status")
    if status in _NO_ROUTE_STATUSES:
        _logger.info("Directions found no route", status=status)
        raise ExternalServiceError("No route found between the given locations")
    if status != "OK":
        message = body.get("error_message") or f"Routing service returned {status}"
        _logger.warning("Directions error status", status=status, error=message)
        raise ExternalServiceError(str(message))

    routes = body.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], Mapping):
        raise ExternalServiceError("No route found between the given locations")
    route = routes[0]

    order = route.get("waypoint_order")
    if order is None:
        order = list(range(waypoint_count))
    if (
        not isinstance(order, list)
        or not all(isinstance(item, int) and not isinstance(item, bool) for item in order)
        or sorted(order) != list(range(waypoint_count))
    ):
        _logger.warning("Directions waypoint order invalid", waypoint_order=order)
        raise ExternalServiceError("Malformed routing response")

    try:
        legs = [_parse_leg(index, leg) for index, leg in enumerate(route.get("legs") or [])]
    except (KeyError, TypeError, ValueError) as exc:
        _logger.warning("Directions leg parse error", error=str(exc))
        raise ExternalServiceError("Malformed routing response") from exc

    return RouteResponse(
        waypoint_order=[int(item) for item in order],
        legs=legs,
        payload=body,
        provider="google",
    )


def _parse_leg(order: int, leg: Mapping[str, Any]) -> RouteLeg:
    start = leg["start_location"]
    end = leg["end_location"]
    distance = leg.get("distance") or {}
    duration = leg.get("duration") or {}
    return RouteLeg(
        order=order,
        start_latitude=float(start["lat"]),
        start_longitude=float(start["lng"]),
        end_latitude=float(end["lat"]),
        end_longitude=float(end["lng"]),
        distance_meters=(
            float(distance["value"]) if distance.get("value") is not None else None
        ),
        duration_seconds=(
            int(duration["value"]) if duration.get("value") is not None else None
        ),
        start_address=leg.get("start_address"),
        end_address=leg.get("end_address"),
    )


class HaversineRoutingService:
    """Offline router: straight-line distances and an OR-Tools round trip."""

    provider = "haversine"

    async def route(self, request: RouteRequest) -> RouteResponse:
        return await asyncio.to_thread(self._solve, request)

    def _solve(self, request: RouteRequest) -> RouteResponse:
        order = plan_round_trip(
            request.origin,
            [item.location for item in request.waypoints],
            optimize=request.optimize_waypoints,
        )
        path = (
            [request.origin]
            + [request.waypoints[index].location for index in order]
            + [request.destination]
        )

        legs: list[RouteLeg] = []
        for index, (start, end) in enumerate(zip(path, path[1:])):
            distance = haversine_distance(start.lat, start.lng, end.lat, end.lng)
            legs.append(
                RouteLeg(
                    order=index,
                    start_latitude=start.lat,
                    start_longitude=start.lng,
                    end_latitude=end.lat,
                    end_longitude=end.lng,
                    distance_meters=distance,
                    duration_seconds=int(round(distance / _AVERAGE_SPEED_MPS)),
                )
            )

        _logger.info("Haversine route solved", stops=len(order), legs=len(legs))
        return RouteResponse(
            waypoint_order=order,
            legs=legs,
            payload={
                "provider": self.provider,
                "overview_path": [{"lat": p.lat, "lng": p.lng} for p in path],
            },
            provider=self.provider,
        )


def get_routing_service(
    settings: "Settings | None" = None,
) -> GoogleDirectionsService | HaversineRoutingService:
    settings = settings or get_settings()
    if settings.routing_provider == "haversine":
        return HaversineRoutingService()
    return GoogleDirectionsService(
        settings.google_maps_api_key, timeout=settings.routing_timeout
    )
