from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from app.core.config import get_settings
from app.core.logging import get_logger
from app.domain.errors import Busy, ExternalServiceError
from app.domain.geometry import GeoPoint
from app.domain.location import Destination, LocationSnapshot
from app.schemas.routes import RouteLeg
from app.services.routing import (
    RouteCallable,
    RouteRequest,
    TravelMode,
    Waypoint,
    get_routing_service,
)
from app.services.store import LocationStore


_logger = get_logger(__name__)


@dataclass(slots=True)
class RouteResult(Sequence[Destination]):
    """A planned round trip, tied to the store version it was computed from."""

    waypoint_order: list[int]
    stops: list[Destination]
    legs: list[RouteLeg]
    version: int
    provider: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def total_distance_meters(self) -> float:
        return sum(leg.distance_meters or 0.0 for leg in self.legs)

    @property
    def total_duration_seconds(self) -> int:
        return sum(leg.duration_seconds or 0 for leg in self.legs)

    def __iter__(self):  # pragma: no cover - delegating to list iterator
        return iter(self.stops)

    def __len__(self) -> int:
        return len(self.stops)

    def __getitem__(self, index: int) -> Destination:  # pragma: no cover
        return self.stops[index]


class RouteCoordinator:
    """Runs route requests and keeps the held result in step with the store.

    Any store mutation calls ``invalidate``, which drops the result and
    advances ``generation``. A response is applied only if neither the
    generation nor the store version moved while it was outstanding.
    """

    def __init__(
        self,
        *,
        router: RouteCallable | None = None,
        travel_mode: TravelMode | None = None,
    ) -> None:
        self._router = router
        self._travel_mode: TravelMode = travel_mode or get_settings().routing_travel_mode
        self._result: RouteResult | None = None
        self._generation = 0
        self._in_flight: int | None = None
        self._bound_stores: weakref.WeakSet[LocationStore] = weakref.WeakSet()

    @property
    def result(self) -> RouteResult | None:
        return self._result

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def generation(self) -> int:
        return self._generation

    def bind(self, store: LocationStore) -> None:
        """Invalidate automatically whenever ``store`` changes."""
        if store in self._bound_stores:
            return
        self._bound_stores.add(store)
        store.subscribe(self.invalidate)

    def invalidate(self) -> None:
        if self._result is not None:
            _logger.info("Route result invalidated", version=self._result.version)
        self._result = None
        self._generation += 1

    def clear(self) -> None:
        self._result = None
        self._generation += 1
        _logger.info("Route result cleared")

    async def plan_route(self, store: LocationStore) -> RouteResult | None:
        self.bind(store)
        snapshot = store.snapshot()
        if snapshot.source is None or not snapshot.destinations:
            _logger.info(
                "Route planning skipped",
                has_source=snapshot.source is not None,
                destinations=len(snapshot.destinations),
            )
            return self._result

        if self._in_flight == self._generation:
            raise Busy("A route is already being planned for the current locations")

        generation = self._generation
        if self._in_flight is not None:
            _logger.info(
                "Superseding stale route request",
                stale_generation=self._in_flight,
                generation=generation,
            )
        self._in_flight = generation

        request = self._build_request(snapshot.source, snapshot.destinations)
        _logger.info(
            "Route planning started",
            waypoints=len(request.waypoints),
            version=snapshot.version,
            travel_mode=request.travel_mode,
        )

        try:
            response = await self._get_router()(request)
        except ExternalServiceError as exc:
            if self._is_stale(generation, snapshot, store):
                _logger.info("Stale route failure discarded", error=str(exc))
                return self._result
            _logger.warning("Route planning failed", error=str(exc))
            raise
        finally:
            if self._in_flight == generation:
                self._in_flight = None

        if self._is_stale(generation, snapshot, store):
            _logger.info(
                "Stale route response discarded",
                version=snapshot.version,
                current_version=store.version,
            )
            return self._result

        destinations = snapshot.destinations
        order = response.waypoint_order
        if not all(
            isinstance(item, int) and not isinstance(item, bool) for item in order
        ) or sorted(order) != list(range(len(destinations))):
            _logger.warning(
                "Route response order mismatch",
                waypoint_order=response.waypoint_order,
                destinations=len(destinations),
            )
            raise ExternalServiceError("Malformed routing response")

        self._result = RouteResult(
            waypoint_order=list(response.waypoint_order),
            stops=[destinations[index] for index in response.waypoint_order],
            legs=list(response.legs),
            version=snapshot.version,
            provider=response.provider,
            payload=response.payload,
        )
        _logger.info(
            "Route planning finished",
            version=snapshot.version,
            legs=len(self._result.legs),
            provider=response.provider,
            total_distance_meters=self._result.total_distance_meters,
        )
        return self._result

    def _build_request(
        self, source: GeoPoint, destinations: Sequence[Destination]
    ) -> RouteRequest:
        # Stored order; the routing service does its own optimization.
        waypoints = tuple(
            Waypoint(location=item.point, stopover=True)
            for item in destinations
        )
        return RouteRequest(
            origin=source,
            destination=source,
            waypoints=waypoints,
            travel_mode=self._travel_mode,
            optimize_waypoints=True,
        )

    def _is_stale(
        self, generation: int, snapshot: LocationSnapshot, store: LocationStore
    ) -> bool:
        return generation != self._generation or snapshot.version != store.version

    def _get_router(self) -> RouteCallable:
        if self._router is None:
            self._router = get_routing_service().route
        return self._router
