from __future__ import annotations

from functools import lru_cache

from app.core.config import get_settings
from app.core.logging import get_logger
from app.domain.geometry import GeoPoint
from app.domain.location import Destination
from app.domain.ranking import DistanceRanker
from app.schemas.session import (
    DestinationView,
    PointView,
    RouteView,
    SessionView,
)
from app.services.coordinator import RouteCoordinator, RouteResult
from app.services.geocoding import GeocodeAdapter
from app.services.store import LocationStore


_logger = get_logger(__name__)


class PlanningSession:
    """One operator's planning state: locations, geocoding and the current route."""

    def __init__(
        self,
        *,
        store: LocationStore | None = None,
        ranker: DistanceRanker | None = None,
        geocoder: GeocodeAdapter | None = None,
        coordinator: RouteCoordinator | None = None,
        display_precision: int | None = None,
    ) -> None:
        settings = get_settings()
        self.ranker = ranker or DistanceRanker()
        self.store = store or LocationStore(self.ranker)
        self.geocoder = geocoder or GeocodeAdapter()
        self.coordinator = coordinator or RouteCoordinator()
        self.coordinator.bind(self.store)
        self._precision = (
            settings.display_precision if display_precision is None else display_precision
        )
        self._map_center = GeoPoint(
            settings.map_center_latitude, settings.map_center_longitude
        )

    def set_source_point(self, latitude: float, longitude: float) -> GeoPoint:
        point = GeoPoint.checked(latitude, longitude)
        self.store.set_source(point)
        return point

    async def set_source_address(self, address: str) -> GeoPoint:
        point = await self.geocoder.resolve(address)
        self.store.set_source(point)
        return point

    def add_destination_point(
        self, latitude: float, longitude: float, label: str | None = None
    ) -> Destination | None:
        return self.store.add_destination(GeoPoint.checked(latitude, longitude), label)

    async def add_destination_address(self, address: str) -> Destination | None:
        point, resolved_label = await self.geocoder.resolve_labelled(address)
        return self.store.add_destination(point, resolved_label or address.strip())

    def remove_destination(self, index: int) -> Destination:
        return self.store.remove_destination(index)

    async def plan_route(self) -> RouteResult | None:
        return await self.coordinator.plan_route(self.store)

    def clear(self) -> None:
        self.store.clear()
        self.coordinator.clear()

    def view(self) -> SessionView:
        source = self.store.source
        return SessionView(
            source=self._point_view(source) if source is not None else None,
            destinations=[
                DestinationView(
                    index=index,
                    id=item.id,
                    label=item.label,
                    latitude=round(item.point.lat, self._precision),
                    longitude=round(item.point.lng, self._precision),
                    distance_meters=(
                        self.ranker.distance(source, item.point)
                        if source is not None
                        else None
                    ),
                )
                for index, item in enumerate(self.store.display_destinations())
            ],
            route=self._route_view(self.coordinator.result),
            map_center=self._point_view(self._map_center),
            planning=self.coordinator.in_flight,
        )

    def _point_view(self, point: GeoPoint) -> PointView:
        rounded = point.rounded(self._precision)
        return PointView(latitude=rounded.lat, longitude=rounded.lng)

    def _route_view(self, result: RouteResult | None) -> RouteView | None:
        if result is None:
            return None
        return RouteView(
            version=result.version,
            provider=result.provider,
            waypoint_order=result.waypoint_order,
            stops=[
                self._point_view(item.point).model_copy(update={"label": item.label})
                for item in result.stops
            ],
            legs=result.legs,
            total_distance_meters=result.total_distance_meters,
            total_duration_seconds=result.total_duration_seconds,
            payload=dict(result.payload),
        )


@lru_cache(maxsize=1)
def get_planning_session() -> PlanningSession:
    """Return the process-wide planning session."""

    _logger.info("Planning session created")
    return PlanningSession()
