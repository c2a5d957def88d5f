import asyncio

import pytest

from app.domain.errors import Busy, ExternalServiceError
from app.domain.geometry import GeoPoint
from app.schemas.routes import RouteLeg
from app.services.coordinator import RouteCoordinator
from app.services.routing import RouteResponse
from app.services.store import LocationStore


SOURCE = GeoPoint(23.0225, 72.5714)
STOPS = [GeoPoint(23.05, 72.60), GeoPoint(23.03, 72.58), GeoPoint(23.01, 72.55)]


class _StubRouter:
    """Reverses the waypoint order and records every request."""

    def __init__(self, error=None):
        self.requests = []
        self.error = error

    async def __call__(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        count = len(request.waypoints)
        return RouteResponse(
            waypoint_order=list(reversed(range(count))),
            legs=[
                RouteLeg(
                    order=index,
                    start_latitude=0.0,
                    start_longitude=0.0,
                    end_latitude=0.0,
                    end_longitude=0.0,
                    distance_meters=100.0,
                    duration_seconds=10,
                )
                for index in range(count + 1)
            ],
            payload={"status": "OK"},
            provider="stub",
        )


class _GatedRouter(_StubRouter):
    def __init__(self, error=None):
        super().__init__(error)
        self.release = asyncio.Event()

    async def __call__(self, request):
        self.requests.append(request)
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return RouteResponse(
            waypoint_order=list(range(len(request.waypoints))), provider="gated"
        )


def _setup(router, *, source=SOURCE, stops=STOPS):
    store = LocationStore()
    if source is not None:
        store.set_source(source)
    for point in stops:
        store.add_destination(point)
    coordinator = RouteCoordinator(router=router, travel_mode="DRIVING")
    coordinator.bind(store)
    return store, coordinator


@pytest.mark.asyncio
async def test_plan_route_without_source_is_noop():
    router = _StubRouter()
    store, coordinator = _setup(router, source=None)

    result = await coordinator.plan_route(store)

    assert result is None
    assert coordinator.result is None
    assert router.requests == []


@pytest.mark.asyncio
async def test_plan_route_without_destinations_keeps_previous_result():
    router = _StubRouter()
    store, coordinator = _setup(router)
    previous = await coordinator.plan_route(store)

    empty_store = LocationStore()
    empty_store.set_source(SOURCE)
    result = await coordinator.plan_route(empty_store)

    assert result is previous
    assert coordinator.result is previous
    assert len(router.requests) == 1


@pytest.mark.asyncio
async def test_plan_route_submits_round_trip_in_stored_order():
    router = _StubRouter()
    store, coordinator = _setup(router)

    await coordinator.plan_route(store)

    (request,) = router.requests
    assert request.origin == SOURCE
    assert request.destination == SOURCE
    assert request.optimize_waypoints is True
    assert request.travel_mode == "DRIVING"
    assert [waypoint.location for waypoint in request.waypoints] == STOPS
    assert all(waypoint.stopover for waypoint in request.waypoints)


@pytest.mark.asyncio
async def test_plan_route_stores_result_in_visit_order():
    router = _StubRouter()
    store, coordinator = _setup(router)

    result = await coordinator.plan_route(store)

    assert result is coordinator.result
    assert result.waypoint_order == [2, 1, 0]
    assert [stop.point for stop in result.stops] == list(reversed(STOPS))
    assert result.version == store.version
    assert result.provider == "stub"
    assert result.total_distance_meters == 400.0
    assert result.total_duration_seconds == 40


@pytest.mark.asyncio
async def test_set_source_invalidates_result():
    store, coordinator = _setup(_StubRouter())
    await coordinator.plan_route(store)
    assert coordinator.result is not None

    store.set_source(GeoPoint(23.1, 72.7))

    assert coordinator.result is None


@pytest.mark.asyncio
@pytest.mark.parametrize("edit", ["add", "remove", "clear"])
async def test_store_edits_invalidate_result(edit):
    store, coordinator = _setup(_StubRouter())
    await coordinator.plan_route(store)

    if edit == "add":
        store.add_destination(GeoPoint(23.0, 72.5))
    elif edit == "remove":
        store.remove_destination(0)
    else:
        store.clear()

    assert coordinator.result is None


@pytest.mark.asyncio
async def test_failure_keeps_previous_result_and_is_reported():
    router = _StubRouter()
    store, coordinator = _setup(router)
    previous = await coordinator.plan_route(store)

    router.error = ExternalServiceError("No route found between the given locations")
    with pytest.raises(ExternalServiceError, match="No route found"):
        await coordinator.plan_route(store)

    assert coordinator.result is previous
    assert not coordinator.in_flight
    assert [item.point for item in store.destinations] == STOPS


@pytest.mark.asyncio
async def test_response_with_wrong_stop_count_is_rejected():
    async def router(request):
        return RouteResponse(waypoint_order=[0], provider="broken")

    store, coordinator = _setup(router)

    with pytest.raises(ExternalServiceError, match="Malformed"):
        await coordinator.plan_route(store)

    assert coordinator.result is None


@pytest.mark.asyncio
async def test_clear_while_in_flight_discards_late_response():
    router = _GatedRouter()
    store, coordinator = _setup(router)

    task = asyncio.create_task(coordinator.plan_route(store))
    await asyncio.sleep(0)
    assert coordinator.in_flight

    store.clear()
    coordinator.clear()
    router.release.set()

    assert await task is None
    assert coordinator.result is None
    assert not coordinator.in_flight


@pytest.mark.asyncio
async def test_late_failure_after_edit_is_dropped():
    router = _GatedRouter(error=ExternalServiceError("network down"))
    store, coordinator = _setup(router)

    task = asyncio.create_task(coordinator.plan_route(store))
    await asyncio.sleep(0)
    store.add_destination(GeoPoint(23.0, 72.5))
    router.release.set()

    assert await task is None
    assert coordinator.result is None


@pytest.mark.asyncio
async def test_second_request_for_same_state_is_busy():
    router = _GatedRouter()
    store, coordinator = _setup(router)

    task = asyncio.create_task(coordinator.plan_route(store))
    await asyncio.sleep(0)

    with pytest.raises(Busy):
        await coordinator.plan_route(store)

    router.release.set()
    result = await task

    assert result is not None
    assert len(router.requests) == 1
    assert not coordinator.in_flight


@pytest.mark.asyncio
async def test_request_after_edit_supersedes_outstanding_one():
    router = _GatedRouter()
    store, coordinator = _setup(router)

    stale = asyncio.create_task(coordinator.plan_route(store))
    await asyncio.sleep(0)
    store.add_destination(GeoPoint(23.0, 72.5))
    fresh = asyncio.create_task(coordinator.plan_route(store))
    await asyncio.sleep(0)
    router.release.set()

    assert await stale is None
    result = await fresh

    assert result is coordinator.result
    assert len(result.stops) == 4
    assert result.version == store.version
    assert len(router.requests) == 2
    assert not coordinator.in_flight


@pytest.mark.asyncio
async def test_planning_alone_ties_result_to_store_edits():
    store = LocationStore()
    store.set_source(SOURCE)
    for point in STOPS:
        store.add_destination(point)
    coordinator = RouteCoordinator(router=_StubRouter(), travel_mode="DRIVING")

    assert await coordinator.plan_route(store) is not None

    store.set_source(GeoPoint(23.1, 72.7))

    assert coordinator.result is None


@pytest.mark.asyncio
async def test_planning_twice_subscribes_once():
    store, coordinator = _setup(_StubRouter())
    invalidations = []
    store.subscribe(lambda: invalidations.append(coordinator.generation))

    await coordinator.plan_route(store)
    await coordinator.plan_route(store)
    before = coordinator.generation
    store.add_destination(GeoPoint(23.0, 72.5))

    assert coordinator.generation == before + 1
    assert invalidations == [before + 1]


@pytest.mark.asyncio
async def test_response_with_non_integer_order_is_rejected():
    async def router(request):
        return RouteResponse(waypoint_order=[0, "1", 2], provider="broken")

    store, coordinator = _setup(router)

    with pytest.raises(ExternalServiceError, match="Malformed"):
        await coordinator.plan_route(store)

    assert coordinator.result is None
    assert not coordinator.in_flight
