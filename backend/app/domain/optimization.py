from __future__ import annotations

from typing import Sequence

from ortools.constraint_solver import pywrapcp, routing_enums_pb2

from app.core.logging import get_logger
from app.domain.geometry import GeoPoint, haversine_distance


_logger = get_logger(__name__)


def plan_round_trip(
    origin: GeoPoint,
    waypoints: Sequence[GeoPoint],
    *,
    optimize: bool = True,
    time_limit_seconds: int = 1,
) -> list[int]:
    """
    Order waypoints for a loop that leaves ``origin`` and comes back to it.

    Returns indices into ``waypoints`` in visiting order. The given order is
    kept when ``optimize`` is off or the solver finds no tour.
    """
    given = list(range(len(waypoints)))
    # With one or two stops every loop has the same length.
    if not optimize or len(waypoints) <= 2:
        return given

    costs = straight_line_costs([origin, *waypoints])
    order = _visit_order_from_depot(costs, time_limit_seconds)
    if order is None:
        _logger.warning("Round trip solver fallback", waypoints=len(waypoints))
        return given
    return order


def straight_line_costs(points: Sequence[GeoPoint]) -> list[list[int]]:
    """Whole-meter haversine distances between every pair of points."""

    return [
        [
            0 if a is b else int(round(haversine_distance(a.lat, a.lng, b.lat, b.lng)))
            for b in points
        ]
        for a in points
    ]


def _visit_order_from_depot(
    costs: Sequence[Sequence[int]], time_limit_seconds: int
) -> list[int] | None:
    # Node 0 is the origin; waypoint i is node i + 1.
    manager = pywrapcp.RoutingIndexManager(len(costs), 1, 0)
    model = pywrapcp.RoutingModel(manager)

    def leg_cost(from_index: int, to_index: int) -> int:
        return costs[manager.IndexToNode(from_index)][manager.IndexToNode(to_index)]

    model.SetArcCostEvaluatorOfAllVehicles(model.RegisterTransitCallback(leg_cost))

    parameters = pywrapcp.DefaultRoutingSearchParameters()
    parameters.first_solution_strategy = (
        routing_enums_pb2.FirstSolutionStrategy.PATH_CHEAPEST_ARC
    )
    parameters.local_search_metaheuristic = (
        routing_enums_pb2.LocalSearchMetaheuristic.GUIDED_LOCAL_SEARCH
    )
    parameters.time_limit.FromSeconds(time_limit_seconds)

    assignment = model.SolveWithParameters(parameters)
    if assignment is None:
        return None

    order: list[int] = []
    index = assignment.Value(model.NextVar(model.Start(0)))
    while not model.IsEnd(index):
        order.append(manager.IndexToNode(index) - 1)
        index = assignment.Value(model.NextVar(index))
    return order
