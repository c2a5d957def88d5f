from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, Depends, HTTPException, status

from app.domain.errors import (
    Busy,
    ExternalServiceError,
    InvalidInput,
    NotFound,
    RoutePlannerError,
)
from app.schemas.session import LocationInput, SessionView
from app.services.session import PlanningSession, get_planning_session


router = APIRouter()

_STATUS_BY_ERROR: tuple[tuple[type[RoutePlannerError], int], ...] = (
    (InvalidInput, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Busy, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def get_session() -> PlanningSession:
    return get_planning_session()


@contextmanager
def _planner_errors() -> Iterator[None]:
    try:
        yield
    except RoutePlannerError as exc:
        for error_type, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                raise HTTPException(code, str(exc)) from exc
        raise


@router.get("", response_model=SessionView)
async def read_session(
    session: PlanningSession = Depends(get_session),
) -> SessionView:
    return session.view()


@router.put("/source", response_model=SessionView)
async def set_source(
    payload: LocationInput,
    session: PlanningSession = Depends(get_session),
) -> SessionView:
    with _planner_errors():
        if payload.address is not None:
            await session.set_source_address(payload.address)
        else:
            session.set_source_point(payload.latitude, payload.longitude)
    return session.view()


@router.post(
    "/destinations",
    response_model=SessionView,
    status_code=status.HTTP_201_CREATED,
)
async def add_destination(
    payload: LocationInput,
    session: PlanningSession = Depends(get_session),
) -> SessionView:
    with _planner_errors():
        if payload.address is not None:
            await session.add_destination_address(payload.address)
        else:
            session.add_destination_point(payload.latitude, payload.longitude)
    return session.view()


@router.delete("/destinations/{index}", response_model=SessionView)
async def remove_destination(
    index: int,
    session: PlanningSession = Depends(get_session),
) -> SessionView:
    with _planner_errors():
        session.remove_destination(index)
    return session.view()


@router.post("/route", response_model=SessionView)
async def plan_route(
    session: PlanningSession = Depends(get_session),
) -> SessionView:
    with _planner_errors():
        await session.plan_route()
    return session.view()


@router.delete("", response_model=SessionView)
async def clear_session(
    session: PlanningSession = Depends(get_session),
) -> SessionView:
    session.clear()
    return session.view()
