from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from app.schemas.routes import RouteLeg


class LocationInput(BaseModel):
    """Either coordinates (a map click) or free-text address."""

    latitude: float | None = Field(None, ge=-90.0, le=90.0)
    longitude: float | None = Field(None, ge=-180.0, le=180.0)
    address: str | None = None

    @model_validator(mode="after")
    def _require_point_or_address(self) -> "LocationInput":
        has_point = self.latitude is not None and self.longitude is not None
        if not has_point and (self.latitude is not None or self.longitude is not None):
            raise ValueError("Latitude and longitude must be given together")
        if not has_point and self.address is None:
            raise ValueError("Provide latitude and longitude, or an address")
        if has_point and self.address is not None:
            raise ValueError("Provide either coordinates or an address, not both")
        return self


class PointView(BaseModel):
    latitude: float
    longitude: float
    label: str | None = None


class DestinationView(BaseModel):
    index: int
    id: int
    latitude: float
    longitude: float
    label: str | None = None
    distance_meters: float | None = None


class RouteView(BaseModel):
    version: int
    provider: str
    waypoint_order: list[int]
    stops: list[PointView]
    legs: list[RouteLeg] = Field(default_factory=list)
    total_distance_meters: float
    total_duration_seconds: int
    payload: dict[str, Any] = Field(default_factory=dict)


class SessionView(BaseModel):
    source: PointView | None = None
    destinations: list[DestinationView] = Field(default_factory=list)
    route: RouteView | None = None
    map_center: PointView
    planning: bool = False
