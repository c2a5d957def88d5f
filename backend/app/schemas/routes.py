from __future__ import annotations

from pydantic import BaseModel


class RouteLeg(BaseModel):
    order: int
    start_latitude: float
    start_longitude: float
    end_latitude: float
    end_longitude: float
    distance_meters: float | None = None
    duration_seconds: int | None = None
    start_address: str | None = None
    end_address: str | None = None
