from __future__ import annotations

from dataclasses import dataclass

from app.domain.geometry import GeoPoint


@dataclass(frozen=True, slots=True)
class Destination:
    """A stop to visit.

    ``id`` is assigned by the store in insertion order and is what identifies
    the stop; two destinations may share coordinates and still be distinct.
    """

    id: int
    point: GeoPoint
    label: str | None = None


@dataclass(frozen=True, slots=True)
class LocationSnapshot:
    source: GeoPoint | None
    destinations: tuple[Destination, ...]
    version: int

    @property
    def is_routable(self) -> bool:
        return self.source is not None and bool(self.destinations)
