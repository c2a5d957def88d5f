from __future__ import annotations

from typing import Iterable

from app.domain.geometry import GeoPoint, haversine_distance
from app.domain.location import Destination


class DistanceRanker:
    """Order destinations by great-circle distance from a reference point."""

    def distance(self, a: GeoPoint, b: GeoPoint) -> float:
        """Distance in meters between two points."""

        if a == b:
            return 0.0
        return haversine_distance(a.lat, a.lng, b.lat, b.lng)

    def rank(
        self,
        source: GeoPoint | None,
        destinations: Iterable[Destination],
    ) -> tuple[Destination, ...]:
        """
        Return destinations sorted nearest-first relative to ``source``.

        The sort is stable, so stops at equal distance keep their insertion
        order. Callers remove by index into this ordering, which only works if
        repeated reads give the same sequence. Without a source there is no
        distance to sort by and insertion order is returned as-is.
        """
        items = tuple(destinations)
        if source is None:
            return items
        return tuple(sorted(items, key=lambda item: self.distance(source, item.point)))
