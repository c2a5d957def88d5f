from __future__ import annotations

from typing import Callable

from app.core.logging import get_logger
from app.domain.errors import DestinationIndexError
from app.domain.geometry import GeoPoint
from app.domain.location import Destination, LocationSnapshot
from app.domain.ranking import DistanceRanker


ChangeListener = Callable[[], None]


_logger = get_logger(__name__)


class LocationStore:
    """Single source of truth for the route source and the destination set.

    Destinations are stored in insertion order. The nearest-first ordering the
    user sees is never stored; ``display_destinations`` derives it on every
    read from the current source.
    """

    def __init__(self, ranker: DistanceRanker | None = None) -> None:
        self._ranker = ranker or DistanceRanker()
        self._source: GeoPoint | None = None
        self._destinations: list[Destination] = []
        self._next_id = 0
        self._version = 0
        self._listeners: list[ChangeListener] = []

    @property
    def source(self) -> GeoPoint | None:
        return self._source

    @property
    def destinations(self) -> tuple[Destination, ...]:
        """Destinations in insertion order."""
        return tuple(self._destinations)

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._destinations)

    def display_destinations(self) -> tuple[Destination, ...]:
        """Destinations nearest-first from the current source."""
        return self._ranker.rank(self._source, self._destinations)

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def set_source(self, point: GeoPoint | None) -> None:
        if point is None:
            return
        self._source = point
        _logger.info("Source set", latitude=point.lat, longitude=point.lng)
        self._changed()

    def add_destination(
        self, point: GeoPoint | None, label: str | None = None
    ) -> Destination | None:
        if point is None:
            return None
        destination = Destination(id=self._next_id, point=point, label=label)
        self._next_id += 1
        self._destinations.append(destination)
        _logger.info(
            "Destination added",
            destination_id=destination.id,
            latitude=point.lat,
            longitude=point.lng,
            total=len(self._destinations),
        )
        self._changed()
        return destination

    def remove_destination(self, index: int) -> Destination:
        """Remove the destination at ``index`` of the display ordering."""

        displayed = self.display_destinations()
        if not 0 <= index < len(displayed):
            raise DestinationIndexError(
                f"Destination index {index} out of range for {len(displayed)} stops"
            )

        target = displayed[index]
        self._destinations = [
            item for item in self._destinations if item.id != target.id
        ]
        _logger.info(
            "Destination removed",
            display_index=index,
            destination_id=target.id,
            remaining=len(self._destinations),
        )
        self._changed()
        return target

    def clear(self) -> None:
        self._source = None
        self._destinations = []
        _logger.info("Locations cleared")
        self._changed()

    def snapshot(self) -> LocationSnapshot:
        return LocationSnapshot(
            source=self._source,
            destinations=tuple(self._destinations),
            version=self._version,
        )

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            listener()
