from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, isfinite, radians, sin, sqrt

from app.domain.errors import InvalidInput


EARTH_RADIUS_METERS = 6_371_000.0


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """Immutable latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float

    @classmethod
    def checked(cls, lat: float, lng: float) -> GeoPoint:
        """Build a point from untrusted input, rejecting out-of-range values."""

        try:
            lat = float(lat)
            lng = float(lng)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"Coordinates must be numeric: {exc}") from exc

        if not (isfinite(lat) and isfinite(lng)):
            raise InvalidInput("Coordinates must be finite")
        if not -90.0 <= lat <= 90.0:
            raise InvalidInput(f"Latitude {lat} outside [-90, 90]")
        if not -180.0 <= lng <= 180.0:
            raise InvalidInput(f"Longitude {lng} outside [-180, 180]")
        return cls(lat, lng)

    def rounded(self, precision: int) -> GeoPoint:
        return GeoPoint(round(self.lat, precision), round(self.lng, precision))

    def as_query(self) -> str:
        return f"{self.lat},{self.lng}"


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points
    on the earth (specified in decimal degrees).
    """
    lat1_rad, lon1_rad = radians(lat1), radians(lon1)
    lat2_rad, lon2_rad = radians(lat2), radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = sin(dlat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
