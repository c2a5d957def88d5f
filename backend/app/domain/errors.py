from __future__ import annotations


class RoutePlannerError(Exception):
    """Base class for recoverable planner conditions."""


class InvalidInput(RoutePlannerError, ValueError):
    """Raised when input is rejected before reaching any external service."""


class DestinationIndexError(InvalidInput, IndexError):
    """Raised when a display index does not address an existing destination."""


class NotFound(RoutePlannerError):
    """Raised when the geocoder has no match for an address."""


class ExternalServiceError(RoutePlannerError):
    """Raised when a geocoding or routing call fails."""


class Busy(RoutePlannerError):
    """Raised when a route computation is already outstanding for the current state."""
