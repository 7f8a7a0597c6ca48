"""
Error types raised by the route/proximity core.

Both subclass `ValueError` so API and CLI layers can keep treating them as
invalid-input failures unless they need the specific kind.
"""

from __future__ import annotations


class EmptyRouteError(ValueError):
    """A route query was made against a route with zero points."""

    def __init__(self, message: str = "No route loaded (route has zero points).") -> None:
        super().__init__(message)


class InvalidCoordinateError(ValueError):
    """Latitude/longitude is missing, non-numeric or outside the valid range."""
