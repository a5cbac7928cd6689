"""
Shared helpers for SafeRoute: geographic math and retry/backoff.
"""

from .geo import haversine_distance, validate_coordinates, grid_cell
from .retry import retry_with_backoff

__all__ = [
    "haversine_distance", "validate_coordinates", "grid_cell",
    "retry_with_backoff",
]
