"""
Adapters for SafeRoute hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .storage import InMemoryHazardStore, SQLiteHazardStore
from .membership import InMemoryMembershipStore
from .weather import OpenWeatherFetcher
from .traffic import DirectionsTrafficFetcher

__all__ = [
    "InMemoryHazardStore", "SQLiteHazardStore", "InMemoryMembershipStore",
    "OpenWeatherFetcher", "DirectionsTrafficFetcher",
]
