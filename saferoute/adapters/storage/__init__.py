"""
Storage adapters for SafeRoute hexagonal architecture.

This module contains hazard store adapters: an in-memory store and a
SQLite-backed durable store.
"""

from .memory_store import InMemoryHazardStore
from .sqlite_hazards import SQLiteHazardStore

__all__ = ["InMemoryHazardStore", "SQLiteHazardStore"]
