"""
Core domain models and pure functions for SafeRoute.

This module contains the domain models and pure business logic
that are independent of external I/O and infrastructure concerns.
"""

from .models import (
    HazardAlert, HazardKind, HazardReading, PresenceRecord, ProximityMatch, Severity,
)
from .normalize import to_hazard_alert
from .policy import normalize_severity

__all__ = [
    "HazardAlert", "HazardKind", "HazardReading", "PresenceRecord", "ProximityMatch",
    "Severity", "to_hazard_alert", "normalize_severity",
]
