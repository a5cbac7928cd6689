"""
Port interfaces for SafeRoute hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the proximity alert core and external adapters.
"""

from .hazard_store import HazardStorePort
from .fetchers import WeatherFetcherPort, TrafficFetcherPort
from .membership import MembershipPort
from .dispatch import ConnectionSinkPort

__all__ = [
    "HazardStorePort", "WeatherFetcherPort", "TrafficFetcherPort",
    "MembershipPort", "ConnectionSinkPort",
]
