"""
Proximity alert engine components.

GeoIndex and PresenceRegistry are the shared in-memory state; AlertEngine
owns alert transitions; SubscriptionRouter and AlertFanout deliver the
results to connections.
"""

from .geo_index import GeoIndex
from .presence import PresenceRegistry
from .alert_engine import AlertEngine
from .router import SubscriptionRouter
from .fanout import AlertFanout

__all__ = ["GeoIndex", "PresenceRegistry", "AlertEngine", "SubscriptionRouter", "AlertFanout"]
