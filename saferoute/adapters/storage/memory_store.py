"""
In-memory hazard store for SafeRoute.

Used for tests and single-process runs without a database file.
"""

from datetime import datetime
from typing import Dict, List, Optional
from saferoute.common.geo import haversine_distance
from saferoute.core.models import HazardAlert

class InMemoryHazardStore:
    """메모리 기반 위험 경보 저장소"""

    def __init__(self):
        self._alerts: Dict[str, HazardAlert] = {}

    async def save(self, alert: HazardAlert) -> None:
        self._alerts[alert.id] = alert

    async def find_by_id(self, alert_id: str) -> Optional[HazardAlert]:
        return self._alerts.get(alert_id)

    async def find_near(self, latitude: float, longitude: float, radius_m: float) -> List[HazardAlert]:
        return [
            a for a in self._alerts.values()
            if haversine_distance(latitude, longitude, a.latitude, a.longitude) <= radius_m
        ]

    async def load_active(self, now: datetime) -> List[HazardAlert]:
        return [a for a in self._alerts.values() if not a.is_expired(now)]

    async def get_count(self) -> int:
        return len(self._alerts)
