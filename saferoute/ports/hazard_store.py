"""
Hazard store port interface.

This module defines the protocol for durable hazard alert persistence.
"""

from datetime import datetime
from typing import List, Optional, Protocol
from saferoute.core.models import HazardAlert

class HazardStorePort(Protocol):
    """위험 경보 저장소 포트 인터페이스"""

    async def save(self, alert: HazardAlert) -> None:
        """
        경보를 저장합니다 (같은 id면 덮어씀).

        Raises:
            TransientStoreError: 저장소 일시 장애
        """
        ...

    async def find_by_id(self, alert_id: str) -> Optional[HazardAlert]:
        """id로 경보를 조회합니다."""
        ...

    async def find_near(self, latitude: float, longitude: float, radius_m: float) -> List[HazardAlert]:
        """반경 내 경보를 조회합니다."""
        ...

    async def load_active(self, now: datetime) -> List[HazardAlert]:
        """만료되지 않은 경보를 모두 조회합니다."""
        ...
