"""
External fetcher port interfaces.

Weather and traffic sources are collaborators: they return a normalized
reading or raise ExternalFetchError.
"""

from typing import List, Protocol
from saferoute.core.models import RoadSegment, TrafficReading, WeatherReading

class WeatherFetcherPort(Protocol):
    """날씨 수집기 포트 인터페이스"""

    async def fetch(self, latitude: float, longitude: float) -> WeatherReading:
        """현재 날씨를 조회합니다."""
        ...

    async def forecast(self, latitude: float, longitude: float, slots: int = 1) -> List[WeatherReading]:
        """
        단기 예보를 조회합니다.

        Args:
            latitude: 위도
            longitude: 경도
            slots: 가져올 예보 구간 수 (구간당 3시간)
        """
        ...

class TrafficFetcherPort(Protocol):
    """교통 수집기 포트 인터페이스"""

    async def fetch(self, segment: RoadSegment) -> TrafficReading:
        """도로 구간의 현재 혼잡도를 조회합니다."""
        ...
