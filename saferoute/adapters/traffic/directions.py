"""
Directions-based traffic client for SafeRoute.

Congestion is derived from the ratio between the in-traffic and the
free-flow duration of a segment's driving route.
"""

import asyncio
import aiohttp
from typing import Any, Dict, Optional
from saferoute.common.retry import retry_with_backoff
from saferoute.core.errors import ExternalFetchError
from saferoute.core.models import RoadSegment, TrafficReading
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.traffic")

def congestion_level(traffic_seconds: float, normal_seconds: float) -> str:
    """교통 소요시간/평시 소요시간 비율로 혼잡도를 구합니다."""
    if normal_seconds <= 0:
        return "free"
    ratio = traffic_seconds / normal_seconds
    if ratio < 1.1:
        return "free"
    if ratio < 1.3:
        return "light"
    if ratio < 1.6:
        return "moderate"
    if ratio < 2.0:
        return "heavy"
    return "severe"

class DirectionsTrafficFetcher:
    """Directions API 기반 교통 수집기"""

    def __init__(self,
                 api_key: str,
                 base_url: str = "https://maps.googleapis.com/maps/api/directions/json",
                 timeout: int = 10,
                 max_retries: int = 2):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch(self, segment: RoadSegment) -> TrafficReading:
        """
        도로 구간의 혼잡도를 조회합니다.

        Raises:
            ExternalFetchError: 요청 실패 또는 응답 형식 오류
        """
        data = await self._get(segment)
        try:
            leg = data["routes"][0]["legs"][0]
            normal = float(leg["duration"]["value"])
            in_traffic = float(leg.get("duration_in_traffic", leg["duration"])["value"])
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ExternalFetchError("malformed directions response", detail=str(e)) from e

        return TrafficReading(
            congestion_level=congestion_level(in_traffic, normal),
            delay_minutes=round(max(0.0, in_traffic - normal) / 60, 1),
        )

    async def _get(self, segment: RoadSegment) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalFetchError("directions API key not configured")
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

        params = {
            "origin": f"{segment.start_latitude},{segment.start_longitude}",
            "destination": f"{segment.end_latitude},{segment.end_longitude}",
            "departure_time": "now",
            "key": self.api_key,
        }

        async def _request():
            async with self.session.get(self.base_url, params=params) as response:
                response.raise_for_status()
                return await response.json()

        try:
            return await retry_with_backoff(
                _request,
                max_retries=self.max_retries,
                base_delay=0.5,
                max_delay=5.0,
                retry_on=(aiohttp.ClientError, asyncio.TimeoutError),
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning(f"교통 정보 요청 실패 segment:{segment.segment_id} error:{e}")
            raise ExternalFetchError("traffic source unreachable", detail=str(e)) from e
