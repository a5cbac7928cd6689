"""
OpenWeather client for SafeRoute.

This module provides a thin client around the OpenWeather current
weather and 3-hour forecast endpoints, normalized into WeatherReading.
"""

import asyncio
import aiohttp
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from saferoute.common.retry import retry_with_backoff
from saferoute.core.errors import ExternalFetchError
from saferoute.core.models import WeatherReading
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.weather")

class OpenWeatherFetcher:
    """OpenWeather API 클라이언트"""

    def __init__(self,
                 api_key: str,
                 base_url: str = "https://api.openweathermap.org/data/2.5",
                 timeout: int = 10,
                 max_retries: int = 2):
        """
        초기화합니다.

        Args:
            api_key: OpenWeather API 키
            base_url: API 기본 URL
            timeout: 요청 타임아웃 (초)
            max_retries: 네트워크 오류 재시도 횟수
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch(self, latitude: float, longitude: float) -> WeatherReading:
        """현재 날씨를 조회합니다."""
        data = await self._get("/weather", latitude, longitude)
        try:
            rain = data.get("rain") or {}
            return WeatherReading(
                condition=str(data["weather"][0]["main"]).lower(),
                temperature=data.get("main", {}).get("temp"),
                precipitation_mm=float(rain.get("1h", 0) or 0),
                fetched_at=datetime.now(timezone.utc),
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ExternalFetchError("malformed weather response", detail=str(e)) from e

    async def forecast(self, latitude: float, longitude: float, slots: int = 1) -> List[WeatherReading]:
        """
        3시간 단위 예보를 조회합니다.

        Args:
            latitude: 위도
            longitude: 경도
            slots: 가져올 예보 구간 수

        Returns:
            예보 구간별 WeatherReading (fetched_at은 예보 시각)
        """
        data = await self._get("/forecast", latitude, longitude)
        try:
            readings = []
            for item in data["list"][:max(1, slots)]:
                rain = item.get("rain") or {}
                readings.append(WeatherReading(
                    condition=str(item["weather"][0]["main"]).lower(),
                    temperature=item.get("main", {}).get("temp"),
                    precipitation_mm=float(rain.get("3h", 0) or 0),
                    fetched_at=datetime.fromtimestamp(item["dt"], tz=timezone.utc),
                ))
            return readings
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ExternalFetchError("malformed forecast response", detail=str(e)) from e

    async def _get(self, endpoint: str, latitude: float, longitude: float) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalFetchError("OpenWeather API key not configured")
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

        params = {"lat": latitude, "lon": longitude, "appid": self.api_key, "units": "metric"}
        url = f"{self.base_url}{endpoint}"

        async def _request():
            async with self.session.get(url, params=params) as response:
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
            log.warning(f"OpenWeather 요청 실패 endpoint:{endpoint} error:{e}")
            raise ExternalFetchError("weather source unreachable", detail=str(e)) from e
