"""
외부 수집기 어댑터 단위 테스트 (OpenWeather, Directions)
"""

import pytest
from unittest.mock import AsyncMock, patch
from saferoute.adapters.traffic import DirectionsTrafficFetcher, congestion_level
from saferoute.adapters.weather import OpenWeatherFetcher
from saferoute.core.errors import ExternalFetchError
from saferoute.core.models import RoadSegment

SEGMENT = RoadSegment(
    segment_id="ikorodu-road",
    location_name="Ikorodu Road",
    region="Lagos Mainland",
    start_latitude=6.5500, start_longitude=3.3700,
    end_latitude=6.5900, end_longitude=3.3800,
)


class TestCongestionLevel:
    """혼잡도 계산 테스트"""

    @pytest.mark.parametrize("traffic,normal,expected", [
        (600, 600, "free"),
        (700, 600, "light"),
        (850, 600, "moderate"),
        (1100, 600, "heavy"),
        (1200, 600, "severe"),
        (100, 0, "free"),
    ])
    def test_levels(self, traffic, normal, expected):
        assert congestion_level(traffic, normal) == expected


class TestDirectionsTrafficFetcher:
    """교통 수집기 테스트"""

    @pytest.mark.asyncio
    async def test_parses_route(self):
        fetcher = DirectionsTrafficFetcher("key")
        response = {"routes": [{"legs": [{
            "duration": {"value": 600},
            "duration_in_traffic": {"value": 1350},
        }]}]}
        with patch.object(fetcher, "_get", AsyncMock(return_value=response)):
            reading = await fetcher.fetch(SEGMENT)

        assert reading.congestion_level == "severe"
        assert reading.delay_minutes == 12.5

    @pytest.mark.asyncio
    async def test_without_traffic_duration(self):
        fetcher = DirectionsTrafficFetcher("key")
        response = {"routes": [{"legs": [{"duration": {"value": 600}}]}]}
        with patch.object(fetcher, "_get", AsyncMock(return_value=response)):
            reading = await fetcher.fetch(SEGMENT)

        assert reading.congestion_level == "free"
        assert reading.delay_minutes == 0.0

    @pytest.mark.asyncio
    async def test_no_routes(self):
        fetcher = DirectionsTrafficFetcher("key")
        with patch.object(fetcher, "_get", AsyncMock(return_value={"routes": [], "status": "ZERO_RESULTS"})):
            with pytest.raises(ExternalFetchError):
                await fetcher.fetch(SEGMENT)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(ExternalFetchError):
            await DirectionsTrafficFetcher("").fetch(SEGMENT)


class TestOpenWeatherFetcher:
    """날씨 수집기 테스트"""

    @pytest.mark.asyncio
    async def test_current_weather(self):
        fetcher = OpenWeatherFetcher("key")
        response = {"weather": [{"main": "Rain"}], "main": {"temp": 27.5}, "rain": {"1h": 2.4}}
        with patch.object(fetcher, "_get", AsyncMock(return_value=response)) as get:
            reading = await fetcher.fetch(6.5244, 3.3792)

        get.assert_awaited_once_with("/weather", 6.5244, 3.3792)
        assert reading.condition == "rain"
        assert reading.temperature == 27.5
        assert reading.precipitation_mm == 2.4

    @pytest.mark.asyncio
    async def test_forecast_slots(self):
        fetcher = OpenWeatherFetcher("key")
        response = {"list": [
            {"dt": 1748779200, "weather": [{"main": "Rain"}], "main": {"temp": 26}, "rain": {"3h": 4.2}},
            {"dt": 1748790000, "weather": [{"main": "Clouds"}], "main": {"temp": 25}},
            {"dt": 1748800800, "weather": [{"main": "Rain"}], "rain": {"3h": 9.0}},
        ]}
        with patch.object(fetcher, "_get", AsyncMock(return_value=response)):
            readings = await fetcher.forecast(6.5244, 3.3792, slots=2)

        assert [r.precipitation_mm for r in readings] == [4.2, 0.0]
        assert readings[0].fetched_at.strftime("%H:%M") == "12:00"
        assert readings[1].condition == "clouds"

    @pytest.mark.asyncio
    async def test_malformed_forecast(self):
        fetcher = OpenWeatherFetcher("key")
        with patch.object(fetcher, "_get", AsyncMock(return_value={"cod": "401"})):
            with pytest.raises(ExternalFetchError):
                await fetcher.forecast(6.5244, 3.3792)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(ExternalFetchError):
            await OpenWeatherFetcher("").forecast(6.5244, 3.3792)
