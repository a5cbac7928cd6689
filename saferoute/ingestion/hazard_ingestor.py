"""
Periodic hazard ingestion for SafeRoute.

This module polls the weather and traffic collaborators on fixed
intervals, turns readings that cross the alert thresholds into hazards,
and runs the presence staleness sweep. Readings are always fetched
before any engine state is touched.

A reading that repeats one seen for the same (kind, region, place) within
the last poll interval escalates the alert it created instead of creating
a second alert. The window slides with every repeat, so a condition that
persists across consecutive polls stays a single alert until it lapses or
the alert expires.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from saferoute.core.errors import ExternalFetchError, NotFoundError, TransientStoreError
from saferoute.core.models import HazardAlert, HazardKind, HazardReading, RoadSegment, Severity
from saferoute.engine.alert_engine import AlertEngine
from saferoute.engine.fanout import AlertFanout
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger
from saferoute.ports.fetchers import TrafficFetcherPort, WeatherFetcherPort
from saferoute.settings import EngineConfig, TrafficConfig, WeatherConfig

log = get_logger("saferoute.ingestor")

# 혼잡도 -> 경보 심각도 (나머지 단계는 경보 없음)
TRAFFIC_ALERT_SEVERITY = {
    "heavy": Severity.MEDIUM,
    "severe": Severity.HIGH,
}

CollapseKey = Tuple[HazardKind, str, str]

# 폴링 간격의 이 배수 안에 다시 관측되면 같은 상황으로 본다 (주기 지연 허용)
COLLAPSE_GRACE = 1.5

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class HazardIngestor:
    """주기적 위험 정보 수집기"""

    def __init__(self,
                 engine: AlertEngine,
                 fanout: AlertFanout,
                 *,
                 weather: Optional[WeatherFetcherPort] = None,
                 traffic: Optional[TrafficFetcherPort] = None,
                 weather_config: Optional[WeatherConfig] = None,
                 traffic_config: Optional[TrafficConfig] = None,
                 engine_config: Optional[EngineConfig] = None,
                 clock: Callable[[], datetime] = utcnow):
        """
        초기화합니다.

        Args:
            engine: 근접 경보 엔진
            fanout: 경보 전파 정책
            weather: 날씨 수집기 (None이면 날씨 폴링 비활성)
            traffic: 교통 수집기 (None이면 교통 폴링 비활성)
            weather_config: 날씨 폴링 설정
            traffic_config: 교통 폴링 설정
            engine_config: 정리 주기/임계값 설정
            clock: 현재 시각 함수 (UTC)
        """
        self.engine = engine
        self.fanout = fanout
        self.weather = weather
        self.traffic = traffic
        self.weather_config = weather_config or WeatherConfig()
        self.traffic_config = traffic_config or TrafficConfig()
        self.engine_config = engine_config or EngineConfig()
        self.clock = clock
        self._collapsed: Dict[CollapseKey, Tuple[str, datetime, float]] = {}

    async def start(self) -> None:
        """정리 작업과 폴링 루프를 시작합니다."""
        tasks = [asyncio.create_task(
            self._every(self.engine_config.sweep_interval_sec, self.sweep, "sweep"))]
        if self.weather is not None and self.weather_config.enabled:
            tasks.append(asyncio.create_task(
                self._every(self.weather_config.poll_interval_sec, self.poll_weather, "weather")))
        if self.traffic is not None and self.traffic_config.enabled:
            tasks.append(asyncio.create_task(
                self._every(self.traffic_config.poll_interval_sec, self.poll_traffic, "traffic")))

        log.info("위험 정보 수집기 시작됨", jobs=len(tasks))
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()

    async def sweep(self) -> Tuple[List[str], int]:
        """오래된 위치 레코드와 만료된 경보를 정리합니다."""
        evicted = self.engine.presence.sweep_stale(
            self.clock(), threshold_seconds=self.engine_config.presence_ttl_sec)
        purged = self.engine.purge_expired(self.clock())
        return evicted, purged

    async def poll_weather(self) -> List[HazardAlert]:
        """감시 지점별 단기 예보를 확인해 강수 경보를 만듭니다."""
        if self.weather is None:
            return []
        cfg = self.weather_config
        results = []
        for point in cfg.watch_points:
            try:
                readings = await self.weather.forecast(point.latitude, point.longitude, cfg.forecast_slots)
            except ExternalFetchError as e:
                metrics.fetch_failures.labels(source="weather").inc()
                log.warning("날씨 예보 조회 실패, 건너뜀", region=point.region, error=e.message)
                continue

            rainy = [r for r in readings if r.precipitation_mm > 0]
            max_rain = max((r.precipitation_mm for r in rainy), default=0.0)
            if max_rain <= cfg.alert_threshold_mm:
                log.debug("강수 임계값 미만", region=point.region, max_rain=max_rain)
                continue

            severity = Severity.HIGH if max_rain > cfg.high_threshold_mm else Severity.MEDIUM
            times = ", ".join(r.fetched_at.strftime("%H:%M") for r in rainy)
            alert = await self.ingest(HazardReading(
                kind=HazardKind.WEATHER,
                latitude=point.latitude,
                longitude=point.longitude,
                severity=severity.value,
                description=f"Rain expected in {point.region} ({max_rain:.1f}mm) at: {times}",
                region=point.region,
                source="openweather",
            ), window_sec=cfg.poll_interval_sec)
            if alert is not None:
                results.append(alert)
        return results

    async def poll_traffic(self) -> List[HazardAlert]:
        """도로 구간별 혼잡도를 확인해 교통 경보를 만듭니다."""
        if self.traffic is None:
            return []
        results = []
        for segment in self.traffic_config.segments:
            try:
                reading = await self.traffic.fetch(segment)
            except ExternalFetchError as e:
                metrics.fetch_failures.labels(source="traffic").inc()
                log.warning("교통 정보 조회 실패, 건너뜀", segment_id=segment.segment_id, error=e.message)
                continue

            severity = TRAFFIC_ALERT_SEVERITY.get(reading.congestion_level)
            if severity is None:
                continue

            alert = await self.ingest(
                self._traffic_reading(segment, reading.congestion_level, reading.delay_minutes, severity),
                window_sec=self.traffic_config.poll_interval_sec,
            )
            if alert is not None:
                results.append(alert)
        return results

    async def ingest(self, reading: HazardReading, window_sec: float) -> Optional[HazardAlert]:
        """
        위험 정보를 저장하고 전파합니다.

        직전 폴링 간격 안에 같은 장소에서 관측되어 아직 유효한 경보가 있으면
        새로 만들지 않고 심각도만 올립니다.
        사용자 제보는 합치지 않습니다.

        Args:
            reading: 위험 정보
            window_sec: 폴링 간격 (초)

        Returns:
            생성 또는 갱신된 경보. 저장 실패 시 None
        """
        now = self.clock()
        key = None
        if not reading.user_report:
            key = self._collapse_key(reading)
            existing = self._collapse_target(key, now)
            if existing is not None:
                self._collapsed[key] = (existing.id, now, window_sec)
                return await self._collapse(existing.id, reading)

        try:
            alert = await self.engine.ingest_hazard(reading)
        except TransientStoreError:
            log.warning("저장 실패로 위험 정보 건너뜀", kind=reading.kind.value, region=reading.region)
            return None

        if key is not None:
            self._prune(now)
            self._collapsed[key] = (alert.id, now, window_sec)

        self.fanout.alert_created(alert)
        user_matches = await self.engine.evaluate_hazard(alert.id)
        await self.fanout.proximity_for_hazard(alert, user_matches)
        return alert

    async def _collapse(self, alert_id: str, reading: HazardReading) -> Optional[HazardAlert]:
        metrics.hazards_collapsed.labels(kind=reading.kind.value).inc()
        try:
            updated = await self.engine.escalate(alert_id, reading.severity)
        except NotFoundError:
            return None
        if updated is None:
            log.debug("중복 위험 정보 합쳐짐", alert_id=alert_id, region=reading.region)
            return self.engine.get(alert_id)

        self.fanout.alert_updated(updated)
        return updated

    @staticmethod
    def _collapse_key(reading: HazardReading) -> CollapseKey:
        place = reading.segment_id or f"{reading.latitude:.4f},{reading.longitude:.4f}"
        return (reading.kind, reading.region, place)

    def _collapse_target(self, key: CollapseKey, now: datetime) -> Optional[HazardAlert]:
        """마지막 관측이 허용 간격 안이고 경보가 아직 유효하면 그 경보를 돌려줍니다."""
        entry = self._collapsed.get(key)
        if entry is None:
            return None
        alert_id, last_seen, window_sec = entry
        if (now - last_seen).total_seconds() > window_sec * COLLAPSE_GRACE:
            return None
        alert = self.engine.get(alert_id)
        if alert is None or alert.is_expired(now):
            return None
        return alert

    def _prune(self, now: datetime) -> None:
        """허용 간격보다 오래 관측되지 않은 합치기 키를 제거합니다."""
        stale = [k for k, (_, last_seen, window_sec) in self._collapsed.items()
                 if (now - last_seen).total_seconds() > window_sec * COLLAPSE_GRACE]
        for key in stale:
            del self._collapsed[key]

    @staticmethod
    def _traffic_reading(segment: RoadSegment, level: str, delay: float, severity: Severity) -> HazardReading:
        latitude, longitude = segment.midpoint
        return HazardReading(
            kind=HazardKind.TRAFFIC,
            latitude=latitude,
            longitude=longitude,
            severity=severity.value,
            description=f"{level.capitalize()} traffic on {segment.location_name} ({delay:g} min delay)",
            region=segment.region,
            source="traffic-feed",
            segment_id=segment.segment_id,
        )

    async def _every(self, interval: float, job: Callable[[], Awaitable], name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception as e:
                log.error(f"주기 작업 실패 job:{name} error:{e}")
