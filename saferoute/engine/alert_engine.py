"""
Proximity alert engine for SafeRoute.

Alert lifecycle: created -> (matched | expired) -> triggered. Triggered
and expired are terminal here; "matched" is only the momentary condition
that some presence record sits inside an active alert's trigger radius.

All mutations of one alert (trigger, escalate) go through that alert's
own lock: the new record is derived from the indexed record, swapped into
the index and persisted before the lock is released.
"""

import asyncio
import time
import weakref
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, Union
from saferoute.common.geo import haversine_distance
from saferoute.common.retry import retry_with_backoff
from saferoute.core.errors import NotFoundError, TransientStoreError
from saferoute.core.models import (
    HazardAlert, HazardKind, HazardReading, PresenceRecord, ProximityMatch, Severity,
)
from saferoute.core.normalize import to_hazard_alert
from saferoute.core.policy import is_upgrade, normalize_severity
from saferoute.engine.geo_index import GeoIndex
from saferoute.engine.presence import PresenceRegistry
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger
from saferoute.ports.hazard_store import HazardStorePort

log = get_logger("saferoute.engine")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class AlertEngine:
    """근접 경보 상태 머신"""

    def __init__(self,
                 store: HazardStorePort,
                 index: Optional[GeoIndex] = None,
                 presence: Optional[PresenceRegistry] = None,
                 *,
                 clock: Callable[[], datetime] = utcnow,
                 store_retries: int = 3,
                 store_backoff_sec: float = 0.2,
                 store_backoff_max_sec: float = 5.0):
        """
        초기화합니다.

        Args:
            store: 위험 경보 저장소
            index: 지리 인덱스 (None이면 새로 생성)
            presence: 위치 레지스트리 (None이면 새로 생성)
            clock: 현재 시각 함수 (UTC)
            store_retries: 저장 재시도 횟수
            store_backoff_sec: 저장 재시도 기본 지연
            store_backoff_max_sec: 저장 재시도 최대 지연
        """
        self.store = store
        self.index = index if index is not None else GeoIndex()
        self.presence = presence if presence is not None else PresenceRegistry(clock=clock)
        self.clock = clock
        self.store_retries = store_retries
        self.store_backoff = store_backoff_sec
        self.store_backoff_max = store_backoff_max_sec
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, alert_id: str) -> Optional[HazardAlert]:
        return self.index.get(alert_id)

    async def warm_up(self) -> int:
        """저장소의 활성 경보를 인덱스에 적재합니다."""
        alerts = await self.store.load_active(self.clock())
        for alert in alerts:
            self.index.upsert(alert)
        log.info("활성 경보 적재 완료", count=len(alerts))
        return len(alerts)

    async def ingest_hazard(self, reading: HazardReading) -> HazardAlert:
        """
        위험 정보를 정규화하여 저장하고 인덱스에 등록합니다.

        저장이 끝난 뒤에만 인덱스에 반영되므로, 저장 실패 시 상태 변화가 없습니다.

        Args:
            reading: 정규화 전 위험 정보

        Returns:
            저장된 HazardAlert

        Raises:
            TransientStoreError: 재시도 후에도 저장 실패
        """
        t0 = time.perf_counter()
        alert = to_hazard_alert(reading, self.clock())

        try:
            await self._save(alert)
        except TransientStoreError as e:
            metrics.store_failures.labels(operation="ingest").inc()
            log.error("위험 경보 저장 실패",
                      kind=alert.kind.value,
                      region=alert.region,
                      error=str(e))
            raise

        self.index.upsert(alert)
        metrics.hazards_ingested.labels(kind=alert.kind.value, source=alert.source).inc()
        metrics.ingest_seconds.observe(time.perf_counter() - t0)

        log.info("위험 경보 생성됨",
                 alert_id=alert.id,
                 kind=alert.kind.value,
                 severity=alert.severity.value,
                 region=alert.region,
                 radius_m=alert.trigger_radius_m)
        return alert

    async def evaluate_proximity(self, user_id: str, latitude: float, longitude: float,
                                 region: Optional[str] = None) -> List[ProximityMatch]:
        """
        사용자 위치 기준으로 반경 안의 활성 경보를 트리거합니다.

        인덱스 조회 반경은 활성 경보 중 최대 트리거 반경이며, 각 경보는 자신의
        반경으로 다시 확인합니다. 실패 시 빈 목록을 반환하여 위치 갱신을 막지 않습니다.

        Args:
            user_id: 위치를 보고한 사용자
            latitude: 위도
            longitude: 경도
            region: 사용자 지역 (로그용)

        Returns:
            이번 평가에서 새로 트리거된 경보와 거리
        """
        try:
            with metrics.evaluate_seconds.time():
                query_radius = self.index.max_radius()
                if query_radius <= 0:
                    return []

                now = self.clock()
                candidates = [
                    m for m in self.index.query(latitude, longitude, query_radius)
                    if m.alert.is_active(now) and m.distance_m <= m.alert.trigger_radius_m
                ]

                triggered = []
                for match in candidates:
                    alert = await self._trigger(match.alert.id)
                    if alert is not None:
                        triggered.append(ProximityMatch(alert=alert, distance_m=match.distance_m))
        except Exception as e:
            log.error("근접 평가 실패", user_id=user_id, region=region, error=str(e))
            return []

        if triggered:
            log.info("근접 경보 트리거됨",
                     user_id=user_id,
                     region=region,
                     alert_ids=[m.alert.id for m in triggered])
        return triggered

    async def evaluate_hazard(self, alert_id: str) -> List[Tuple[PresenceRecord, float]]:
        """
        경보 기준으로 현재 위치 레코드를 평가합니다 (evaluate_proximity의 반대 방향).

        Args:
            alert_id: 평가할 경보 id

        Returns:
            반경 안의 (위치 레코드, 거리) 목록. 경보가 이미 트리거/만료되었으면 빈 목록

        Raises:
            NotFoundError: 인덱스에 없는 경보
        """
        alert = self.index.get(alert_id)
        if alert is None:
            raise NotFoundError(f"alert {alert_id} not found")
        if not alert.is_active(self.clock()):
            return []

        matches = []
        for record in self.presence.snapshot_all():
            distance = haversine_distance(record.latitude, record.longitude,
                                          alert.latitude, alert.longitude)
            if distance <= alert.trigger_radius_m:
                matches.append((record, distance))

        if not matches:
            return []
        if await self._trigger(alert_id) is None:
            return []

        matches.sort(key=lambda pair: pair[1])
        log.info("경보 반경 내 사용자 확인됨", alert_id=alert_id, users=len(matches))
        return matches

    async def escalate(self, alert_id: str, new_severity: Union[Severity, str, int]) -> Optional[HazardAlert]:
        """
        경보 심각도를 올립니다 (내리지 않음).

        Args:
            alert_id: 경보 id
            new_severity: 새 심각도

        Returns:
            갱신된 경보, 변화가 없으면 None

        Raises:
            NotFoundError: 인덱스에 없는 경보
        """
        target = normalize_severity(new_severity)
        async with self._lock_for(alert_id):
            current = self.index.get(alert_id)
            if current is None:
                raise NotFoundError(f"alert {alert_id} not found")
            if not is_upgrade(current.severity, target):
                return None

            updated = current.model_copy(update={"severity": target})
            self.index.upsert(updated)
            await self._persist(updated, "escalate")

        metrics.alerts_escalated.labels(kind=updated.kind.value).inc()
        log.info("경보 심각도 상향",
                 alert_id=alert_id,
                 previous=current.severity.value,
                 severity=target.value)
        return updated

    def nearby_hotspots(self, latitude: float, longitude: float, radius_m: float = 5000,
                        region: Optional[str] = None, kind: HazardKind = HazardKind.FLOOD,
                        limit: int = 10) -> List[ProximityMatch]:
        """
        주변 활성 경보를 심각도 내림차순, 거리 오름차순으로 반환합니다.
        """
        now = self.clock()
        hotspots = [
            m for m in self.index.query(latitude, longitude, radius_m)
            if m.alert.kind == kind
            and m.alert.is_active(now)
            and (region is None or m.alert.region == region)
        ]
        hotspots.sort(key=lambda m: (-m.alert.severity.rank, m.distance_m))
        return hotspots[:limit]

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """만료된 경보를 인덱스에서 제거합니다 (저장소는 유지)."""
        now = now or self.clock()
        expired = [a.id for a in self.index.alerts() if a.is_expired(now)]
        for alert_id in expired:
            self.index.remove(alert_id)
        if expired:
            log.info("만료 경보 인덱스에서 제거됨", count=len(expired))
        return len(expired)

    async def _trigger(self, alert_id: str) -> Optional[HazardAlert]:
        """활성 경보를 트리거 상태로 바꿉니다. 이미 트리거/만료되었으면 None."""
        async with self._lock_for(alert_id):
            current = self.index.get(alert_id)
            if current is None or not current.is_active(self.clock()):
                return None

            updated = current.model_copy(update={"triggered": True})
            self.index.upsert(updated)
            await self._persist(updated, "trigger")

        metrics.alerts_triggered.labels(kind=updated.kind.value, severity=updated.severity.value).inc()
        return updated

    async def _persist(self, alert: HazardAlert, operation: str) -> None:
        """상태 변경 저장. 실패해도 메모리 상태는 유지합니다."""
        try:
            await self._save(alert)
        except TransientStoreError as e:
            metrics.store_failures.labels(operation=operation).inc()
            log.error("경보 상태 저장 실패",
                      alert_id=alert.id,
                      operation=operation,
                      error=str(e))

    async def _save(self, alert: HazardAlert) -> None:
        await retry_with_backoff(
            lambda: self.store.save(alert),
            max_retries=self.store_retries,
            base_delay=self.store_backoff,
            max_delay=self.store_backoff_max,
            retry_on=(TransientStoreError,),
        )

    def _lock_for(self, alert_id: str) -> asyncio.Lock:
        lock = self._locks.get(alert_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[alert_id] = lock
        return lock
