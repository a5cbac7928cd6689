"""
Connection gateway for SafeRoute.

This module owns the connection lifecycle (connecting -> authenticated ->
active -> disconnected), dispatches inbound events to one handler per
event type, and runs the per-connection rain check.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from saferoute.core.errors import (
    AuthError, ExternalFetchError, NotFoundError, SafeRouteError, TransientStoreError, ValidationError,
)
from saferoute.core.models import HazardAlert, HazardKind, HazardReading, Severity
from saferoute.engine.alert_engine import AlertEngine
from saferoute.engine.fanout import AlertFanout, alert_payload
from saferoute.engine.router import SubscriptionRouter, grid_channel, region_channel, user_channel
from saferoute.gateway.auth import TokenVerifier
from saferoute.gateway.connection import Connection, ConnectionState, SendFn
from saferoute.gateway.schemas import (
    AdminBroadcast, GetNearbyHotspots, SubmitFloodReport, UpdateLocation, parse_payload,
)
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger, with_context
from saferoute.ports.fetchers import WeatherFetcherPort
from saferoute.settings import ConnectionConfig, EngineConfig

log = get_logger("saferoute.gateway")

# 아웃바운드 이벤트 이름
NEARBY_HOTSPOTS = "nearbyHotspots"
RAIN_ALERT_UPDATE = "rainAlertUpdate"
REPORT_CONFIRMED = "reportConfirmed"
ERROR = "error"

# 인바운드 이벤트별 실패 메시지
FAILURE_MESSAGES = {
    "update-location": "Failed to update location",
    "submit-flood-report": "Failed to submit flood report",
    "get-nearby-hotspots": "Failed to fetch nearby hotspots",
    "admin-broadcast": "Failed to broadcast alert",
}

# 일반 이벤트 이름 별칭
EVENT_ALIASES = {
    "position-update": "update-location",
    "hazard-report": "submit-flood-report",
    "hotspot-query": "get-nearby-hotspots",
}

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class ConnectionGateway:
    """연결 게이트웨이"""

    def __init__(self,
                 engine: AlertEngine,
                 router: SubscriptionRouter,
                 fanout: AlertFanout,
                 verifier: TokenVerifier,
                 *,
                 weather: Optional[WeatherFetcherPort] = None,
                 engine_config: Optional[EngineConfig] = None,
                 connection_config: Optional[ConnectionConfig] = None):
        """
        초기화합니다.

        Args:
            engine: 근접 경보 엔진
            router: 채널 라우터
            fanout: 경보 전파 정책
            verifier: 자격 증명 검증기
            weather: 비 확인용 날씨 수집기 (None이면 비 확인 비활성)
            engine_config: 엔진 설정 (기본 지역, 지역 중심 등)
            connection_config: 연결 설정 (큐 크기, 비 확인 주기 등)
        """
        self.engine = engine
        self.presence = engine.presence
        self.router = router
        self.fanout = fanout
        self.verifier = verifier
        self.weather = weather
        self.engine_config = engine_config or EngineConfig()
        self.config = connection_config or ConnectionConfig()
        self.connections: Dict[str, Connection] = {}
        self._user_connections: Dict[str, Set[str]] = {}
        self._handlers: Dict[str, Callable[[Connection, Any], Awaitable[None]]] = {
            "update-location": self._on_update_location,
            "submit-flood-report": self._on_submit_flood_report,
            "get-nearby-hotspots": self._on_get_nearby_hotspots,
            "admin-broadcast": self._on_admin_broadcast,
        }

    def connection_count(self, user_id: Optional[str] = None) -> int:
        if user_id is None:
            return len(self.connections)
        return len(self._user_connections.get(user_id, ()))

    async def connect(self, token: Optional[str], send: SendFn) -> Connection:
        """
        연결을 인증하고 활성화합니다.

        Args:
            token: 연결 자격 증명 (JWT)
            send: 프레임 송신 함수

        Returns:
            ACTIVE 상태의 Connection

        Raises:
            AuthError: 자격 증명 누락 또는 검증 실패
        """
        conn = Connection(send,
                          inbound_maxsize=self.config.inbound_queue_maxsize,
                          outbound_maxsize=self.config.outbound_queue_maxsize)
        try:
            conn.user_id = self.verifier.verify(token)
        except AuthError as e:
            conn.state = ConnectionState.DISCONNECTED
            log.warning("연결 인증 실패", connection_id=conn.id, reason=e.reason)
            raise
        conn.state = ConnectionState.AUTHENTICATED

        self.connections[conn.id] = conn
        self._user_connections.setdefault(conn.user_id, set()).add(conn.id)
        self.router.attach(conn.id, conn)
        self.router.join(conn.id, user_channel(conn.user_id))
        conn.start(self.handle)

        if self.weather is not None and self.config.rain_check_enabled:
            conn.rain_task = asyncio.create_task(self._rain_loop(conn))

        metrics.connections_active.set(len(self.connections))
        log.info("연결 활성화됨", connection_id=conn.id, user_id=conn.user_id)
        return conn

    def receive(self, conn: Connection, raw: Any) -> bool:
        """
        수신 프레임을 파싱해 연결의 인바운드 큐에 넣습니다.

        Args:
            conn: 연결
            raw: JSON 문자열 또는 {"event", "data"} dict

        Returns:
            큐에 들어갔으면 True
        """
        try:
            frame = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            event = frame["event"]
            data = frame.get("data", {})
            if not isinstance(event, str):
                raise TypeError("event must be a string")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            metrics.inbound_rejected.labels(event="unknown", reason="malformed_frame").inc()
            conn.deliver(ERROR, {"message": "Malformed frame", "detail": str(e)})
            return False
        return conn.submit(event, data)

    async def handle(self, conn: Connection, event: str, data: Any) -> None:
        """인바운드 이벤트 하나를 처리합니다. 실패는 error 이벤트로 응답하고 연결은 유지합니다."""
        event = EVENT_ALIASES.get(event, event)
        handler = self._handlers.get(event)
        if handler is None:
            metrics.inbound_rejected.labels(event="unknown", reason="unknown_event").inc()
            conn.deliver(ERROR, {"message": "Unknown event", "detail": event})
            return

        failure = FAILURE_MESSAGES[event]
        try:
            with with_context(connection_id=conn.id, event_name=event):
                await handler(conn, data)
        except ValidationError as e:
            metrics.inbound_rejected.labels(event=event, reason="validation").inc()
            conn.deliver(ERROR, {"message": failure, "detail": e.detail})
        except AuthError as e:
            metrics.inbound_rejected.labels(event=event, reason=e.reason).inc()
            conn.deliver(ERROR, {"message": e.message, "detail": e.reason})
        except NotFoundError as e:
            metrics.inbound_rejected.labels(event=event, reason="not_found").inc()
            conn.deliver(ERROR, {"message": failure, "detail": e.message})
        except TransientStoreError as e:
            metrics.inbound_rejected.labels(event=event, reason="store_unavailable").inc()
            conn.deliver(ERROR, {"message": failure, "detail": e.message})
        except SafeRouteError as e:
            metrics.inbound_rejected.labels(event=event, reason="rejected").inc()
            conn.deliver(ERROR, {"message": failure, "detail": e.message})
        except Exception as e:
            metrics.inbound_rejected.labels(event=event, reason="internal").inc()
            log.exception(f"이벤트 처리 중 예기치 않은 오류 event:{event} user:{conn.user_id}")
            conn.deliver(ERROR, {"message": failure, "detail": str(e)})

    async def disconnect(self, conn: Connection) -> None:
        """
        연결을 정리합니다. 여러 번 호출해도 안전합니다.

        비 확인 태스크를 즉시 취소하고, 사용자의 마지막 연결이면 위치 레코드를 제거합니다.
        """
        if conn.state == ConnectionState.DISCONNECTED:
            return
        conn.state = ConnectionState.DISCONNECTED
        if conn.rain_task is not None:
            conn.rain_task.cancel()

        self.router.leave_all(conn.id)
        self.connections.pop(conn.id, None)
        if conn.user_id is not None:
            remaining = self._user_connections.get(conn.user_id)
            if remaining is not None:
                remaining.discard(conn.id)
                if not remaining:
                    del self._user_connections[conn.user_id]
                    self.presence.remove(conn.user_id)

        await conn.close()
        metrics.connections_active.set(len(self.connections))
        log.info("연결 종료됨", connection_id=conn.id, user_id=conn.user_id)

    async def close_all(self) -> None:
        for conn in list(self.connections.values()):
            await self.disconnect(conn)

    # ---- 이벤트 핸들러 ----

    async def _on_update_location(self, conn: Connection, data: Any) -> None:
        req = parse_payload(UpdateLocation, data)
        metrics.positions_received.inc()

        self.presence.upsert(conn.user_id, req.latitude, req.longitude, req.region)
        if req.region:
            self._move_channel(conn, "region", region_channel(req.region))
        self._move_channel(conn, "grid", grid_channel(req.latitude, req.longitude,
                                                      self.engine_config.grid_cell_deg))

        matches = await self.engine.evaluate_proximity(conn.user_id, req.latitude, req.longitude, req.region)
        if matches:
            await self.fanout.proximity_for_user(conn.user_id, matches)

    async def _on_submit_flood_report(self, conn: Connection, data: Any) -> None:
        req = parse_payload(SubmitFloodReport, data)
        alert = await self.engine.ingest_hazard(HazardReading(
            kind=HazardKind.FLOOD,
            latitude=req.latitude,
            longitude=req.longitude,
            severity=req.severity.value,
            description=f"Flood reported: {req.description}",
            region=req.region,
            created_by=conn.user_id,
            user_report=True,
        ))
        log.info("홍수 제보 접수됨",
                 user_id=conn.user_id,
                 alert_id=alert.id,
                 location_name=req.location_name)

        self.fanout.alert_created(alert)
        user_matches = await self.engine.evaluate_hazard(alert.id)
        await self.fanout.proximity_for_hazard(alert, user_matches, exclude_user=conn.user_id)

        conn.deliver(REPORT_CONFIRMED, {
            "message": "Flood report submitted and alert created",
            "alertId": alert.id,
        })

    async def _on_get_nearby_hotspots(self, conn: Connection, data: Any) -> None:
        req = parse_payload(GetNearbyHotspots, data)
        hotspots = self.engine.nearby_hotspots(
            req.latitude, req.longitude, req.radius,
            region=req.region,
            kind=HazardKind.FLOOD,
            limit=self.engine_config.hotspot_limit,
        )
        conn.deliver(NEARBY_HOTSPOTS, {
            "message": "Nearby flood hotspots retrieved successfully",
            "hotspots": [
                {**alert_payload(m.alert), "distanceMeters": round(m.distance_m, 2)}
                for m in hotspots
            ],
        })

    async def _on_admin_broadcast(self, conn: Connection, data: Any) -> None:
        req = parse_payload(AdminBroadcast, data)
        if not self.verifier.is_admin(req.admin_credential):
            log.warning("관리자 토큰 불일치", user_id=conn.user_id)
            raise AuthError(AuthError.INVALID, "Invalid admin token")

        alert = await self.engine.ingest_hazard(HazardReading(
            kind=HazardKind.ROUTE,
            latitude=self.engine_config.region_center_lat,
            longitude=self.engine_config.region_center_lng,
            severity=req.severity.value,
            description=req.message,
            region=req.region,
            source="admin",
            created_by=conn.user_id,
            trigger_radius_m=self.engine_config.broadcast_radius_m,
        ))
        self.fanout.alert_created(alert)
        user_matches = await self.engine.evaluate_hazard(alert.id)
        await self.fanout.proximity_for_hazard(alert, user_matches)
        log.info("관리자 경보 발행됨", alert_id=alert.id, region=req.region)

    # ---- 비 확인 ----

    async def _rain_loop(self, conn: Connection) -> None:
        while conn.is_open:
            await asyncio.sleep(self.config.rain_check_interval_sec)
            try:
                await self.check_rain(conn)
            except Exception as e:
                log.error("비 확인 실패", user_id=conn.user_id, error=str(e))

    async def check_rain(self, conn: Connection) -> Optional[HazardAlert]:
        """
        사용자의 현재 위치 기준 단기 예보를 확인합니다.

        강수량이 임계값을 넘으면 weather 경보를 만들고 rainAlertUpdate와 alertCreated를 보낸 뒤
        반경 안의 다른 사용자에게 근접 경보를 보냅니다.
        연결이 조회 도중 종료되면 결과를 버립니다.

        Returns:
            생성된 경보, 없으면 None
        """
        if self.weather is None or not conn.is_open:
            return None
        record = self.presence.get(conn.user_id)
        if record is None:
            return None

        try:
            readings = await self.weather.forecast(record.latitude, record.longitude,
                                                   self.config.rain_forecast_slots)
        except ExternalFetchError as e:
            metrics.fetch_failures.labels(source="weather").inc()
            log.warning("비 예보 조회 실패", user_id=conn.user_id, error=e.message)
            return None

        if not conn.is_open:
            log.debug("연결 종료 후 도착한 예보 결과 폐기", user_id=conn.user_id)
            return None

        rain = max((r.precipitation_mm for r in readings), default=0.0)
        if rain <= self.config.rain_threshold_mm:
            return None

        region = record.region or self.engine_config.default_region
        severity = Severity.HIGH if rain > self.config.rain_high_mm else Severity.MEDIUM
        message = f"Rain expected ({rain}mm in next 3 hours) in {region}"
        conn.deliver(RAIN_ALERT_UPDATE, {
            "message": message,
            "severity": severity.value,
            "timestamp": utcnow().isoformat(),
        })

        try:
            alert = await self.engine.ingest_hazard(HazardReading(
                kind=HazardKind.WEATHER,
                latitude=record.latitude,
                longitude=record.longitude,
                severity=severity.value,
                description=message,
                region=region,
                source="openweather",
                created_by=conn.user_id,
            ))
        except TransientStoreError:
            return None
        self.fanout.alert_created(alert)
        # 요청한 사용자는 rainAlertUpdate로 이미 통보받음
        user_matches = await self.engine.evaluate_hazard(alert.id)
        await self.fanout.proximity_for_hazard(alert, user_matches, exclude_user=conn.user_id)
        return alert

    def _move_channel(self, conn: Connection, slot: str, channel: Optional[str]) -> None:
        """위치 기반 채널을 교체합니다 (이전 채널 탈퇴 후 새 채널 가입)."""
        previous = conn.location_channels.get(slot)
        if previous == channel:
            return
        if previous is not None:
            self.router.leave(conn.id, previous)
            del conn.location_channels[slot]
        if channel is not None:
            self.router.join(conn.id, channel)
            conn.location_channels[slot] = channel

__all__ = ["ConnectionGateway", "FAILURE_MESSAGES"]
