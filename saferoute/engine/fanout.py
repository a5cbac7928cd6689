"""
Fan-out policy shared by the connection gateway and the hazard ingestor.

A single fan-out never reaches the same connection twice: every publish
after the first excludes the connections already reached.
"""

from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from saferoute.common.geo import haversine_distance
from saferoute.core.models import HazardAlert, PresenceRecord, ProximityMatch
from saferoute.engine.presence import PresenceRegistry
from saferoute.engine.router import (
    SubscriptionRouter, region_channel, ride_channel, trip_channel, user_channel,
)
from saferoute.observability.logging_setup import get_logger
from saferoute.ports.membership import MembershipPort

log = get_logger("saferoute.fanout")

# 아웃바운드 이벤트 이름
PROXIMITY_ALERT = "proximityFloodAlert"
ALERT_CREATED = "alertCreated"
ALERT_UPDATED = "alertUpdated"

def alert_payload(alert: HazardAlert) -> Dict[str, Any]:
    return alert.model_dump(mode="json")

def proximity_payload(alert: HazardAlert, distance_m: float) -> Dict[str, Any]:
    return {
        "alert": alert_payload(alert),
        "distanceMeters": round(distance_m, 2),
        "message": f"{alert.kind.value.capitalize()} alert {distance_m:.2f} meters from your location",
    }

class AlertFanout:
    """경보 이벤트를 채널로 전파"""

    def __init__(self,
                 router: SubscriptionRouter,
                 presence: PresenceRegistry,
                 memberships: Sequence[MembershipPort] = ()):
        self.router = router
        self.presence = presence
        self.memberships = list(memberships)

    def alert_created(self, alert: HazardAlert) -> int:
        """지역 채널과 연결된 라이드/트립 채널에 alertCreated를 발행합니다."""
        return self._publish_alert_event(ALERT_CREATED, alert)

    def alert_updated(self, alert: HazardAlert) -> int:
        return self._publish_alert_event(ALERT_UPDATED, alert)

    async def proximity_for_user(self, user_id: str, matches: Sequence[ProximityMatch]) -> int:
        """
        위치 보고로 트리거된 경보를 전파합니다.

        보고한 사용자, 반경 안의 다른 접속 사용자, 경보 지역 채널,
        보고한 사용자의 활성 라이드/트립 채널 순서로 전달합니다.

        Args:
            user_id: 위치를 보고한 사용자
            matches: evaluate_proximity 결과

        Returns:
            전달된 이벤트 수
        """
        if not matches:
            return 0

        entity_channels = await self._entity_channels(user_id)
        delivered = 0
        for match in matches:
            alert = match.alert
            reached: Set[str] = set()
            payload = proximity_payload(alert, match.distance_m)

            delivered += self._publish(user_channel(user_id), payload, reached)

            for record, distance in self._others_in_range(alert, exclude_user=user_id):
                delivered += self._publish(user_channel(record.user_id),
                                           proximity_payload(alert, distance), reached)

            delivered += self._publish(region_channel(alert.region), payload, reached)
            for channel in entity_channels:
                delivered += self._publish(channel, payload, reached)

        return delivered

    async def proximity_for_hazard(self, alert: HazardAlert,
                                   user_matches: Sequence[Tuple[PresenceRecord, float]],
                                   exclude_user: Optional[str] = None) -> int:
        """
        새 경보 반경 안에 있던 사용자들에게 전파합니다 (evaluate_hazard 결과).

        Args:
            alert: 트리거된 경보
            user_matches: (위치 레코드, 거리) 목록
            exclude_user: 개별 알림에서 제외할 사용자 (제보자)

        Returns:
            전달된 이벤트 수
        """
        if not user_matches:
            return 0

        reached: Set[str] = set()
        delivered = 0
        nearest = min(distance for _, distance in user_matches)

        for record, distance in user_matches:
            if record.user_id == exclude_user:
                continue
            delivered += self._publish(user_channel(record.user_id),
                                       proximity_payload(alert, distance), reached)

        region_payload = proximity_payload(alert, nearest)
        delivered += self._publish(region_channel(alert.region), region_payload, reached)

        for record, distance in user_matches:
            if record.user_id == exclude_user:
                continue
            for channel in await self._entity_channels(record.user_id):
                delivered += self._publish(channel, proximity_payload(alert, distance), reached)

        return delivered

    def _publish_alert_event(self, event: str, alert: HazardAlert) -> int:
        payload = {"alert": alert_payload(alert)}
        reached: Set[str] = set()
        channels = [region_channel(alert.region)]
        if alert.ride_id:
            channels.append(ride_channel(alert.ride_id))
        if alert.trip_id:
            channels.append(trip_channel(alert.trip_id))

        delivered = 0
        for channel in channels:
            delivered += self._publish(channel, payload, reached, event=event)
        return delivered

    def _publish(self, channel: str, payload: Dict[str, Any], reached: Set[str],
                 event: str = PROXIMITY_ALERT) -> int:
        members = self.router.members(channel)
        delivered = self.router.publish(channel, event, payload, exclude=reached)
        reached.update(members)
        return delivered

    def _others_in_range(self, alert: HazardAlert, exclude_user: str) -> List[Tuple[PresenceRecord, float]]:
        others = []
        for record in self.presence.snapshot_all():
            if record.user_id == exclude_user:
                continue
            distance = haversine_distance(record.latitude, record.longitude,
                                          alert.latitude, alert.longitude)
            if distance <= alert.trigger_radius_m:
                others.append((record, distance))
        others.sort(key=lambda pair: pair[1])
        return others

    async def _entity_channels(self, user_id: str) -> List[str]:
        """사용자의 활성 라이드/트립 채널. 조회 실패 시 해당 저장소는 건너뜁니다."""
        channels = []
        for membership in self.memberships:
            try:
                entity_ids = await membership.active_for(user_id)
            except Exception as e:
                log.warning("참여 정보 조회 실패", kind=membership.kind, user_id=user_id, error=str(e))
                continue
            for entity_id in entity_ids:
                if membership.kind == "ride":
                    channels.append(ride_channel(entity_id))
                else:
                    channels.append(trip_channel(entity_id))
        return channels
