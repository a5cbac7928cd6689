"""
Channel membership bookkeeping and event fan-out.

Channel keys are opaque strings; helpers below build the conventional
user/ride/trip/region/grid keys.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, Set
from saferoute.common.geo import grid_cell
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger
from saferoute.ports.dispatch import ConnectionSinkPort

log = get_logger("saferoute.router")

def user_channel(user_id: str) -> str:
    return f"user:{user_id}"

def ride_channel(ride_id: str) -> str:
    return f"ride:{ride_id}"

def trip_channel(trip_id: str) -> str:
    return f"trip:{trip_id}"

def region_channel(region: str) -> str:
    return f"region:{region}"

def grid_channel(latitude: float, longitude: float, cell_deg: float = 0.01) -> str:
    lat_cell, lon_cell = grid_cell(latitude, longitude, cell_deg)
    return f"grid:{lat_cell}:{lon_cell}"

class SubscriptionRouter:
    """연결-채널 멤버십 관리 및 발행"""

    def __init__(self):
        self._sinks: Dict[str, ConnectionSinkPort] = {}
        self._members: Dict[str, Set[str]] = defaultdict(set)
        self._channels_of: Dict[str, Set[str]] = defaultdict(set)

    def attach(self, connection_id: str, sink: ConnectionSinkPort) -> None:
        """연결의 송신 대상을 등록합니다."""
        self._sinks[connection_id] = sink

    def join(self, connection_id: str, channel: str) -> None:
        self._members[channel].add(connection_id)
        self._channels_of[connection_id].add(channel)

    def leave(self, connection_id: str, channel: str) -> None:
        members = self._members.get(channel)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._members[channel]
        channels = self._channels_of.get(connection_id)
        if channels is not None:
            channels.discard(channel)

    def leave_all(self, connection_id: str) -> None:
        """연결의 모든 채널을 떠나고 송신 대상을 해제합니다. 여러 번 호출해도 안전합니다."""
        for channel in list(self._channels_of.pop(connection_id, ())):
            members = self._members.get(channel)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._members[channel]
        self._sinks.pop(connection_id, None)

    def members(self, channel: str) -> Set[str]:
        return set(self._members.get(channel, ()))

    def channels_of(self, connection_id: str) -> Set[str]:
        return set(self._channels_of.get(connection_id, ()))

    def publish(self, channel: str, event: str, payload: Dict[str, Any],
                exclude: Iterable[str] = ()) -> int:
        """
        채널 구성원에게 이벤트를 발행합니다.

        Args:
            channel: 채널 키
            event: 이벤트 이름
            payload: 이벤트 데이터
            exclude: 제외할 연결 id

        Returns:
            전달된 연결 수 (구성원이 없으면 0)
        """
        skip = set(exclude)
        delivered = 0
        for connection_id in list(self._members.get(channel, ())):
            if connection_id in skip:
                continue
            sink = self._sinks.get(connection_id)
            if sink is None:
                continue
            try:
                ok = sink.deliver(event, payload)
            except Exception as e:
                log.error("이벤트 전달 실패", channel=channel, connection_id=connection_id, error=str(e))
                continue
            if ok:
                delivered += 1

        if delivered:
            metrics.events_published.labels(event=event).inc(delivered)
        return delivered

