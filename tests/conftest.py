"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import pytest
import tempfile
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple
from saferoute.settings import Settings
from saferoute.adapters.storage import InMemoryHazardStore
from saferoute.adapters.membership import InMemoryMembershipStore
from saferoute.core.models import HazardKind, HazardReading
from saferoute.engine import AlertEngine, AlertFanout, GeoIndex, PresenceRegistry, SubscriptionRouter


class FakeClock:
    """테스트용 고정 시계 (UTC)"""

    def __init__(self, start: datetime = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingSink:
    """전달된 이벤트를 기록하는 연결 송신 대상"""

    def __init__(self, accept: bool = True):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.accept = accept

    def deliver(self, event: str, payload: Dict[str, Any]) -> bool:
        if self.accept:
            self.events.append((event, payload))
        return self.accept

    def named(self, event: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


def flood_reading(latitude: float = 6.5244, longitude: float = 3.3792, **overrides) -> HazardReading:
    """테스트용 홍수 위험 정보"""
    data = dict(
        kind=HazardKind.FLOOD,
        latitude=latitude,
        longitude=longitude,
        severity="high",
        description="Flooded underpass",
        region="Lagos Mainland",
        source="test",
    )
    data.update(overrides)
    return HazardReading(**data)


@pytest.fixture
def clock():
    """테스트용 시계"""
    return FakeClock()


@pytest.fixture
def store():
    """메모리 위험 경보 저장소"""
    return InMemoryHazardStore()


@pytest.fixture
def presence(clock):
    """위치 레지스트리"""
    return PresenceRegistry(clock=clock)


@pytest.fixture
def engine(store, presence, clock):
    """근접 경보 엔진 (재시도 지연 없음)"""
    return AlertEngine(store, GeoIndex(), presence, clock=clock,
                       store_retries=1, store_backoff_sec=0.0, store_backoff_max_sec=0.0)


@pytest.fixture
def router():
    """채널 라우터"""
    return SubscriptionRouter()


@pytest.fixture
def rides():
    return InMemoryMembershipStore("ride")


@pytest.fixture
def trips():
    return InMemoryMembershipStore("trip")


@pytest.fixture
def fanout(router, presence, rides, trips):
    """경보 전파 정책"""
    return AlertFanout(router, presence, [rides, trips])


@pytest.fixture
def temp_db_path():
    """임시 데이터베이스 파일 경로"""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        temp_path = f.name
    yield temp_path
    # 테스트 후 파일 정리
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    settings.auth.jwt_secret = "test-secret"
    settings.auth.admin_token = "admin-token"
    return settings


@pytest.fixture
def sink_factory():
    """RecordingSink 생성기"""
    return RecordingSink


@pytest.fixture
def make_reading():
    """flood_reading 생성기"""
    return flood_reading
