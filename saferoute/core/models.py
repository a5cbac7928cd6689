"""
Core domain models for SafeRoute.

This module defines the core domain models using Pydantic v2
for type safety and validation.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field

class HazardKind(str, Enum):
    """위험 종류"""
    TRAFFIC = "traffic"
    FLOOD = "flood"
    WEATHER = "weather"
    ROUTE = "route"
    SEARCH = "search"

class Severity(str, Enum):
    """엔진 내부 3단계 심각도"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}

def new_alert_id() -> str:
    return uuid4().hex

class HazardAlert(BaseModel):
    """위험 경보 레코드"""
    id: str = Field(default_factory=new_alert_id)
    kind: HazardKind
    region: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    severity: Severity = Severity.LOW
    description: str
    trigger_radius_m: float = Field(default=100.0, gt=0)
    valid_until: Optional[datetime] = None
    triggered: bool = False
    created_at: datetime
    ride_id: Optional[str] = None
    trip_id: Optional[str] = None
    created_by: Optional[str] = None
    source: str = "unknown"
    segment_id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and self.valid_until <= now

    def is_active(self, now: datetime) -> bool:
        """만료되지 않았고 아직 트리거되지 않은 경보"""
        return not self.triggered and not self.is_expired(now)

class PresenceRecord(BaseModel):
    """접속 중인 사용자의 마지막 위치"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    latitude: float
    longitude: float
    region: Optional[str] = None
    last_update: datetime

class ProximityMatch(BaseModel):
    """근접 평가 결과 (경보, 거리)"""
    model_config = ConfigDict(frozen=True)

    alert: HazardAlert
    distance_m: float

class HazardReading(BaseModel):
    """외부 소스나 사용자 제보에서 온 정규화 전 위험 정보"""
    kind: HazardKind
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    severity: Union[str, int] = "medium"
    description: str
    region: str
    source: str = "unknown"
    segment_id: Optional[str] = None
    ride_id: Optional[str] = None
    trip_id: Optional[str] = None
    created_by: Optional[str] = None
    trigger_radius_m: Optional[float] = Field(default=None, gt=0)
    user_report: bool = False

class WeatherReading(BaseModel):
    """날씨 수집기 정규화 결과"""
    condition: str
    temperature: Optional[float] = None
    precipitation_mm: float = 0.0
    fetched_at: datetime

class TrafficReading(BaseModel):
    """교통 수집기 정규화 결과"""
    congestion_level: str
    delay_minutes: float = 0.0

class RoadSegment(BaseModel):
    """주기적으로 조회하는 도로 구간"""
    segment_id: str
    location_name: str
    region: str
    start_latitude: float
    start_longitude: float
    end_latitude: float
    end_longitude: float

    @property
    def midpoint(self) -> tuple:
        return (
            (self.start_latitude + self.end_latitude) / 2,
            (self.start_longitude + self.end_longitude) / 2,
        )

class WatchPoint(BaseModel):
    """지역 단위 날씨 감시 지점"""
    region: str
    latitude: float
    longitude: float

__all__ = [
    "HazardKind", "Severity", "HazardAlert", "PresenceRecord", "ProximityMatch",
    "HazardReading", "WeatherReading", "TrafficReading", "RoadSegment", "WatchPoint",
    "new_alert_id",
]
