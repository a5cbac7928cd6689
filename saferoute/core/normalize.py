"""
Normalization functions for SafeRoute.

This module contains pure functions for converting hazard readings
into HazardAlert records.
"""

from datetime import datetime
from .models import HazardAlert, HazardReading
from .policy import normalize_severity, trigger_radius_for, validity_for

def to_hazard_alert(reading: HazardReading, now: datetime) -> HazardAlert:
    """
    HazardReading을 HazardAlert로 정규화합니다.

    Args:
        reading: 외부 소스 또는 사용자 제보 위험 정보
        now: 생성 시각 (UTC)

    Returns:
        아직 저장되지 않은 HazardAlert
    """
    radius = reading.trigger_radius_m
    if radius is None:
        radius = trigger_radius_for(reading.kind, user_report=reading.user_report)

    return HazardAlert(
        kind=reading.kind,
        region=reading.region,
        latitude=reading.latitude,
        longitude=reading.longitude,
        severity=normalize_severity(reading.severity),
        description=reading.description.strip(),
        trigger_radius_m=radius,
        valid_until=now + validity_for(reading.kind),
        created_at=now,
        ride_id=reading.ride_id,
        trip_id=reading.trip_id,
        created_by=reading.created_by,
        source="user-report" if reading.user_report else reading.source,
        segment_id=reading.segment_id,
    )
