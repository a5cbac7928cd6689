"""
Severity and lifetime policy for SafeRoute.

This module contains pure functions mapping source severity vocabularies
onto the engine's three-level ordering, plus per-kind trigger radius
and validity defaults.
"""

from datetime import timedelta
from typing import Union
from .models import HazardKind, Severity

# 소스별 심각도 어휘 -> 내부 3단계
SEVERITY_ALIASES = {
    "info": Severity.LOW,
    "minor": Severity.LOW,
    "low": Severity.LOW,
    "moderate": Severity.MEDIUM,
    "medium": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "high": Severity.HIGH,
    "severe": Severity.HIGH,
    "critical": Severity.HIGH,
    # 숫자 심각도 (교통 피드 1~5)
    1: Severity.LOW,
    2: Severity.LOW,
    3: Severity.MEDIUM,
    4: Severity.HIGH,
    5: Severity.HIGH,
}

# 종류별 기본 트리거 반경 (미터)
DEFAULT_TRIGGER_RADIUS_M = {
    HazardKind.FLOOD: 1000.0,
    HazardKind.WEATHER: 1000.0,
    HazardKind.TRAFFIC: 5000.0,
    HazardKind.ROUTE: 5000.0,
    HazardKind.SEARCH: 100.0,
}

USER_REPORT_RADIUS_M = 1000.0

# 종류별 유효 기간
DEFAULT_VALIDITY = {
    HazardKind.WEATHER: timedelta(hours=3),
}
FALLBACK_VALIDITY = timedelta(hours=24)

def normalize_severity(raw: Union[str, int, Severity, None]) -> Severity:
    """
    원시 심각도 값을 내부 심각도로 변환합니다.

    알 수 없는 값은 medium으로 처리합니다.
    """
    if isinstance(raw, Severity):
        return raw
    if isinstance(raw, bool) or raw is None:
        return Severity.MEDIUM
    if isinstance(raw, int):
        return SEVERITY_ALIASES.get(raw, Severity.MEDIUM)
    key = str(raw).strip().lower()
    if key.isdecimal():
        return SEVERITY_ALIASES.get(int(key), Severity.MEDIUM)
    return SEVERITY_ALIASES.get(key, Severity.MEDIUM)

def is_upgrade(current: Severity, new: Severity) -> bool:
    return new.rank > current.rank

def trigger_radius_for(kind: HazardKind, *, user_report: bool = False) -> float:
    if user_report:
        return USER_REPORT_RADIUS_M
    return DEFAULT_TRIGGER_RADIUS_M.get(kind, 100.0)

def validity_for(kind: HazardKind) -> timedelta:
    return DEFAULT_VALIDITY.get(kind, FALLBACK_VALIDITY)
