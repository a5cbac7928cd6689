"""
Geographic utilities for SafeRoute.

This module provides the great-circle distance calculation and the
grid helpers used by the geo index and grid channels.
"""

import math
from typing import Tuple

# 지구 반지름 (미터)
EARTH_RADIUS_M = 6371000.0

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    두 지점 간의 Haversine 거리를 계산합니다 (미터).

    Args:
        lat1: 첫 번째 지점의 위도
        lon1: 첫 번째 지점의 경도
        lat2: 두 번째 지점의 위도
        lon2: 두 번째 지점의 경도

    Returns:
        두 지점 간의 거리 (미터)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    # 부동소수점 오차로 1을 넘는 경우 방지
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return c * EARTH_RADIUS_M

def validate_coordinates(lat: float, lon: float) -> bool:
    """
    좌표가 유효한지 확인합니다.

    Args:
        lat: 위도
        lon: 경도

    Returns:
        좌표가 유효하면 True
    """
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180

def grid_cell(lat: float, lon: float, cell_deg: float = 0.01) -> Tuple[int, int]:
    """좌표가 속한 격자 셀 (위도 셀, 경도 셀)"""
    return (math.floor(lat / cell_deg), math.floor(lon / cell_deg))

def radius_to_degrees(lat: float, radius_m: float) -> Tuple[float, float]:
    """
    반경을 해당 위도에서의 (위도 폭, 경도 폭) 도 단위로 변환합니다.

    구면 캡의 정확한 경도 폭을 사용하며, 캡이 극점을 포함하면 360도를 반환합니다.
    """
    angular = radius_m / EARTH_RADIUS_M
    dlat = math.degrees(angular)
    cos_lat = math.cos(math.radians(lat))
    if angular >= math.pi / 2 or cos_lat < 1e-9:
        return (dlat, 360.0)
    ratio = math.sin(angular) / cos_lat
    if ratio >= 1.0:
        return (dlat, 360.0)
    return (dlat, math.degrees(math.asin(ratio)))
