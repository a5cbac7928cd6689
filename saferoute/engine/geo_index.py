"""
In-memory spatial index of hazard alerts.

Alerts are bucketed into a lat/lng grid; a radius query visits only the
cells overlapping the query's bounding box and falls back to a linear
scan when that box covers more cells than there are alerts.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple
from saferoute.common.geo import grid_cell, haversine_distance, radius_to_degrees
from saferoute.core.models import HazardAlert, ProximityMatch
from saferoute.observability import metrics

Cell = Tuple[int, int]

def rank_key(match: ProximityMatch):
    """거리 오름차순, 같으면 심각도 내림차순, 최신 생성 우선"""
    return (match.distance_m, -match.alert.severity.rank, -match.alert.created_at.timestamp())

class GeoIndex:
    """격자 기반 위험 경보 인덱스"""

    def __init__(self, cell_deg: float = 0.01):
        if cell_deg <= 0:
            raise ValueError("cell_deg must be positive")
        self.cell_deg = cell_deg
        self._alerts: Dict[str, HazardAlert] = {}
        self._cells: Dict[Cell, Set[str]] = defaultdict(set)
        self._cell_of: Dict[str, Cell] = {}

    def __len__(self) -> int:
        return len(self._alerts)

    def __contains__(self, alert_id: str) -> bool:
        return alert_id in self._alerts

    def get(self, alert_id: str) -> Optional[HazardAlert]:
        return self._alerts.get(alert_id)

    def alerts(self) -> List[HazardAlert]:
        return list(self._alerts.values())

    def upsert(self, alert: HazardAlert) -> None:
        """경보를 추가하거나 같은 id의 레코드를 통째로 교체합니다."""
        cell = grid_cell(alert.latitude, alert.longitude, self.cell_deg)
        old_cell = self._cell_of.get(alert.id)
        if old_cell is not None and old_cell != cell:
            self._discard_from_cell(alert.id, old_cell)
        self._cells[cell].add(alert.id)
        self._cell_of[alert.id] = cell
        self._alerts[alert.id] = alert
        metrics.geo_index_size.set(len(self._alerts))

    def remove(self, alert_id: str) -> bool:
        cell = self._cell_of.pop(alert_id, None)
        if cell is None:
            return False
        self._discard_from_cell(alert_id, cell)
        del self._alerts[alert_id]
        metrics.geo_index_size.set(len(self._alerts))
        return True

    def max_radius(self) -> float:
        """인덱스 내 경보 중 가장 큰 트리거 반경 (없으면 0)"""
        return max((a.trigger_radius_m for a in self._alerts.values()), default=0.0)

    def query(self, latitude: float, longitude: float, radius_m: float) -> List[ProximityMatch]:
        """
        반경 안의 경보를 거리순으로 반환합니다.

        Args:
            latitude: 기준 위도
            longitude: 기준 경도
            radius_m: 조회 반경 (미터, 경계 포함)

        Returns:
            정렬된 ProximityMatch 목록
        """
        if radius_m < 0 or not self._alerts:
            return []

        matches = []
        for alert in self._candidates(latitude, longitude, radius_m):
            distance = haversine_distance(latitude, longitude, alert.latitude, alert.longitude)
            if distance <= radius_m:
                matches.append(ProximityMatch(alert=alert, distance_m=distance))

        matches.sort(key=rank_key)
        return matches

    def _candidates(self, latitude: float, longitude: float, radius_m: float) -> Iterable[HazardAlert]:
        dlat, dlon = radius_to_degrees(latitude, radius_m)
        min_cell = grid_cell(latitude - dlat, longitude - dlon, self.cell_deg)
        max_cell = grid_cell(latitude + dlat, longitude + dlon, self.cell_deg)
        span = (max_cell[0] - min_cell[0] + 1) * (max_cell[1] - min_cell[1] + 1)

        # 날짜변경선을 넘거나 상자가 너무 크면 선형 탐색
        crosses_antimeridian = longitude - dlon < -180 or longitude + dlon > 180
        if crosses_antimeridian or span > len(self._alerts):
            return list(self._alerts.values())

        found = []
        for lat_cell in range(min_cell[0], max_cell[0] + 1):
            for lon_cell in range(min_cell[1], max_cell[1] + 1):
                for alert_id in self._cells.get((lat_cell, lon_cell), ()):
                    found.append(self._alerts[alert_id])
        return found

    def _discard_from_cell(self, alert_id: str, cell: Cell) -> None:
        members = self._cells.get(cell)
        if members is None:
            return
        members.discard(alert_id)
        if not members:
            del self._cells[cell]
