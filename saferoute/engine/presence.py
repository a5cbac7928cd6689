"""
Process-wide table of connected users and their last known position.

Every write replaces the whole frozen PresenceRecord under its user key.
The staleness sweep evicts with compare-and-delete so that a fresher
upsert for the same user always wins over eviction.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from saferoute.core.models import PresenceRecord
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.presence")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class PresenceRegistry:
    """사용자 위치 레지스트리"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._records: Dict[str, PresenceRecord] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._records

    def upsert(self, user_id: str, latitude: float, longitude: float,
               region: Optional[str] = None) -> PresenceRecord:
        """사용자 위치를 통째로 교체합니다 (도착 순서 기준 last-write-wins)."""
        record = PresenceRecord(
            user_id=user_id,
            latitude=latitude,
            longitude=longitude,
            region=region,
            last_update=self._clock(),
        )
        self._records[user_id] = record
        metrics.presence_size.set(len(self._records))
        return record

    def get(self, user_id: str) -> Optional[PresenceRecord]:
        return self._records.get(user_id)

    def remove(self, user_id: str) -> bool:
        removed = self._records.pop(user_id, None) is not None
        metrics.presence_size.set(len(self._records))
        return removed

    def snapshot_all(self) -> List[PresenceRecord]:
        return list(self._records.values())

    def remove_if_unchanged(self, record: PresenceRecord) -> bool:
        """저장된 레코드가 주어진 레코드와 같은 객체일 때만 삭제합니다."""
        if self._records.get(record.user_id) is not record:
            return False
        del self._records[record.user_id]
        return True

    def sweep_stale(self, now: Optional[datetime] = None, threshold_seconds: float = 1800) -> List[str]:
        """
        마지막 갱신이 임계값보다 오래된 레코드를 제거합니다.

        Args:
            now: 기준 시각 (None이면 현재 시각)
            threshold_seconds: 임계값 (초)

        Returns:
            제거된 사용자 id 목록
        """
        now = now or self._clock()
        cutoff = now - timedelta(seconds=threshold_seconds)
        candidates = [r for r in self.snapshot_all() if r.last_update < cutoff]

        removed = []
        for record in candidates:
            if self.remove_if_unchanged(record):
                removed.append(record.user_id)

        metrics.presence_size.set(len(self._records))
        if removed:
            metrics.presence_evicted.inc(len(removed))
            log.info("오래된 위치 레코드 정리됨", count=len(removed))
        return removed
