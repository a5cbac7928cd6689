"""
SQLite-based hazard store for SafeRoute.

This module implements durable hazard alert persistence with aiosqlite.
Alerts are stored as JSON documents with the columns needed for
bounding-box and expiry queries.
"""

import aiosqlite
from datetime import datetime
from typing import List, Optional
from saferoute.common.geo import haversine_distance, radius_to_degrees
from saferoute.core.errors import TransientStoreError
from saferoute.core.models import HazardAlert
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.store")

# SQLite 스키마
SCHEMA = """
CREATE TABLE IF NOT EXISTS hazard_alerts (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    region TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    valid_until REAL,
    triggered INTEGER NOT NULL DEFAULT 0,
    created_at REAL NOT NULL,
    doc TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_hazard_lat_lon ON hazard_alerts(latitude, longitude);
CREATE INDEX IF NOT EXISTS idx_hazard_valid_until ON hazard_alerts(valid_until);
"""

UPSERT = """
INSERT INTO hazard_alerts (id, kind, region, latitude, longitude, valid_until, triggered, created_at, doc)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    kind = excluded.kind,
    region = excluded.region,
    latitude = excluded.latitude,
    longitude = excluded.longitude,
    valid_until = excluded.valid_until,
    triggered = excluded.triggered,
    doc = excluded.doc
"""

class SQLiteHazardStore:
    """SQLite 기반 위험 경보 저장소"""

    def __init__(self, path: str):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
        """
        self.path = path
        log.info(f"SQLiteHazardStore 초기화: {path}")

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        try:
            async with aiosqlite.connect(self.path) as db:
                await db.executescript(SCHEMA)
                await db.commit()
        except aiosqlite.Error as e:
            raise TransientStoreError("hazard store init failed", detail=str(e)) from e
        log.info("SQLiteHazardStore 스키마 초기화 완료")

    async def save(self, alert: HazardAlert) -> None:
        valid_until = alert.valid_until.timestamp() if alert.valid_until else None
        try:
            async with aiosqlite.connect(self.path) as db:
                await db.execute(UPSERT, (
                    alert.id,
                    alert.kind.value,
                    alert.region,
                    alert.latitude,
                    alert.longitude,
                    valid_until,
                    1 if alert.triggered else 0,
                    alert.created_at.timestamp(),
                    alert.model_dump_json(),
                ))
                await db.commit()
        except aiosqlite.Error as e:
            raise TransientStoreError("hazard save failed", detail=str(e)) from e

    async def find_by_id(self, alert_id: str) -> Optional[HazardAlert]:
        rows = await self._fetch("SELECT doc FROM hazard_alerts WHERE id = ?", (alert_id,))
        return rows[0] if rows else None

    async def find_near(self, latitude: float, longitude: float, radius_m: float) -> List[HazardAlert]:
        """
        반경 안의 경보를 조회합니다.

        경계 상자로 후보를 좁힌 뒤 Haversine 거리로 다시 확인합니다.
        """
        dlat, dlon = radius_to_degrees(latitude, radius_m)
        if dlon >= 180 or longitude - dlon < -180 or longitude + dlon > 180:
            candidates = await self._fetch(
                "SELECT doc FROM hazard_alerts WHERE latitude BETWEEN ? AND ?",
                (latitude - dlat, latitude + dlat),
            )
        else:
            candidates = await self._fetch(
                "SELECT doc FROM hazard_alerts "
                "WHERE latitude BETWEEN ? AND ? AND longitude BETWEEN ? AND ?",
                (latitude - dlat, latitude + dlat, longitude - dlon, longitude + dlon),
            )
        return [
            a for a in candidates
            if haversine_distance(latitude, longitude, a.latitude, a.longitude) <= radius_m
        ]

    async def load_active(self, now: datetime) -> List[HazardAlert]:
        return await self._fetch(
            "SELECT doc FROM hazard_alerts WHERE valid_until IS NULL OR valid_until > ? "
            "ORDER BY created_at",
            (now.timestamp(),),
        )

    async def get_count(self) -> int:
        try:
            async with aiosqlite.connect(self.path) as db:
                cursor = await db.execute("SELECT COUNT(*) FROM hazard_alerts")
                result = await cursor.fetchone()
                return result[0] if result else 0
        except aiosqlite.Error as e:
            log.error(f"SQLiteHazardStore get_count 오류: {e}")
            return 0

    async def _fetch(self, sql: str, params: tuple) -> List[HazardAlert]:
        try:
            async with aiosqlite.connect(self.path) as db:
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise TransientStoreError("hazard query failed", detail=str(e)) from e
        return [HazardAlert.model_validate_json(row[0]) for row in rows]
