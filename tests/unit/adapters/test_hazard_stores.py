"""
Hazard store 어댑터 단위 테스트

메모리 저장소와 SQLite 저장소가 같은 동작을 하는지 테스트합니다.
"""

import os
import pytest
from datetime import datetime, timedelta, timezone
from saferoute.adapters.storage import InMemoryHazardStore, SQLiteHazardStore
from saferoute.core.errors import TransientStoreError
from saferoute.core.models import HazardAlert, HazardKind, Severity

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_alert(lat=6.5244, lon=3.3792, valid_for=timedelta(hours=24), **kw):
    return HazardAlert(kind=HazardKind.FLOOD, region="Lagos Mainland", latitude=lat, longitude=lon,
                       severity=Severity.HIGH, description="Flooded underpass", trigger_radius_m=1000,
                       valid_until=NOW + valid_for if valid_for is not None else None,
                       created_at=NOW, **kw)


@pytest.fixture(params=["memory", "sqlite"])
async def hazard_store(request, temp_db_path):
    """저장소 구현별 픽스처"""
    if request.param == "memory":
        return InMemoryHazardStore()
    store = SQLiteHazardStore(temp_db_path)
    await store.init()
    return store


class TestHazardStore:
    """공통 저장소 동작 테스트"""

    @pytest.mark.asyncio
    async def test_save_and_find_by_id(self, hazard_store):
        alert = make_alert(ride_id="r1", created_by="u1")
        await hazard_store.save(alert)

        found = await hazard_store.find_by_id(alert.id)
        assert found == alert
        assert await hazard_store.find_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_save_is_upsert(self, hazard_store):
        alert = make_alert()
        await hazard_store.save(alert)
        await hazard_store.save(alert.model_copy(update={"triggered": True}))

        assert await hazard_store.get_count() == 1
        assert (await hazard_store.find_by_id(alert.id)).triggered is True

    @pytest.mark.asyncio
    async def test_find_near(self, hazard_store):
        near = make_alert(6.5250, 3.3792)
        far = make_alert(6.6018, 3.3515)
        await hazard_store.save(near)
        await hazard_store.save(far)

        found = await hazard_store.find_near(6.5244, 3.3792, 1000)
        assert [a.id for a in found] == [near.id]
        assert len(await hazard_store.find_near(6.5244, 3.3792, 20_000)) == 2

    @pytest.mark.asyncio
    async def test_find_near_across_antimeridian(self, hazard_store):
        alert = make_alert(0.0, -179.999)
        await hazard_store.save(alert)
        found = await hazard_store.find_near(0.0, 179.999, 1000)
        assert [a.id for a in found] == [alert.id]

    @pytest.mark.asyncio
    async def test_load_active_skips_expired(self, hazard_store):
        active = make_alert()
        expired = make_alert(valid_for=timedelta(hours=-1))
        forever = make_alert(valid_for=None)
        for alert in (active, expired, forever):
            await hazard_store.save(alert)

        loaded = await hazard_store.load_active(NOW)
        assert {a.id for a in loaded} == {active.id, forever.id}

    @pytest.mark.asyncio
    async def test_empty_count(self, hazard_store):
        assert await hazard_store.get_count() == 0


class TestSQLiteHazardStore:
    """SQLite 전용 테스트"""

    @pytest.mark.asyncio
    async def test_init_creates_file(self, temp_db_path):
        os.unlink(temp_db_path)
        store = SQLiteHazardStore(temp_db_path)
        await store.init()
        assert os.path.exists(temp_db_path)

    @pytest.mark.asyncio
    async def test_survives_reopen(self, temp_db_path):
        alert = make_alert()
        first = SQLiteHazardStore(temp_db_path)
        await first.init()
        await first.save(alert)

        second = SQLiteHazardStore(temp_db_path)
        await second.init()
        assert (await second.find_by_id(alert.id)) == alert

    @pytest.mark.asyncio
    async def test_unreachable_database(self, tmp_path):
        store = SQLiteHazardStore(str(tmp_path / "missing" / "hazards.db"))
        with pytest.raises(TransientStoreError):
            await store.init()
        with pytest.raises(TransientStoreError):
            await store.save(make_alert())
