"""
AlertFanout 단위 테스트

한 번의 전파에서 같은 연결이 같은 경보를 두 번 받지 않는지,
사용자/지역/라이드/트립 채널로 올바르게 전달되는지 테스트합니다.
"""

import pytest
from unittest.mock import AsyncMock
from saferoute.engine.fanout import (
    ALERT_CREATED, ALERT_UPDATED, PROXIMITY_ALERT, AlertFanout, proximity_payload,
)

LAGOS = (6.5244, 3.3792)
NEARBY = (6.5247, 3.3795)
REGION = "Lagos Mainland"


def connect(router, sink, connection_id, *channels):
    router.attach(connection_id, sink)
    for channel in channels:
        router.join(connection_id, channel)
    return sink


class TestProximityForUser:
    """위치 보고로 트리거된 경보 전파 테스트"""

    @pytest.mark.asyncio
    async def test_lagos_scenario(self, engine, presence, router, rides, fanout, sink_factory, make_reading):
        """사용자 채널과 지역 채널에 한 번씩, 관련 없는 라이드 채널에는 전달하지 않음"""
        user = connect(router, sink_factory(), "c-u1", "user:u1")
        region = connect(router, sink_factory(), "c-region", f"region:{REGION}")
        unrelated = connect(router, sink_factory(), "c-ride", "ride:other")
        rides.add("other", "someone-else")

        await engine.ingest_hazard(make_reading(*LAGOS, trigger_radius_m=1000))
        presence.upsert("u1", *NEARBY, REGION)
        matches = await engine.evaluate_proximity("u1", *NEARBY, REGION)

        await fanout.proximity_for_user("u1", matches)

        assert len(user.named(PROXIMITY_ALERT)) == 1
        assert len(region.named(PROXIMITY_ALERT)) == 1
        assert unrelated.events == []
        payload = user.named(PROXIMITY_ALERT)[0]
        assert 30 < payload["distanceMeters"] < 60
        assert payload["alert"]["triggered"] is True
        assert "meters from your location" in payload["message"]

    @pytest.mark.asyncio
    async def test_connection_in_several_channels_receives_once(self, engine, presence, router, rides,
                                                                fanout, sink_factory, make_reading):
        sink = connect(router, sink_factory(), "c-u1", "user:u1", f"region:{REGION}", "ride:r1")
        rides.add("r1", "u1")

        await engine.ingest_hazard(make_reading(*LAGOS))
        presence.upsert("u1", *NEARBY, REGION)
        matches = await engine.evaluate_proximity("u1", *NEARBY, REGION)
        delivered = await fanout.proximity_for_user("u1", matches)

        assert delivered == 1
        assert len(sink.named(PROXIMITY_ALERT)) == 1

    @pytest.mark.asyncio
    async def test_other_present_users_in_range(self, engine, presence, router, fanout,
                                                sink_factory, make_reading):
        connect(router, sink_factory(), "c-u1", "user:u1")
        other = connect(router, sink_factory(), "c-u2", "user:u2")
        outside = connect(router, sink_factory(), "c-u3", "user:u3")
        presence.upsert("u2", 6.5250, 3.3792)
        presence.upsert("u3", 6.7044, 3.3792)

        await engine.ingest_hazard(make_reading(*LAGOS))
        presence.upsert("u1", *NEARBY)
        matches = await engine.evaluate_proximity("u1", *NEARBY)
        await fanout.proximity_for_user("u1", matches)

        received = other.named(PROXIMITY_ALERT)
        assert len(received) == 1
        assert 60 < received[0]["distanceMeters"] < 75
        assert outside.events == []

    @pytest.mark.asyncio
    async def test_active_ride_and_trip_channels(self, engine, presence, router, rides, trips,
                                                 fanout, sink_factory, make_reading):
        connect(router, sink_factory(), "c-u1", "user:u1")
        ride = connect(router, sink_factory(), "c-driver", "ride:r1")
        trip = connect(router, sink_factory(), "c-trip", "trip:t1")
        ended = connect(router, sink_factory(), "c-old", "ride:r0")
        rides.add("r1", "u1", "driver")
        rides.add("r0", "u1", active=False)
        trips.add("t1", "u1")

        await engine.ingest_hazard(make_reading(*LAGOS))
        presence.upsert("u1", *NEARBY)
        matches = await engine.evaluate_proximity("u1", *NEARBY)
        await fanout.proximity_for_user("u1", matches)

        assert len(ride.named(PROXIMITY_ALERT)) == 1
        assert len(trip.named(PROXIMITY_ALERT)) == 1
        assert ended.events == []

    @pytest.mark.asyncio
    async def test_membership_failure_is_skipped(self, engine, presence, router, sink_factory, make_reading):
        broken = AsyncMock()
        broken.kind = "ride"
        broken.active_for.side_effect = RuntimeError("ride store down")
        fanout = AlertFanout(router, presence, [broken])
        user = connect(router, sink_factory(), "c-u1", "user:u1")

        await engine.ingest_hazard(make_reading(*LAGOS))
        presence.upsert("u1", *NEARBY)
        matches = await engine.evaluate_proximity("u1", *NEARBY)
        await fanout.proximity_for_user("u1", matches)

        assert len(user.named(PROXIMITY_ALERT)) == 1

    @pytest.mark.asyncio
    async def test_no_matches(self, fanout):
        assert await fanout.proximity_for_user("u1", []) == 0


class TestProximityForHazard:
    """새 경보 반경 안 사용자 전파 테스트"""

    @pytest.mark.asyncio
    async def test_reporter_excluded_others_notified(self, engine, presence, router, fanout,
                                                     sink_factory, make_reading):
        reporter = connect(router, sink_factory(), "c-u1", "user:u1")
        neighbour = connect(router, sink_factory(), "c-u2", "user:u2", f"region:{REGION}")
        region = connect(router, sink_factory(), "c-region", f"region:{REGION}")
        presence.upsert("u1", *LAGOS)
        presence.upsert("u2", *NEARBY)

        alert = await engine.ingest_hazard(make_reading(*LAGOS, user_report=True, created_by="u1"))
        matches = await engine.evaluate_hazard(alert.id)
        await fanout.proximity_for_hazard(alert, matches, exclude_user="u1")

        assert reporter.events == []
        assert len(neighbour.named(PROXIMITY_ALERT)) == 1
        assert len(region.named(PROXIMITY_ALERT)) == 1


class TestAlertEvents:
    """alertCreated / alertUpdated 테스트"""

    @pytest.mark.asyncio
    async def test_created_goes_to_region_and_ride(self, engine, router, fanout, sink_factory, make_reading):
        region = connect(router, sink_factory(), "c-region", f"region:{REGION}")
        ride = connect(router, sink_factory(), "c-ride", "ride:r1")
        other_region = connect(router, sink_factory(), "c-ikeja", "region:Ikeja")

        alert = await engine.ingest_hazard(make_reading(*LAGOS, ride_id="r1"))
        assert fanout.alert_created(alert) == 2

        assert region.named(ALERT_CREATED) == [{"alert": alert.model_dump(mode="json")}]
        assert len(ride.named(ALERT_CREATED)) == 1
        assert other_region.events == []

    @pytest.mark.asyncio
    async def test_updated_event_name(self, engine, router, fanout, sink_factory, make_reading):
        region = connect(router, sink_factory(), "c-region", f"region:{REGION}")
        alert = await engine.ingest_hazard(make_reading(*LAGOS))
        fanout.alert_updated(alert)
        assert [name for name, _ in region.events] == [ALERT_UPDATED]


class TestPayload:
    """페이로드 형식 테스트"""

    @pytest.mark.asyncio
    async def test_proximity_payload(self, engine, make_reading):
        alert = await engine.ingest_hazard(make_reading(*LAGOS))
        payload = proximity_payload(alert, 47.123456)
        assert payload["distanceMeters"] == 47.12
        assert payload["message"] == "Flood alert 47.12 meters from your location"
        assert payload["alert"]["id"] == alert.id
