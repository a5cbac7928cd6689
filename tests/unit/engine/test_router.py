"""
SubscriptionRouter 단위 테스트
"""

from unittest.mock import Mock
from saferoute.engine.router import (
    SubscriptionRouter, grid_channel, region_channel, ride_channel, trip_channel, user_channel,
)


class TestChannelKeys:
    """채널 키 형식 테스트"""

    def test_keys(self):
        assert user_channel("u1") == "user:u1"
        assert ride_channel("r1") == "ride:r1"
        assert trip_channel("t1") == "trip:t1"
        assert region_channel("Ikeja") == "region:Ikeja"

    def test_grid_channel(self):
        assert grid_channel(6.5244, 3.3792) == "grid:652:337"
        assert grid_channel(-0.001, -0.001) == "grid:-1:-1"


class TestSubscriptionRouter:
    """멤버십 및 발행 테스트"""

    def test_publish_to_empty_channel(self):
        assert SubscriptionRouter().publish("region:nowhere", "alertCreated", {}) == 0

    def test_publish_reaches_members(self, router, sink_factory):
        a, b = sink_factory(), sink_factory()
        router.attach("c1", a)
        router.attach("c2", b)
        router.join("c1", "region:Ikeja")
        router.join("c2", "region:Ikeja")

        assert router.publish("region:Ikeja", "alertCreated", {"x": 1}) == 2
        assert a.events == [("alertCreated", {"x": 1})]
        assert b.events == [("alertCreated", {"x": 1})]

    def test_publish_exclude(self, router, sink_factory):
        a, b = sink_factory(), sink_factory()
        router.attach("c1", a)
        router.attach("c2", b)
        router.join("c1", "region:Ikeja")
        router.join("c2", "region:Ikeja")

        assert router.publish("region:Ikeja", "alertCreated", {}, exclude={"c1"}) == 1
        assert a.events == []

    def test_rejected_delivery_is_not_counted(self, router, sink_factory):
        router.attach("c1", sink_factory(accept=False))
        router.join("c1", "user:u1")
        assert router.publish("user:u1", "error", {}) == 0

    def test_raising_sink_is_skipped(self, router, sink_factory):
        broken = Mock()
        broken.deliver.side_effect = RuntimeError("closed")
        ok = sink_factory()
        router.attach("c1", broken)
        router.attach("c2", ok)
        router.join("c1", "region:Ikeja")
        router.join("c2", "region:Ikeja")

        assert router.publish("region:Ikeja", "alertCreated", {}) == 1
        assert len(ok.events) == 1

    def test_leave(self, router, sink_factory):
        router.attach("c1", sink_factory())
        router.join("c1", "region:Ikeja")
        router.join("c1", "user:u1")
        router.leave("c1", "region:Ikeja")

        assert router.members("region:Ikeja") == set()
        assert router.channels_of("c1") == {"user:u1"}

    def test_leave_all_twice_is_harmless(self, router, sink_factory):
        sink = sink_factory()
        router.attach("c1", sink)
        router.join("c1", "region:Ikeja")
        router.join("c1", "user:u1")

        router.leave_all("c1")
        router.leave_all("c1")

        assert router.channels_of("c1") == set()
        assert router.members("user:u1") == set()
        assert router.publish("user:u1", "alertCreated", {}) == 0
        assert sink.events == []

    def test_members_returns_copy(self, router):
        router.join("c1", "user:u1")
        members = router.members("user:u1")
        members.add("c2")
        assert router.members("user:u1") == {"c1"}
