"""
InMemoryMembershipStore 단위 테스트
"""

import pytest
from saferoute.adapters.membership import InMemoryMembershipStore


class TestInMemoryMembershipStore:
    """라이드/트립 참여자 저장소 테스트"""

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            InMemoryMembershipStore("flight")

    @pytest.mark.asyncio
    async def test_active_for(self):
        rides = InMemoryMembershipStore("ride")
        rides.add("r2", "u1", "driver")
        rides.add("r1", "u1")
        rides.add("r3", "u2")

        assert await rides.active_for("u1") == ["r1", "r2"]
        assert await rides.active_for("nobody") == []

    @pytest.mark.asyncio
    async def test_deactivate(self):
        trips = InMemoryMembershipStore("trip")
        trips.add("t1", "u1")
        trips.deactivate("t1")

        assert await trips.active_for("u1") == []
        assert await trips.is_participant("t1", "u1") is True

    @pytest.mark.asyncio
    async def test_is_participant(self):
        rides = InMemoryMembershipStore("ride")
        rides.add("r1", "u1", active=False)
        assert await rides.is_participant("r1", "u1") is True
        assert await rides.is_participant("r1", "u2") is False
        assert await rides.is_participant("missing", "u1") is False
