"""
Ride/trip membership port interface.

Used only to find extra fan-out channels for a user.
"""

from typing import List, Protocol

class MembershipPort(Protocol):
    """라이드/트립 참여자 조회 포트"""

    kind: str  # "ride" 또는 "trip"

    async def is_participant(self, entity_id: str, user_id: str) -> bool:
        ...

    async def active_for(self, user_id: str) -> List[str]:
        """사용자가 참여 중인 활성 엔티티 id 목록"""
        ...
