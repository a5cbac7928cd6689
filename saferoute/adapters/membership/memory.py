"""
In-memory ride/trip membership store.

Ride and trip CRUD live elsewhere; this adapter only answers the
membership questions the fan-out needs.
"""

from collections import defaultdict
from typing import Dict, List, Set

class InMemoryMembershipStore:
    """메모리 기반 라이드/트립 참여자 저장소"""

    def __init__(self, kind: str):
        if kind not in ("ride", "trip"):
            raise ValueError(f"unknown membership kind: {kind}")
        self.kind = kind
        self._participants: Dict[str, Set[str]] = defaultdict(set)
        self._active: Set[str] = set()

    def add(self, entity_id: str, *user_ids: str, active: bool = True) -> None:
        self._participants[entity_id].update(user_ids)
        if active:
            self._active.add(entity_id)
        else:
            self._active.discard(entity_id)

    def deactivate(self, entity_id: str) -> None:
        self._active.discard(entity_id)

    async def is_participant(self, entity_id: str, user_id: str) -> bool:
        return user_id in self._participants.get(entity_id, ())

    async def active_for(self, user_id: str) -> List[str]:
        return sorted(
            entity_id for entity_id in self._active
            if user_id in self._participants.get(entity_id, ())
        )
