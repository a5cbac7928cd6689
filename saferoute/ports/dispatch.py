"""
Connection sink port interface.

This module defines the protocol the subscription router delivers to.
"""

from typing import Any, Dict, Protocol

class ConnectionSinkPort(Protocol):
    """연결 단위 이벤트 수신자"""

    def deliver(self, event: str, payload: Dict[str, Any]) -> bool:
        """
        이벤트를 연결의 송신 큐에 넣습니다 (블로킹 없음).

        Returns:
            큐에 들어갔으면 True, 버려졌으면 False
        """
        ...
