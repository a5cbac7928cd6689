"""
Per-connection state for the connection gateway.

Each connection owns one inbound queue drained by a single worker task
(strict arrival order) and one bounded outbound queue drained by a
writer task, so publishers never await a slow client.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4
from saferoute.observability import metrics
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.connection")

SendFn = Callable[[Dict[str, Any]], Awaitable[None]]
HandlerFn = Callable[["Connection", str, Any], Awaitable[None]]

class ConnectionState(str, Enum):
    """연결 상태"""
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"

class Connection:
    """양방향 연결 하나"""

    def __init__(self,
                 send: SendFn,
                 *,
                 connection_id: Optional[str] = None,
                 inbound_maxsize: int = 100,
                 outbound_maxsize: int = 256):
        """
        초기화합니다.

        Args:
            send: 프레임 송신 함수 (예: WebSocket.send_json)
            connection_id: 연결 id (None이면 생성)
            inbound_maxsize: 인바운드 큐 최대 크기
            outbound_maxsize: 아웃바운드 큐 최대 크기
        """
        self.id = connection_id or uuid4().hex
        self.user_id: Optional[str] = None
        self.state = ConnectionState.CONNECTING
        self.inbound: asyncio.Queue = asyncio.Queue(maxsize=inbound_maxsize)
        self.outbound: asyncio.Queue = asyncio.Queue(maxsize=outbound_maxsize)
        self.worker_task: Optional[asyncio.Task] = None
        self.writer_task: Optional[asyncio.Task] = None
        self.rain_task: Optional[asyncio.Task] = None
        # 위치 기반으로 가입한 채널 (region, grid)
        self.location_channels: Dict[str, str] = {}
        self._send = send

    @property
    def is_open(self) -> bool:
        return self.state != ConnectionState.DISCONNECTED

    def start(self, handler: HandlerFn) -> None:
        """워커/라이터 태스크를 시작하고 ACTIVE로 전이합니다."""
        self.worker_task = asyncio.create_task(self._worker(handler))
        self.writer_task = asyncio.create_task(self._writer())
        self.state = ConnectionState.ACTIVE

    def deliver(self, event: str, payload: Dict[str, Any]) -> bool:
        """
        아웃바운드 이벤트를 큐에 넣습니다 (블로킹 없음).

        Returns:
            큐에 들어갔으면 True, 연결 종료/큐 가득 참이면 False
        """
        if not self.is_open:
            return False
        try:
            self.outbound.put_nowait({"event": event, "data": payload})
        except asyncio.QueueFull:
            metrics.events_dropped.labels(event=event).inc()
            log.warning("아웃바운드 큐가 가득 찼습니다. 이벤트를 드롭합니다.",
                        connection_id=self.id,
                        user_id=self.user_id,
                        event_name=event)
            return False
        return True

    def submit(self, event: str, data: Any) -> bool:
        """인바운드 이벤트를 도착 순서대로 큐에 넣습니다."""
        if not self.is_open:
            return False
        try:
            self.inbound.put_nowait((event, data))
        except asyncio.QueueFull:
            metrics.inbound_rejected.labels(event=event, reason="queue_full").inc()
            log.warning("인바운드 큐가 가득 찼습니다.", connection_id=self.id, event_name=event)
            return False
        return True

    async def flush(self) -> None:
        """현재까지 큐에 들어간 인바운드 처리와 아웃바운드 송신이 끝날 때까지 기다립니다."""
        await self.inbound.join()
        await self.outbound.join()

    async def close(self) -> None:
        """워커/라이터/비 확인 태스크를 취소합니다. 호출한 태스크 자신은 기다리지 않습니다."""
        self.state = ConnectionState.DISCONNECTED
        current = asyncio.current_task()
        tasks = [t for t in (self.rain_task, self.worker_task, self.writer_task) if t is not None]
        for task in tasks:
            task.cancel()
        pending = [t for t in tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _worker(self, handler: HandlerFn) -> None:
        while True:
            event, data = await self.inbound.get()
            try:
                await handler(self, event, data)
            finally:
                self.inbound.task_done()

    async def _writer(self) -> None:
        while True:
            frame = await self.outbound.get()
            try:
                await self._send(frame)
            except Exception as e:
                log.warning("프레임 송신 실패", connection_id=self.id, error=str(e))
            finally:
                self.outbound.task_done()
