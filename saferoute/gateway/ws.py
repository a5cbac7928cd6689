"""
WebSocket transport for the connection gateway.

Frames are JSON objects `{"event": <name>, "data": {...}}` in both
directions. The credential comes from the `token` query parameter or an
`Authorization: Bearer` header.
"""

from typing import Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from saferoute.core.errors import AuthError
from saferoute.gateway.gateway import ConnectionGateway
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.ws")

# 인증 실패 시 닫기 코드
AUTH_CLOSE_CODE = 4401

def extract_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth = websocket.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return None

def create_ws_router(gateway: ConnectionGateway) -> APIRouter:
    """게이트웨이에 연결된 /ws 라우터를 생성합니다."""
    router = APIRouter()

    @router.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket):
        await websocket.accept()
        try:
            conn = await gateway.connect(extract_token(websocket), websocket.send_json)
        except AuthError as e:
            await websocket.send_json({"event": "error", "data": {"message": e.message, "detail": e.reason}})
            await websocket.close(code=AUTH_CLOSE_CODE)
            return

        try:
            while True:
                raw = await websocket.receive_text()
                gateway.receive(conn, raw)
        except WebSocketDisconnect:
            log.debug("WebSocket 연결 끊김", connection_id=conn.id)
        finally:
            await gateway.disconnect(conn)

    return router
