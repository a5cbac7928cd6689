from .auth import TokenVerifier, issue_token
from .connection import Connection, ConnectionState
from .gateway import ConnectionGateway
from .ws import create_ws_router

__all__ = [
    "TokenVerifier", "issue_token", "Connection", "ConnectionState",
    "ConnectionGateway", "create_ws_router",
]
