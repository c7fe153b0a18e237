from __future__ import annotations

from starlette.requests import HTTPConnection

from tictac.registry import SessionRegistry
from tictac.websocket_hub import SessionWebSocketHub


def get_registry(conn: HTTPConnection) -> SessionRegistry:
    return conn.app.state.registry


def get_hub(conn: HTTPConnection) -> SessionWebSocketHub:
    return conn.app.state.hub
