from __future__ import annotations

from fastapi.requests import HTTPConnection

from thimblerig.table import TableRegistry


def get_registry(conn: HTTPConnection) -> TableRegistry:
    # HTTPConnection so the same dependency serves HTTP routes and the table WebSocket.
    return conn.app.state.registry
