from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket, status

logger = logging.getLogger(__name__)


class TableWebSocketHub:
    """In-process WebSocket fan-out, one channel per table.

    Contract:
      - `connect(table_id, websocket, initial=...)` accepts the socket, joins
        it to the table and then sends `initial`, so a late joiner renders
        the current state before any incremental update arrives.
      - `broadcast(table_id, payload)` sends to every socket of the table
        concurrently; sockets that fail are dropped.
      - `close_table(table_id)` closes and forgets every socket of a table.

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._by_table: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    def connection_count(self, table_id: str) -> int:
        return len(self._by_table.get(table_id, ()))

    async def connect(self, table_id: str, websocket: WebSocket, *, initial: dict[str, object] | None = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._by_table[table_id].add(websocket)
        if initial is not None:
            await websocket.send_json(initial)

    async def disconnect(self, table_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._by_table.get(table_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._by_table.pop(table_id, None)

    async def broadcast(self, table_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._by_table.get(table_id, ()))
        if not conns:
            return

        results = await asyncio.gather(*(ws.send_json(payload) for ws in conns), return_exceptions=True)
        dead = [ws for ws, result in zip(conns, results) if isinstance(result, Exception)]
        if not dead:
            return

        logger.debug("Dropping %d dead socket(s) from table %s", len(dead), table_id)
        async with self._lock:
            conns_now = self._by_table.get(table_id)
            if conns_now is None:
                return
            conns_now.difference_update(dead)
            if not conns_now:
                self._by_table.pop(table_id, None)

    async def close_table(self, table_id: str, *, code: int = status.WS_1001_GOING_AWAY) -> None:
        async with self._lock:
            conns = self._by_table.pop(table_id, set())
        for ws in conns:
            try:
                await ws.close(code=code)
            except RuntimeError:
                # Already closed by the client.
                logger.debug("Socket for table %s was already closed", table_id)


hub = TableWebSocketHub()
