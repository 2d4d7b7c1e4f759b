"""
Менеджер WebSocket: подключённые виды панели и отправка им сообщений.
"""
import itertools
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, ws: WebSocket, conn_id: int):
        self.ws = ws
        self.conn_id = conn_id
        self.alive = True


class WSManager:
    def __init__(self):
        self._by_id: dict[int, Connection] = {}
        self._ids = itertools.count(1)

    @property
    def count(self) -> int:
        return len(self._by_id)

    def connect(self, ws: WebSocket) -> Connection:
        conn = Connection(ws, next(self._ids))
        self._by_id[conn.conn_id] = conn
        return conn

    def disconnect(self, conn: Connection) -> None:
        conn.alive = False
        self._by_id.pop(conn.conn_id, None)

    async def send(self, conn: Connection, payload: dict[str, Any]) -> bool:
        if not conn.alive:
            return False
        try:
            await conn.ws.send_json(payload)
            return True
        except Exception as e:
            logger.warning("send to view %s: %s", conn.conn_id, e)
            self.disconnect(conn)
            return False
