"""
Обработка сообщений WebSocket: set_flag, refresh, reset.
Каждое подключение: отдельный вид со своим синхронизатором и подпиской.
"""
import json
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .config import get_config
from .constants import DEPENDENCY_CHAIN
from .errors import FetchError
from .store import Store
from .sync import StateSynchronizer
from .ws_manager import Connection, WSManager

logger = logging.getLogger(__name__)


async def _reply_error(manager: WSManager, conn: Connection, message: str) -> None:
    await manager.send(conn, {"type": "error", "message": message})


async def handle_ws_message(manager: WSManager, conn: Connection, sync: StateSynchronizer, raw: str) -> bool:
    """
    Обрабатывает одно сообщение вида.
    Возвращает False если соединение нужно закрыть.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("WS: invalid JSON from view %s: %s", conn.conn_id, e)
        await _reply_error(manager, conn, "invalid JSON")
        return True
    if not isinstance(data, dict):
        await _reply_error(manager, conn, "expected a JSON object")
        return True
    t = data.get("type")
    logger.info("WS: msg from view %s type=%s", conn.conn_id, t)
    if t == "set_flag":
        field = data.get("field")
        value = data.get("value")
        if field not in DEPENDENCY_CHAIN:
            await _reply_error(manager, conn, f"unknown field: {field}")
            return True
        if not isinstance(value, bool):
            await _reply_error(manager, conn, "value must be a boolean")
            return True
        await sync.request_change(field, value)
        return True
    if t == "refresh":
        try:
            await sync.load()
        except FetchError as e:
            # Вид уже в состоянии error, ждём повторного refresh
            logger.info("WS: refresh failed for view %s: %s", conn.conn_id, e)
        return True
    if t == "reset":
        if data.get("confirmed") is not True:
            await manager.send(conn, {
                "type": "confirm_reset",
                "message": "Are you sure you want to reset all checkpoints?",
            })
            return True
        await sync.reset()
        return True
    await _reply_error(manager, conn, f"unknown message type: {t}")
    return True


async def ws_view_loop(ws: WebSocket, manager: WSManager, store: Store) -> None:
    """
    Подписка берётся при подключении и отпускается при отключении.
    Первым делом load(), дальше цикл приёма сообщений.
    """
    config = get_config()
    conn = None
    try:
        await ws.accept()
        conn = manager.connect(ws)
        logger.info("WS: accepted view %s", conn.conn_id)

        async def push_state(payload):
            await manager.send(conn, payload)

        async def push_toast(level, message):
            await manager.send(conn, {"type": "toast", "level": level, "message": message})

        sync = StateSynchronizer(
            store,
            on_state=push_state,
            notify=push_toast,
            reset_stops_game=config.reset_stops_game,
        )
        async with sync:
            try:
                await sync.load()
            except FetchError:
                logger.info("WS: initial load failed for view %s", conn.conn_id)
            while True:
                msg = await ws.receive_text()
                if not await handle_ws_message(manager, conn, sync, msg):
                    break
    except WebSocketDisconnect as e:
        logger.info("WS: client disconnected code=%s reason=%s view=%s", e.code, e.reason or "", conn and conn.conn_id)
    except Exception as e:
        logger.exception("WS: error view=%s: %s", conn and conn.conn_id, e)
    finally:
        if conn:
            manager.disconnect(conn)
            logger.info("WS: disconnected view %s", conn.conn_id)
