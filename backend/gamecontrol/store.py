"""
Хранилище состояния: общий интерфейс и in-memory реализация.
Подписчики получают образ строки после изменения.
"""
import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Awaitable, Callable

from .constants import EVENT_INSERT, EVENT_UPDATE
from .errors import NotFoundRecoverable, WriteError

logger = logging.getLogger(__name__)


class Row(dict):
    """
    Образ строки. seq: номер последнего коммита хранилища, учтённого в образе;
    по нему подписчик отбрасывает push, пришедший позже более нового.
    """

    def __init__(self, values: dict[str, Any], seq: int):
        super().__init__(values)
        self.seq = seq


ChangeCallback = Callable[[Row], Awaitable[None]]

EVENTS = (EVENT_INSERT, EVENT_UPDATE)


class Subscription:
    def __init__(self, store: "Store", table: str, event: str, callback: ChangeCallback):
        self.store = store
        self.table = table
        self.event = event
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.store._remove(self)


class Store(ABC):
    """
    Удалённое реляционное хранилище: точечный запрос, вставка,
    частичное обновление по id и подписка на изменения таблицы.
    """

    def __init__(self):
        self._subs: dict[tuple[str, str], list[Subscription]] = defaultdict(list)

    @abstractmethod
    async def select_one(self, table: str) -> Row:
        """Строка с наименьшим id; NotFoundRecoverable если таблица пуста."""

    @abstractmethod
    async def insert(self, table: str, values: dict[str, Any]) -> Row:
        ...

    @abstractmethod
    async def update(self, table: str, row_id: Any, values: dict[str, Any]) -> Row:
        """Частичное обновление; возвращает образ строки после коммита."""

    async def close(self) -> None:
        pass

    async def subscribe(self, table: str, event: str, callback: ChangeCallback) -> Subscription:
        if event not in EVENTS:
            raise ValueError(f"unsupported event: {event!r}")
        sub = Subscription(self, table, event, callback)
        self._subs[(table, event)].append(sub)
        logger.debug("subscribed to %s %s", event, table)
        return sub

    def subscriber_count(self, table: str, event: str) -> int:
        return len(self._subs.get((table, event), []))

    def _remove(self, sub: Subscription) -> None:
        subs = self._subs.get((sub.table, sub.event), [])
        if sub in subs:
            subs.remove(sub)
        logger.debug("unsubscribed from %s %s", sub.event, sub.table)

    async def _publish(self, table: str, event: str, row: Row) -> None:
        # Копия списка: подписчик может отписаться прямо в колбэке
        for sub in list(self._subs.get((table, event), [])):
            if not sub.active:
                continue
            try:
                await sub.callback(Row(row, row.seq))
            except Exception:
                logger.exception("subscriber failed on %s %s", event, table)


class MemoryStore(Store):
    """Хранилище в памяти процесса; id выдаются по возрастанию."""

    def __init__(self):
        super().__init__()
        self._tables: dict[str, dict[int, dict[str, Any]]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._seq = 0
        self._lock = asyncio.Lock()

    async def select_one(self, table: str) -> Row:
        async with self._lock:
            rows = self._tables.get(table)
            if not rows:
                raise NotFoundRecoverable(table)
            return Row(rows[min(rows)], self._seq)

    async def insert(self, table: str, values: dict[str, Any]) -> Row:
        async with self._lock:
            row = {"id": next(self._ids), **values}
            self._tables[table][row["id"]] = row
            self._seq += 1
            image = Row(row, self._seq)
        await self._publish(table, EVENT_INSERT, image)
        return image

    async def update(self, table: str, row_id: Any, values: dict[str, Any]) -> Row:
        async with self._lock:
            row = self._tables.get(table, {}).get(row_id)
            if row is None:
                raise WriteError(f"{table} row {row_id!r} not found")
            row.update(values)
            self._seq += 1
            image = Row(row, self._seq)
        await self._publish(table, EVENT_UPDATE, image)
        return image
