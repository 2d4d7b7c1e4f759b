"""
Синхронизатор состояния одного вида (одного подключения).

Держит локальную копию записи, загружает её, применяет push-уведомления
хранилища и отправляет write-set'ы. Источник истины: хранилище,
любой push перезаписывает локальную копию целиком.
"""
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from . import policy
from .constants import CHECKPOINT_FIELDS, EVENT_UPDATE, TABLE
from .errors import FetchError, NotFoundRecoverable, WriteError
from .state import GameState, default_row, to_columns
from .store import Store, Subscription

logger = logging.getLogger(__name__)

StateListener = Callable[[dict[str, Any]], Awaitable[None]]
Notifier = Callable[[str, str], Awaitable[None]]


class ViewStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    EMPTY = "empty"


async def _ignore_state(payload: dict[str, Any]) -> None:
    pass


async def _ignore_notice(level: str, message: str) -> None:
    pass


class StateSynchronizer:
    def __init__(
        self,
        store: Store,
        on_state: StateListener | None = None,
        notify: Notifier | None = None,
        reset_stops_game: bool = True,
    ):
        self.store = store
        self.on_state = on_state or _ignore_state
        self.notify = notify or _ignore_notice
        self.reset_stops_game = reset_stops_game
        self.record: GameState | None = None
        self.status = ViewStatus.LOADING
        self.error: str | None = None
        self.updating = False
        self._subscription: Subscription | None = None
        # Номер самого нового коммита, уже отражённого в record
        self._seen_seq = 0

    async def __aenter__(self) -> "StateSynchronizer":
        self._subscription = await self.store.subscribe(TABLE, EVENT_UPDATE, self.on_remote_change)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def snapshot(self) -> dict[str, Any]:
        """Payload game_state для отправки виду."""
        r = self.record
        return {
            "type": "game_state",
            "status": self.status.value,
            "error": self.error,
            "updating": self.updating,
            "record": r.to_dict() if r else None,
            "controls": policy.controls(r, self.updating),
            "progress": policy.progress(r) if r else 0,
            "completed": r.completed_checkpoints() if r else 0,
            "total": len(CHECKPOINT_FIELDS),
        }

    async def _emit(self) -> None:
        await self.on_state(self.snapshot())

    async def _fail(self, message: str) -> None:
        self.status = ViewStatus.ERROR
        self.error = message
        await self._emit()

    async def load(self) -> GameState:
        """
        Загрузить запись; если её нет, создать со всеми флагами False.
        При сбое вид переходит в ERROR и поднимается FetchError.
        """
        self.status = ViewStatus.LOADING
        await self._emit()
        try:
            try:
                row = await self.store.select_one(TABLE)
            except NotFoundRecoverable:
                logger.info("no %s row yet, creating one", TABLE)
                self.status = ViewStatus.EMPTY
                await self._emit()
                await self._create()
                # Два вида могли создать запись одновременно: все берут строку с наименьшим id
                row = await self.store.select_one(TABLE)
        except FetchError as e:
            logger.error("Error fetching %s: %s", TABLE, e)
            if self.status is not ViewStatus.ERROR:
                await self._fail("Failed to load game state")
            raise
        self._accept(row)
        self.status = ViewStatus.READY
        self.error = None
        await self._emit()
        return self.record

    async def _create(self) -> dict[str, Any]:
        try:
            row = await self.store.insert(TABLE, default_row())
        except WriteError as e:
            logger.error("Error creating %s entry: %s", TABLE, e)
            await self._fail("Failed to initialize game state")
            raise FetchError("failed to initialize game state") from e
        await self.notify("success", "Game state initialized successfully")
        return row

    async def request_change(self, field: str, value: bool) -> bool:
        writes = policy.expand_change(field, value)
        return await self._write(writes, "Game state updated successfully", "Failed to update game state")

    async def reset(self) -> bool:
        writes = policy.reset_write_set(self.reset_stops_game)
        return await self._write(writes, "All checkpoints have been reset", "Failed to reset checkpoints")

    async def _write(self, writes: dict[str, bool], ok_message: str, fail_message: str) -> bool:
        if self.record is None:
            logger.warning("write %s ignored: no record loaded", writes)
            return False
        if self.updating:
            logger.warning("write %s ignored: another write in flight", writes)
            return False
        self.updating = True
        await self._emit()
        try:
            image = await self.store.update(TABLE, self.record.id, to_columns(writes))
        except WriteError as e:
            logger.error("Error updating %s with %s: %s", TABLE, writes, e)
            await self.notify("error", fail_message)
            await self._resync()
            return False
        else:
            # Образ после коммита; если уже пришёл push новее, он останется
            self._accept(image)
            await self.notify("success", ok_message)
            return True
        finally:
            self.updating = False
            await self._emit()

    async def _resync(self) -> None:
        # Повторное чтение вместо повтора записи: неизвестно, где запись упала
        try:
            await self.load()
        except FetchError as e:
            logger.warning("resync after failed write failed: %s", e)

    def _accept(self, row: dict[str, Any]) -> bool:
        """Заменить record образом строки, если он не старше уже принятого."""
        seq = getattr(row, "seq", None)
        if seq is not None:
            if seq < self._seen_seq:
                logger.debug("stale row image seq=%s (seen %s) dropped", seq, self._seen_seq)
                return False
            self._seen_seq = seq
        self.record = GameState.from_row(row)
        return True

    async def on_remote_change(self, row: dict[str, Any]) -> None:
        """Push из хранилища: последняя запись побеждает, без слияния."""
        if self.record is not None and row.get("id") != self.record.id:
            logger.debug("push for %s row %s ignored", TABLE, row.get("id"))
            return
        if self._accept(row):
            await self._emit()
