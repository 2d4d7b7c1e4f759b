"""
Хранилище поверх SQLAlchemy Core (SQLite, PostgreSQL и т.д.).
Блокирующие вызовы выполняются в отдельном потоке.
"""
import asyncio
import logging
import threading
from typing import Any

from sqlalchemy import Boolean, Column, Integer, MetaData, Table, create_engine, false, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .config import normalize_database_url
from .constants import COLUMNS, EVENT_INSERT, EVENT_UPDATE, TABLE
from .errors import FetchError, NotFoundRecoverable, WriteError
from .store import Row, Store

logger = logging.getLogger(__name__)

metadata = MetaData()

globals_table = Table(
    TABLE,
    metadata,
    Column("id", Integer, primary_key=True),
    *[
        Column(col, Boolean, nullable=False, default=False, server_default=false())
        for col in COLUMNS.values()
    ],
)


class SqlStore(Store):
    """
    Таблица создаётся, если её нет; существующая читается как есть
    (например, вариант без checkpoint3_has_completed). Отсутствующая
    колонка читается как False: запись в неё False пропускается, True даёт WriteError.
    """

    def __init__(self, url: str):
        super().__init__()
        url = normalize_database_url(url)
        kwargs: dict[str, Any] = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # Одна общая in-memory база на все потоки
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **kwargs)
        metadata.create_all(self.engine)
        self._tables = {TABLE: Table(TABLE, MetaData(), autoload_with=self.engine)}
        # Коммит и номер seq меняются вместе под этой блокировкой
        self._lock = threading.Lock()
        self._seq = 0
        missing = set(COLUMNS.values()) - set(self._tables[TABLE].c.keys())
        if missing:
            logger.info("%s has no columns %s, reading them as false", TABLE, sorted(missing))
        logger.info("SQL store ready: %s", self.engine.url.render_as_string(hide_password=True))

    def _table(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError:
            raise ValueError(f"unknown table: {name!r}") from None

    def _writable(self, t: Table, values: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for col, value in values.items():
            if col in t.c:
                result[col] = value
            elif value:
                raise WriteError(f"{t.name} has no column {col!r}")
        return result

    def _select_one(self, table: str) -> Row:
        t = self._table(table)
        try:
            with self._lock, self.engine.connect() as conn:
                row = conn.execute(select(t).order_by(t.c.id).limit(1)).mappings().first()
                seq = self._seq
        except SQLAlchemyError as e:
            raise FetchError(f"select from {table} failed: {e}") from e
        if row is None:
            raise NotFoundRecoverable(table)
        return Row(row, seq)

    def _insert(self, table: str, values: dict[str, Any]) -> Row:
        t = self._table(table)
        values = self._writable(t, values)
        try:
            with self._lock:
                with self.engine.begin() as conn:
                    stmt = t.insert().values(**values) if values else t.insert()
                    result = conn.execute(stmt)
                    row_id = result.inserted_primary_key[0]
                    row = conn.execute(select(t).where(t.c.id == row_id)).mappings().one()
                self._seq += 1
                return Row(row, self._seq)
        except SQLAlchemyError as e:
            raise WriteError(f"insert into {table} failed: {e}") from e

    def _update(self, table: str, row_id: Any, values: dict[str, Any]) -> Row:
        t = self._table(table)
        values = self._writable(t, values)
        try:
            with self._lock:
                with self.engine.begin() as conn:
                    if values:
                        result = conn.execute(update(t).where(t.c.id == row_id).values(**values))
                        found = result.rowcount > 0
                    else:
                        found = conn.execute(select(t.c.id).where(t.c.id == row_id)).first() is not None
                    if not found:
                        raise WriteError(f"{table} row {row_id!r} not found")
                    row = conn.execute(select(t).where(t.c.id == row_id)).mappings().one()
                self._seq += 1
                return Row(row, self._seq)
        except SQLAlchemyError as e:
            raise WriteError(f"update of {table} failed: {e}") from e

    async def select_one(self, table: str) -> Row:
        return await asyncio.to_thread(self._select_one, table)

    async def insert(self, table: str, values: dict[str, Any]) -> Row:
        row = await asyncio.to_thread(self._insert, table, values)
        await self._publish(table, EVENT_INSERT, row)
        return row

    async def update(self, table: str, row_id: Any, values: dict[str, Any]) -> Row:
        row = await asyncio.to_thread(self._update, table, row_id, values)
        await self._publish(table, EVENT_UPDATE, row)
        return row

    async def close(self) -> None:
        self.engine.dispose()
