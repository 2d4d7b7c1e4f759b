"""SqlStore поверх SQLite."""
import asyncio

import pytest
from sqlalchemy import create_engine, text

from gamecontrol.config import normalize_database_url
from gamecontrol.constants import EVENT_UPDATE, TABLE
from gamecontrol.errors import NotFoundRecoverable, WriteError
from gamecontrol.sql_store import SqlStore
from gamecontrol.store import Store
from gamecontrol.state import GameState
from gamecontrol.sync import StateSynchronizer, ViewStatus


@pytest.fixture
def sql_store(tmp_path):
    return SqlStore(f"sqlite:///{tmp_path / 'gamecontrol.db'}")


class TestSqlStore:
    def test_empty_table(self, sql_store):
        with pytest.raises(NotFoundRecoverable):
            asyncio.run(sql_store.select_one(TABLE))

    def test_insert_uses_column_defaults(self, sql_store):
        async def scenario():
            row = await sql_store.insert(TABLE, {"game_has_started": True})
            assert row["id"] is not None
            assert row["game_has_started"] is True
            assert row["checkpoint3_has_completed"] is False
            assert await sql_store.select_one(TABLE) == row

        asyncio.run(scenario())

    def test_update_pushes_row_image(self, sql_store):
        async def scenario():
            row = await sql_store.insert(TABLE, {})
            pushed = []

            async def on_update(image):
                pushed.append(image)

            sub = await sql_store.subscribe(TABLE, EVENT_UPDATE, on_update)
            image = await sql_store.update(TABLE, row["id"], {"game_has_started": True})
            assert image["game_has_started"] is True
            assert pushed == [image]

            sub.unsubscribe()
            sub.unsubscribe()
            await sql_store.update(TABLE, row["id"], {"game_has_started": False})
            assert len(pushed) == 1

        asyncio.run(scenario())

    def test_update_unknown_row(self, sql_store):
        with pytest.raises(WriteError):
            asyncio.run(sql_store.update(TABLE, 999, {"game_has_started": True}))

    def test_failing_subscriber_does_not_break_write(self, sql_store):
        async def scenario():
            row = await sql_store.insert(TABLE, {})
            pushed = []

            async def broken(image):
                raise RuntimeError("view gone")

            async def ok(image):
                pushed.append(image)

            await sql_store.subscribe(TABLE, EVENT_UPDATE, broken)
            await sql_store.subscribe(TABLE, EVENT_UPDATE, ok)
            await sql_store.update(TABLE, row["id"], {"checkpoint1_has_completed": True})
            assert len(pushed) == 1

        asyncio.run(scenario())

    def test_in_memory_url(self):
        async def scenario():
            store = SqlStore("sqlite://")
            sync = StateSynchronizer(store)
            record = await sync.load()
            assert record == GameState(record.id)
            await sync.request_change("game_started", True)
            assert (await store.select_one(TABLE))["game_has_started"] is True
            await store.close()

        asyncio.run(scenario())

    def test_unsupported_event(self, sql_store):
        async def noop(image):
            pass

        with pytest.raises(ValueError):
            asyncio.run(sql_store.subscribe(TABLE, "DELETE", noop))


def test_postgres_url_normalized():
    assert normalize_database_url("postgres://u@h/db") == "postgresql://u@h/db"
    assert normalize_database_url("sqlite://") == "sqlite://"


class TestCommitSequence:
    def test_seq_follows_commits(self, sql_store):
        async def scenario():
            row = await sql_store.insert(TABLE, {})
            first = await sql_store.update(TABLE, row["id"], {"game_has_started": True})
            second = await sql_store.update(TABLE, row["id"], {"checkpoint1_has_completed": True})
            assert row.seq < first.seq < second.seq
            assert (await sql_store.select_one(TABLE)).seq == second.seq

        asyncio.run(scenario())


@pytest.fixture
def two_checkpoint_url(tmp_path):
    """Таблица исходной схемы: без checkpoint3_has_completed."""
    url = f"sqlite:///{tmp_path / 'two_checkpoints.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE globals ("
            "id INTEGER PRIMARY KEY, "
            "game_has_started BOOLEAN NOT NULL DEFAULT 0, "
            "checkpoint1_has_completed BOOLEAN NOT NULL DEFAULT 0, "
            "checkpoint2_has_completed BOOLEAN NOT NULL DEFAULT 0)"
        ))
    engine.dispose()
    return url


class TestTwoCheckpointTable:
    def test_empty_table_gets_created_row(self, two_checkpoint_url):
        async def scenario():
            store = SqlStore(two_checkpoint_url)
            sync = StateSynchronizer(store)
            record = await sync.load()
            assert record == GameState(record.id)
            assert sync.status is ViewStatus.READY
            await store.close()

        asyncio.run(scenario())

    def test_existing_row_loads_and_updates(self, two_checkpoint_url):
        async def scenario():
            store = SqlStore(two_checkpoint_url)
            await store.insert(TABLE, {
                "game_has_started": True,
                "checkpoint1_has_completed": True,
                "checkpoint2_has_completed": True,
            })
            sync = StateSynchronizer(store)
            record = await sync.load()
            assert record.checkpoint2_completed
            assert record.checkpoint3_completed is False
            assert sync.snapshot()["progress"] == 67

            # Каскад пишет checkpoint3=False: для отсутствующей колонки это no-op
            assert await sync.request_change("checkpoint1_completed", False)
            assert sync.record == GameState(record.id, game_started=True)
            assert await sync.reset()
            assert sync.record == GameState(record.id)
            await store.close()

        asyncio.run(scenario())

    def test_setting_missing_checkpoint_fails(self, two_checkpoint_url):
        async def scenario():
            store = SqlStore(two_checkpoint_url)
            row = await store.insert(TABLE, {"game_has_started": True})
            with pytest.raises(WriteError):
                await store.update(TABLE, row["id"], {"checkpoint3_has_completed": True})

            toasts = []

            async def notify(level, message):
                toasts.append((level, message))

            sync = StateSynchronizer(store, notify=notify)
            await sync.load()
            assert await sync.request_change("checkpoint3_completed", True) is False
            assert ("error", "Failed to update game state") in toasts
            assert sync.record.checkpoint3_completed is False
            await store.close()

        asyncio.run(scenario())


def test_store_interface_is_abstract():
    with pytest.raises(TypeError):
        Store()
