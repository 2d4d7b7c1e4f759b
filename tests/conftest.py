import itertools

import pytest

from gamecontrol.errors import FetchError, WriteError
from gamecontrol.state import GameState
from gamecontrol.store import MemoryStore


class FlakyStore(MemoryStore):
    """MemoryStore, которому можно приказать упасть на чтении или записи."""

    def __init__(self):
        super().__init__()
        self.fail_select = False
        self.fail_insert = False
        self.fail_update = False
        self.updates = []

    async def select_one(self, table):
        if self.fail_select:
            raise FetchError("connection refused")
        return await super().select_one(table)

    async def insert(self, table, values):
        if self.fail_insert:
            raise WriteError("insert rejected")
        return await super().insert(table, values)

    async def update(self, table, row_id, values):
        self.updates.append(dict(values))
        if self.fail_update:
            raise WriteError("update rejected")
        return await super().update(table, row_id, values)


def all_states():
    """Все 16 комбинаций флагов."""
    for flags in itertools.product([False, True], repeat=4):
        yield GameState(1, *flags)


@pytest.fixture
def store():
    return FlakyStore()
