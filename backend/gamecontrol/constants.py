"""Константы: таблица, поля флагов и цепочка зависимостей."""
from typing import TypedDict


class FlagColumn(TypedDict):
    field: str
    column: str
    label: str


TABLE = "globals"

GAME_STARTED = "game_started"

FLAG_COLUMNS: list[FlagColumn] = [
    {"field": GAME_STARTED, "column": "game_has_started", "label": "Game Started"},
    {"field": "checkpoint1_completed", "column": "checkpoint1_has_completed", "label": "CP1"},
    {"field": "checkpoint2_completed", "column": "checkpoint2_has_completed", "label": "CP2"},
    {"field": "checkpoint3_completed", "column": "checkpoint3_has_completed", "label": "CP3"},
]

# Порядок важен: каждый флаг зависит от всех предыдущих.
DEPENDENCY_CHAIN = tuple(fc["field"] for fc in FLAG_COLUMNS)
CHECKPOINT_FIELDS = DEPENDENCY_CHAIN[1:]

COLUMNS = {fc["field"]: fc["column"] for fc in FLAG_COLUMNS}
FIELDS_BY_COLUMN = {fc["column"]: fc["field"] for fc in FLAG_COLUMNS}

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
