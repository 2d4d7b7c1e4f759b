"""
Запись GameState: единственная строка таблицы globals.
"""
from dataclasses import asdict, dataclass
from typing import Any

from .constants import CHECKPOINT_FIELDS, COLUMNS, FIELDS_BY_COLUMN


@dataclass(frozen=True)
class GameState:
    id: Any
    game_started: bool = False
    checkpoint1_completed: bool = False
    checkpoint2_completed: bool = False
    checkpoint3_completed: bool = False

    @classmethod
    def from_row(cls, row: dict) -> "GameState":
        """
        Строка хранилища (ключи: имена колонок) -> GameState.
        Отсутствующая колонка чекпоинта считается False (вариант с двумя чекпоинтами).
        """
        values = {
            FIELDS_BY_COLUMN[col]: bool(v)
            for col, v in row.items()
            if col in FIELDS_BY_COLUMN and v is not None
        }
        return cls(id=row["id"], **values)

    def flag(self, field: str) -> bool:
        return getattr(self, field)

    def completed_checkpoints(self) -> int:
        return sum(1 for f in CHECKPOINT_FIELDS if self.flag(f))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def to_columns(writes: dict[str, bool]) -> dict[str, bool]:
    """Write-set по именам полей -> по именам колонок."""
    return {COLUMNS[f]: v for f, v in writes.items()}


def default_row() -> dict[str, bool]:
    """Значения для новой записи: все флаги False."""
    return {col: False for col in COLUMNS.values()}
