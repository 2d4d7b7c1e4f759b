"""
Правила зависимостей между флагами.

Цепочка game_started -> checkpoint1 -> checkpoint2 -> checkpoint3.
Выключение флага выключает все флаги после него в цепочке.
Включение ничего не форсирует: порядок обеспечивает вид,
отключая кнопки, у которых не выполнены предпосылки.
"""
from dataclasses import replace

from .constants import CHECKPOINT_FIELDS, DEPENDENCY_CHAIN, GAME_STARTED
from .state import GameState


def _position(field: str) -> int:
    try:
        return DEPENDENCY_CHAIN.index(field)
    except ValueError:
        raise ValueError(f"unknown flag: {field!r}") from None


def expand_change(field: str, value: bool) -> dict[str, bool]:
    """
    Запрос (field, value) -> минимальный write-set.
    При value=False добавляются все зависимые флаги со значением False.
    """
    pos = _position(field)
    writes = {field: bool(value)}
    if not value:
        for dependent in DEPENDENCY_CHAIN[pos + 1:]:
            writes[dependent] = False
    return writes


def reset_write_set(stop_game: bool = True) -> dict[str, bool]:
    """Сброс всех чекпоинтов одним write-set; stop_game=True сбрасывает и старт игры."""
    writes = {f: False for f in CHECKPOINT_FIELDS}
    if stop_game:
        writes = {GAME_STARTED: False, **writes}
    return writes


def apply_write_set(state: GameState, writes: dict[str, bool]) -> GameState:
    for field in writes:
        _position(field)
    return replace(state, **writes)


def is_consistent(state: GameState) -> bool:
    """Завершённые чекпоинты образуют префикс цепочки."""
    for prev, cur in zip(DEPENDENCY_CHAIN, DEPENDENCY_CHAIN[1:]):
        if state.flag(cur) and not state.flag(prev):
            return False
    return True


def is_enabled(state: GameState, field: str) -> bool:
    """Можно ли включить field: все флаги раньше в цепочке уже True."""
    pos = _position(field)
    return all(state.flag(f) for f in DEPENDENCY_CHAIN[:pos])


def progress(state: GameState) -> int:
    if not state.game_started:
        return 0
    return round(state.completed_checkpoints() / len(CHECKPOINT_FIELDS) * 100)


def controls(state: GameState | None, updating: bool = False) -> dict[str, bool]:
    """Какие элементы управления активны. Пока идёт запись, все выключены."""
    if state is None:
        return {f: False for f in DEPENDENCY_CHAIN} | {"refresh": not updating, "reset": False}
    result = {f: not updating and is_enabled(state, f) for f in DEPENDENCY_CHAIN}
    result["refresh"] = not updating
    result["reset"] = not updating and state.game_started
    return result
