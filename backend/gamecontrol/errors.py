"""Ошибки работы с хранилищем состояния игры."""


class GameControlError(Exception):
    """Базовая ошибка."""


class FetchError(GameControlError):
    """Сбой сети или хранилища при чтении."""


class WriteError(GameControlError):
    """Сбой при вставке или обновлении строки."""


class NotFoundRecoverable(GameControlError):
    """
    Запрос вернул ноль строк.
    Не настоящая ошибка: синхронизатор в ответ создаёт запись.
    """

    def __init__(self, table: str):
        super().__init__(f"no rows in '{table}'")
        self.table = table
