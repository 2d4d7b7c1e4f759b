"""Конфигурация приложения."""
import os
from functools import lru_cache


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def normalize_database_url(url: str) -> str:
    # Heroku/Render отдают postgres://, SQLAlchemy ждёт postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


@lru_cache
def get_config():
    return type("Config", (), {
        "database_url": normalize_database_url(os.environ.get("DATABASE_URL", "").strip()),
        "debug": _flag("DEBUG", "0"),
        "allowed_origins": os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        "reset_stops_game": _flag("RESET_STOPS_GAME", "1"),
        "host": os.environ.get("HOST", "127.0.0.1"),
        "port": int(os.environ.get("PORT", "8000")),
    })()
