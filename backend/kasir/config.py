# backend/kasir/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().strip('"').strip("'").lower() in ("true", "1", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kasir.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kasir.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Product cache (seconds). Setting CACHE_ENABLED=false turns every read into a miss.
    CACHE_ENABLED = _env_bool("CACHE_ENABLED", True)
    CACHE_PRODUCT_TTL = int(os.environ.get("CACHE_PRODUCT_TTL", "600"))
    CACHE_LIST_TTL = int(os.environ.get("CACHE_LIST_TTL", "300"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100
