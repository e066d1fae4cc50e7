# backend/temple/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/temple.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///temple.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Watchdog for whole requests (504) and per-statement database timeout.
    # 0 disables either one.
    REQUEST_TIMEOUT_SECONDS = _env_int("REQUEST_TIMEOUT_SECONDS", 10)
    REQUEST_WORKER_THREADS = _env_int("REQUEST_WORKER_THREADS", 16)
    QUERY_TIMEOUT_MS = _env_int("QUERY_TIMEOUT_MS", 8000)

    # Receipt numbers are zero-padded to this many digits ("0001")
    RECEIPT_NUMBER_WIDTH = _env_int("RECEIPT_NUMBER_WIDTH", 4)
    SEED_SEQUENCES_ON_STARTUP = _env_bool("SEED_SEQUENCES_ON_STARTUP", True)

    CORS_ORIGINS = os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor for new password hashes
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
