# backend/posledger/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///posledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sales tax applied to the discounted sale amount, in basis points (825 = 8.25%)
    SALES_TAX_RATE_BPS = _int_env("SALES_TAX_RATE_BPS", 0)

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _int_env("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_MINUTES = _int_env("SESSION_IDLE_TIMEOUT_MINUTES", 120)

    # Transport-level retry for transient storage errors (deadlocks, stale versions)
    DB_RETRY_ATTEMPTS = _int_env("DB_RETRY_ATTEMPTS", 3)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Comma-separated browser origins allowed to call the API
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    )


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SALES_TAX_RATE_BPS = 0
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "DEBUG"
