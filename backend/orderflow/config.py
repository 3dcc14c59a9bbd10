# backend/orderflow/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/orderflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("ORDERFLOW_LOG_LEVEL", "INFO")

    # When enabled, a failed stock/credit side effect aborts the whole order
    # operation instead of being logged and recorded as a FAILED intent.
    ORDERFLOW_STRICT_LEDGER = _env_flag("ORDERFLOW_STRICT_LEDGER")

    # Attempts used by run_with_retry for order operations.
    ORDERFLOW_RETRY_ATTEMPTS = int(os.environ.get("ORDERFLOW_RETRY_ATTEMPTS", "3"))

    CORS_ALLOWED_ORIGINS = (
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    )
