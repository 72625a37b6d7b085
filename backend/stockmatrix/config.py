# backend/stockmatrix/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockmatrix.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockmatrix.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Matrix generation above this many combinations is flagged to the operator
    VARIANT_COMBINATION_WARN_THRESHOLD = _env_int("VARIANT_COMBINATION_WARN_THRESHOLD", 500)

    # Bulk variant creation rejects larger batches outright
    VARIANT_BULK_MAX_ITEMS = _env_int("VARIANT_BULK_MAX_ITEMS", 500)

    # Optimistic-lock retries for stock ledger mutations
    LEDGER_RETRY_ATTEMPTS = _env_int("LEDGER_RETRY_ATTEMPTS", 3)
    LEDGER_RETRY_BACKOFF = _env_float("LEDGER_RETRY_BACKOFF", 0.1)
