# backend/retailpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shift reconciliation thresholds (currency units)
    SHIFT_CASH_DIFF_APPROVAL_THRESHOLD = _env_int("SHIFT_CASH_DIFF_APPROVAL_THRESHOLD", 100000)
    SHIFT_CASH_DIFF_LARGE_THRESHOLD = _env_int("SHIFT_CASH_DIFF_LARGE_THRESHOLD", 100000)
    SHIFT_BIG_DISCOUNT_THRESHOLD = _env_int("SHIFT_BIG_DISCOUNT_THRESHOLD", 100000)

    # Refunds above this need a supervisor or admin
    REFUND_APPROVAL_THRESHOLD = _env_int("REFUND_APPROVAL_THRESHOLD", 500000)

    SESSION_TTL_HOURS = _env_int("SESSION_TTL_HOURS", 24)

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
