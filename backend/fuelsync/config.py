# backend/fuelsync/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fuelsync.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location (e.g. Postgres)
        "sqlite:///fuelsync.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Monetary comparisons: 1 minor unit (0.01) unless a rule says "exact"
    MONETARY_TOLERANCE_CENTS = int(os.environ.get("MONETARY_TOLERANCE_CENTS", "1"))

    # Daily cash variance classification (absolute percent of expected cash)
    VARIANCE_REVIEW_PERCENT = float(os.environ.get("VARIANCE_REVIEW_PERCENT", "2.0"))
    VARIANCE_INVESTIGATE_PERCENT = float(os.environ.get("VARIANCE_INVESTIGATE_PERCENT", "5.0"))

    # Receivables aging (age of the oldest unsettled credit, in days)
    AGING_CURRENT_MAX_DAYS = int(os.environ.get("AGING_CURRENT_MAX_DAYS", "30"))
    AGING_OVERDUE_MAX_DAYS = int(os.environ.get("AGING_OVERDUE_MAX_DAYS", "60"))

    # WARN: post and return CreditLimitWarning; BLOCK: refuse the transaction
    CREDIT_LIMIT_POLICY = os.environ.get("CREDIT_LIMIT_POLICY", "WARN").upper()

    AUTO_HANDOVER_ON_SHIFT_END = _env_bool("AUTO_HANDOVER_ON_SHIFT_END", True)
    ENFORCE_HANDOVER_SEQUENCE = _env_bool("ENFORCE_HANDOVER_SEQUENCE", True)

    MAX_REPORT_DAYS = int(os.environ.get("MAX_REPORT_DAYS", "366"))

    # Optimistic-locking / deadlock retries for ledger writes
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_SECONDS = float(os.environ.get("RETRY_BACKOFF_SECONDS", "0.1"))
