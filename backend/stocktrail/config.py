# backend/stocktrail/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stocktrail.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stocktrail.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Invoice numbering: INV-<offset + counter value>
    INVOICE_SEQUENCE_NAME = os.environ.get("INVOICE_SEQUENCE_NAME", "invoice")
    INVOICE_NUMBER_OFFSET = int(os.environ.get("INVOICE_NUMBER_OFFSET", "1000"))
    INVOICE_GRACE_DAYS = int(os.environ.get("INVOICE_GRACE_DAYS", "10"))

    # Fixed reference offset (IST) used for the expiry cutoff and date search
    REFERENCE_TZ_OFFSET_MINUTES = int(os.environ.get("REFERENCE_TZ_OFFSET_MINUTES", "330"))

    EXPIRY_SWEEP_ENABLED = _env_bool("EXPIRY_SWEEP_ENABLED", False)
    EXPIRY_SWEEP_INTERVAL_SECONDS = int(os.environ.get("EXPIRY_SWEEP_INTERVAL_SECONDS", "86400"))

    # Reporting
    CHART_YEAR_START = int(os.environ.get("CHART_YEAR_START", "2025"))
    CHART_YEAR_COUNT = int(os.environ.get("CHART_YEAR_COUNT", "6"))
    SEARCH_PAGE_SIZE = int(os.environ.get("SEARCH_PAGE_SIZE", "5"))
    PROFIT_SHARE_PERCENT = int(os.environ.get("PROFIT_SHARE_PERCENT", "25"))
