# backend/tyrepos/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Bearer tokens are signed with JWT_SECRET (falls back to SECRET_KEY)
    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_EXPIRES_HOURS = int(os.environ.get("JWT_EXPIRES_HOURS", "24"))

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tyrepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SMTP delivery for scheduled reports
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", os.environ.get("MAIL_USERNAME"))
    MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND", False)

    BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "Ruhunu Tyre House")
    CURRENCY_LABEL = os.environ.get("CURRENCY_LABEL", "Rs.")

    # Wall-clock zone for schedules, "today" and hour-of-day buckets
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Colombo")

    REPORT_SCHEDULER_ENABLED = _env_flag("REPORT_SCHEDULER_ENABLED", True)
    # When False jobs are registered but only fired via run_due()/fire()
    REPORT_SCHEDULER_THREADS = _env_flag("REPORT_SCHEDULER_THREADS", True)

    LOYALTY_POINT_UNIT = int(os.environ.get("LOYALTY_POINT_UNIT", "100"))
    LOW_STOCK_DEFAULT_LIMIT = int(os.environ.get("LOW_STOCK_DEFAULT_LIMIT", "10"))
