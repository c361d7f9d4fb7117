# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Stock overrides. Both stay off unless a tenant deployment opts in.
    ALLOW_NEGATIVE_STOCK = _env_flag("ALLOW_NEGATIVE_STOCK")
    ALLOW_BACKORDER = _env_flag("ALLOW_BACKORDER")

    # Receiving and checkout may touch many rows (line items x serials)
    RECEIVE_TRANSACTION_TIMEOUT_MS = _env_int("RECEIVE_TRANSACTION_TIMEOUT_MS", 30000)
    CHECKOUT_TRANSACTION_TIMEOUT_MS = _env_int("CHECKOUT_TRANSACTION_TIMEOUT_MS", 30000)

    # Document numbering: PO-000001, SO-000001
    PO_NUMBER_PREFIX = os.environ.get("PO_NUMBER_PREFIX", "PO")
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "SO")
    DOCUMENT_NUMBER_PAD = _env_int("DOCUMENT_NUMBER_PAD", 6)

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")

    LOW_STOCK_NOTIFICATIONS_ENABLED = _env_flag("LOW_STOCK_NOTIFICATIONS_ENABLED", True)
