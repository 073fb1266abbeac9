# backend/branchstock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/branchstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///branchstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Alembic scripts live in backend/migrations
    MIGRATIONS_DIR = os.environ.get(
        "MIGRATIONS_DIR",
        os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations"),
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "reject": a delta that would take a ledger key below zero fails.
    # "allow": the delta is applied and the result is flagged as negative.
    NEGATIVE_STOCK_POLICY = os.environ.get("NEGATIVE_STOCK_POLICY", "reject")

    # Cash variance at or under this amount is auto-reconciled (100.00)
    CASH_VARIANCE_THRESHOLD_CENTS = int(os.environ.get("CASH_VARIANCE_THRESHOLD_CENTS", "10000"))

    # In-transit transfers older than this are reported as stale
    STALE_TRANSFER_DAYS = int(os.environ.get("STALE_TRANSFER_DAYS", "7"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Flat tax rate applied at checkout
    DEFAULT_TAX_RATE = float(os.environ.get("DEFAULT_TAX_RATE", "0.16"))

    TRANSFER_CONFLICT_RETRIES = int(os.environ.get("TRANSFER_CONFLICT_RETRIES", "3"))
    STOCK_SYNC_MAX_ATTEMPTS = int(os.environ.get("STOCK_SYNC_MAX_ATTEMPTS", "5"))
