# backend/kasir/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kasir.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kasir.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calendar used to scope daily transaction numbers (IANA zone name)
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "12"))
    SESSION_IDLE_TIMEOUT_MINUTES = int(os.environ.get("SESSION_IDLE_TIMEOUT_MINUTES", "120"))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]

    # First-boot bootstrap: create tables and default accounts if none exist
    SEED_ON_STARTUP = _env_flag("SEED_ON_STARTUP", False)
    SEED_ADMIN_USERNAME = os.environ.get("SEED_ADMIN_USERNAME", "admin")
    SEED_ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "admin12345")
    SEED_CASHIER_USERNAME = os.environ.get("SEED_CASHIER_USERNAME", "kasir")
    SEED_CASHIER_PASSWORD = os.environ.get("SEED_CASHIER_PASSWORD", "kasir12345")

    # Checkout rules against the live catalog (both off: line items are trusted snapshots)
    VALIDATE_CATALOG_REFERENCES = _env_flag("VALIDATE_CATALOG_REFERENCES", False)
    DECREMENT_STOCK_ON_SALE = _env_flag("DECREMENT_STOCK_ON_SALE", False)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SEED_ON_STARTUP = False
    BUSINESS_TIMEZONE = "UTC"
    VALIDATE_CATALOG_REFERENCES = False
    DECREMENT_STOCK_ON_SALE = False
