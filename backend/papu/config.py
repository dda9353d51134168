# backend/papu/config.py
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

    # SQLite DB stored in backend/instance/papu.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///papu.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment / delivery proof uploads (local proof store)
    PROOF_STORAGE_DIR = os.environ.get("PROOF_STORAGE_DIR", "instance/proofs")
    PROOF_MAX_BYTES = int(os.environ.get("PROOF_MAX_BYTES", str(5 * 1024 * 1024)))

    # Notification sink (WhatsApp-style gateway). Unset URL -> messages are only logged.
    NOTIFICATION_GATEWAY_URL = os.environ.get("NOTIFICATION_GATEWAY_URL")
    NOTIFICATION_GATEWAY_TOKEN = os.environ.get("NOTIFICATION_GATEWAY_TOKEN")
    NOTIFICATION_TIMEOUT_SECONDS = float(os.environ.get("NOTIFICATION_TIMEOUT_SECONDS", "5"))
    NOTIFICATION_MAX_ATTEMPTS = int(os.environ.get("NOTIFICATION_MAX_ATTEMPTS", "3"))
    # A SENDING row older than this is assumed abandoned and may be claimed again
    NOTIFICATION_CLAIM_TIMEOUT_SECONDS = int(os.environ.get("NOTIFICATION_CLAIM_TIMEOUT_SECONDS", "300"))
    # Drain the outbox on a daemon thread after each committed operation
    NOTIFICATION_DISPATCH_ASYNC = _env_bool("NOTIFICATION_DISPATCH_ASYNC", False)
    ADMIN_NOTIFICATION_PHONE = os.environ.get("ADMIN_NOTIFICATION_PHONE")

    BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "PapuEnvios")
    # Currency of catalog prices and shipping zone costs
    ORDER_CURRENCY = os.environ.get("ORDER_CURRENCY", "USD")

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    NOTIFICATION_GATEWAY_URL = None
    NOTIFICATION_DISPATCH_ASYNC = False
    ADMIN_NOTIFICATION_PHONE = "+1 (561) 601-1675"
