# backend/digitalshop/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/digitalshop.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///digitalshop.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    ENV = os.environ.get("APP_ENV", "development")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    PORT = _env_int("PORT", 8340)

    # Token signing. An empty secret makes every authenticated route fail with 500.
    JWT_SECRET = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_HOURS = _env_int("JWT_EXPIRES_HOURS", 24)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]

    # Read cache lifetimes (seconds)
    CACHE_SETTINGS_TTL = _env_int("CACHE_SETTINGS_TTL", 600)
    CACHE_REPORT_TTL = _env_int("CACHE_REPORT_TTL", 60)
    CACHE_DATA_TTL = _env_int("CACHE_DATA_TTL", 120)

    HOLD_DEFAULT_EXPIRY_HOURS = _env_int("HOLD_DEFAULT_EXPIRY_HOURS", 24)
    INVOICE_DUE_DAYS = _env_int("INVOICE_DUE_DAYS", 30)


class TestConfig(Config):
    TESTING = True
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_SECRET = "test-jwt-secret"
    # Fast hashing for tests only
    BCRYPT_ROUNDS = 4
