# backend/stockpoint/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockpoint.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockpoint.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Checkout policy
    PAYMENT_METHODS = _csv(os.environ.get("PAYMENT_METHODS", "cash,card,digital"))
    DEFAULT_PAYMENT_METHOD = "cash"
    # Basis points applied to (total - discount) when the request omits tax_amount
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "0"))
    # Points per whole currency unit of final_amount
    LOYALTY_POINTS_PER_UNIT = int(os.environ.get("LOYALTY_POINTS_PER_UNIT", "1"))
    PRICE_OVERRIDE_ROLES = _csv(os.environ.get("PRICE_OVERRIDE_ROLES", "admin,manager"))

    # Write transactions give up waiting for a lock after this many seconds
    LOCK_TIMEOUT_SECONDS = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5"))
    COMMIT_RETRY_ATTEMPTS = int(os.environ.get("COMMIT_RETRY_ATTEMPTS", "3"))
