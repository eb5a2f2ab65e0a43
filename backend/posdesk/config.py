# backend/posdesk/config.py
from __future__ import annotations
import os


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Reception desk returns
    RETURN_SEARCH_LIMIT = int(os.environ.get("RETURN_SEARCH_LIMIT", "50"))
    RECEIPT_PREFIX = os.environ.get("RECEIPT_PREFIX", "RCP")
    RETURN_NUMBER_PREFIX = os.environ.get("RETURN_NUMBER_PREFIX", "RET")

    CORS_ALLOWED_ORIGINS = _split_csv(os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ))
