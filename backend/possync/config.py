# backend/possync/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Embedded local store; one SQLite file per till
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///possync.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote authority. Empty URL disables the sync engine entirely.
    SYNC_ENDPOINT_URL = os.environ.get("SYNC_ENDPOINT_URL", "")
    SYNC_API_KEY = os.environ.get("SYNC_API_KEY", "")
    SYNC_DEBOUNCE_SECONDS = float(os.environ.get("SYNC_DEBOUNCE_SECONDS", "2.0"))
    SYNC_TIMEOUT_SECONDS = float(os.environ.get("SYNC_TIMEOUT_SECONDS", "10.0"))
    # 0 disables the background retry after a failed flush
    SYNC_RETRY_INTERVAL_SECONDS = float(os.environ.get("SYNC_RETRY_INTERVAL_SECONDS", "60.0"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
    VAT_RATE = float(os.environ.get("VAT_RATE", "0.20"))

    # Presentation layer dev servers allowed to call the JSON API
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
