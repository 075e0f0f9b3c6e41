# backend/procure/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///procure.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Purchase order defaults
    PO_TAX_RATE_BPS = int(os.environ.get("PO_TAX_RATE_BPS", "2000"))  # 2000 = 20%
    PO_NUMBER_PREFIX = os.environ.get("PO_NUMBER_PREFIX", "PO")

    # Retries for optimistic-lock / sequence conflicts inside workflows
    WORKFLOW_RETRY_ATTEMPTS = int(os.environ.get("WORKFLOW_RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
