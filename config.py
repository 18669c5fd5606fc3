"""Configuration for the prediction league."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'predictor.db'}",
)


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_float(value: str, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# Seconds a SQLite connection waits for another writer's lock
DATABASE_TIMEOUT = max(0.0, _parse_float(os.getenv("DATABASE_TIMEOUT", ""), 30.0))

# Max row writes in flight at once during a scoring step
SCORING_WRITE_CONCURRENCY = max(1, _parse_int(os.getenv("SCORING_WRITE_CONCURRENCY", ""), 8))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Web API
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = _parse_int(os.getenv("API_PORT", ""), 8000)
