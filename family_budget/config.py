"""Configuration management for the family budget engine.

This module centralizes all configuration values including paths,
timeouts, classification thresholds and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

# Base project root - assumes this file is in family_budget/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("FAMILY_BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("FAMILY_BUDGET_DB_PATH", DATA_DIR / "family_budget.db")
).resolve()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Seconds a single ledger aggregate query may run before it is interrupted
LEDGER_TIMEOUT = _float_env("FAMILY_BUDGET_LEDGER_TIMEOUT", 5.0)

# Seconds a connection waits on a locked database before failing
DB_BUSY_TIMEOUT = _float_env("FAMILY_BUDGET_DB_BUSY_TIMEOUT", 5.0)

# Write reconciled spent values back to the budget row on single reads
REPAIR_CACHE = _bool_env("FAMILY_BUDGET_REPAIR_CACHE", False)

LOG_LEVEL = os.getenv("FAMILY_BUDGET_LOG_LEVEL", "INFO").upper()

# Progress classification boundaries (percent of budget amount)
NEAR_LIMIT_PERCENT = 80.0
CRITICAL_PERCENT = 90.0
OVER_BUDGET_PERCENT = 100.0

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)


def get_db_path() -> str:
    """Get the database path as a string."""
    return str(DB_PATH)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level or LOG_LEVEL, format=LOG_FORMAT)
