from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from .config import DB_BUSY_TIMEOUT, DB_PATH, ensure_data_directories
from .errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    amount REAL NOT NULL CHECK (amount > 0),
    type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    category_id TEXT NOT NULL,
    transaction_date TEXT NOT NULL,
    description TEXT,
    tags TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_txn_date ON transactions (transaction_date);
CREATE INDEX IF NOT EXISTS ix_txn_category_date ON transactions (category_id, transaction_date);

CREATE TABLE IF NOT EXISTS budgets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount > 0),
    spent REAL NOT NULL DEFAULT 0,
    period TEXT NOT NULL,
    category_id TEXT,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (end_date >= start_date)
);

CREATE INDEX IF NOT EXISTS ix_budget_active ON budgets (is_active);
CREATE INDEX IF NOT EXISTS ix_budget_category ON budgets (category_id);

CREATE TABLE IF NOT EXISTS budget_alerts (
    id TEXT PRIMARY KEY,
    budget_id TEXT NOT NULL REFERENCES budgets (id) ON DELETE CASCADE,
    threshold REAL NOT NULL CHECK (threshold > 0 AND threshold <= 100),
    is_triggered INTEGER NOT NULL DEFAULT 0,
    triggered_at TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (budget_id, threshold)
);

CREATE INDEX IF NOT EXISTS ix_alert_budget ON budget_alerts (budget_id);
"""

# Columns added after the first schema; (table, column, type)
_MIGRATIONS = [
    ('transactions', 'tags', 'TEXT'),
    ('transactions', 'description', 'TEXT'),
]

PathLike = Union[str, Path]


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime so that string order matches time order."""
    if value is None:
        return None
    return value.isoformat(sep='T', timespec='microseconds')


@contextmanager
def connect(db_path: Optional[PathLike] = None, *, timeout: Optional[float] = None) -> Iterator[sqlite3.Connection]:
    if db_path is None:
        ensure_data_directories()
        target = str(DB_PATH)
    else:
        target = str(db_path)
        if target != ':memory:':
            Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(target, timeout=DB_BUSY_TIMEOUT if timeout is None else timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as :class:`StoreError`."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(f"{operation} failed: {e}") from e


def interrupt_after(conn: sqlite3.Connection, deadline: Optional[float]) -> None:
    """Abort statements on ``conn`` once ``time.monotonic()`` passes ``deadline``.

    The aborted statement raises ``sqlite3.OperationalError('interrupted')``.
    """
    if deadline is None:
        conn.set_progress_handler(None, 0)
        return

    def _check() -> int:
        return 1 if time.monotonic() >= deadline else 0

    conn.set_progress_handler(_check, 1000)


def init_db(db_path: Optional[PathLike] = None) -> None:
    with connect(db_path) as conn:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
        _migrate_database(conn)


def _migrate_database(conn: sqlite3.Connection) -> None:
    """Add new columns to an existing database if they don't exist."""
    cursor = conn.cursor()
    for table, column_name, column_type in _MIGRATIONS:
        cursor.execute(f"PRAGMA table_info({table})")
        existing_columns = [row[1] for row in cursor.fetchall()]
        if column_name in existing_columns:
            continue
        try:
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column_name} {column_type}")
            logger.info("Added column %s to %s table", column_name, table)
        except sqlite3.OperationalError as e:
            if "duplicate column name" not in str(e):
                raise
    conn.commit()

