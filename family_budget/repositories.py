"""SQLite-backed stores for budgets, alerts and transactions.

Every method opens its own short-lived connection, so one store instance can
be shared between threads. Driver failures surface as
:class:`~family_budget.errors.StoreError`.

The budget store never writes ``spent`` from :meth:`SqliteBudgetStore.update`;
the cached total only changes through :meth:`SqliteBudgetStore.increment_spent`
(a single ``UPDATE ... SET spent = spent + ?`` statement) or
:meth:`SqliteBudgetStore.set_spent`.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import List, Optional

from .db import PathLike, connect, store_errors, to_iso
from .domain import (
    UNTRIGGERED,
    Alert,
    Budget,
    Period,
    Transaction,
    TransactionType,
    Triggered,
    parse_timestamp,
)
from .errors import AlertNotFoundError, BudgetNotFoundError, TransactionNotFoundError

_BUDGET_COLUMNS = (
    "id, name, amount, spent, period, category_id, start_date, end_date, "
    "is_active, created_at, updated_at"
)
_ALERT_COLUMNS = "id, budget_id, threshold, is_triggered, triggered_at, created_at"
_TXN_COLUMNS = (
    "id, amount, type, category_id, transaction_date, description, tags, "
    "created_at, updated_at"
)


def _budget_from_row(row: sqlite3.Row) -> Budget:
    return Budget(
        id=row['id'],
        name=row['name'],
        amount=float(row['amount']),
        spent=float(row['spent'] or 0.0),
        period=Period(row['period']),
        category_id=row['category_id'],
        start_date=parse_timestamp(row['start_date']),
        end_date=parse_timestamp(row['end_date']),
        is_active=bool(row['is_active']),
        created_at=parse_timestamp(row['created_at']),
        updated_at=parse_timestamp(row['updated_at']),
    )


def _alert_from_row(row: sqlite3.Row) -> Alert:
    triggered_at = parse_timestamp(row['triggered_at'])
    if row['is_triggered']:
        # rows written before triggered_at existed fall back to creation time
        state = Triggered(at=triggered_at or parse_timestamp(row['created_at']))
    else:
        state = UNTRIGGERED
    return Alert(
        id=row['id'],
        budget_id=row['budget_id'],
        threshold=float(row['threshold']),
        state=state,
        created_at=parse_timestamp(row['created_at']),
    )


def _transaction_from_row(row: sqlite3.Row) -> Transaction:
    tags = json.loads(row['tags']) if row['tags'] else []
    return Transaction(
        id=row['id'],
        amount=float(row['amount']),
        type=TransactionType(row['type']),
        category_id=row['category_id'],
        date=parse_timestamp(row['transaction_date']),
        description=row['description'] or "",
        tags=list(tags),
        created_at=parse_timestamp(row['created_at']),
        updated_at=parse_timestamp(row['updated_at']),
    )


class SqliteBudgetStore:
    """CRUD and aggregate helpers over the ``budgets`` table."""

    def __init__(self, db_path: Optional[PathLike] = None):
        self.db_path = db_path

    def create(self, budget: Budget) -> Budget:
        sql = (
            f"INSERT INTO budgets ({_BUDGET_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        )
        params = (
            budget.id,
            budget.name,
            budget.amount,
            budget.spent,
            budget.period.value,
            budget.category_id,
            to_iso(budget.start_date),
            to_iso(budget.end_date),
            int(budget.is_active),
            to_iso(budget.created_at),
            to_iso(budget.updated_at),
        )
        with store_errors("create budget"), connect(self.db_path) as conn:
            conn.execute(sql, params)
            conn.commit()
        return budget

    def get_by_id(self, budget_id: str) -> Budget:
        with store_errors("get budget"), connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_BUDGET_COLUMNS} FROM budgets WHERE id = ?", (budget_id,)
            ).fetchone()
        if row is None:
            raise BudgetNotFoundError(budget_id)
        return _budget_from_row(row)

    def _select(self, where: str = "", params: tuple = ()) -> List[Budget]:
        sql = f"SELECT {_BUDGET_COLUMNS} FROM budgets"
        if where:
            sql += " WHERE " + where
        sql += " ORDER BY start_date ASC, created_at ASC, id ASC"
        with store_errors("list budgets"), connect(self.db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_budget_from_row(r) for r in rows]

    def get_all(self) -> List[Budget]:
        return self._select()

    def get_active_budgets(self) -> List[Budget]:
        return self._select("is_active = 1")

    def get_by_category(self, category_id: Optional[str]) -> List[Budget]:
        if category_id is None:
            return self._select("category_id IS NULL")
        return self._select("category_id = ?", (category_id,))

    def get_by_period(self, start: datetime, end: datetime) -> List[Budget]:
        """Budgets whose window intersects ``[start, end]``."""
        return self._select("start_date <= ? AND end_date >= ?", (to_iso(end), to_iso(start)))

    def update(self, budget: Budget) -> Budget:
        sql = (
            "UPDATE budgets SET name = ?, amount = ?, period = ?, category_id = ?, "
            "start_date = ?, end_date = ?, is_active = ?, updated_at = ? WHERE id = ?"
        )
        params = (
            budget.name,
            budget.amount,
            budget.period.value,
            budget.category_id,
            to_iso(budget.start_date),
            to_iso(budget.end_date),
            int(budget.is_active),
            to_iso(budget.updated_at),
            budget.id,
        )
        with store_errors("update budget"), connect(self.db_path) as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            if cursor.rowcount == 0:
                raise BudgetNotFoundError(budget.id)
        return budget

    def increment_spent(self, budget_id: str, amount: float, when: Optional[datetime] = None) -> None:
        """Atomically add ``amount`` to the cached spent total."""
        stamp = to_iso(when or datetime.now())
        with store_errors("increment spent"), connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE budgets SET spent = spent + ?, updated_at = ? WHERE id = ?",
                (amount, stamp, budget_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise BudgetNotFoundError(budget_id)

    def set_spent(self, budget_id: str, spent: float, when: Optional[datetime] = None) -> None:
        stamp = to_iso(when or datetime.now())
        with store_errors("set spent"), connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE budgets SET spent = ?, updated_at = ? WHERE id = ?",
                (spent, stamp, budget_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise BudgetNotFoundError(budget_id)

    def delete(self, budget_id: str) -> None:
        with store_errors("delete budget"), connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM budgets WHERE id = ?", (budget_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise BudgetNotFoundError(budget_id)


class SqliteAlertStore:
    """Threshold alerts keyed by budget."""

    def __init__(self, db_path: Optional[PathLike] = None):
        self.db_path = db_path

    def create(self, alert: Alert) -> Alert:
        sql = f"INSERT INTO budget_alerts ({_ALERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)"
        params = (
            alert.id,
            alert.budget_id,
            alert.threshold,
            int(alert.is_triggered),
            to_iso(alert.triggered_at),
            to_iso(alert.created_at),
        )
        with store_errors("create alert"), connect(self.db_path) as conn:
            conn.execute(sql, params)
            conn.commit()
        return alert

    def get_by_id(self, alert_id: str) -> Alert:
        with store_errors("get alert"), connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_ALERT_COLUMNS} FROM budget_alerts WHERE id = ?", (alert_id,)
            ).fetchone()
        if row is None:
            raise AlertNotFoundError(alert_id)
        return _alert_from_row(row)

    def get_by_budget(self, budget_id: str) -> List[Alert]:
        with store_errors("list alerts"), connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT {_ALERT_COLUMNS} FROM budget_alerts WHERE budget_id = ? "
                "ORDER BY threshold ASC",
                (budget_id,),
            ).fetchall()
        return [_alert_from_row(r) for r in rows]

    def mark_triggered(self, alert_id: str, at: datetime) -> bool:
        """Latch an alert. Returns False when it was already triggered."""
        with store_errors("trigger alert"), connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE budget_alerts SET is_triggered = 1, triggered_at = ? "
                "WHERE id = ? AND is_triggered = 0",
                (to_iso(at), alert_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete(self, alert_id: str) -> None:
        with store_errors("delete alert"), connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM budget_alerts WHERE id = ?", (alert_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise AlertNotFoundError(alert_id)


class SqliteTransactionStore:
    """Transaction ledger rows. Aggregates live in :mod:`family_budget.ledger`."""

    def __init__(self, db_path: Optional[PathLike] = None):
        self.db_path = db_path

    def create(self, txn: Transaction) -> Transaction:
        sql = f"INSERT INTO transactions ({_TXN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
        params = (
            txn.id,
            txn.amount,
            txn.type.value,
            txn.category_id,
            to_iso(txn.date),
            txn.description,
            json.dumps(list(txn.tags)),
            to_iso(txn.created_at),
            to_iso(txn.updated_at),
        )
        with store_errors("create transaction"), connect(self.db_path) as conn:
            conn.execute(sql, params)
            conn.commit()
        return txn

    def get_by_id(self, txn_id: str) -> Transaction:
        with store_errors("get transaction"), connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_TXN_COLUMNS} FROM transactions WHERE id = ?", (txn_id,)
            ).fetchone()
        if row is None:
            raise TransactionNotFoundError(txn_id)
        return _transaction_from_row(row)

    def update(self, txn: Transaction) -> Transaction:
        sql = (
            "UPDATE transactions SET amount = ?, type = ?, category_id = ?, "
            "transaction_date = ?, description = ?, tags = ?, updated_at = ? WHERE id = ?"
        )
        params = (
            txn.amount,
            txn.type.value,
            txn.category_id,
            to_iso(txn.date),
            txn.description,
            json.dumps(list(txn.tags)),
            to_iso(txn.updated_at),
            txn.id,
        )
        with store_errors("update transaction"), connect(self.db_path) as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            if cursor.rowcount == 0:
                raise TransactionNotFoundError(txn.id)
        return txn

    def delete(self, txn_id: str) -> None:
        with store_errors("delete transaction"), connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (txn_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise TransactionNotFoundError(txn_id)
