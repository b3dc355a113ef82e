"""Ledger query facade: summed transaction amounts by category and date.

Two implementations share the same interface:

* ``SqliteLedger``: runs ``SUM`` aggregates against the ``transactions``
  table. Queries accept a ``deadline`` (a ``time.monotonic()`` value); once it
  passes, the running statement is interrupted and
  :class:`~family_budget.errors.LedgerUnavailableError` is raised.
* ``FrameLedger``: the same sums over a pandas DataFrame, for imported
  statements and analysis notebooks.

Both treat the window ``[start, end]`` as inclusive on both ends.
"""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime
from typing import Iterable, List, Optional, Union

import pandas as pd

from .db import PathLike, connect, interrupt_after, to_iso
from .domain import Transaction, TransactionType
from .errors import LedgerUnavailableError

FRAME_COLUMNS = ['id', 'Transaction Date', 'Amount', 'Type', 'Category', 'Description']

TypeLike = Union[str, TransactionType]


def _type_value(txn_type: TypeLike) -> str:
    return TransactionType(txn_type).value


class SqliteLedger:
    """Aggregate queries over the SQLite transaction table."""

    def __init__(self, db_path: Optional[PathLike] = None):
        self.db_path = db_path

    def _sum(self, where: List[str], params: List[object], deadline: Optional[float]) -> float:
        if deadline is not None and time.monotonic() >= deadline:
            raise LedgerUnavailableError("ledger query deadline already passed")
        sql = "SELECT COALESCE(SUM(amount), 0) FROM transactions WHERE " + " AND ".join(where)
        try:
            with connect(self.db_path) as conn:
                interrupt_after(conn, deadline)
                row = conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"ledger query failed: {e}") from e
        return float(row[0] or 0.0)

    def sum_by_category_and_date_range(
        self,
        category_id: str,
        start: datetime,
        end: datetime,
        txn_type: TypeLike,
        *,
        deadline: Optional[float] = None,
    ) -> float:
        return self._sum(
            ["category_id = ?", "type = ?", "transaction_date >= ?", "transaction_date <= ?"],
            [category_id, _type_value(txn_type), to_iso(start), to_iso(end)],
            deadline,
        )

    def sum_by_date_range(
        self,
        start: datetime,
        end: datetime,
        txn_type: TypeLike,
        *,
        deadline: Optional[float] = None,
    ) -> float:
        return self._sum(
            ["type = ?", "transaction_date >= ?", "transaction_date <= ?"],
            [_type_value(txn_type), to_iso(start), to_iso(end)],
            deadline,
        )


def fetch_transactions(
    db_path: Optional[PathLike] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    txn_type: Optional[TypeLike] = None,
) -> pd.DataFrame:
    """Load transactions into a DataFrame with display column names."""
    where: List[str] = []
    params: List[object] = []

    if start is not None:
        where.append("transaction_date >= ?")
        params.append(to_iso(start))
    if end is not None:
        where.append("transaction_date <= ?")
        params.append(to_iso(end))
    if txn_type is not None:
        where.append("type = ?")
        params.append(_type_value(txn_type))

    sql = (
        "SELECT id, transaction_date AS 'Transaction Date', amount AS 'Amount', "
        "type AS 'Type', category_id AS 'Category', description AS 'Description' "
        "FROM transactions"
    )
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY transaction_date ASC, id ASC"

    with connect(db_path) as conn:
        df = pd.read_sql_query(sql, conn, params=params)
    if not df.empty:
        df['Transaction Date'] = pd.to_datetime(df['Transaction Date'])
    return df


class FrameLedger:
    """Ledger sums computed from an in-memory transaction DataFrame."""

    def __init__(self, data: Optional[pd.DataFrame] = None):
        if data is None or data.empty:
            data = pd.DataFrame(columns=FRAME_COLUMNS)
        data = data.copy()
        data['Transaction Date'] = pd.to_datetime(data['Transaction Date'])
        data['Amount'] = pd.to_numeric(data['Amount'], errors='coerce').fillna(0.0)
        self.data = data

    @classmethod
    def from_transactions(cls, transactions: Iterable[Transaction]) -> "FrameLedger":
        rows = [
            {
                'id': t.id,
                'Transaction Date': t.date,
                'Amount': t.amount,
                'Type': t.type.value,
                'Category': t.category_id,
                'Description': t.description,
            }
            for t in transactions
        ]
        return cls(pd.DataFrame(rows, columns=FRAME_COLUMNS))

    @classmethod
    def from_sqlite(cls, db_path: Optional[PathLike] = None) -> "FrameLedger":
        return cls(fetch_transactions(db_path))

    def _window(self, start: datetime, end: datetime, txn_type: TypeLike) -> pd.DataFrame:
        df = self.data
        mask = (
            (df['Type'] == _type_value(txn_type))
            & (df['Transaction Date'] >= pd.Timestamp(start))
            & (df['Transaction Date'] <= pd.Timestamp(end))
        )
        return df[mask]

    def sum_by_category_and_date_range(
        self,
        category_id: str,
        start: datetime,
        end: datetime,
        txn_type: TypeLike,
        *,
        deadline: Optional[float] = None,
    ) -> float:
        scoped = self._window(start, end, txn_type)
        return float(scoped.loc[scoped['Category'] == category_id, 'Amount'].sum())

    def sum_by_date_range(
        self,
        start: datetime,
        end: datetime,
        txn_type: TypeLike,
        *,
        deadline: Optional[float] = None,
    ) -> float:
        return float(self._window(start, end, txn_type)['Amount'].sum())

    def category_totals(self, start: datetime, end: datetime, txn_type: TypeLike = TransactionType.EXPENSE) -> pd.Series:
        """Summed amount per category inside the window, largest first."""
        scoped = self._window(start, end, txn_type)
        if scoped.empty:
            return pd.Series(dtype=float)
        return scoped.groupby('Category')['Amount'].sum().sort_values(ascending=False)
