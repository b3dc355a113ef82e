import sqlite3
import time
from dataclasses import replace
from datetime import date

import pytest

from family_budget import db
from family_budget.domain import make_budget, make_transaction
from family_budget.errors import LedgerUnavailableError
from family_budget.ledger import SqliteLedger
from family_budget.reconciler import SOURCE_CACHE, SOURCE_LEDGER, SpendReconciler
from family_budget.repositories import SqliteBudgetStore, SqliteTransactionStore


class FailingLedger:
    def __init__(self):
        self.calls = 0

    def sum_by_category_and_date_range(self, *args, **kwargs):
        self.calls += 1
        raise LedgerUnavailableError("connection reset")

    def sum_by_date_range(self, *args, **kwargs):
        self.calls += 1
        raise LedgerUnavailableError("connection reset")


class RecordingLedger:
    def __init__(self, total):
        self.total = total
        self.calls = []

    def sum_by_category_and_date_range(self, category_id, start, end, txn_type, *, deadline=None):
        self.calls.append(('category', category_id, start, end, txn_type, deadline))
        return self.total

    def sum_by_date_range(self, start, end, txn_type, *, deadline=None):
        self.calls.append(('family', start, end, txn_type, deadline))
        return self.total


def _add(store, amount, txn_type, category, when):
    store.create(make_transaction(amount, txn_type, category, when))


def test_category_budget_reconciles_from_window(db_path):
    txns = SqliteTransactionStore(db_path)
    _add(txns, 100.00, 'expense', 'groceries', date(2024, 1, 1))
    _add(txns, 175.25, 'expense', 'groceries', date(2024, 1, 31))
    _add(txns, 40.00, 'expense', 'groceries', date(2024, 2, 1))    # after window
    _add(txns, 60.00, 'expense', 'fuel', date(2024, 1, 10))        # other category
    _add(txns, 900.00, 'income', 'groceries', date(2024, 1, 10))   # income ignored

    budget = make_budget('Groceries', 1000, 'monthly', date(2024, 1, 1), date(2024, 1, 31), 'groceries')
    result = SpendReconciler(SqliteLedger(db_path)).reconcile(budget)

    assert result.source == SOURCE_LEDGER
    assert result.amount == pytest.approx(275.25)
    assert budget.amount - result.amount == pytest.approx(724.75)


def test_family_wide_budget_sums_every_category(db_path):
    txns = SqliteTransactionStore(db_path)
    _add(txns, 500.00, 'expense', 'rent', date(2024, 2, 1))
    _add(txns, 300.00, 'expense', 'groceries', date(2024, 2, 28))
    _add(txns, 75.00, 'expense', 'groceries', date(2024, 3, 1))
    _add(txns, 2500.00, 'income', 'salary', date(2024, 2, 15))

    budget = make_budget('Household', 2000, 'monthly', date(2024, 2, 1), date(2024, 2, 28))
    spent = SpendReconciler(SqliteLedger(db_path)).reconciled_spent(budget)

    assert spent == pytest.approx(800.00)
    assert budget.amount - spent == pytest.approx(1200.00)


def test_dispatches_on_category_scope():
    ledger = RecordingLedger(12.5)
    reconciler = SpendReconciler(ledger, timeout=None)
    category_budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')
    family_budget = make_budget('All', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7))

    reconciler.reconcile(category_budget)
    reconciler.reconcile(family_budget)

    assert ledger.calls[0][0] == 'category'
    assert ledger.calls[0][1] == 'fuel'
    assert ledger.calls[1][0] == 'family'
    assert all(call[-1] is None for call in ledger.calls)


def test_timeout_becomes_a_deadline():
    ledger = RecordingLedger(0.0)
    reconciler = SpendReconciler(ledger, timeout=2.0)
    budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')

    before = time.monotonic()
    reconciler.reconcile(budget)
    deadline = ledger.calls[0][-1]
    assert before + 2.0 <= deadline <= time.monotonic() + 2.0


def test_ledger_failure_falls_back_to_cached_spent(caplog):
    ledger = FailingLedger()
    budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')
    budget = replace(budget, spent=42.0)

    with caplog.at_level('WARNING'):
        result = SpendReconciler(ledger).reconcile(budget)

    assert result.amount == 42.0
    assert result.source == SOURCE_CACHE
    assert not result.from_ledger
    assert ledger.calls == 1
    assert 'recalculation failed' in caplog.text


def test_expired_deadline_falls_back_to_cache(db_path):
    txns = SqliteTransactionStore(db_path)
    _add(txns, 10.0, 'expense', 'fuel', date(2024, 1, 2))
    budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')

    result = SpendReconciler(SqliteLedger(db_path)).reconcile(budget, deadline=time.monotonic() - 1)

    assert result.source == SOURCE_CACHE
    assert result.amount == 0.0


def test_sqlite_ledger_rejects_expired_deadline(db_path):
    ledger = SqliteLedger(db_path)
    budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')
    with pytest.raises(LedgerUnavailableError):
        ledger.sum_by_date_range(budget.start_date, budget.end_date, 'expense', deadline=time.monotonic() - 1)


def test_reconcile_does_not_write_back_by_default(db_path):
    budgets = SqliteBudgetStore(db_path)
    txns = SqliteTransactionStore(db_path)
    budget = budgets.create(make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel'))
    _add(txns, 30.0, 'expense', 'fuel', date(2024, 1, 3))

    spent = SpendReconciler(SqliteLedger(db_path), budgets).reconciled_spent(budget)

    assert spent == 30.0
    assert budgets.get_by_id(budget.id).spent == 0.0


def test_repair_cache_writes_reconciled_value(db_path):
    budgets = SqliteBudgetStore(db_path)
    txns = SqliteTransactionStore(db_path)
    budget = budgets.create(make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel'))
    _add(txns, 30.0, 'expense', 'fuel', date(2024, 1, 3))

    reconciler = SpendReconciler(SqliteLedger(db_path), budgets, repair_cache=True)
    reconciler.reconcile(budget)

    assert budgets.get_by_id(budget.id).spent == 30.0


def test_repair_cache_requires_store():
    with pytest.raises(ValueError):
        SpendReconciler(RecordingLedger(0.0), repair_cache=True)


def test_cached_spent_does_not_touch_ledger():
    ledger = FailingLedger()
    budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')
    assert SpendReconciler(ledger).cached_spent(budget) == 0.0
    assert ledger.calls == 0


_BULK_INSERT = """
WITH RECURSIVE n(i) AS (SELECT 1 UNION ALL SELECT i + 1 FROM n WHERE i < ?)
INSERT INTO transactions
    (id, amount, type, category_id, transaction_date, description, tags, created_at, updated_at)
SELECT 'bulk-' || i, 1.0, 'expense', 'fuel', '2024-01-03T00:00:00.000000', '', '[]',
       '2024-01-03T00:00:00.000000', '2024-01-03T00:00:00.000000'
FROM n
"""


def _bulk_expenses(db_path, count):
    with db.connect(db_path) as conn:
        conn.execute(_BULK_INSERT, (count,))
        conn.commit()


def test_interrupt_after_stops_a_running_statement(db_path):
    with db.connect(db_path) as conn:
        db.interrupt_after(conn, time.monotonic() + 0.05)
        with pytest.raises(sqlite3.OperationalError, match='interrupted'):
            conn.execute(
                "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 500000000) "
                "SELECT count(*) FROM c"
            ).fetchone()


def test_slow_ledger_query_is_interrupted_mid_statement(db_path):
    _bulk_expenses(db_path, 300_000)
    ledger = SqliteLedger(db_path)
    budget = make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel')

    with pytest.raises(LedgerUnavailableError, match='interrupted'):
        ledger.sum_by_category_and_date_range(
            'fuel', budget.start_date, budget.end_date, 'expense', deadline=time.monotonic() + 0.005
        )

    assert ledger.sum_by_category_and_date_range('fuel', budget.start_date, budget.end_date, 'expense') == 300_000.0


def test_short_timeout_falls_back_to_cache_on_slow_ledger(db_path):
    _bulk_expenses(db_path, 300_000)
    budget = replace(make_budget('Fuel', 100, 'weekly', date(2024, 1, 1), date(2024, 1, 7), 'fuel'), spent=12.0)

    result = SpendReconciler(SqliteLedger(db_path), timeout=0.005).reconcile(budget)

    assert result.source == SOURCE_CACHE
    assert result.amount == 12.0
