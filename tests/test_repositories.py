import sqlite3
from dataclasses import replace
from datetime import date, datetime

import pytest

from family_budget import db
from family_budget.domain import make_alert, make_budget, make_transaction
from family_budget.errors import BudgetNotFoundError, StoreError
from family_budget.repositories import SqliteAlertStore, SqliteBudgetStore, SqliteTransactionStore


def test_init_db_is_idempotent(db_path):
    db.init_db(db_path)
    with db.connect(db_path) as conn:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {'transactions', 'budgets', 'budget_alerts'} <= tables


def test_migration_adds_missing_columns(tmp_path):
    path = tmp_path / 'old.db'
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE transactions (id TEXT PRIMARY KEY, amount REAL, type TEXT, category_id TEXT, "
        "transaction_date TEXT, created_at TEXT, updated_at TEXT)"
    )
    conn.commit()
    conn.close()

    db.init_db(path)

    with db.connect(path) as conn:
        columns = [row[1] for row in conn.execute("PRAGMA table_info(transactions)")]
    assert 'tags' in columns
    assert 'description' in columns


def test_budget_round_trip(db_path):
    store = SqliteBudgetStore(db_path)
    budget = make_budget('Groceries', 1000, 'monthly', date(2024, 1, 1), date(2024, 1, 31), 'groceries')
    store.create(budget)
    assert store.get_by_id(budget.id) == budget


def test_active_and_category_queries(db_path):
    store = SqliteBudgetStore(db_path)
    a = store.create(make_budget('A', 10, 'monthly', date(2024, 1, 1), date(2024, 1, 31), 'x'))
    b = store.create(make_budget('B', 10, 'monthly', date(2024, 2, 1), date(2024, 2, 28), 'x', is_active=False))
    c = store.create(make_budget('C', 10, 'monthly', date(2024, 3, 1), date(2024, 3, 31)))

    assert [x.id for x in store.get_active_budgets()] == [a.id, c.id]
    assert [x.id for x in store.get_by_category('x')] == [a.id, b.id]
    assert [x.id for x in store.get_by_category(None)] == [c.id]
    assert [x.id for x in store.get_by_period(datetime(2024, 1, 31), datetime(2024, 2, 2))] == [a.id, b.id]


def test_update_does_not_overwrite_spent(db_path):
    store = SqliteBudgetStore(db_path)
    budget = store.create(make_budget('A', 10, 'monthly', date(2024, 1, 1), date(2024, 1, 31), 'x'))
    store.increment_spent(budget.id, 4.0)

    # a stale copy with spent=0 must not clobber the increment
    store.update(replace(budget, name='Renamed'))

    stored = store.get_by_id(budget.id)
    assert stored.name == 'Renamed'
    assert stored.spent == 4.0


def test_missing_budget_operations_raise_not_found(db_path):
    store = SqliteBudgetStore(db_path)
    ghost = make_budget('Ghost', 10, 'monthly', date(2024, 1, 1), date(2024, 1, 31))
    with pytest.raises(BudgetNotFoundError):
        store.get_by_id(ghost.id)
    with pytest.raises(BudgetNotFoundError):
        store.update(ghost)
    with pytest.raises(BudgetNotFoundError):
        store.increment_spent(ghost.id, 1.0)
    with pytest.raises(BudgetNotFoundError):
        store.set_spent(ghost.id, 1.0)


def test_duplicate_insert_is_a_store_error(db_path):
    store = SqliteBudgetStore(db_path)
    budget = store.create(make_budget('A', 10, 'monthly', date(2024, 1, 1), date(2024, 1, 31)))
    with pytest.raises(StoreError):
        store.create(budget)


def test_mark_triggered_only_latches_once(db_path):
    budgets = SqliteBudgetStore(db_path)
    alerts = SqliteAlertStore(db_path)
    budget = budgets.create(make_budget('A', 10, 'monthly', date(2024, 1, 1), date(2024, 1, 31)))
    alert = alerts.create(make_alert(budget.id, 80))

    first = datetime(2024, 1, 10, 8, 0)
    assert alerts.mark_triggered(alert.id, first)
    assert not alerts.mark_triggered(alert.id, datetime(2024, 1, 20))

    stored = alerts.get_by_id(alert.id)
    assert stored.is_triggered
    assert stored.triggered_at == first


def test_alerts_listed_by_threshold(db_path):
    budgets = SqliteBudgetStore(db_path)
    alerts = SqliteAlertStore(db_path)
    budget = budgets.create(make_budget('A', 10, 'monthly', date(2024, 1, 1), date(2024, 1, 31)))
    alerts.create(make_alert(budget.id, 100))
    alerts.create(make_alert(budget.id, 50))
    assert [a.threshold for a in alerts.get_by_budget(budget.id)] == [50.0, 100.0]


def test_transaction_round_trip(db_path):
    store = SqliteTransactionStore(db_path)
    txn = make_transaction(19.99, 'expense', 'books', date(2024, 1, 4), 'Paperback', ['kids', 'school'])
    store.create(txn)
    assert store.get_by_id(txn.id) == txn
