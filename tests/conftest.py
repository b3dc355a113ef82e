from datetime import datetime

import pytest

from family_budget import db
from family_budget.ledger import SqliteLedger
from family_budget.repositories import SqliteAlertStore, SqliteBudgetStore, SqliteTransactionStore
from family_budget.service import BudgetService

NOW = datetime(2024, 1, 15, 12, 0)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / 'family_budget.db'
    db.init_db(path)
    return path


@pytest.fixture
def service(db_path):
    return BudgetService(
        SqliteBudgetStore(db_path),
        SqliteAlertStore(db_path),
        SqliteTransactionStore(db_path),
        SqliteLedger(db_path),
        clock=lambda: NOW,
    )
