"""Top-level package for the family budget engine.

Tracks spending against budgets and reports how much of each budget has been
used. The primary modules are:

* ``accumulator``: adds newly recorded expenses to the matching budget
* ``reconciler``: recomputes a budget's spent amount from the ledger
* ``progress``: percentage, pace and near-limit/over-budget classification
* ``alerts``: latching threshold alerts and their messages
* ``service``: the read/write operations the web layer calls

Storage lives in ``db``/``repositories`` (SQLite) and ``ledger`` provides the
aggregate queries. To print a summary from the command line run:

```bash
python scripts/budget_report.py --drift
```
"""

from .accumulator import SpendAccumulator, select_budget_for_expense
from .alerts import AlertEngine, AlertView, evaluate_alert
from .domain import (
    Alert,
    Budget,
    Period,
    Transaction,
    TransactionType,
    Triggered,
    Untriggered,
    make_alert,
    make_budget,
    make_transaction,
)
from .errors import (
    AlertNotFoundError,
    BudgetNotFoundError,
    FamilyBudgetError,
    LedgerUnavailableError,
    NotFoundError,
    StoreError,
    TransactionNotFoundError,
    ValidationError,
)
from .progress import BudgetProgress, Classification, calculate_progress
from .reconciler import ReconciledSpent, SpendReconciler
from .service import BudgetFilter, BudgetLimitBreach, BudgetService, BudgetView

__all__ = [
    'SpendAccumulator',
    'select_budget_for_expense',
    'AlertEngine',
    'AlertView',
    'evaluate_alert',
    'Alert',
    'Budget',
    'Period',
    'Transaction',
    'TransactionType',
    'Triggered',
    'Untriggered',
    'make_alert',
    'make_budget',
    'make_transaction',
    'AlertNotFoundError',
    'BudgetNotFoundError',
    'FamilyBudgetError',
    'LedgerUnavailableError',
    'NotFoundError',
    'StoreError',
    'TransactionNotFoundError',
    'ValidationError',
    'BudgetProgress',
    'Classification',
    'calculate_progress',
    'ReconciledSpent',
    'SpendReconciler',
    'BudgetFilter',
    'BudgetLimitBreach',
    'BudgetService',
    'BudgetView',
]
