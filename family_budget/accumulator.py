"""Write-path bookkeeping: add a new expense to the budget it funds.

Recording an expense must never fail because budget bookkeeping failed, so
any error raised while selecting or incrementing a budget is logged and
swallowed here. The increment itself is a single store-level
``spent = spent + amount`` statement, which keeps concurrent
expenses against the same budget from overwriting each other.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from .domain import Budget, Transaction

logger = logging.getLogger(__name__)


def _selection_key(budget: Budget):
    return (budget.end_date - budget.start_date, budget.created_at, budget.id)


def is_eligible(budget: Budget, txn: Transaction) -> bool:
    """Active category budget whose window contains the transaction date."""
    return (
        budget.is_active
        and budget.category_id is not None
        and budget.category_id == txn.category_id
        and budget.covers(txn.date)
    )


def select_budget_for_expense(budgets: Iterable[Budget], txn: Transaction) -> Optional[Budget]:
    """Pick the one budget an expense counts toward, or None.

    Family-wide budgets are never selected; they are only brought up to date
    by read-path reconciliation. When several category budgets qualify the
    narrowest window wins, then the oldest budget, then the lowest id.
    """
    candidates = [b for b in budgets if is_eligible(b, txn)]
    if not candidates:
        return None
    return min(candidates, key=_selection_key)


class SpendAccumulator:

    def __init__(self, budget_store):
        self.budget_store = budget_store

    def on_expense_recorded(self, txn: Transaction, now: Optional[datetime] = None) -> Optional[str]:
        """Increment the matching budget's cached spend.

        Returns the id of the budget that was incremented, or None when the
        transaction is not an expense, nothing matched, or the store failed.
        """
        if not txn.is_expense:
            return None

        try:
            budgets = self.budget_store.get_active_budgets()
            target = select_budget_for_expense(budgets, txn)
        except Exception as e:
            logger.warning(
                "active budget lookup failed; expense not applied "
                "(transaction_id=%s error=%s)",
                txn.id,
                e,
            )
            return None

        if target is None:
            logger.debug("no budget matches expense %s in category %s", txn.id, txn.category_id)
            return None

        try:
            self.budget_store.increment_spent(target.id, txn.amount, now or datetime.now())
        except Exception as e:
            logger.warning(
                "budget spent increment failed (budget_id=%s transaction_id=%s error=%s)",
                target.id,
                txn.id,
                e,
            )
            return None
        return target.id
