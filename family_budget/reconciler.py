"""Read-path reconciliation of a budget's spent figure against the ledger.

``Budget.spent`` is a cache. Single-budget reads call
:meth:`SpendReconciler.reconciled_spent`, which recomputes the figure from the
ledger and falls back to the cache when the ledger is unavailable. List reads
call :meth:`SpendReconciler.cached_spent` and accept whatever drift the cache
has accumulated.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .config import LEDGER_TIMEOUT, REPAIR_CACHE
from .domain import Budget, TransactionType
from .errors import LedgerUnavailableError, StoreError

logger = logging.getLogger(__name__)

SOURCE_LEDGER = "ledger"
SOURCE_CACHE = "cache"


@dataclass(frozen=True)
class ReconciledSpent:
    amount: float
    source: str

    @property
    def from_ledger(self) -> bool:
        return self.source == SOURCE_LEDGER


class SpendReconciler:
    """Recompute authoritative spend for one budget at a time.

    Args:
        ledger: object exposing ``sum_by_category_and_date_range`` and
            ``sum_by_date_range``.
        budget_store: only needed when ``repair_cache`` is enabled.
        timeout: seconds allowed for the ledger query. ``None`` disables the
            deadline.
        repair_cache: write the reconciled amount back to the stored budget
            when it differs from the cached value.
    """

    def __init__(
        self,
        ledger,
        budget_store=None,
        *,
        timeout: Optional[float] = LEDGER_TIMEOUT,
        repair_cache: bool = REPAIR_CACHE,
    ):
        if repair_cache and budget_store is None:
            raise ValueError("repair_cache requires a budget store")
        self.ledger = ledger
        self.budget_store = budget_store
        self.timeout = timeout
        self.repair_cache = repair_cache

    @staticmethod
    def cached_spent(budget: Budget) -> float:
        return budget.spent

    def _deadline(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is not None:
            return deadline
        if self.timeout is None:
            return None
        return time.monotonic() + self.timeout

    def query_ledger(self, budget: Budget, *, deadline: Optional[float] = None) -> float:
        """Ledger sum for the budget's scope and window. Raises on failure."""
        deadline = self._deadline(deadline)
        if budget.category_id is not None:
            return self.ledger.sum_by_category_and_date_range(
                budget.category_id,
                budget.start_date,
                budget.end_date,
                TransactionType.EXPENSE,
                deadline=deadline,
            )
        return self.ledger.sum_by_date_range(
            budget.start_date,
            budget.end_date,
            TransactionType.EXPENSE,
            deadline=deadline,
        )

    def reconcile(self, budget: Budget, *, deadline: Optional[float] = None) -> ReconciledSpent:
        try:
            amount = self.query_ledger(budget, deadline=deadline)
        except LedgerUnavailableError as e:
            logger.warning(
                "budget spent recalculation failed; using cached value "
                "(operation=reconcile budget_id=%s error=%s)",
                budget.id,
                e,
            )
            return ReconciledSpent(amount=budget.spent, source=SOURCE_CACHE)

        if self.repair_cache and amount != budget.spent:
            self._repair(budget, amount)
        return ReconciledSpent(amount=amount, source=SOURCE_LEDGER)

    def reconciled_spent(self, budget: Budget, *, deadline: Optional[float] = None) -> float:
        return self.reconcile(budget, deadline=deadline).amount

    def _repair(self, budget: Budget, amount: float) -> None:
        try:
            self.budget_store.set_spent(budget.id, amount)
        except StoreError as e:
            logger.warning(
                "cached spent repair failed (budget_id=%s error=%s)", budget.id, e
            )
