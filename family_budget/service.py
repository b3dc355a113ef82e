"""Budget service: the operations the web layer calls into.

Two read contracts are exposed on purpose:

* :meth:`BudgetService.get_budget` reconciles ``spent`` from the ledger
  before building the view (exact, one aggregate query per call).
* :meth:`BudgetService.list_budgets` uses the cached ``spent`` stored on each
  budget (cheap, may have drifted).

Inputs are assumed to be authenticated and scoped to one family already.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .accumulator import SpendAccumulator
from .alerts import AlertEngine, AlertView
from .domain import (
    Alert,
    Budget,
    Period,
    Transaction,
    make_alert,
    make_budget,
    parse_period,
    parse_transaction_type,
    validate_budget_fields,
    window_end,
    window_start,
)
from .errors import LedgerUnavailableError, ValidationError
from .progress import BudgetProgress, progress_for, recommendations
from .reconciler import SOURCE_CACHE, SpendReconciler

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class BudgetView:
    id: str
    name: str
    period: Period
    category_id: Optional[str]
    start_date: datetime
    end_date: datetime
    is_active: bool
    amount: float
    spent: float
    spent_source: str
    cached_spent: float
    remaining: float
    overage: float
    percentage: float
    is_over_budget: bool
    is_near_limit: bool
    classification: str
    days_total: int
    days_elapsed: int
    days_left: int
    time_percentage: float
    daily_budget_pace: float
    daily_spending_pace: float
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class BudgetStatusReport:
    view: BudgetView
    status: str
    projected_total: float
    projected_overrun: float
    projected_exhaustion: Optional[datetime]
    recommendations: List[str]


@dataclass(frozen=True)
class BudgetLimitBreach:
    """An active budget that a prospective expense would push past its amount."""

    budget_id: str
    budget_name: str
    amount: float
    spent: float
    expense_amount: float

    @property
    def excess(self) -> float:
        return self.spent + self.expense_amount - self.amount


@dataclass
class BudgetFilter:
    period: Optional[Union[str, Period]] = None
    is_active: Optional[bool] = None
    category_id: Optional[str] = None
    family_wide: Optional[bool] = None
    active_on: Optional[datetime] = None
    is_over_budget: Optional[bool] = None
    is_near_limit: Optional[bool] = None
    date_from: Optional[DateLike] = None
    date_to: Optional[DateLike] = None
    amount_from: Optional[float] = None
    amount_to: Optional[float] = None
    has_unspent_funds: Optional[bool] = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def validate(self) -> None:
        if self.limit <= 0:
            raise ValidationError("limit must be positive")
        if self.offset < 0:
            raise ValidationError("offset cannot be negative")
        if self.date_from is not None:
            self.date_from = window_start(self.date_from)
        if self.date_to is not None:
            self.date_to = window_end(self.date_to)
        if self.date_from is not None and self.date_to is not None and self.date_from > self.date_to:
            raise ValidationError("date_from must not be after date_to")
        if self.amount_from is not None and self.amount_to is not None and self.amount_from > self.amount_to:
            raise ValidationError("amount_from must not exceed amount_to")
        if self.period is not None:
            self.period = parse_period(self.period)


def build_view(budget: Budget, spent: float, source: str, progress: BudgetProgress) -> BudgetView:
    return BudgetView(
        id=budget.id,
        name=budget.name,
        period=budget.period,
        category_id=budget.category_id,
        start_date=budget.start_date,
        end_date=budget.end_date,
        is_active=budget.is_active,
        amount=budget.amount,
        spent=spent,
        spent_source=source,
        cached_spent=budget.spent,
        remaining=progress.remaining,
        overage=progress.overage,
        percentage=progress.percentage,
        is_over_budget=progress.is_over_budget,
        is_near_limit=progress.is_near_limit,
        classification=progress.classification.value,
        days_total=progress.days_total,
        days_elapsed=progress.days_elapsed,
        days_left=progress.days_left,
        time_percentage=progress.time_percentage,
        daily_budget_pace=progress.daily_budget_pace,
        daily_spending_pace=progress.daily_spending_pace,
        created_at=budget.created_at,
        updated_at=budget.updated_at,
    )


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_end > b_start and a_start < b_end


class BudgetService:
    """Facade over the stores, ledger, accumulator, reconciler and alerts."""

    def __init__(
        self,
        budget_store,
        alert_store,
        transaction_store,
        ledger,
        *,
        reconciler: Optional[SpendReconciler] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.budgets = budget_store
        self.alerts = alert_store
        self.transactions = transaction_store
        self.ledger = ledger
        self.reconciler = reconciler or SpendReconciler(ledger, budget_store)
        self.accumulator = SpendAccumulator(budget_store)
        self.alert_engine = AlertEngine(alert_store)
        self.clock = clock

    # Budgets

    def _check_overlap(self, budget: Budget) -> None:
        for existing in self.budgets.get_by_period(budget.start_date, budget.end_date):
            if existing.id == budget.id or not existing.is_active:
                continue
            if existing.category_id != budget.category_id:
                continue
            if windows_overlap(existing.start_date, existing.end_date, budget.start_date, budget.end_date):
                raise ValidationError(
                    f"budget period overlaps with existing budget '{existing.name}'"
                )

    def create_budget(
        self,
        name: str,
        amount: float,
        period: Union[str, Period],
        start_date: DateLike,
        end_date: DateLike,
        category_id: Optional[str] = None,
    ) -> Budget:
        budget = make_budget(name, amount, period, start_date, end_date, category_id, now=self.clock())
        self._check_overlap(budget)
        self.budgets.create(budget)

        # seed the cache from transactions already in the window
        try:
            spent = self.reconciler.query_ledger(budget)
        except LedgerUnavailableError as e:
            logger.warning(
                "budget spent recalculation failed (operation=create_budget budget_id=%s error=%s)",
                budget.id,
                e,
            )
        else:
            if spent:
                self.budgets.increment_spent(budget.id, spent, self.clock())
        return self.budgets.get_by_id(budget.id)

    def get_budget(self, budget_id: str, *, deadline: Optional[float] = None) -> BudgetView:
        """Single-budget read with spent reconciled from the ledger.

        ``deadline`` is a ``time.monotonic()`` value bounding the ledger query;
        past it the cached figure is returned instead.
        """
        budget = self.budgets.get_by_id(budget_id)
        reconciled = self.reconciler.reconcile(budget, deadline=deadline)
        progress = progress_for(budget, reconciled.amount, self.clock())
        return build_view(budget, reconciled.amount, reconciled.source, progress)

    def list_budgets(self, filters: Optional[BudgetFilter] = None) -> List[BudgetView]:
        """Budgets with their cached spent figures."""
        filters = filters or BudgetFilter()
        filters.validate()
        now = self.clock()

        if filters.category_id is not None:
            candidates = self.budgets.get_by_category(filters.category_id)
        elif filters.is_active:
            candidates = self.budgets.get_active_budgets()
        else:
            candidates = self.budgets.get_all()

        views = []
        for budget in candidates:
            if filters.period is not None and budget.period != filters.period:
                continue
            if filters.is_active is not None and budget.is_active != filters.is_active:
                continue
            if filters.family_wide is not None and budget.is_family_wide != filters.family_wide:
                continue
            if filters.active_on is not None and not budget.covers(filters.active_on):
                continue
            if filters.date_from is not None and budget.end_date < filters.date_from:
                continue
            if filters.date_to is not None and budget.start_date > filters.date_to:
                continue
            if filters.amount_from is not None and budget.amount < filters.amount_from:
                continue
            if filters.amount_to is not None and budget.amount > filters.amount_to:
                continue
            spent = self.reconciler.cached_spent(budget)
            view = build_view(budget, spent, SOURCE_CACHE, progress_for(budget, spent, now))
            if filters.is_over_budget is not None and view.is_over_budget != filters.is_over_budget:
                continue
            if filters.is_near_limit is not None and view.is_near_limit != filters.is_near_limit:
                continue
            if filters.has_unspent_funds is not None and (view.remaining > 0) != filters.has_unspent_funds:
                continue
            views.append(view)
        return views[filters.offset:filters.offset + filters.limit]

    def update_budget(
        self,
        budget_id: str,
        *,
        name: Optional[str] = None,
        amount: Optional[float] = None,
        period: Optional[Union[str, Period]] = None,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        is_active: Optional[bool] = None,
    ) -> Budget:
        existing = self.budgets.get_by_id(budget_id)
        changes: Dict[str, Any] = {}
        if name is not None:
            changes['name'] = name.strip()
        if amount is not None:
            changes['amount'] = float(amount)
        if period is not None:
            changes['period'] = parse_period(period)
        if start_date is not None:
            changes['start_date'] = window_start(start_date)
        if end_date is not None:
            changes['end_date'] = window_end(end_date)
        if is_active is not None:
            changes['is_active'] = is_active
        if not changes:
            return existing

        updated = replace(existing, updated_at=self.clock(), **changes)
        validate_budget_fields(updated.name, updated.amount, updated.start_date, updated.end_date)
        window_changed = (updated.start_date, updated.end_date) != (existing.start_date, existing.end_date)
        if updated.is_active and (window_changed or not existing.is_active):
            self._check_overlap(updated)
        return self.budgets.update(updated)

    def deactivate_budget(self, budget_id: str) -> Budget:
        return self.update_budget(budget_id, is_active=False)

    def delete_budget(self, budget_id: str) -> None:
        self.budgets.delete(budget_id)

    def budget_status(self, budget_id: str, *, deadline: Optional[float] = None) -> BudgetStatusReport:
        budget = self.budgets.get_by_id(budget_id)
        reconciled = self.reconciler.reconcile(budget, deadline=deadline)
        progress = progress_for(budget, reconciled.amount, self.clock())
        return BudgetStatusReport(
            view=build_view(budget, reconciled.amount, reconciled.source, progress),
            status=progress.status.value,
            projected_total=progress.projected_total,
            projected_overrun=progress.projected_overrun,
            projected_exhaustion=progress.projected_exhaustion,
            recommendations=recommendations(progress),
        )

    def check_budget_limits(
        self,
        category_id: str,
        amount: float,
        *,
        deadline: Optional[float] = None,
    ) -> List[BudgetLimitBreach]:
        """Active budgets for ``category_id`` that an expense of ``amount`` would exceed.

        Advisory only: nothing is written and an empty list means the expense
        fits. Spent figures are reconciled from the ledger.
        """
        if not category_id:
            raise ValidationError("Transaction category is required")
        if amount is None or not amount > 0:
            raise ValidationError("Transaction amount must be greater than 0")

        now = self.clock()
        breaches = []
        for budget in self.budgets.get_by_category(category_id):
            if not budget.is_active or not budget.covers(now):
                continue
            spent = self.reconciler.reconcile(budget, deadline=deadline).amount
            if spent + amount > budget.amount:
                breaches.append(
                    BudgetLimitBreach(
                        budget_id=budget.id,
                        budget_name=budget.name,
                        amount=budget.amount,
                        spent=spent,
                        expense_amount=float(amount),
                    )
                )
        return breaches

    # Transactions

    def record_transaction(self, txn: Transaction) -> Transaction:
        """Persist a transaction, then apply it to its budget if it is an expense.

        Budget bookkeeping is best-effort: the transaction is stored even if
        the budget update fails.
        """
        txn.validate()
        self.transactions.create(txn)
        if txn.is_expense:
            self.accumulator.on_expense_recorded(txn, self.clock())
        return txn

    def update_transaction(
        self,
        txn_id: str,
        *,
        amount: Optional[float] = None,
        txn_type: Optional[str] = None,
        category_id: Optional[str] = None,
        when: Optional[DateLike] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Transaction:
        """Edit a ledger row. Cached budget totals are left for reconciliation."""
        existing = self.transactions.get_by_id(txn_id)
        changes: Dict[str, Any] = {}
        if amount is not None:
            changes['amount'] = float(amount)
        if txn_type is not None:
            changes['type'] = parse_transaction_type(txn_type)
        if category_id is not None:
            changes['category_id'] = category_id
        if when is not None:
            changes['date'] = window_start(when)
        if description is not None:
            changes['description'] = description
        if tags is not None:
            changes['tags'] = list(tags)
        if not changes:
            return existing
        updated = replace(existing, updated_at=self.clock(), **changes)
        updated.validate()
        return self.transactions.update(updated)

    def delete_transaction(self, txn_id: str) -> None:
        self.transactions.delete(txn_id)

    # Alerts

    def create_alert(self, budget_id: str, threshold: float) -> Alert:
        self.budgets.get_by_id(budget_id)
        alert = make_alert(budget_id, threshold, now=self.clock())
        if any(a.threshold == alert.threshold for a in self.alerts.get_by_budget(budget_id)):
            raise ValidationError(f"an alert at {alert.threshold:g}% already exists for this budget")
        return self.alerts.create(alert)

    def delete_alert(self, alert_id: str) -> None:
        self.alerts.delete(alert_id)

    def evaluate_alerts(self, budget_id: str, *, deadline: Optional[float] = None) -> List[AlertView]:
        """Latch any newly crossed thresholds and describe every alert."""
        view = self.get_budget(budget_id, deadline=deadline)
        return self.alert_engine.evaluate(view.id, view.name, view.percentage, self.clock())
