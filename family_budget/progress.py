"""Budget progress, pace and classification.

Everything here is a pure function of the budget amount, the spent figure,
the window and a caller-supplied ``now``; calling it twice with the same
inputs gives the same result.

Day counts round partial days up::

    days_total   = ceil(hours(end - start) / 24)
    days_elapsed = 0 before the window, else max(1, ceil(hours(now - start) / 24))
    days_left    = max(0, ceil(hours(end - now) / 24))

Classification boundaries are inclusive at 80% (near limit) while
``is_over_budget`` only flips once spent is strictly above the amount. The
status bands are inclusive at 100%, so a budget spent to exactly its amount
reports ``exceeded`` with ``is_over_budget`` still False.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from .config import CRITICAL_PERCENT, NEAR_LIMIT_PERCENT, OVER_BUDGET_PERCENT
from .domain import Budget

PERCENTAGE_BASE = 100.0
_SECONDS_PER_DAY = 24 * 3600


class Classification(str, Enum):
    NORMAL = "normal"
    NEAR_LIMIT = "near_limit"
    OVER_BUDGET = "over_budget"


class BudgetStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


@dataclass(frozen=True)
class BudgetProgress:
    amount: float
    spent: float
    remaining: float
    overage: float
    percentage: float
    is_over_budget: bool
    is_near_limit: bool
    classification: Classification
    status: BudgetStatus
    days_total: int
    days_elapsed: int
    days_left: int
    time_percentage: float
    daily_budget_pace: float
    daily_spending_pace: float
    projected_total: float
    projected_overrun: float
    projected_exhaustion: Optional[datetime] = None


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def spent_percentage(amount: float, spent: float) -> float:
    if amount <= 0:
        return 0.0
    return spent * PERCENTAGE_BASE / amount


def classify(amount: float, spent: float) -> Classification:
    if spent > amount:
        return Classification.OVER_BUDGET
    if spent_percentage(amount, spent) >= NEAR_LIMIT_PERCENT:
        return Classification.NEAR_LIMIT
    return Classification.NORMAL


def status_for(percentage: float) -> BudgetStatus:
    # inclusive at 100%, while is_over_budget needs spent strictly above amount
    if percentage >= OVER_BUDGET_PERCENT:
        return BudgetStatus.EXCEEDED
    if percentage >= CRITICAL_PERCENT:
        return BudgetStatus.CRITICAL
    if percentage >= NEAR_LIMIT_PERCENT:
        return BudgetStatus.WARNING
    return BudgetStatus.HEALTHY


def calculate_progress(
    amount: float,
    spent: float,
    start_date: datetime,
    end_date: datetime,
    now: datetime,
) -> BudgetProgress:
    percentage = spent_percentage(amount, spent)
    classification = classify(amount, spent)
    is_over_budget = classification is Classification.OVER_BUDGET

    days_total = max(0, _ceil_days(end_date - start_date))
    if now < start_date:
        days_elapsed = 0
    else:
        days_elapsed = max(1, _ceil_days(now - start_date))
    days_left = max(0, _ceil_days(end_date - now))

    time_percentage = 0.0
    daily_budget_pace = 0.0
    if days_total > 0:
        time_percentage = min(PERCENTAGE_BASE, days_elapsed / days_total * PERCENTAGE_BASE)
        daily_budget_pace = amount / days_total
    daily_spending_pace = spent / days_elapsed if days_elapsed > 0 else 0.0

    projected_total = spent + daily_spending_pace * days_left
    projected_exhaustion = None
    if daily_spending_pace > 0 and spent < amount:
        projected_exhaustion = now + timedelta(days=(amount - spent) / daily_spending_pace)
    return BudgetProgress(
        amount=amount,
        spent=spent,
        remaining=amount - spent,
        overage=max(0.0, spent - amount),
        percentage=percentage,
        is_over_budget=is_over_budget,
        is_near_limit=classification is Classification.NEAR_LIMIT,
        classification=classification,
        status=status_for(percentage),
        days_total=days_total,
        days_elapsed=days_elapsed,
        days_left=days_left,
        time_percentage=time_percentage,
        daily_budget_pace=daily_budget_pace,
        daily_spending_pace=daily_spending_pace,
        projected_total=projected_total,
        projected_overrun=max(0.0, projected_total - amount),
        projected_exhaustion=projected_exhaustion,
    )


def progress_for(budget: Budget, spent: float, now: datetime) -> BudgetProgress:
    return calculate_progress(budget.amount, spent, budget.start_date, budget.end_date, now)


def recommendations(progress: BudgetProgress) -> List[str]:
    """Advisory notes for a budget's current standing."""
    if progress.status is BudgetStatus.EXCEEDED:
        notes = [
            "Budget exceeded! Review and reduce spending immediately.",
            "Consider increasing budget amount if necessary.",
        ]
    elif progress.status is BudgetStatus.CRITICAL:
        notes = [
            "Critical budget level reached. Monitor spending closely.",
            "Consider adjusting spending plans for remainder of period.",
        ]
    elif progress.status is BudgetStatus.WARNING:
        notes = [
            "Approaching budget limit. Review upcoming expenses.",
            "Consider prioritizing essential expenses only.",
        ]
    else:
        notes = ["Budget is healthy. Continue current spending patterns."]

    if progress.days_left <= 7 and progress.percentage < 50:
        notes.append("Significant budget remaining with little time left. Consider planned expenses.")
    elif progress.projected_overrun > 0 and not progress.is_over_budget:
        notes.append("At the current pace this budget will be exceeded before the period ends.")
    return notes
