"""Threshold alerts for budgets.

An alert latches: once the spent percentage reaches its threshold the alert
moves from ``Untriggered`` to ``Triggered(at)`` and stays there, even if a
later read shows the budget back under the threshold. Evaluation happens
whenever alert state is requested; nothing runs in the background.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from .config import NEAR_LIMIT_PERCENT, OVER_BUDGET_PERCENT
from .domain import Alert, Triggered, Untriggered

LEVEL_DANGER = "danger"
LEVEL_WARNING = "warning"
LEVEL_INFO = "info"

EXCEEDED_MESSAGE = "Budget exceeded! You've spent more than allocated."


@dataclass(frozen=True)
class AlertView:
    id: str
    budget_id: str
    budget_name: str
    threshold: float
    is_triggered: bool
    triggered_at: Optional[datetime]
    message: str
    level: str


def evaluate_alert(alert: Alert, percentage: float, now: datetime) -> Alert:
    """Return ``alert`` latched to ``Triggered(now)`` if its threshold is reached.

    Triggered alerts are returned unchanged whatever the percentage.
    """
    if isinstance(alert.state, Untriggered) and percentage >= alert.threshold:
        return replace(alert, state=Triggered(at=now))
    return alert


def format_alert_message(threshold: float, is_triggered: bool) -> str:
    threshold_str = f"{threshold:.0f}"
    if is_triggered:
        if threshold >= OVER_BUDGET_PERCENT:
            return EXCEEDED_MESSAGE
        return f"Alert: You've reached {threshold_str}% of your budget."
    return f"Alert will trigger at {threshold_str}% of budget."


def alert_level(threshold: float) -> str:
    if threshold >= OVER_BUDGET_PERCENT:
        return LEVEL_DANGER
    if threshold >= NEAR_LIMIT_PERCENT:
        return LEVEL_WARNING
    return LEVEL_INFO


def to_view(alert: Alert, budget_name: str = "") -> AlertView:
    return AlertView(
        id=alert.id,
        budget_id=alert.budget_id,
        budget_name=budget_name,
        threshold=alert.threshold,
        is_triggered=alert.is_triggered,
        triggered_at=alert.triggered_at,
        message=format_alert_message(alert.threshold, alert.is_triggered),
        level=alert_level(alert.threshold),
    )


class AlertEngine:
    """Evaluate and persist the latch state of a budget's alerts."""

    def __init__(self, alert_store):
        self.alert_store = alert_store

    def evaluate(self, budget_id: str, budget_name: str, percentage: float, now: datetime) -> list:
        views = []
        for alert in self.alert_store.get_by_budget(budget_id):
            evaluated = evaluate_alert(alert, percentage, now)
            if evaluated is not alert:
                if not self.alert_store.mark_triggered(alert.id, now):
                    # another request latched it first; keep the stored timestamp
                    evaluated = self.alert_store.get_by_id(alert.id)
            views.append(to_view(evaluated, budget_name))
        return views
