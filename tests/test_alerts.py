from datetime import datetime

from family_budget.alerts import (
    EXCEEDED_MESSAGE,
    alert_level,
    evaluate_alert,
    format_alert_message,
    to_view,
)
from family_budget.domain import Triggered, Untriggered, make_alert

T1 = datetime(2024, 1, 10, 9, 0)
T2 = datetime(2024, 1, 20, 9, 0)


def test_alert_starts_untriggered():
    alert = make_alert('b1', 80)
    assert isinstance(alert.state, Untriggered)
    assert not alert.is_triggered
    assert alert.triggered_at is None


def test_below_threshold_stays_untriggered():
    alert = make_alert('b1', 80)
    assert evaluate_alert(alert, 79.99, T1) is alert


def test_reaching_threshold_latches_with_timestamp():
    alert = evaluate_alert(make_alert('b1', 80), 80.0, T1)
    assert alert.state == Triggered(at=T1)
    assert alert.is_triggered
    assert alert.triggered_at == T1


def test_latch_never_reverts():
    alert = evaluate_alert(make_alert('b1', 50), 65.0, T1)
    later = evaluate_alert(alert, 10.0, T2)
    assert later.is_triggered
    assert later.triggered_at == T1


def test_retrigger_keeps_first_timestamp():
    alert = evaluate_alert(make_alert('b1', 50), 65.0, T1)
    assert evaluate_alert(alert, 95.0, T2).triggered_at == T1


def test_exceeded_message_for_full_threshold():
    alert = evaluate_alert(make_alert('b1', 100), 104.5, T1)
    view = to_view(alert, 'Groceries')
    assert view.is_triggered
    assert view.message == "Budget exceeded! You've spent more than allocated."
    assert view.message == EXCEEDED_MESSAGE
    assert view.level == 'danger'
    assert view.budget_name == 'Groceries'


def test_soft_warning_messages():
    assert format_alert_message(80, True) == "Alert: You've reached 80% of your budget."
    assert format_alert_message(80, False) == "Alert will trigger at 80% of budget."
    assert format_alert_message(100, False) == "Alert will trigger at 100% of budget."


def test_alert_levels():
    assert alert_level(100) == 'danger'
    assert alert_level(80) == 'warning'
    assert alert_level(50) == 'info'
