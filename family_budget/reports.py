"""Tabular budget summaries built with pandas."""

from __future__ import annotations

from typing import Iterable, Optional, Union

import pandas as pd

from .ledger import FrameLedger
from .service import BudgetView

SNAPSHOT_COLUMNS = [
    'Budget',
    'Category',
    'Period',
    'Amount',
    'Spent',
    'Remaining',
    'Percent Used',
    'Status',
    'Days Left',
    'Spent Source',
]

_STATUS_LABELS = {
    'over_budget': 'Over',
    'near_limit': 'Near Limit',
    'normal': 'Under',
}


def format_currency(amount: Union[float, int], include_sign: bool = True) -> str:
    """Format a currency amount with thousands separators.

    Example:
        >>> format_currency(1234.56)
        '$1,234.56'
        >>> format_currency(-20, include_sign=False)
        '-20.00'
    """
    formatted = f"{abs(amount):,.2f}"
    sign = "-" if amount < 0 else ""
    return f"{sign}${formatted}" if include_sign else f"{sign}{formatted}"


def budget_snapshot(views: Iterable[BudgetView]) -> pd.DataFrame:
    """One row per budget with amount, spent and status columns.

    Family-wide budgets show ``All`` in the Category column. Rows are sorted by
    percent used, highest first.
    """
    rows = [
        {
            'Budget': v.name,
            'Category': v.category_id if v.category_id is not None else 'All',
            'Period': v.period.value,
            'Amount': v.amount,
            'Spent': v.spent,
            'Remaining': v.remaining,
            'Percent Used': v.percentage,
            'Status': _STATUS_LABELS[v.classification],
            'Days Left': v.days_left,
            'Spent Source': v.spent_source,
        }
        for v in views
    ]
    if not rows:
        return pd.DataFrame(columns=SNAPSHOT_COLUMNS)
    df = pd.DataFrame(rows, columns=SNAPSHOT_COLUMNS)
    return df.sort_values('Percent Used', ascending=False).reset_index(drop=True)


def drift_report(views: Iterable[BudgetView], ledger: FrameLedger) -> pd.DataFrame:
    """Compare each budget's cached spent with the ledger total for its window.

    Uses the stored cache on each view, so reconciled views still show the
    drift left by transaction edits or deletes.
    """
    rows = []
    for v in views:
        if v.category_id is not None:
            actual = ledger.sum_by_category_and_date_range(v.category_id, v.start_date, v.end_date, 'expense')
        else:
            actual = ledger.sum_by_date_range(v.start_date, v.end_date, 'expense')
        rows.append({'Budget': v.name, 'Cached': v.cached_spent, 'Ledger': actual})
    df = pd.DataFrame(rows, columns=['Budget', 'Cached', 'Ledger'])
    df['Drift'] = df['Ledger'] - df['Cached']
    return df


def summarize(df: pd.DataFrame, currency_columns: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Copy of a snapshot with money columns rendered as currency strings."""
    out = df.copy()
    for column in currency_columns or ('Amount', 'Spent', 'Remaining'):
        if column in out.columns:
            out[column] = out[column].map(format_currency)
    if 'Percent Used' in out.columns:
        out['Percent Used'] = out['Percent Used'].map(lambda p: f"{p:.1f}%")
    return out
