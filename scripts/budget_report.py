#!/usr/bin/env python3
"""Print budget progress and cache drift from the local database."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from family_budget import config, db
from family_budget.ledger import FrameLedger, SqliteLedger
from family_budget.reports import budget_snapshot, drift_report, summarize
from family_budget.repositories import SqliteAlertStore, SqliteBudgetStore, SqliteTransactionStore
from family_budget.service import BudgetFilter, BudgetService


def main(db_path: str, active_only: bool = True, reconcile: bool = False, show_drift: bool = False) -> None:
    config.configure_logging()
    db.init_db(db_path)
    service = BudgetService(
        SqliteBudgetStore(db_path),
        SqliteAlertStore(db_path),
        SqliteTransactionStore(db_path),
        SqliteLedger(db_path),
    )

    views = service.list_budgets(BudgetFilter(is_active=True if active_only else None, limit=10_000))
    if not views:
        print("No budgets found.")
        return
    if reconcile:
        views = [service.get_budget(v.id) for v in views]

    print(summarize(budget_snapshot(views)).to_string(index=False))

    if show_drift:
        print("\nCache drift:")
        print(drift_report(views, FrameLedger.from_sqlite(db_path)).to_string(index=False))


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show budget progress.')
    parser.add_argument('--db', default=config.get_db_path(), help='SQLite database path')
    parser.add_argument('--all', action='store_true', help='Include inactive budgets')
    parser.add_argument('--reconcile', action='store_true', help='Recompute spent from the ledger for each budget')
    parser.add_argument('--drift', action='store_true', help='Compare cached spent with ledger totals')
    args = parser.parse_args()
    main(args.db, active_only=not args.all, reconcile=args.reconcile, show_drift=args.drift)
