"""Exception types raised by the budget engine."""

from __future__ import annotations


class FamilyBudgetError(Exception):
    """Base class for all budget engine errors."""


class ValidationError(FamilyBudgetError, ValueError):
    """Input rejected before any state was changed."""


class StoreError(FamilyBudgetError):
    """A repository read or write failed."""


class LedgerUnavailableError(FamilyBudgetError):
    """The ledger aggregate query failed or ran past its deadline."""


class NotFoundError(FamilyBudgetError, LookupError):
    """An id did not resolve to a stored record."""

    kind = "record"

    def __init__(self, record_id: str):
        super().__init__(f"{self.kind} '{record_id}' not found")
        self.record_id = record_id


class BudgetNotFoundError(NotFoundError):
    kind = "budget"


class AlertNotFoundError(NotFoundError):
    kind = "alert"


class TransactionNotFoundError(NotFoundError):
    kind = "transaction"
