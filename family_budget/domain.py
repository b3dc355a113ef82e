"""Domain records shared by the stores, the ledger and the engine.

Budgets, transactions and alerts are immutable dataclasses; changes are made
with :func:`dataclasses.replace` and written back through a store.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional, Union

from .errors import ValidationError


class Period(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


def new_id() -> str:
    return uuid.uuid4().hex


def _require_naive(value: datetime) -> datetime:
    if value.tzinfo is not None and value.utcoffset() is not None:
        raise ValidationError("Dates must be naive local times, got an offset-aware datetime")
    return value


def window_start(value: Union[date, datetime]) -> datetime:
    """Return ``value`` as a datetime, a bare date meaning the start of that day."""
    if isinstance(value, datetime):
        return _require_naive(value)
    return datetime.combine(value, time.min)


def window_end(value: Union[date, datetime]) -> datetime:
    """Return ``value`` as a datetime, a bare date meaning the end of that day."""
    if isinstance(value, datetime):
        return _require_naive(value)
    return datetime.combine(value, time.max)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return datetime.fromisoformat(value)


def parse_period(value: Union[str, Period]) -> Period:
    try:
        return Period(value)
    except ValueError:
        raise ValidationError(f"Unknown budget period '{value}'") from None


def parse_transaction_type(value: Union[str, TransactionType]) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"Unknown transaction type '{value}'") from None


# Alert latch states


@dataclass(frozen=True)
class Untriggered:
    pass


@dataclass(frozen=True)
class Triggered:
    at: datetime


AlertState = Union[Untriggered, Triggered]

UNTRIGGERED = Untriggered()


@dataclass(frozen=True)
class Budget:
    id: str
    name: str
    amount: float
    period: Period
    start_date: datetime
    end_date: datetime
    category_id: Optional[str] = None  # None => family-wide
    spent: float = 0.0                 # cached, may lag the ledger
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_family_wide(self) -> bool:
        return self.category_id is None

    def covers(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date

    def validate(self) -> None:
        validate_budget_fields(self.name, self.amount, self.start_date, self.end_date)


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: float
    type: TransactionType
    category_id: str
    date: datetime
    description: str = ""
    tags: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    def validate(self) -> None:
        if not _positive_amount(self.amount):
            raise ValidationError("Transaction amount must be greater than 0")
        if not self.category_id:
            raise ValidationError("Transaction category is required")
        _require_naive(self.date)


@dataclass(frozen=True)
class Alert:
    id: str
    budget_id: str
    threshold: float
    state: AlertState = UNTRIGGERED
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_triggered(self) -> bool:
        return isinstance(self.state, Triggered)

    @property
    def triggered_at(self) -> Optional[datetime]:
        if isinstance(self.state, Triggered):
            return self.state.at
        return None

    def validate(self) -> None:
        validate_threshold(self.threshold)


def _positive_amount(amount) -> bool:
    return amount is not None and math.isfinite(amount) and amount > 0


def validate_budget_fields(name: str, amount: float, start: datetime, end: datetime) -> None:
    if not name or not name.strip():
        raise ValidationError("Budget name cannot be empty")
    if not _positive_amount(amount):
        raise ValidationError("Budget amount must be greater than 0")
    _require_naive(start)
    _require_naive(end)
    if end < start:
        raise ValidationError("Budget end date must not be before start date")


def validate_threshold(threshold: float) -> None:
    if threshold is None or not 0 < threshold <= 100:
        raise ValidationError("Alert threshold must be within (0, 100]")


def make_budget(
    name: str,
    amount: float,
    period: Union[str, Period],
    start_date: Union[date, datetime],
    end_date: Union[date, datetime],
    category_id: Optional[str] = None,
    *,
    is_active: bool = True,
    now: Optional[datetime] = None,
) -> Budget:
    """Build a validated budget with a fresh id and zero cached spend."""
    stamp = now or datetime.now()
    budget = Budget(
        id=new_id(),
        name=name.strip() if name else name,
        amount=float(amount) if amount is not None else amount,
        period=parse_period(period),
        start_date=window_start(start_date),
        end_date=window_end(end_date),
        category_id=category_id or None,
        is_active=is_active,
        created_at=stamp,
        updated_at=stamp,
    )
    budget.validate()
    return budget


def make_transaction(
    amount: float,
    txn_type: Union[str, TransactionType],
    category_id: str,
    when: Union[date, datetime],
    description: str = "",
    tags: Optional[List[str]] = None,
    *,
    now: Optional[datetime] = None,
) -> Transaction:
    stamp = now or datetime.now()
    txn = Transaction(
        id=new_id(),
        amount=float(amount) if amount is not None else amount,
        type=parse_transaction_type(txn_type),
        category_id=category_id,
        date=window_start(when),
        description=description or "",
        tags=list(tags or []),
        created_at=stamp,
        updated_at=stamp,
    )
    txn.validate()
    return txn


def make_alert(budget_id: str, threshold: float, *, now: Optional[datetime] = None) -> Alert:
    alert = Alert(
        id=new_id(),
        budget_id=budget_id,
        threshold=float(threshold) if threshold is not None else threshold,
        created_at=now or datetime.now(),
    )
    alert.validate()
    return alert
