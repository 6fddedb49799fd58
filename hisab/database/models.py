"""Dataclass models matching the SQLite schema.

Each dataclass corresponds to one table. Money fields are Decimal here and
stored as INTEGER minor units (poisha) in SQLite; see to_minor/from_minor.
All primary keys are TEXT (UUID strings generated via uuid4()).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

_CENT = Decimal("0.01")


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_minor(amount: Decimal) -> int:
    """Decimal taka → integer poisha, rounded half-up."""
    return int(amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100)


def from_minor(minor: int | None) -> Decimal:
    return (Decimal(minor or 0) / 100).quantize(_CENT)


class Direction(enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class InsertOutcome(enum.Enum):
    INSERTED = "inserted"
    SKIPPED_DUPLICATE = "skipped_duplicate"


@dataclass
class Account:
    email: str
    id: str = field(default_factory=_new_id)
    display_name: str | None = None
    created_at: str = field(default_factory=_now)


@dataclass
class Bucket:
    owner_id: str
    label: str
    id: str = field(default_factory=_new_id)
    card_type: str | None = None
    card_suffix: str | None = None
    balance: Decimal = Decimal("0.00")
    created_at: str = field(default_factory=_now)


@dataclass
class Transaction:
    owner_id: str
    direction: Direction
    amount: Decimal
    description: str
    occurred_at: str
    provider_trx_id: str
    id: str = field(default_factory=_new_id)
    bucket_id: str | None = None
    category: str = "Uncategorized"
    provider: str = ""
    method: str = "SMS"
    status: str = "Completed"
    fee: Decimal = Decimal("0.00")
    counterparty: str | None = None
    account_suffix: str | None = None
    running_balance_after: Decimal = Decimal("0.00")
    raw_body: str | None = None
    created_at: str = field(default_factory=_now)


@dataclass
class BalanceSummary:
    """Computed view over stored rows. Never persisted."""
    total_income: Decimal = Decimal("0.00")
    total_expense: Decimal = Decimal("0.00")

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense


@dataclass
class SyncRun:
    owner_id: str
    id: str = field(default_factory=_new_id)
    messages_seen: int = 0
    committed: int = 0
    duplicates: int = 0
    unrecognized: int = 0
    unmatched: int = 0
    failed: int = 0
    consent_denied: bool = False
    started_at: str = field(default_factory=_now)
    completed_at: str | None = None
