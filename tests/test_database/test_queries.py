"""Tests for reporting queries in queries.py."""

from decimal import Decimal

import pytest

from hisab.database.models import Direction, SyncRun, Transaction
from hisab.database.queries import (
    aggregate_balance,
    get_category_summary,
    get_monthly_totals,
    get_status_counts,
)
from tests.conftest import OWNER_ID


def _txn(trx, direction, amount, category, occurred_at, **kw):
    return Transaction(
        owner_id=OWNER_ID, direction=direction, amount=Decimal(amount),
        description="TEST", occurred_at=occurred_at, provider_trx_id=trx,
        provider="bKash", category=category, **kw,
    )


@pytest.fixture
def ledger(repo, owner, bucket):
    for txn in (
        _txn("A", Direction.INCOME, "3045.00", "Cash In", "2025-09-25T06:09:00.000+00:00"),
        _txn("B", Direction.EXPENSE, "250.00", "Money Transfer", "2025-10-15T17:42:00.000+00:00"),
        _txn("C", Direction.EXPENSE, "50.00", "Bill Payment", "2025-10-18T14:17:00.000+00:00"),
        _txn("D", Direction.EXPENSE, "100.00", "Money Transfer", "2025-10-20T04:45:00.000+00:00",
             bucket_id=bucket.id),
    ):
        repo.insert_transaction(txn)
    return repo


class TestAggregateBalance:
    def test_totals(self, ledger):
        summary = aggregate_balance(ledger.conn, OWNER_ID)
        assert summary.total_income == Decimal("3045.00")
        assert summary.total_expense == Decimal("400.00")
        assert summary.balance == Decimal("2645.00")

    def test_bucket_scope(self, ledger):
        summary = aggregate_balance(ledger.conn, OWNER_ID, "bkash-wallet")
        assert summary.total_income == Decimal("0.00")
        assert summary.balance == Decimal("-100.00")

    def test_unknown_owner(self, ledger):
        assert aggregate_balance(ledger.conn, "nobody").balance == Decimal("0.00")


class TestCategorySummary:
    def test_all_time(self, ledger):
        rows = get_category_summary(ledger.conn, OWNER_ID)
        assert rows[0] == {
            "category": "Cash In", "direction": "income",
            "total": Decimal("3045.00"), "txn_count": 1,
        }
        transfer = next(r for r in rows if r["category"] == "Money Transfer")
        assert transfer["total"] == Decimal("350.00")
        assert transfer["txn_count"] == 2

    def test_month_filter(self, ledger):
        rows = get_category_summary(ledger.conn, OWNER_ID, month="2025-10")
        assert {r["category"] for r in rows} == {"Money Transfer", "Bill Payment"}

    def test_empty_month(self, ledger):
        assert get_category_summary(ledger.conn, OWNER_ID, month="2024-01") == []


class TestMonthlyTotals:
    def test_grouped_by_month(self, ledger):
        rows = get_monthly_totals(ledger.conn, OWNER_ID)
        assert rows == [
            {"month": "2025-09", "income": Decimal("3045.00"), "expense": Decimal("0.00")},
            {"month": "2025-10", "income": Decimal("0.00"), "expense": Decimal("400.00")},
        ]


class TestStatusCounts:
    def test_counts(self, ledger):
        ledger.insert_sync_run(SyncRun(owner_id=OWNER_ID))
        counts = get_status_counts(ledger.conn)
        assert counts == {
            "accounts": 1, "buckets": 1, "total_txns": 4,
            "income_txns": 1, "expense_txns": 3, "sync_runs": 1,
        }

    def test_empty_database(self, repo):
        counts = get_status_counts(repo.conn)
        assert counts["total_txns"] == 0
        assert counts["sync_runs"] == 0
