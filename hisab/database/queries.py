"""Aggregate and reporting queries over the ledger.

Every figure here is derived from stored transaction rows at query time.
Bucket balance caches are never read.
"""

from __future__ import annotations

import sqlite3

from .models import BalanceSummary, from_minor


def aggregate_balance(
    conn: sqlite3.Connection, owner_id: str, bucket_id: str | None = None,
) -> BalanceSummary:
    """Total income, total expense and balance for an owner (or one bucket)."""
    sql = (
        "SELECT"
        "  COALESCE(SUM(CASE WHEN direction = 'income' THEN amount_cents END), 0),"
        "  COALESCE(SUM(CASE WHEN direction = 'expense' THEN amount_cents END), 0)"
        " FROM transactions WHERE owner_id = ?"
    )
    params: list = [owner_id]
    if bucket_id is not None:
        sql += " AND bucket_id = ?"
        params.append(bucket_id)
    income, expense = conn.execute(sql, params).fetchone()
    return BalanceSummary(
        total_income=from_minor(income),
        total_expense=from_minor(expense),
    )


def get_category_summary(
    conn: sqlite3.Connection, owner_id: str, month: str | None = None,
) -> list[dict]:
    """Spending and income per category. month format: 'YYYY-MM'."""
    sql = (
        "SELECT category, direction,"
        "  SUM(amount_cents) AS total_cents,"
        "  COUNT(*) AS txn_count"
        " FROM transactions WHERE owner_id = ?"
    )
    params: list = [owner_id]
    if month:
        sql += " AND occurred_at LIKE ? || '%'"
        params.append(month)
    sql += " GROUP BY category, direction ORDER BY total_cents DESC, category"
    rows = conn.execute(sql, params).fetchall()
    return [
        {
            "category": r["category"],
            "direction": r["direction"],
            "total": from_minor(r["total_cents"]),
            "txn_count": r["txn_count"],
        }
        for r in rows
    ]


def get_monthly_totals(conn: sqlite3.Connection, owner_id: str) -> list[dict]:
    """Income and expense per calendar month, oldest month first."""
    rows = conn.execute(
        "SELECT substr(occurred_at, 1, 7) AS month,"
        "  COALESCE(SUM(CASE WHEN direction = 'income' THEN amount_cents END), 0) AS income,"
        "  COALESCE(SUM(CASE WHEN direction = 'expense' THEN amount_cents END), 0) AS expense"
        " FROM transactions WHERE owner_id = ?"
        " GROUP BY month ORDER BY month",
        (owner_id,),
    ).fetchall()
    return [
        {
            "month": r["month"],
            "income": from_minor(r["income"]),
            "expense": from_minor(r["expense"]),
        }
        for r in rows
    ]


def get_status_counts(conn: sqlite3.Connection) -> dict:
    """Counts for the `hisab status` command."""
    row = conn.execute(
        "SELECT"
        "  (SELECT COUNT(*) FROM accounts) AS accounts,"
        "  (SELECT COUNT(*) FROM buckets) AS buckets,"
        "  (SELECT COUNT(*) FROM transactions) AS total_txns,"
        "  (SELECT COUNT(*) FROM transactions WHERE direction = 'income') AS income_txns,"
        "  (SELECT COUNT(*) FROM transactions WHERE direction = 'expense') AS expense_txns,"
        "  (SELECT COUNT(*) FROM sync_runs) AS sync_runs"
    ).fetchone()
    return dict(row)
