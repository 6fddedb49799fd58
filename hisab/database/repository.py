"""Repository: the ledger store, raw SQL against SQLite.

All methods take/return dataclass instances from models.py.
Connection management uses a single connection with WAL mode and
foreign keys enabled. One Repository is created per database and injected
wherever the ledger is needed; there is no module-level handle.
"""

from __future__ import annotations

import logging
import sqlite3
from decimal import Decimal
from pathlib import Path

from . import queries
from .models import (
    Account,
    BalanceSummary,
    Bucket,
    Direction,
    InsertOutcome,
    SyncRun,
    Transaction,
    from_minor,
    to_minor,
)

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path = MIGRATIONS_DIR):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    for statement in sql_file.read_text().split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                except Exception:
                    self.conn.rollback()
                    raise
                logger.debug("Applied migration %s", sql_file.name)

    # ── Accounts & buckets ──────────────────────────────────

    def insert_account(self, account: Account) -> Account:
        self.conn.execute(
            "INSERT INTO accounts (id, email, display_name, created_at)"
            " VALUES (?, ?, ?, ?)",
            (account.id, account.email, account.display_name, account.created_at),
        )
        self.conn.commit()
        return account

    def get_account(self, account_id: str) -> Account | None:
        row = self.conn.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        return self._row_to_account(row) if row else None

    def insert_bucket(self, bucket: Bucket) -> Bucket:
        self.conn.execute(
            "INSERT INTO buckets"
            " (id, owner_id, label, card_type, card_suffix, balance_cents, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (bucket.id, bucket.owner_id, bucket.label, bucket.card_type,
             bucket.card_suffix, to_minor(bucket.balance), bucket.created_at),
        )
        self.conn.commit()
        return bucket

    def get_bucket(self, bucket_id: str) -> Bucket | None:
        row = self.conn.execute(
            "SELECT * FROM buckets WHERE id = ?", (bucket_id,)
        ).fetchone()
        return self._row_to_bucket(row) if row else None

    def list_buckets(self, owner_id: str) -> list[Bucket]:
        rows = self.conn.execute(
            "SELECT * FROM buckets WHERE owner_id = ? ORDER BY created_at, rowid",
            (owner_id,),
        ).fetchall()
        return [self._row_to_bucket(r) for r in rows]

    def update_bucket_balance(self, bucket_id: str, new_balance: Decimal) -> None:
        """Write the bucket's display balance. Not used for any aggregate."""
        self.conn.execute(
            "UPDATE buckets SET balance_cents = ? WHERE id = ?",
            (to_minor(new_balance), bucket_id),
        )
        self.conn.commit()

    # ── Transactions ────────────────────────────────────────

    def insert_transaction(self, txn: Transaction) -> InsertOutcome:
        """Insert a ledger row unless (owner_id, provider_trx_id) already exists.

        The UNIQUE constraint decides, so two racing inserts of the same
        provider id produce exactly one INSERTED. Any other storage error
        propagates.
        """
        try:
            cur = self.conn.execute(
                "INSERT INTO transactions"
                " (id, owner_id, bucket_id, direction, amount_cents, description,"
                "  occurred_at, category, provider, method, status, provider_trx_id,"
                "  fee_cents, counterparty, account_suffix,"
                "  running_balance_after_cents, raw_body, created_at)"
                " VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)"
                " ON CONFLICT(owner_id, provider_trx_id) DO NOTHING",
                (txn.id, txn.owner_id, txn.bucket_id, txn.direction.value,
                 to_minor(txn.amount), txn.description, txn.occurred_at,
                 txn.category, txn.provider, txn.method, txn.status,
                 txn.provider_trx_id, to_minor(txn.fee), txn.counterparty,
                 txn.account_suffix, to_minor(txn.running_balance_after),
                 txn.raw_body, txn.created_at),
            )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise
        if cur.rowcount == 0:
            logger.debug("Duplicate provider_trx_id %s skipped", txn.provider_trx_id)
            return InsertOutcome.SKIPPED_DUPLICATE
        return InsertOutcome.INSERTED

    def get_transaction(self, txn_id: str) -> Transaction | None:
        row = self.conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (txn_id,)
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def get_by_provider_trx_id(
        self, owner_id: str, provider_trx_id: str
    ) -> Transaction | None:
        row = self.conn.execute(
            "SELECT * FROM transactions"
            " WHERE owner_id = ? AND provider_trx_id = ?",
            (owner_id, provider_trx_id),
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def list_by_owner(
        self, owner_id: str, bucket_id: str | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """Owner's transactions, most recent occurred_at first."""
        sql = "SELECT * FROM transactions WHERE owner_id = ?"
        params: list = [owner_id]
        if bucket_id is not None:
            sql += " AND bucket_id = ?"
            params.append(bucket_id)
        sql += " ORDER BY occurred_at DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self.conn.execute(sql, params).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def count_transactions(self, owner_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM transactions WHERE owner_id = ?", (owner_id,)
        ).fetchone()
        return row[0]

    def aggregate_balance(
        self, owner_id: str, bucket_id: str | None = None
    ) -> BalanceSummary:
        return queries.aggregate_balance(self.conn, owner_id, bucket_id)

    # ── Sync runs ───────────────────────────────────────────

    def insert_sync_run(self, run: SyncRun) -> SyncRun:
        self.conn.execute(
            "INSERT INTO sync_runs"
            " (id, owner_id, messages_seen, committed, duplicates, unrecognized,"
            "  unmatched, failed, consent_denied, started_at, completed_at)"
            " VALUES (?,?,?,?,?,?,?,?,?,?,?)",
            (run.id, run.owner_id, run.messages_seen, run.committed,
             run.duplicates, run.unrecognized, run.unmatched, run.failed,
             int(run.consent_denied), run.started_at, run.completed_at),
        )
        self.conn.commit()
        return run

    def last_sync_run(self, owner_id: str | None = None) -> SyncRun | None:
        sql = "SELECT * FROM sync_runs"
        params: list = []
        if owner_id is not None:
            sql += " WHERE owner_id = ?"
            params.append(owner_id)
        sql += " ORDER BY started_at DESC, rowid DESC LIMIT 1"
        row = self.conn.execute(sql, params).fetchone()
        return self._row_to_sync_run(row) if row else None

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"], email=row["email"],
            display_name=row["display_name"], created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_bucket(row: sqlite3.Row) -> Bucket:
        return Bucket(
            id=row["id"], owner_id=row["owner_id"], label=row["label"],
            card_type=row["card_type"], card_suffix=row["card_suffix"],
            balance=from_minor(row["balance_cents"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"], owner_id=row["owner_id"],
            bucket_id=row["bucket_id"],
            direction=Direction(row["direction"]),
            amount=from_minor(row["amount_cents"]),
            description=row["description"],
            occurred_at=row["occurred_at"],
            category=row["category"], provider=row["provider"],
            method=row["method"], status=row["status"],
            provider_trx_id=row["provider_trx_id"],
            fee=from_minor(row["fee_cents"]),
            counterparty=row["counterparty"],
            account_suffix=row["account_suffix"],
            running_balance_after=from_minor(row["running_balance_after_cents"]),
            raw_body=row["raw_body"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_sync_run(row: sqlite3.Row) -> SyncRun:
        return SyncRun(
            id=row["id"], owner_id=row["owner_id"],
            messages_seen=row["messages_seen"], committed=row["committed"],
            duplicates=row["duplicates"], unrecognized=row["unrecognized"],
            unmatched=row["unmatched"], failed=row["failed"],
            consent_denied=bool(row["consent_denied"]),
            started_at=row["started_at"], completed_at=row["completed_at"],
        )
