"""CLI entry point for Hisab.

Commands:
    hisab init                                  Create schema, seed accounts/buckets
    hisab sync FILE --owner ID [--bucket ID]    Sync an SMS export into the ledger
    hisab watch --owner ID                      Watch a folder for SMS exports
    hisab transactions --owner ID [--limit N]   List ledger rows, newest first
    hisab balance --owner ID [--bucket ID]      Income/expense/balance from the ledger
    hisab summary --owner ID [--month YYYY-MM]  Totals per category and month
    hisab add --owner ID --bucket ID --type T AMOUNT DESCRIPTION
                                                Record a manual transaction
    hisab status                                Counts and last sync run
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on HISAB_LOG_LEVEL env var."""
    level = os.environ.get("HISAB_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load config, or None when the config directory is absent."""
    from hisab.config import Config

    config_dir = os.environ.get("HISAB_CONFIG_DIR", "config")
    try:
        return Config(config_dir=config_dir)
    except FileNotFoundError as e:
        logger.warning("%s; using defaults", e)
        return None


def _get_repo():
    """Create a Repository connected to the configured database, schema applied."""
    from hisab.database.repository import Repository

    db_path = os.environ.get("HISAB_DB_PATH", "hisab.db")
    repo = Repository(db_path=db_path)
    repo.apply_migrations(_get_migrations_dir())
    return repo


def _get_migrations_dir() -> Path:
    from hisab.database.repository import MIGRATIONS_DIR

    return Path(os.environ.get("HISAB_MIGRATIONS_DIR", MIGRATIONS_DIR))


def _get_watch_dir() -> Path:
    return Path(os.environ.get("HISAB_WATCH_DIR", "exports"))


def _get_parser(config):
    from hisab.parsers.message import MessageParser, default_rule_sets

    if config is None:
        return MessageParser()
    return MessageParser(
        rule_sets=default_rule_sets(atm_fee=config.atm_fee),
        synthetic_ids=config.synthetic_ids,
    )


def _get_export_sync(config, repo, owner_id: str):
    from hisab.watcher.observer import ExportSync

    if config is None:
        return ExportSync(repo=repo, owner_id=owner_id)
    return ExportSync(
        repo=repo,
        owner_id=owner_id,
        parser=_get_parser(config),
        batch_size=config.batch_size,
        box=config.box,
        bucket_routing=config.bucket_routing(owner_id),
    )


def _require_owner(repo, owner_id: str) -> bool:
    if repo.get_account(owner_id) is None:
        print(f"Error: Unknown account: {owner_id} (run `hisab init` first)")
        return False
    return True


def _print_result(label: str, result) -> None:
    if result.consent_denied:
        print(f"{label}: SMS access not granted, nothing synced")
        return
    print(
        f"{label}: {result.transactions_committed} new"
        f" (seen={result.messages_seen}, dup={result.duplicates_skipped},"
        f" unmatched={result.unmatched}, failed={result.failed})"
    )


# ── Command handlers ─────────────────────────────────────


def cmd_init(args: argparse.Namespace) -> int:
    """Apply migrations and seed accounts/buckets from accounts.yaml."""
    from hisab.database.models import Account, Bucket

    config = _get_config()
    repo = _get_repo()
    try:
        if config is None:
            print("Schema ready (no config to seed).")
            return 0

        try:
            seed = config.accounts
        except ValueError as e:
            print(f"Error: {e}")
            return 1

        accounts = buckets = 0
        for acct in seed:
            acct_id = acct.get("id")
            if not acct_id or not acct.get("email"):
                logger.warning("Skipping account without id/email in accounts.yaml")
                continue
            if repo.get_account(acct_id) is None:
                repo.insert_account(Account(
                    id=acct_id, email=acct["email"],
                    display_name=acct.get("display_name"),
                ))
                accounts += 1
            for b in acct.get("buckets", []) or []:
                if not b.get("id") or repo.get_bucket(b["id"]) is not None:
                    continue
                repo.insert_bucket(Bucket(
                    id=b["id"], owner_id=acct_id,
                    label=b.get("label", b["id"]),
                    card_type=b.get("card_type"),
                    card_suffix=str(b["card_suffix"]) if b.get("card_suffix") else None,
                    balance=Decimal(str(b.get("balance", 0) or 0)),
                ))
                buckets += 1
        print(f"Schema ready. Seeded {accounts} account(s), {buckets} bucket(s).")
        return 0
    finally:
        repo.close()


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync one SMS export file."""
    from hisab.sync.source import SUPPORTED_EXTENSIONS, MessageSourceError

    filepath = args.file.resolve()
    if not filepath.exists():
        print(f"Error: File not found: {filepath}")
        return 1
    if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
        print(f"Error: Unsupported file type: {filepath.suffix}")
        return 1

    config = _get_config()
    repo = _get_repo()
    try:
        if not _require_owner(repo, args.owner):
            return 1
        export_sync = _get_export_sync(config, repo, args.owner)
        try:
            result = export_sync.process_file(filepath, bucket_id=args.bucket)
        except MessageSourceError as e:
            print(f"Error: {e}")
            return 1
        _print_result(filepath.name, result)
        return 1 if result.failed else 0
    finally:
        repo.close()


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the export watcher daemon."""
    from hisab.watcher.observer import DEFAULT_STABILITY_SECONDS, ExportWatcher

    config = _get_config()
    repo = _get_repo()
    if not _require_owner(repo, args.owner):
        repo.close()
        return 1

    watcher = ExportWatcher(
        watch_dir=_get_watch_dir(),
        export_sync=_get_export_sync(config, repo, args.owner),
        stability_seconds=(
            config.stability_seconds if config else DEFAULT_STABILITY_SECONDS
        ),
        on_result=lambda path, result: _print_result(path.name, result),
    )

    print(f"Watching {watcher.watch_dir} for SMS exports... (Ctrl+C to stop)")
    watcher.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
    finally:
        watcher.stop()
        repo.close()

    return 0


def cmd_transactions(args: argparse.Namespace) -> int:
    """List an owner's transactions, most recent first."""
    repo = _get_repo()
    try:
        txns = repo.list_by_owner(args.owner, bucket_id=args.bucket, limit=args.limit)
        if not txns:
            print("No transactions.")
            return 0
        for t in txns:
            sign = "+" if t.direction.value == "income" else "-"
            print(
                f"  {t.occurred_at[:16]}  {sign}{t.amount:>12,.2f}"
                f"  {t.provider:<10}  {t.category:<16}  {t.description[:32]:<32}"
                f"  {t.provider_trx_id}"
            )
        return 0
    finally:
        repo.close()


def cmd_balance(args: argparse.Namespace) -> int:
    """Print totals computed from ledger rows."""
    repo = _get_repo()
    try:
        summary = repo.aggregate_balance(args.owner, bucket_id=args.bucket)
        print(f"  Total income:   {summary.total_income:>14,.2f}")
        print(f"  Total expense:  {summary.total_expense:>14,.2f}")
        print(f"  Balance:        {summary.balance:>14,.2f}")
        return 0
    finally:
        repo.close()


def cmd_summary(args: argparse.Namespace) -> int:
    """Per-category and per-month totals."""
    from hisab.database.queries import get_category_summary, get_monthly_totals

    repo = _get_repo()
    try:
        rows = get_category_summary(repo.conn, args.owner, month=args.month)
        if not rows:
            print("No transactions.")
            return 0
        print("By category:")
        for r in rows:
            print(
                f"  {r['category']:<20} {r['direction']:<8}"
                f" {r['total']:>12,.2f}  ({r['txn_count']})"
            )
        if not args.month:
            print("\nBy month:")
            for r in get_monthly_totals(repo.conn, args.owner):
                print(f"  {r['month']}  +{r['income']:>12,.2f}  -{r['expense']:>12,.2f}")
        return 0
    finally:
        repo.close()


def cmd_add(args: argparse.Namespace) -> int:
    """Record a manual income/expense against a bucket."""
    from hisab.database.models import Direction, InsertOutcome
    from hisab.sync.orchestrator import SyncOrchestrator
    from hisab.sync.source import ListSource

    try:
        amount = Decimal(args.amount.replace(",", ""))
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        print(f"Error: Invalid amount: {args.amount}")
        return 1

    repo = _get_repo()
    try:
        orchestrator = SyncOrchestrator(repo=repo, source=ListSource([]))
        try:
            txn, outcome = orchestrator.record_manual(
                args.owner, args.bucket, Direction(args.type),
                amount, args.description, category=args.category,
            )
        except ValueError as e:
            print(f"Error: {e}")
            return 1
        if outcome is InsertOutcome.SKIPPED_DUPLICATE:
            print("Error: Duplicate transaction, try again")
            return 1
        print(f"Added {txn.direction.value} {txn.amount:,.2f} ({txn.provider_trx_id})")
        return 0
    finally:
        repo.close()


def cmd_status(args: argparse.Namespace) -> int:
    """Display ledger counts and the last sync run."""
    from hisab.database.queries import get_status_counts

    repo = _get_repo()
    try:
        counts = get_status_counts(repo.conn)
        print("Hisab Status")
        print("=" * 40)
        print(f"  Accounts:            {counts['accounts']:,}")
        print(f"  Buckets:             {counts['buckets']:,}")
        print(f"  Total transactions:  {counts['total_txns']:,}")
        print(f"  Income:              {counts['income_txns']:,}")
        print(f"  Expense:             {counts['expense_txns']:,}")
        print(f"  Sync runs:           {counts['sync_runs']:,}")

        last = repo.last_sync_run()
        if last is not None:
            print(
                f"\n  Last sync ({last.started_at[:19]}): {last.committed} new,"
                f" {last.duplicates} dup, {last.failed} failed"
            )
        return 0
    finally:
        repo.close()


_COMMANDS = {
    "init": cmd_init,
    "sync": cmd_sync,
    "watch": cmd_watch,
    "transactions": cmd_transactions,
    "balance": cmd_balance,
    "summary": cmd_summary,
    "add": cmd_add,
    "status": cmd_status,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="hisab",
        description="Hisab SMS transaction ledger",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init", help="Create schema and seed accounts/buckets")

    sync_p = subparsers.add_parser("sync", help="Sync an SMS export file")
    sync_p.add_argument("file", type=Path, help="SMS export (.json or .xml)")
    sync_p.add_argument("--owner", required=True, help="Account ID")
    sync_p.add_argument("--bucket", help="Bucket ID for all synced transactions")

    watch_p = subparsers.add_parser("watch", help="Watch a folder for SMS exports")
    watch_p.add_argument("--owner", required=True, help="Account ID")

    txn_p = subparsers.add_parser("transactions", help="List transactions")
    txn_p.add_argument("--owner", required=True, help="Account ID")
    txn_p.add_argument("--bucket", help="Only this bucket")
    txn_p.add_argument("--limit", type=int, default=50, help="Max rows (default 50)")

    bal_p = subparsers.add_parser("balance", help="Income, expense and balance")
    bal_p.add_argument("--owner", required=True, help="Account ID")
    bal_p.add_argument("--bucket", help="Only this bucket")

    sum_p = subparsers.add_parser("summary", help="Totals per category and month")
    sum_p.add_argument("--owner", required=True, help="Account ID")
    sum_p.add_argument("--month", help="Restrict to YYYY-MM")

    add_p = subparsers.add_parser("add", help="Record a manual transaction")
    add_p.add_argument("--owner", required=True, help="Account ID")
    add_p.add_argument("--bucket", required=True, help="Bucket ID")
    add_p.add_argument("--type", required=True, choices=["income", "expense"])
    add_p.add_argument("--category", help="Category (default Income/Expense)")
    add_p.add_argument("amount", help="Amount, e.g. 1,250.00")
    add_p.add_argument("description", help="What it was for")

    subparsers.add_parser("status", help="Show ledger counts and last sync")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
