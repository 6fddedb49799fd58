"""Sync orchestration: source → parse → normalize → ledger.

One sync is one fetch of up to batch_size messages, processed strictly in
source order. A single bad message never aborts the batch: it is logged,
counted, and the loop moves on. Re-running over an unchanged source commits
nothing new because the ledger skips known provider transaction ids.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Callable

from hisab.database.models import Direction, InsertOutcome, SyncRun, Transaction
from hisab.parsers.base import TransactionDraft
from hisab.parsers.message import MessageParser

from .normalizer import normalize
from .source import DEFAULT_BOX, DEFAULT_MAX_COUNT, MessageSource

if TYPE_CHECKING:
    from hisab.database.repository import Repository

logger = logging.getLogger(__name__)

MANUAL_PROVIDER = "Manual"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class SyncResult:
    """Outcome of one sync call, for the host to present."""
    messages_seen: int = 0
    transactions_committed: int = 0
    duplicates_skipped: int = 0
    unrecognized: int = 0
    unmatched: int = 0
    failed: int = 0
    consent_denied: bool = False
    errors: list[str] = field(default_factory=list)


class SyncOrchestrator:
    """Pull a batch of SMS and commit the transactions they describe.

    Args:
        repo: Ledger store.
        source: Message source (see hisab.sync.source).
        parser: MessageParser; a default bKash/City Bank parser if omitted.
        batch_size: Most recent messages fetched per sync.
        box: Message box to read.
        consent: Returns False when the user has not allowed SMS access.
        bucket_routing: Provider display name → bucket id, used when sync()
            is not given an explicit bucket.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        repo: Repository,
        source: MessageSource,
        parser: MessageParser | None = None,
        batch_size: int = DEFAULT_MAX_COUNT,
        box: str = DEFAULT_BOX,
        consent: Callable[[], bool] | None = None,
        bucket_routing: dict[str, str] | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.repo = repo
        self.source = source
        self.parser = parser or MessageParser(clock=clock)
        self.batch_size = batch_size
        self.box = box
        self.consent = consent
        self.bucket_routing = bucket_routing or {}
        self.clock = clock
        self._last_ms = 0

    def sync(self, owner_id: str, bucket_id: str | None = None) -> SyncResult:
        result = SyncResult()
        run = SyncRun(owner_id=owner_id)

        if self.consent is not None and not self.consent():
            logger.info("SMS access not granted; nothing to sync")
            result.consent_denied = True
            self._record_run(run, result)
            return result

        messages = self.source.fetch_messages(box=self.box, max_count=self.batch_size)
        logger.info("Fetched %d message(s) for sync", len(messages))

        for msg in messages:
            result.messages_seen += 1
            provider = self.parser.classify(msg.sender)
            if provider is None:
                result.unrecognized += 1
                continue

            try:
                received_at = self._tick()
                draft = self.parser.parse(
                    provider, msg.body,
                    sender=msg.sender,
                    message_timestamp_ms=msg.timestamp_ms,
                    received_at_ms=received_at,
                )
                if draft is None:
                    result.unmatched += 1
                    continue
                target = bucket_id or self.bucket_routing.get(draft.provider)
                txn = normalize(
                    draft, msg.timestamp_ms, owner_id, target,
                    ingested_at_ms=received_at, raw_body=msg.body,
                )
                outcome = self.repo.insert_transaction(txn)
            except Exception as e:
                logger.exception("Failed to ingest message from %s", msg.sender)
                result.failed += 1
                result.errors.append(f"{msg.sender}@{msg.timestamp_ms}: {e}")
                continue

            if outcome is InsertOutcome.SKIPPED_DUPLICATE:
                result.duplicates_skipped += 1
                continue

            result.transactions_committed += 1
            if txn.bucket_id is not None:
                self._apply_to_bucket(txn)

        logger.info(
            "Sync complete: seen=%d committed=%d dup=%d unmatched=%d failed=%d",
            result.messages_seen, result.transactions_committed,
            result.duplicates_skipped, result.unmatched, result.failed,
        )
        self._record_run(run, result)
        return result

    def record_manual(
        self,
        owner_id: str,
        bucket_id: str,
        direction: Direction,
        amount: Decimal,
        description: str,
        category: str | None = None,
    ) -> tuple[Transaction, InsertOutcome]:
        """Add a hand-entered transaction to a bucket.

        Raises:
            ValueError: If the amount is not positive, the description is
                empty, or the bucket does not exist.
        """
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {amount}")
        if not description.strip():
            raise ValueError("Description is required")
        bucket = self.repo.get_bucket(bucket_id)
        if bucket is None or bucket.owner_id != owner_id:
            raise ValueError(f"Unknown bucket: {bucket_id}")

        if direction is Direction.INCOME:
            balance_after = bucket.balance + amount
        else:
            balance_after = bucket.balance - amount

        now = self._tick()
        draft = TransactionDraft(
            direction=direction,
            amount=amount,
            description=description.strip(),
            provider_trx_id=f"MANUAL-{now}",
            provider=bucket.card_type or MANUAL_PROVIDER,
            method="Manual",
            category=category or ("Income" if direction is Direction.INCOME else "Expense"),
            balance_as_stated=balance_after,
        )
        txn = normalize(draft, now, owner_id, bucket_id, ingested_at_ms=now)
        outcome = self.repo.insert_transaction(txn)
        if outcome is InsertOutcome.INSERTED:
            self._apply_to_bucket(txn)
        return txn, outcome

    def _tick(self) -> int:
        """Current time in ms, strictly increasing across calls.

        Synthesized ids (ATM..., DEP..., MANUAL-...) embed this value, so two
        messages handled within the same millisecond must not share it.
        """
        now = self.clock()
        if now <= self._last_ms:
            now = self._last_ms + 1
        self._last_ms = now
        return now

    def _apply_to_bucket(self, txn: Transaction) -> None:
        """Move the bucket's cached balance by the transaction amount.

        The cache is display-only; a failure here leaves the committed
        transaction in place.
        """
        try:
            bucket = self.repo.get_bucket(txn.bucket_id)
            if bucket is None:
                logger.warning("Bucket %s not found; balance not updated", txn.bucket_id)
                return
            if txn.direction is Direction.INCOME:
                new_balance = bucket.balance + txn.amount
            else:
                new_balance = bucket.balance - txn.amount
            self.repo.update_bucket_balance(bucket.id, new_balance)
        except Exception:
            logger.exception("Bucket balance update failed for %s", txn.bucket_id)

    def _record_run(self, run: SyncRun, result: SyncResult) -> None:
        run.messages_seen = result.messages_seen
        run.committed = result.transactions_committed
        run.duplicates = result.duplicates_skipped
        run.unrecognized = result.unrecognized
        run.unmatched = result.unmatched
        run.failed = result.failed
        run.consent_denied = result.consent_denied
        run.completed_at = datetime.now(timezone.utc).isoformat()
        try:
            self.repo.insert_sync_run(run)
        except Exception:
            logger.exception("Could not record sync run for %s", run.owner_id)
