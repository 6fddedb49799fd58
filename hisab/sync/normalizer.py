"""Draft → ledger Transaction.

Fills what rules leave empty and stamps ownership. The provider transaction
id is passed through untouched; deduplication belongs to the store.
"""

from __future__ import annotations

from datetime import datetime, timezone

from hisab.database.models import Transaction
from hisab.parsers.base import TransactionDraft

DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_METHOD = "SMS"
DEFAULT_STATUS = "Completed"


def ms_to_iso(timestamp_ms: int) -> str:
    """Epoch milliseconds → ISO-8601 UTC with millisecond precision."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds")


def normalize(
    draft: TransactionDraft,
    message_timestamp_ms: int,
    owner_id: str,
    bucket_id: str | None = None,
    ingested_at_ms: int | None = None,
    raw_body: str | None = None,
) -> Transaction:
    txn = Transaction(
        owner_id=owner_id,
        bucket_id=bucket_id,
        direction=draft.direction,
        amount=draft.amount,
        description=draft.description,
        occurred_at=ms_to_iso(message_timestamp_ms),
        provider_trx_id=draft.provider_trx_id,
        category=draft.category or DEFAULT_CATEGORY,
        provider=draft.provider,
        method=draft.method or DEFAULT_METHOD,
        status=DEFAULT_STATUS,
        fee=draft.fee,
        counterparty=draft.counterparty,
        account_suffix=draft.account_suffix,
        running_balance_after=draft.balance_as_stated,
        raw_body=raw_body,
    )
    if ingested_at_ms is not None:
        txn.created_at = ms_to_iso(ingested_at_ms)
    return txn
