"""Shared test fixtures."""

from decimal import Decimal
from pathlib import Path

import pytest

from hisab.database.models import Account, Bucket
from hisab.database.repository import MIGRATIONS_DIR, Repository
from hisab.sync.source import RawMessage

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"
FIXTURE_EXPORTS_DIR = Path(__file__).parent / "fixtures" / "exports"

OWNER_ID = "owner-1"

# Real-shaped provider SMS bodies
BKASH_CASH_IN = (
    "Cash In Tk 3,045.00 from 01851528913 successful. Fee Tk 0.00. "
    "Balance Tk 10,601.71. TrxID CIP6OK01LU at 25/09/2025 12:09."
)
BKASH_RECEIVED_DEPOSIT = (
    "You have received deposit of Tk 550.00 from Amex Card. Fee Tk 0.00. "
    "Balance Tk 557.40. TrxID CJK3FL5BBF at 20/10/2025 10:45"
)
BKASH_BILL_PAYMENT = (
    "Bill Payment of Tk 50.00 for VISA Credit Card is successful. Fee Tk 0.74. "
    "Balance Tk 25.90. TrxID CJI5E7812X at 18/10/2025 20:17"
)
BKASH_SEND_MONEY = (
    "Send Money Tk 250.00 to 01621161449 successful. Ref 1. Fee Tk 0.00. "
    "Balance Tk 44.97. TrxID CJF8BLXLD4 at 15/10/2025 23:42"
)
BKASH_PAYMENT = (
    "Tk1,200.00 sent to DARAZ successful. Fee Tk 0.00. "
    "Balance Tk 3,401.71. TrxID CKA1PAY0ZZ at 02/11/2025 09:15"
)
BKASH_LEGACY_CASH_IN = (
    "Tk550.00 deposited to your bKash account. "
    "Balance Tk 1,107.40. TrxID 7HG5TY21QW at 01/08/2024 14:02"
)
CITY_PURCHASE = (
    "Dear Cardmember, BDT1,250.50 spent at SHWAPNO DHANMONDI with your card "
    "ending 4571 on 12-Oct-25. Txn ID: 9F3K2L7. Your available balance is BDT48,749.50."
)
CITY_ATM = (
    "BDT5,000.00 withdrawn from ATM at CITY BANK GULSHAN from your "
    "Account 1234567890123 on 14-Oct-25."
)
CITY_DEPOSIT = (
    "BDT15,000.00 deposited to your Account 1234567890123 on 15-Oct-25."
)
CITY_DEPOSIT_WITH_BALANCE = (
    "BDT15,000.00 deposited to your Account 1234567890123 on 15-Oct-25. "
    "Current balance is BDT20,000.00."
)

# 2025-09-25T06:09:00Z
CASH_IN_TS = 1758780540000


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    yield r
    r.close()


@pytest.fixture
def owner(repo):
    return repo.insert_account(
        Account(id=OWNER_ID, email="rahim@example.com", display_name="Rahim")
    )


@pytest.fixture
def bucket(repo, owner):
    return repo.insert_bucket(Bucket(
        id="bkash-wallet", owner_id=owner.id, label="bKash Wallet",
        card_type="bKash", balance=Decimal("100.00"),
    ))


def make_message(body: str, sender: str = "bKash", ts: int = CASH_IN_TS) -> RawMessage:
    return RawMessage(sender=sender, body=body, timestamp_ms=ts)
