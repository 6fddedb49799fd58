"""bKash mobile-money SMS rules.

Handles:
- Cash In from an agent/phone number (income)
- Received deposit from a named source, e.g. a card top-up (income)
- Bill Payment (expense)
- Send Money to a phone number (expense)
- Legacy "Tk<amt> sent to <merchant>" payment (expense)
- Legacy "Tk<amt> deposited" cash in (income)

Every current-format message ends with "Fee Tk .. Balance Tk .. TrxID ..".
"""

from __future__ import annotations

import re
from decimal import Decimal

from hisab.database.models import Direction

from .base import (
    RULE_FLAGS,
    ParseContext,
    ProviderRuleSet,
    TransactionDraft,
    parse_amount,
    search_amount,
)

PROVIDER = "bKash"

_AMOUNT = r"([\d,]+\.?\d*)"
_BALANCE = re.compile(r"Balance Tk\s*" + _AMOUNT, RULE_FLAGS)
_FEE = re.compile(r"Fee Tk\s*" + _AMOUNT, RULE_FLAGS)


def _draft(body: str, **fields) -> TransactionDraft:
    fields.setdefault("fee", search_amount(_FEE, body))
    return TransactionDraft(
        provider=PROVIDER,
        balance_as_stated=search_amount(_BALANCE, body),
        **fields,
    )


def _cash_in_from(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    phone = m.group(2)
    return _draft(
        body,
        direction=Direction.INCOME,
        amount=parse_amount(m.group(1)),
        description=f"Cash In from {phone}",
        provider_trx_id=m.group(3),
        method="Cash In",
        category="Cash In",
        counterparty=phone,
    )


def _received_deposit(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    source = m.group(2).strip()
    return _draft(
        body,
        direction=Direction.INCOME,
        amount=parse_amount(m.group(1)),
        description=f"Received from {source}",
        provider_trx_id=m.group(3),
        method="Received Deposit",
        category="Deposit",
        counterparty=source,
    )


def _bill_payment(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    biller = m.group(2).strip()
    return _draft(
        body,
        direction=Direction.EXPENSE,
        amount=parse_amount(m.group(1)),
        description=f"Bill Payment for {biller}",
        provider_trx_id=m.group(3),
        method="Bill Payment",
        category="Bill Payment",
        counterparty=biller,
    )


def _send_money(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    phone = m.group(2)
    return _draft(
        body,
        direction=Direction.EXPENSE,
        amount=parse_amount(m.group(1)),
        description=f"Send Money to {phone}",
        provider_trx_id=m.group(3),
        method="Send Money",
        category="Money Transfer",
        counterparty=phone,
    )


def _payment(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    merchant = m.group(2).strip()
    return _draft(
        body,
        direction=Direction.EXPENSE,
        amount=parse_amount(m.group(1)),
        description=f"Payment to {merchant}",
        provider_trx_id=m.group(3),
        method="Payment",
        category="Shopping",
        counterparty=merchant,
    )


def _cash_in(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    return _draft(
        body,
        direction=Direction.INCOME,
        amount=parse_amount(m.group(1)),
        description="Cash In to bKash",
        provider_trx_id=m.group(2),
        method="Cash In",
        category="Deposit",
        fee=Decimal("0"),
    )


def build_rules() -> ProviderRuleSet:
    rules = ProviderRuleSet(PROVIDER)
    # Priority order. bill_payment must precede payment: a bill confirmation
    # can also carry a "Tk.. sent to" fragment.
    rules.register(
        "cash_in_from",
        r"Cash In Tk\s*" + _AMOUNT + r"\s+from\s+(\d+)\s+successful.*TrxID\s+(\w+)",
        _cash_in_from,
    )
    rules.register(
        "received_deposit",
        r"received deposit of Tk\s*" + _AMOUNT + r".*from\s+(.+?)\s*\..*TrxID\s+(\w+)",
        _received_deposit,
    )
    rules.register(
        "bill_payment",
        r"Bill Payment of Tk\s*" + _AMOUNT + r"\s+for\s+(.+?)\s+is successful.*TrxID\s+(\w+)",
        _bill_payment,
    )
    rules.register(
        "send_money",
        r"Send Money Tk\s*" + _AMOUNT + r"\s+to\s+(\d+)\s+successful.*TrxID\s+(\w+)",
        _send_money,
    )
    rules.register(
        "payment",
        r"Tk" + _AMOUNT + r"\s+sent\s+to\s+(.+?)\s+.*TrxID\s+(\w+)",
        _payment,
    )
    rules.register(
        "cash_in",
        r"Tk" + _AMOUNT + r"\s+deposited.*TrxID\s+(\w+)",
        _cash_in,
    )
    return rules
