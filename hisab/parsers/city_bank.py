"""City Bank (incl. City Amex cards) SMS rules.

Handles card purchases, ATM withdrawals and account deposits. ATM and
deposit alerts carry no transaction id, so one is synthesized (ATM..., DEP...).
ATM alerts carry no fee either; the bank's fixed ATM fee is applied instead.
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
    last_digits,
    parse_amount,
    search_amount,
)

PROVIDER = "City Bank"

DEFAULT_ATM_FEE = Decimal("15.00")

_AMOUNT = r"([\d,]+\.?\d*)"
_BALANCE = re.compile(r"balance is BDT\s*" + _AMOUNT, RULE_FLAGS)


def _card_purchase(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    return TransactionDraft(
        direction=Direction.EXPENSE,
        amount=parse_amount(m.group(1)),
        description="Card Purchase",
        provider_trx_id=m.group(3),
        provider=PROVIDER,
        method="Card Payment",
        category="Shopping",
        account_suffix=m.group(2),
        balance_as_stated=search_amount(_BALANCE, body),
    )


def _make_atm_withdrawal(fee: Decimal):
    def _atm_withdrawal(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
        amount = parse_amount(m.group(1))
        return TransactionDraft(
            direction=Direction.EXPENSE,
            amount=amount,
            description="ATM Withdrawal",
            provider_trx_id=ctx.synthetic_id("ATM", amount),
            provider=PROVIDER,
            method="ATM",
            category="Cash Withdrawal",
            account_suffix=last_digits(m.group(2)),
            fee=fee,
        )
    return _atm_withdrawal


def _bank_deposit(m: re.Match, body: str, ctx: ParseContext) -> TransactionDraft:
    amount = parse_amount(m.group(1))
    # No balance in the alert: the deposited amount is recorded as the
    # running balance, as the bank app did.
    stated = search_amount(_BALANCE, body) if _BALANCE.search(body) else amount
    return TransactionDraft(
        direction=Direction.INCOME,
        amount=amount,
        description="Bank Deposit",
        provider_trx_id=ctx.synthetic_id("DEP", amount),
        provider=PROVIDER,
        method="Bank Transfer",
        category="Deposit",
        account_suffix=last_digits(m.group(2)),
        balance_as_stated=stated,
    )


def build_rules(atm_fee: Decimal = DEFAULT_ATM_FEE) -> ProviderRuleSet:
    rules = ProviderRuleSet(PROVIDER)
    rules.register(
        "card_purchase",
        r"BDT\s*" + _AMOUNT + r"\s+spent.*card ending (\d+).*Txn ID:\s*(\w+)",
        _card_purchase,
    )
    rules.register(
        "atm_withdrawal",
        r"BDT\s*" + _AMOUNT + r"\s+withdrawn from ATM.*Account\s+(\d+)",
        _make_atm_withdrawal(atm_fee),
    )
    rules.register(
        "bank_deposit",
        r"BDT\s*" + _AMOUNT + r"\s+deposited.*Account\s+(\d+)",
        _bank_deposit,
    )
    return rules
