"""Base parser: draft record, ordered rule sets, and numeric helpers.

A provider's rules are tried in registration order and the first rule that
both matches and extracts cleanly produces the draft. Order is priority:
several patterns are supersets of others, so specific shapes are registered
ahead of generic ones.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable

from hisab.database.models import Direction

logger = logging.getLogger(__name__)

RULE_FLAGS = re.IGNORECASE | re.DOTALL

SYNTHETIC_ID_STRATEGIES = ("ingestion", "message")


class MalformedAmountError(ValueError):
    """A matched numeric capture could not be parsed."""


@dataclass
class TransactionDraft:
    """Intermediate representation output by rules, before normalization."""
    direction: Direction
    amount: Decimal
    description: str
    provider_trx_id: str
    provider: str                       # display name, e.g. "City Bank"
    method: str = ""
    category: str = ""
    counterparty: str | None = None
    account_suffix: str | None = None
    balance_as_stated: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")


@dataclass
class ParseContext:
    """Per-message facts a rule may need beyond the body text.

    Only rules that synthesize a transaction id read these.
    """
    received_at_ms: int
    sender: str = ""
    message_timestamp_ms: int | None = None
    synthetic_ids: str = "ingestion"

    def synthetic_id(self, prefix: str, amount: Decimal) -> str:
        """Build an id for a message that carries none.

        "ingestion": PREFIX + ingestion time in ms.
        "message": PREFIX + message time + short digest of sender/amount/time,
        which stays the same when the same SMS is synced again.
        """
        if self.synthetic_ids == "message" and self.message_timestamp_ms is not None:
            key = f"{self.sender.upper()}|{amount:.2f}|{self.message_timestamp_ms}"
            digest = hashlib.sha256(key.encode()).hexdigest()[:8]
            return f"{prefix}{self.message_timestamp_ms}-{digest}"
        return f"{prefix}{self.received_at_ms}"


Extractor = Callable[[re.Match, str, ParseContext], TransactionDraft]


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: re.Pattern
    extract: Extractor


class ProviderRuleSet:
    """Ordered list of rules for one provider."""

    def __init__(self, provider: str, rules: list[Rule] | None = None):
        self.provider = provider
        self.rules: list[Rule] = list(rules or [])

    def register(self, name: str, pattern: str, extract: Extractor) -> None:
        """Append a rule. Later registrations have lower priority."""
        self.rules.append(Rule(name, re.compile(pattern, RULE_FLAGS), extract))

    def __len__(self) -> int:
        return len(self.rules)

    def apply(self, body: str, ctx: ParseContext) -> TransactionDraft | None:
        for rule in self.rules:
            match = rule.pattern.search(body)
            if match is None:
                continue
            try:
                draft = rule.extract(match, body, ctx)
            except MalformedAmountError as e:
                # Matched shape but garbage numbers: drop the whole message.
                logger.warning(
                    "%s rule '%s' matched but could not parse amounts: %s",
                    self.provider, rule.name, e,
                )
                return None
            logger.debug("%s rule '%s' matched", self.provider, rule.name)
            return draft
        return None


def parse_amount(text: str) -> Decimal:
    """Parse '3,045.00' → Decimal('3045.00').

    Raises:
        MalformedAmountError: If nothing numeric remains after stripping
            thousands separators.
    """
    cleaned = text.replace(",", "").strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise MalformedAmountError(f"not a number: {text!r}") from None
    if not value.is_finite() or value < 0:
        raise MalformedAmountError(f"not a valid amount: {text!r}")
    return value


def search_amount(pattern: re.Pattern, body: str) -> Decimal:
    """Optional field lookup (fee, balance): 0 when the field is absent."""
    match = pattern.search(body)
    if match is None:
        return Decimal("0")
    return parse_amount(match.group(1))


def last_digits(number: str, count: int = 4) -> str:
    return number[-count:]
