"""MessageParser: sender classification + provider rules for one SMS."""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable

from . import bkash, city_bank
from .base import (
    SYNTHETIC_ID_STRATEGIES,
    ParseContext,
    ProviderRuleSet,
    TransactionDraft,
)
from .senders import BKASH, CITY_BANK, Provider, SenderClassifier

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def default_rule_sets(atm_fee: Decimal = city_bank.DEFAULT_ATM_FEE) -> dict[str, ProviderRuleSet]:
    """Rule sets keyed by provider id. Recognized providers absent here have no rules."""
    return {
        BKASH.id: bkash.build_rules(),
        CITY_BANK.id: city_bank.build_rules(atm_fee=atm_fee),
    }


class MessageParser:
    """Turn one SMS into a TransactionDraft, or None if it is not one.

    Args:
        classifier: Sender → provider lookup.
        rule_sets: Provider id → ordered rules.
        synthetic_ids: "ingestion" or "message"; see ParseContext.synthetic_id.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        classifier: SenderClassifier | None = None,
        rule_sets: dict[str, ProviderRuleSet] | None = None,
        synthetic_ids: str = "ingestion",
        clock: Callable[[], int] = _now_ms,
    ):
        if synthetic_ids not in SYNTHETIC_ID_STRATEGIES:
            raise ValueError(
                f"synthetic_ids must be one of {SYNTHETIC_ID_STRATEGIES}, got {synthetic_ids!r}"
            )
        self.classifier = classifier or SenderClassifier()
        self.rule_sets = rule_sets if rule_sets is not None else default_rule_sets()
        self.synthetic_ids = synthetic_ids
        self.clock = clock

    def classify(self, sender: str) -> Provider | None:
        return self.classifier.classify(sender)

    def parse(
        self,
        provider: Provider,
        body: str,
        *,
        sender: str = "",
        message_timestamp_ms: int | None = None,
        received_at_ms: int | None = None,
    ) -> TransactionDraft | None:
        rules = self.rule_sets.get(provider.id)
        if rules is None:
            logger.debug("No rules registered for provider %s", provider.name)
            return None

        ctx = ParseContext(
            received_at_ms=received_at_ms if received_at_ms is not None else self.clock(),
            sender=sender,
            message_timestamp_ms=message_timestamp_ms,
            synthetic_ids=self.synthetic_ids,
        )
        draft = rules.apply(body, ctx)
        if draft is None:
            logger.debug(
                "No %s rule matched message: %.50s", provider.name, body,
            )
        return draft

    def parse_message(
        self, sender: str, body: str,
        message_timestamp_ms: int | None = None,
        received_at_ms: int | None = None,
    ) -> TransactionDraft | None:
        """Classify then parse. Unrecognized senders yield None."""
        provider = self.classify(sender)
        if provider is None:
            return None
        return self.parse(
            provider, body, sender=sender,
            message_timestamp_ms=message_timestamp_ms,
            received_at_ms=received_at_ms,
        )
