"""Sender classification: which provider, if any, sent an SMS.

Matching is a case-insensitive substring test of the sender address against
each provider's name fragments. The registry is a priority list: the first
provider with a matching fragment wins, so a sender like "BKASH-CITY" is
bKash.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Provider:
    id: str
    name: str                    # display name stored on ledger rows
    fragments: tuple[str, ...]

    def matches(self, sender: str) -> bool:
        upper = sender.upper()
        return any(f.upper() in upper for f in self.fragments)


BKASH = Provider("bKash", "bKash", ("bKash",))
CITY_BANK = Provider("CityBank", "City Bank", ("City", "Amex"))
DBBL = Provider("DBBL", "Dutch-Bangla Bank", ("DBBL", "Dutch-Bangla"))
EBL = Provider("EBL", "Eastern Bank", ("EBL",))
BRAC = Provider("BRAC", "BRAC Bank", ("BRAC",))

# Priority order, not alphabetical.
DEFAULT_REGISTRY: tuple[Provider, ...] = (BKASH, CITY_BANK, DBBL, EBL, BRAC)


class SenderClassifier:
    def __init__(self, registry: tuple[Provider, ...] | list[Provider] = DEFAULT_REGISTRY):
        self.registry = tuple(registry)

    def classify(self, sender: str) -> Provider | None:
        if not sender:
            return None
        for provider in self.registry:
            if provider.matches(sender):
                return provider
        return None
