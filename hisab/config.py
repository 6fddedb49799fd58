"""YAML configuration loader for Hisab.

Loads the seed config files from the config/ directory:
  accounts.yaml   owners and their buckets ("cards"), with provider routing
  sync.yaml       batch size, message box, ATM fee, synthesized-id strategy
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path

import yaml

from hisab.parsers.base import SYNTHETIC_ID_STRATEGIES

SYNC_DEFAULTS = {
    "batch_size": 100,
    "box": "inbox",
    "atm_fee": "15.00",
    "synthetic_ids": "ingestion",
    "stability_seconds": 10,
}


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._accounts: list[dict] | None = None
        self._sync: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def accounts(self) -> list[dict]:
        if self._accounts is None:
            data = self._load("accounts.yaml")
            if isinstance(data, dict):
                if "accounts" not in data:
                    raise ValueError("accounts.yaml must have a top-level 'accounts' list")
                data = data["accounts"]
            if not isinstance(data, list) or not all(isinstance(a, dict) for a in data):
                raise ValueError("accounts.yaml 'accounts' must be a list of mappings")
            self._accounts = data
        return self._accounts

    @property
    def sync(self) -> dict:
        """sync.yaml merged over defaults. A missing file means all defaults."""
        if self._sync is None:
            merged = dict(SYNC_DEFAULTS)
            if (self.config_dir / "sync.yaml").exists():
                data = self._load("sync.yaml")
                if not isinstance(data, dict):
                    raise ValueError("sync.yaml must be a mapping")
                merged.update(data)
            self._sync = merged
        return self._sync

    @property
    def batch_size(self) -> int:
        value = int(self.sync["batch_size"])
        if value <= 0:
            raise ValueError(f"batch_size must be positive, got {value}")
        return value

    @property
    def box(self) -> str:
        return str(self.sync["box"])

    @property
    def atm_fee(self) -> Decimal:
        try:
            value = Decimal(str(self.sync["atm_fee"]))
        except InvalidOperation as e:
            raise ValueError(f"Invalid atm_fee: {self.sync['atm_fee']!r}") from e
        if not value.is_finite() or value <= 0:
            raise ValueError(f"atm_fee must be positive, got {value}")
        return value

    @property
    def synthetic_ids(self) -> str:
        value = self.sync["synthetic_ids"]
        if value not in SYNTHETIC_ID_STRATEGIES:
            raise ValueError(
                f"synthetic_ids must be one of {SYNTHETIC_ID_STRATEGIES}, got {value!r}"
            )
        return value

    @property
    def stability_seconds(self) -> int:
        return int(self.sync["stability_seconds"])

    def account_by_id(self, account_id: str) -> dict | None:
        for acct in self.accounts:
            if acct.get("id") == account_id:
                return acct
        return None

    def buckets_for(self, account_id: str) -> list[dict]:
        acct = self.account_by_id(account_id)
        if acct is None:
            return []
        return acct.get("buckets", []) or []

    def bucket_routing(self, account_id: str) -> dict[str, str]:
        """Map provider display names → bucket ID for an account.

        Derived from each bucket's `providers` list. The first bucket that
        lists a provider gets it.
        """
        routing: dict[str, str] = {}
        for bucket in self.buckets_for(account_id):
            bucket_id = bucket.get("id", "")
            if not bucket_id:
                continue
            for provider in bucket.get("providers", []) or []:
                if provider:
                    routing.setdefault(provider, bucket_id)
        return routing
