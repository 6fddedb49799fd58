"""Message sources: where raw SMS come from.

A source is anything with fetch_messages(box, max_count) returning the most
recent messages newest first. Two on-disk Android export formats are
supported:

- JSON array as produced by SMS reader libraries
  ([{"address": .., "body": .., "date": <ms>, "type": 1}, ...])
- "SMS Backup & Restore" XML (<smses><sms address=.. body=.. date=.. type=../></smses>)

Android message type 1 is the inbox, 2 is sent. Entries without a type are
treated as inbox.
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_BOX = "inbox"
DEFAULT_MAX_COUNT = 100

BOX_TYPES = {"inbox": 1, "sent": 2}

SUPPORTED_EXTENSIONS = {".json", ".xml"}


class MessageSourceError(Exception):
    """Raised when a message source cannot be read."""


@dataclass(frozen=True)
class RawMessage:
    sender: str
    body: str
    timestamp_ms: int


class MessageSource(Protocol):
    def fetch_messages(
        self, box: str = DEFAULT_BOX, max_count: int = DEFAULT_MAX_COUNT,
    ) -> list[RawMessage]:
        ...


def _select(entries: Iterable[tuple[int | None, RawMessage]], box: str,
            max_count: int) -> list[RawMessage]:
    """Filter (android_type, message) pairs to a box, newest first, capped."""
    if box != "all" and box not in BOX_TYPES:
        raise MessageSourceError(f"Unknown message box: {box!r}")
    wanted = BOX_TYPES.get(box)
    picked = [
        msg for kind, msg in entries
        if wanted is None or kind is None or kind == wanted
    ]
    picked.sort(key=lambda m: m.timestamp_ms, reverse=True)
    return picked[:max_count]


class ListSource:
    """In-memory source; messages are given as inbox messages."""

    def __init__(self, messages: Iterable[RawMessage]):
        self.messages = list(messages)

    def fetch_messages(
        self, box: str = DEFAULT_BOX, max_count: int = DEFAULT_MAX_COUNT,
    ) -> list[RawMessage]:
        return _select(((None, m) for m in self.messages), box, max_count)


class _FileSource:
    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.skipped_count: int = 0

    def _entry(self, address, body, date, kind) -> tuple[int | None, RawMessage] | None:
        if not address or body is None:
            self.skipped_count += 1
            return None
        try:
            timestamp = int(date)
            android_type = int(kind) if kind not in (None, "") else None
        except (TypeError, ValueError):
            self.skipped_count += 1
            return None
        return android_type, RawMessage(
            sender=str(address), body=str(body), timestamp_ms=timestamp,
        )

    def _warn_skipped(self) -> None:
        if self.skipped_count:
            logger.warning(
                "Skipped %d malformed message(s) in %s",
                self.skipped_count, self.path.name,
            )


class JsonExportSource(_FileSource):
    def fetch_messages(
        self, box: str = DEFAULT_BOX, max_count: int = DEFAULT_MAX_COUNT,
    ) -> list[RawMessage]:
        self.skipped_count = 0
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MessageSourceError(f"Cannot read SMS export {self.path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("messages", [])
        if not isinstance(data, list):
            raise MessageSourceError(f"SMS export is not a list of messages: {self.path}")

        entries = []
        for item in data:
            if not isinstance(item, dict):
                self.skipped_count += 1
                continue
            entry = self._entry(
                item.get("address"), item.get("body"),
                item.get("date"), item.get("type"),
            )
            if entry is not None:
                entries.append(entry)
        self._warn_skipped()
        return _select(entries, box, max_count)


class XmlBackupSource(_FileSource):
    def fetch_messages(
        self, box: str = DEFAULT_BOX, max_count: int = DEFAULT_MAX_COUNT,
    ) -> list[RawMessage]:
        self.skipped_count = 0
        try:
            root = ET.parse(self.path).getroot()
        except (OSError, ET.ParseError) as e:
            raise MessageSourceError(f"Cannot read SMS backup {self.path}: {e}") from e

        entries = []
        for sms in root.iter("sms"):
            entry = self._entry(
                sms.get("address"), sms.get("body"),
                sms.get("date"), sms.get("type"),
            )
            if entry is not None:
                entries.append(entry)
        self._warn_skipped()
        return _select(entries, box, max_count)


def detect_source(path: Path | str) -> JsonExportSource | XmlBackupSource:
    """Pick a file source by extension.

    Raises:
        ValueError: If the extension is not a supported export format.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        return JsonExportSource(path)
    if suffix == ".xml":
        return XmlBackupSource(path)
    raise ValueError(f"No message source for file: {path}")
