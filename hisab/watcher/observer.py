"""Export watcher: PollingObserver + ExportSync orchestration.

Watches a drop folder for SMS export files (.json, .xml), waits for file
stability (size+mtime stable), validates file completeness, then syncs the
export into the ledger:
  detect → stable → validate → source → sync

Uses PollingObserver as primary (not fallback): phone exports usually land
on synced or network folders where inotify is unreliable.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from watchdog.events import FileSystemEventHandler

from hisab.parsers.message import MessageParser
from hisab.sync.orchestrator import SyncOrchestrator, SyncResult
from hisab.sync.source import (
    DEFAULT_BOX,
    DEFAULT_MAX_COUNT,
    SUPPORTED_EXTENSIONS,
    MessageSourceError,
    detect_source,
)

if TYPE_CHECKING:
    from hisab.database.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_SECONDS = 10
DEFAULT_CHECK_INTERVAL = 2.0
DEFAULT_POLL_INTERVAL = 30


class FileStabilityError(Exception):
    """Raised when a file fails post-stability validation."""


# ── File stability & validation ──────────────────────────


def wait_for_stable(
    filepath: Path,
    stability_seconds: int = DEFAULT_STABILITY_SECONDS,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    max_wait: float = 300.0,
) -> None:
    """Wait until file size and mtime are stable for stability_seconds.

    Raises:
        TimeoutError: If file doesn't stabilize within max_wait.
    """
    prev_size = -1
    prev_mtime = -1.0
    stable_since: float | None = None
    start = time.monotonic()

    while True:
        if time.monotonic() - start > max_wait:
            raise TimeoutError(
                f"File did not stabilize within {max_wait}s: {filepath}"
            )

        stat = filepath.stat()
        if stat.st_size == prev_size and stat.st_mtime == prev_mtime:
            if stable_since is None:
                stable_since = time.monotonic()
            elif time.monotonic() - stable_since >= stability_seconds:
                return
        else:
            stable_since = None

        prev_size = stat.st_size
        prev_mtime = stat.st_mtime
        time.sleep(check_interval)


def validate_file_completeness(filepath: Path) -> None:
    """Post-stability validation: ensure the export was fully written.

    - JSON exports must end with a closing ']' or '}'
    - XML backups must contain the closing </smses> tag

    Raises:
        FileStabilityError: If file appears incomplete.
    """
    suffix = filepath.suffix.lower()

    if suffix == ".json":
        content = filepath.read_text(errors="replace").rstrip()
        if not content:
            raise FileStabilityError(f"Empty JSON export: {filepath}")
        if content[-1] not in "]}":
            raise FileStabilityError(
                f"JSON export is truncated: {filepath}"
            )

    elif suffix == ".xml":
        content = filepath.read_text(errors="replace")
        if "</smses>" not in content.lower():
            raise FileStabilityError(
                f"SMS backup missing closing </smses> tag: {filepath}"
            )


# ── Export sync ──────────────────────────────────────────


class ExportSync:
    """Sync one export file into an owner's ledger.

    Args:
        repo: Ledger store.
        owner_id: Account whose ledger receives the transactions.
        parser: Shared MessageParser.
        batch_size: Most recent messages read from each export.
        box: Message box to read.
        bucket_routing: Provider display name → bucket id.
    """

    def __init__(
        self,
        repo: Repository,
        owner_id: str,
        parser: MessageParser | None = None,
        batch_size: int = DEFAULT_MAX_COUNT,
        box: str = DEFAULT_BOX,
        bucket_routing: dict[str, str] | None = None,
    ):
        self.repo = repo
        self.owner_id = owner_id
        self.parser = parser or MessageParser()
        self.batch_size = batch_size
        self.box = box
        self.bucket_routing = bucket_routing or {}

    def process_file(self, filepath: Path, bucket_id: str | None = None) -> SyncResult:
        """Read the export and run one sync over it.

        Raises:
            ValueError: If the file is not a supported export format.
            MessageSourceError: If the export cannot be read.
        """
        source = detect_source(filepath)
        orchestrator = SyncOrchestrator(
            repo=self.repo,
            source=source,
            parser=self.parser,
            batch_size=self.batch_size,
            box=self.box,
            bucket_routing=self.bucket_routing,
        )
        return orchestrator.sync(self.owner_id, bucket_id=bucket_id)


# ── File watcher ─────────────────────────────────────────


class ExportWatcher(FileSystemEventHandler):
    """Watch a drop folder for new SMS exports using PollingObserver.

    Processes files sequentially to avoid database contention.

    Args:
        watch_dir: Directory to watch for new files.
        export_sync: ExportSync that ingests each stable export.
        stability_seconds: Seconds of stability before processing.
        check_interval: Seconds between stability checks.
        on_result: Optional callback receiving (path, SyncResult).
    """

    def __init__(
        self,
        watch_dir: Path,
        export_sync: ExportSync,
        stability_seconds: int = DEFAULT_STABILITY_SECONDS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        on_result: Callable[[Path, SyncResult], None] | None = None,
    ):
        self.watch_dir = Path(watch_dir)
        self.export_sync = export_sync
        self.stability_seconds = stability_seconds
        self.check_interval = check_interval
        self.on_result = on_result
        self._observer = None

    def start(self) -> None:
        """Start watching the drop folder."""
        from watchdog.observers.polling import PollingObserver

        if not self.watch_dir.exists():
            self.watch_dir.mkdir(parents=True, exist_ok=True)

        self._observer = PollingObserver(timeout=DEFAULT_POLL_INTERVAL)
        self._observer.schedule(self, str(self.watch_dir), recursive=False)
        self._observer.start()
        logger.info("Watching %s for SMS exports", self.watch_dir)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Export watcher stopped")

    def on_created(self, event) -> None:
        if event.is_directory:
            return

        filepath = Path(event.src_path)
        if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return

        logger.info("New export detected: %s", filepath.name)
        self._process_file(filepath)

    def _process_file(self, filepath: Path) -> SyncResult | None:
        """Wait for stability, validate, then sync. Errors are logged, not raised."""
        try:
            wait_for_stable(
                filepath,
                stability_seconds=self.stability_seconds,
                check_interval=self.check_interval,
            )
            validate_file_completeness(filepath)
            result = self.export_sync.process_file(filepath)
        except FileStabilityError as e:
            logger.error("Export validation failed: %s", e)
            return None
        except TimeoutError as e:
            logger.error("Export stability timeout: %s", e)
            return None
        except MessageSourceError as e:
            logger.error("Export unreadable: %s", e)
            return None
        except Exception:
            logger.exception("Unexpected error processing %s", filepath.name)
            return None

        logger.info(
            "Sync result for %s: seen=%d committed=%d dup=%d",
            filepath.name, result.messages_seen,
            result.transactions_committed, result.duplicates_skipped,
        )
        if self.on_result is not None:
            self.on_result(filepath, result)
        return result
