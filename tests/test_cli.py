"""Tests for hisab.cli — argument parsing and command handlers.

Tests use main(argv=[...]) against a temporary SQLite file and the fixture
config directory. The watch command runs forever and is only tested with
the watcher mocked out.
"""

from __future__ import annotations

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from hisab.cli import main
from hisab.database.repository import Repository
from tests.conftest import FIXTURE_CONFIG_DIR, FIXTURE_EXPORTS_DIR

JSON_EXPORT = str(FIXTURE_EXPORTS_DIR / "sms_export.json")


@pytest.fixture
def env(tmp_path, monkeypatch):
    db_path = tmp_path / "hisab.db"
    monkeypatch.setenv("HISAB_DB_PATH", str(db_path))
    monkeypatch.setenv("HISAB_CONFIG_DIR", str(FIXTURE_CONFIG_DIR))
    monkeypatch.setenv("HISAB_WATCH_DIR", str(tmp_path / "drop"))
    return db_path


def _run(*argv) -> int:
    with pytest.raises(SystemExit) as exc:
        main(list(argv))
    return exc.value.code


def _init(capsys):
    assert _run("init") == 0
    capsys.readouterr()


# ── Argument parsing ─────────────────────────────────────


class TestCliHelp:
    def test_help_exits_zero(self):
        result = subprocess.run(
            [sys.executable, "-m", "hisab.cli", "--help"],
            capture_output=True, text=True,
        )
        assert result.returncode == 0
        assert "Hisab SMS transaction ledger" in result.stdout

    def test_no_command_prints_help(self, env, capsys):
        assert _run() == 0
        assert "usage: hisab" in capsys.readouterr().out

    def test_sync_requires_owner(self, env):
        assert _run("sync", JSON_EXPORT) == 2


# ── init ─────────────────────────────────────────────────


class TestInit:
    def test_seeds_accounts_and_buckets(self, env, capsys):
        assert _run("init") == 0
        assert "Seeded 2 account(s), 3 bucket(s)" in capsys.readouterr().out

        repo = Repository(str(env))
        try:
            bucket = repo.get_bucket("city-amex")
            assert bucket.card_suffix == "4571"
            assert str(repo.get_bucket("bkash-wallet").balance) == "100.00"
        finally:
            repo.close()

    def test_second_run_seeds_nothing(self, env, capsys):
        _init(capsys)
        assert _run("init") == 0
        assert "Seeded 0 account(s), 0 bucket(s)" in capsys.readouterr().out

    def test_malformed_accounts_file(self, env, monkeypatch, tmp_path, capsys):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "accounts.yaml").write_text("owner-1:\n  email: a@example.com\n")
        monkeypatch.setenv("HISAB_CONFIG_DIR", str(config_dir))
        assert _run("init") == 1
        assert "top-level 'accounts'" in capsys.readouterr().out

    def test_without_config_dir(self, env, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("HISAB_CONFIG_DIR", str(tmp_path / "missing"))
        assert _run("init") == 0
        assert "no config to seed" in capsys.readouterr().out


# ── sync ─────────────────────────────────────────────────


class TestSync:
    def test_sync_json_export(self, env, capsys):
        _init(capsys)
        assert _run("sync", JSON_EXPORT, "--owner", "owner-1") == 0
        out = capsys.readouterr().out
        assert "sms_export.json: 2 new" in out

        repo = Repository(str(env))
        try:
            assert str(repo.get_bucket("bkash-wallet").balance) == "2895.00"
        finally:
            repo.close()

    def test_resync_is_idempotent(self, env, capsys):
        _init(capsys)
        _run("sync", JSON_EXPORT, "--owner", "owner-1")
        capsys.readouterr()
        assert _run("sync", JSON_EXPORT, "--owner", "owner-1") == 0
        assert "0 new (seen=3, dup=2" in capsys.readouterr().out

    def test_unknown_owner(self, env, capsys):
        _init(capsys)
        assert _run("sync", JSON_EXPORT, "--owner", "nobody") == 1
        assert "Unknown account" in capsys.readouterr().out

    def test_missing_file(self, env, tmp_path, capsys):
        assert _run("sync", str(tmp_path / "nope.json"), "--owner", "owner-1") == 1
        assert "File not found" in capsys.readouterr().out

    def test_unsupported_file_type(self, env, tmp_path, capsys):
        f = tmp_path / "export.csv"
        f.write_text("a,b\n")
        assert _run("sync", str(f), "--owner", "owner-1") == 1
        assert "Unsupported file type" in capsys.readouterr().out

    def test_unreadable_export(self, env, tmp_path, capsys):
        _init(capsys)
        f = tmp_path / "broken.json"
        f.write_text("[{")
        assert _run("sync", str(f), "--owner", "owner-1") == 1
        assert "Cannot read SMS export" in capsys.readouterr().out


# ── Reporting ────────────────────────────────────────────


class TestReports:
    def test_balance(self, env, capsys):
        _init(capsys)
        _run("sync", JSON_EXPORT, "--owner", "owner-1")
        capsys.readouterr()

        assert _run("balance", "--owner", "owner-1") == 0
        out = capsys.readouterr().out
        assert "3,045.00" in out
        assert "250.00" in out
        assert "2,795.00" in out

    def test_transactions_newest_first(self, env, capsys):
        _init(capsys)
        _run("sync", JSON_EXPORT, "--owner", "owner-1")
        capsys.readouterr()

        assert _run("transactions", "--owner", "owner-1") == 0
        lines = capsys.readouterr().out.splitlines()
        assert "CJF8BLXLD4" in lines[0]
        assert "CIP6OK01LU" in lines[1]

    def test_transactions_empty(self, env, capsys):
        _init(capsys)
        assert _run("transactions", "--owner", "owner-1") == 0
        assert "No transactions." in capsys.readouterr().out

    def test_summary(self, env, capsys):
        _init(capsys)
        _run("sync", JSON_EXPORT, "--owner", "owner-1")
        capsys.readouterr()

        assert _run("summary", "--owner", "owner-1") == 0
        out = capsys.readouterr().out
        assert "Cash In" in out
        assert "Money Transfer" in out
        assert "2025-09" in out

    def test_status(self, env, capsys):
        _init(capsys)
        _run("sync", JSON_EXPORT, "--owner", "owner-1")
        capsys.readouterr()

        assert _run("status") == 0
        out = capsys.readouterr().out
        assert "Accounts:            2" in out
        assert "Total transactions:  2" in out
        assert "Last sync" in out


# ── add ──────────────────────────────────────────────────


class TestAdd:
    def test_add_expense(self, env, capsys):
        _init(capsys)
        assert _run(
            "add", "--owner", "owner-1", "--bucket", "bkash-wallet",
            "--type", "expense", "1,250.00", "Groceries",
        ) == 0
        assert "Added expense 1,250.00 (MANUAL-" in capsys.readouterr().out

        repo = Repository(str(env))
        try:
            assert str(repo.get_bucket("bkash-wallet").balance) == "-1150.00"
        finally:
            repo.close()

    @pytest.mark.parametrize("amount", ["abc", "nan"])
    def test_invalid_amount(self, env, capsys, amount):
        assert _run(
            "add", "--owner", "owner-1", "--bucket", "bkash-wallet",
            "--type", "income", amount, "x",
        ) == 1
        assert "Invalid amount" in capsys.readouterr().out

    def test_zero_amount(self, env, capsys):
        _init(capsys)
        assert _run(
            "add", "--owner", "owner-1", "--bucket", "bkash-wallet",
            "--type", "income", "0", "x",
        ) == 1
        assert "must be positive" in capsys.readouterr().out

    def test_unknown_bucket(self, env, capsys):
        _init(capsys)
        assert _run(
            "add", "--owner", "owner-1", "--bucket", "nope",
            "--type", "income", "10", "x",
        ) == 1
        assert "Unknown bucket" in capsys.readouterr().out


# ── watch ────────────────────────────────────────────────


class TestWatch:
    def test_watch_starts_and_stops(self, env, capsys):
        _init(capsys)
        watcher = MagicMock()
        with patch("hisab.watcher.observer.ExportWatcher", return_value=watcher), \
             patch("hisab.cli.time.sleep", side_effect=KeyboardInterrupt):
            assert _run("watch", "--owner", "owner-1") == 0

        watcher.start.assert_called_once()
        watcher.stop.assert_called_once()

    def test_watch_unknown_owner(self, env, capsys):
        _init(capsys)
        assert _run("watch", "--owner", "nobody") == 1
