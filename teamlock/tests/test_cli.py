"""Tests for the teamlock CLI."""

from __future__ import annotations

import asyncio
import json

import pytest
from typer.testing import CliRunner

from teamlock import __version__
from teamlock.cli import app
from teamlock.core.lock.tokens import TokenCodec
from teamlock.core.storage.sqlite import SqliteStore

runner = CliRunner()

CODES_YAML = (
    "codes:\n"
    "  - {code: alpha01, team_id: TEAM_alpha, team_display_name: Team Alpha}\n"
    "  - {code: BETA02, team_id: TEAM_beta, team_display_name: Team Beta, active: false}\n"
)


@pytest.fixture
def sqlite_env(monkeypatch, tmp_path):
    db = tmp_path / "teamlock.db"
    monkeypatch.setenv("TEAMLOCK_STORE", "sqlite")
    monkeypatch.setenv("TEAMLOCK_STORE_PATH", str(db))
    return db


@pytest.fixture
def codes_file(tmp_path):
    path = tmp_path / "codes.yaml"
    path.write_text(CODES_YAML)
    return path


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_version_command(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestCodes:
    def test_import_then_list_hashed(self, sqlite_env, codes_file):
        result = runner.invoke(app, ["codes", "import", str(codes_file)])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["codes", "list", "--json"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert [r["team_id"] for r in rows] == ["TEAM_alpha", "TEAM_beta"]
        assert rows[1]["active"] is False
        assert "ALPHA01" not in result.stdout

    def test_list_show_codes(self, sqlite_env, codes_file):
        runner.invoke(app, ["codes", "import", str(codes_file)])
        result = runner.invoke(app, ["codes", "list", "--json", "--show-codes"])
        assert [r["code"] for r in json.loads(result.stdout)] == ["ALPHA01", "BETA02"]

    def test_import_bad_file(self, sqlite_env, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("codes:\n  - {code: A1}\n")
        result = runner.invoke(app, ["codes", "import", str(bad)])
        assert result.exit_code == 1

    def test_sqlite_without_path_is_config_error(self, monkeypatch, codes_file):
        monkeypatch.setenv("TEAMLOCK_STORE", "sqlite")
        result = runner.invoke(app, ["codes", "import", str(codes_file)])
        assert result.exit_code == 1


class TestPurgeLocks:
    def test_removes_expired(self, sqlite_env):
        store = SqliteStore(str(sqlite_env))
        asyncio.run(store.check_and_lock("old", "TEAM_alpha", 10.0, 0.0))
        asyncio.run(store.check_and_lock("new", "TEAM_beta", 4_000_000_000.0, 0.0))

        result = runner.invoke(app, ["purge-locks"])
        assert result.exit_code == 0, result.output
        assert "Removed 1" in result.output
        assert asyncio.run(store.get_lock("new", 1.0)) is not None


class TestMint:
    def test_mints_verifiable_token(self, monkeypatch):
        monkeypatch.setenv("TEAMLOCK_TOKEN_SECRET", "cli-secret")
        result = runner.invoke(app, ["mint", "TEAM_alpha"])
        assert result.exit_code == 0, result.output
        token = next(l for l in result.stdout.splitlines() if l.startswith("tlk_"))
        assert TokenCodec("cli-secret").verify(token).team_id == "TEAM_alpha"

    def test_prod_without_secret_fails(self, monkeypatch):
        monkeypatch.setenv("TEAMLOCK_ENV", "prod")
        result = runner.invoke(app, ["mint", "TEAM_alpha"])
        assert result.exit_code == 1


class TestServe:
    def test_passes_options(self, monkeypatch):
        calls = {}

        def fake_start_server(**kwargs):
            calls.update(kwargs)

        monkeypatch.setattr("teamlock.core.api.server.start_server", fake_start_server)
        result = runner.invoke(app, ["serve", "--port", "9001"])
        assert result.exit_code == 0, result.output
        assert calls["host"] == "127.0.0.1"
        assert calls["port"] == 9001
        assert calls["settings"].port == 9001

    def test_nonlocal_refused(self):
        result = runner.invoke(app, ["serve", "--host", "0.0.0.0"])
        assert result.exit_code == 1
        assert "allow-nonlocal" in result.output
