"""
Integration tests for the CLI.

Tests cover:
- Login, logout and whoami
- Create, list, show, open and delete against a real SQLite file
- JSON output and error reporting
- Doctor checks in local-only mode
"""

import json
import re
from datetime import timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from timecapsule.cli import app
from timecapsule.clock import local_now
from timecapsule.config import ENV_FALLBACKS, ENV_OVERRIDES

runner = CliRunner()

FAR_FUTURE = "2999-01-01"


@pytest.fixture
def db_path(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temporary database with no remote configured."""
    for var in [*ENV_OVERRIDES, *ENV_FALLBACKS]:
        monkeypatch.delenv(var, raising=False)
    path = temp_dir / "timecapsule.db"
    monkeypatch.setenv("TIMECAPSULE_DB_PATH", str(path))
    return path


@pytest.fixture
def logged_in(db_path: Path) -> str:
    result = runner.invoke(app, ["login", "me@example.com"])
    assert result.exit_code == 0
    return "me@example.com"


def today() -> str:
    return local_now().date().isoformat()


def create(*args: str) -> dict:
    result = runner.invoke(app, ["create", *args, "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


# =============================================================================
# Identity
# =============================================================================


class TestIdentity:
    """Tests for login, logout and whoami."""

    def test_login_and_whoami(self, db_path: Path) -> None:
        result = runner.invoke(app, ["login", "  me@example.com "])
        assert result.exit_code == 0
        assert "Logged in as" in result.stdout

        result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "me@example.com"

    def test_login_rejects_invalid_email(self, db_path: Path) -> None:
        result = runner.invoke(app, ["login", "nobody"])
        assert result.exit_code == 1

        result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 1
        assert "Not logged in" in result.stdout

    def test_logout(self, logged_in: str) -> None:
        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0

        result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 1

    def test_owner_option_overrides_session(self, logged_in: str) -> None:
        result = runner.invoke(app, ["--owner", "other@example.com", "whoami"])
        assert result.stdout.strip() == "other@example.com"

    def test_access_denied_without_owner(self, db_path: Path) -> None:
        result = runner.invoke(app, ["list", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] is True
        assert data["error_type"] == "AccessDeniedError"


# =============================================================================
# Capsule Lifecycle
# =============================================================================


class TestCreate:
    """Tests for `timecapsule create`."""

    def test_create_json(self, logged_in: str) -> None:
        data = create("-t", "Goals 2026", "-m", "Run a marathon", "-u", FAR_FUTURE)

        assert data["title"] == "Goals 2026"
        assert data["unlockDate"] == FAR_FUTURE
        assert data["isSealed"] is True
        assert data["state"] == "sealed"
        assert data["daysRemaining"] > 0
        assert "message" not in data

    def test_create_table_output(self, logged_in: str) -> None:
        result = runner.invoke(app, ["create", "-t", "Goals", "-m", "Run", "-u", FAR_FUTURE])
        assert result.exit_code == 0
        assert "Capsule sealed" in result.stdout
        assert FAR_FUTURE in result.stdout

    def test_message_from_stdin(self, logged_in: str) -> None:
        result = runner.invoke(
            app,
            ["create", "-t", "Letter", "-u", today(), "--json"],
            input="Dear future me\n",
        )
        assert result.exit_code == 0
        capsule_id = json.loads(result.stdout)["id"]

        result = runner.invoke(app, ["open", capsule_id, "--json"])
        assert "Dear future me" in json.loads(result.stdout)["message"]

    def test_past_date_rejected(self, logged_in: str) -> None:
        yesterday = (local_now().date() - timedelta(days=1)).isoformat()
        result = runner.invoke(app, ["create", "-t", "t", "-m", "m", "-u", yesterday, "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error_type"] == "CapsuleValidationError"
        assert data["context"]["field"] == "unlock_date"

    def test_missing_unlock_date(self, logged_in: str) -> None:
        result = runner.invoke(app, ["create", "-t", "t", "-m", "m", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["context"]["field"] == "unlock_date"


class TestList:
    """Tests for `timecapsule list`."""

    def test_empty(self, logged_in: str) -> None:
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No capsules yet" in result.stdout

    def test_local_order(self, logged_in: str) -> None:
        first = create("-t", "First", "-m", "m", "-u", FAR_FUTURE)
        second = create("-t", "Second", "-m", "m", "-u", FAR_FUTURE)

        result = runner.invoke(app, ["list", "--json"])

        data = json.loads(result.stdout)
        assert data["count"] == 2
        assert [c["id"] for c in data["capsules"]] == [first["id"], second["id"]]

    def test_table(self, logged_in: str) -> None:
        create("-t", "Goals", "-m", "m", "-u", FAR_FUTURE)
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "Your Vault" in result.stdout
        assert "Goals" in result.stdout
        assert "sealed" in result.stdout


class TestShowOpenDelete:
    """Tests for show, open and delete."""

    def test_show_hides_sealed_message(self, logged_in: str) -> None:
        capsule = create("-t", "Secret", "-m", "hidden words", "-u", FAR_FUTURE)

        result = runner.invoke(app, ["show", capsule["id"]])

        assert result.exit_code == 0
        assert "Secret" in result.stdout
        assert "hidden words" not in result.stdout
        assert "remaining" in result.stdout

    def test_show_accepts_listed_id(self, logged_in: str) -> None:
        """The id column printed by list works as an argument to show."""
        capsule = create("-t", "Goals", "-m", "m", "-u", FAR_FUTURE)

        listing = runner.invoke(app, ["list"]).stdout
        row = next(line for line in listing.splitlines() if "Goals" in line)
        listed_id = re.split(r"[│|]", row)[1].strip()
        assert capsule["id"].startswith(listed_id)

        result = runner.invoke(app, ["show", listed_id, "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["id"] == capsule["id"]

    def test_open_sealed_fails(self, logged_in: str) -> None:
        capsule = create("-t", "t", "-m", "m", "-u", FAR_FUTURE)

        result = runner.invoke(app, ["open", capsule["id"], "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error_type"] == "CapsuleStillSealedError"
        assert data["context"]["unlock_date"] == FAR_FUTURE

    def test_open_ready_capsule(self, logged_in: str) -> None:
        capsule = create("-t", "Today", "-m", "surprise", "-u", today())

        result = runner.invoke(app, ["open", capsule["id"]])
        assert result.exit_code == 0
        assert "surprise" in result.stdout

        result = runner.invoke(app, ["open", capsule["id"], "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["isSealed"] is False
        assert data["state"] == "opened"

    def test_open_unknown_id(self, logged_in: str) -> None:
        result = runner.invoke(app, ["open", "missing", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "CapsuleNotFoundError"

    def test_delete_with_confirmation(self, logged_in: str) -> None:
        capsule = create("-t", "Gone", "-m", "m", "-u", FAR_FUTURE)

        result = runner.invoke(app, ["delete", capsule["id"]], input="y\n")

        assert result.exit_code == 0
        assert "Deleted" in result.stdout
        listing = json.loads(runner.invoke(app, ["list", "--json"]).stdout)
        assert listing["count"] == 0

    def test_delete_aborted(self, logged_in: str) -> None:
        capsule = create("-t", "Kept", "-m", "m", "-u", FAR_FUTURE)

        result = runner.invoke(app, ["delete", capsule["id"]], input="n\n")

        assert result.exit_code == 1
        listing = json.loads(runner.invoke(app, ["list", "--json"]).stdout)
        assert listing["count"] == 1

    def test_delete_json(self, logged_in: str) -> None:
        capsule = create("-t", "Gone", "-m", "m", "-u", FAR_FUTURE)
        result = runner.invoke(app, ["delete", capsule["id"], "--json"])
        assert json.loads(result.stdout) == {"deleted": capsule["id"]}


# =============================================================================
# Configuration and Diagnostics
# =============================================================================


class TestConfigFile:
    """Tests for --config."""

    def test_config_file_db_path(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        for var in [*ENV_OVERRIDES, *ENV_FALLBACKS]:
            monkeypatch.delenv(var, raising=False)
        db = temp_dir / "from-file.db"
        config = temp_dir / "settings.yaml"
        config.write_text(f"db_path: {db}\n")

        result = runner.invoke(app, ["--config", str(config), "login", "me@example.com"])

        assert result.exit_code == 0
        assert db.exists()

    def test_invalid_config(self, temp_dir: Path, db_path: Path) -> None:
        config = temp_dir / "settings.yaml"
        config.write_text("remote_timeout_seconds: -1\n")
        result = runner.invoke(app, ["--config", str(config), "list", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error_type"] == "ConfigError"


class TestDoctor:
    """Tests for `timecapsule doctor`."""

    def test_not_logged_in(self, db_path: Path) -> None:
        result = runner.invoke(app, ["doctor", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        owner = next(c for c in data["checks"] if c["name"] == "Owner")
        assert owner["ok"] is False

    def test_local_only_ok(self, logged_in: str) -> None:
        result = runner.invoke(app, ["doctor", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        remote = next(c for c in data["checks"] if c["name"] == "Remote mirror")
        assert remote["value"] == "not configured"

    def test_table_output(self, logged_in: str) -> None:
        result = runner.invoke(app, ["doctor"])
        assert result.exit_code == 0
        assert "Timecapsule Doctor" in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.stdout
