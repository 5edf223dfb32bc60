from __future__ import annotations

from pathlib import Path

import pytest

import main
from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_config_option_without_subcommand_serves() -> None:
    args = _parse_args(["--config", "settings.yaml"])
    assert args.command == "serve"
    assert args.config == "settings.yaml"


def test_create_user_subcommand_arguments() -> None:
    args = _parse_args(["create-user", "john.doe", "john.doe@example.com", "AUDITOR"])
    assert args.command == "create-user"
    assert (args.username, args.email, args.role) == ("john.doe", "john.doe@example.com", "AUDITOR")


@pytest.fixture()
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "cli.sqlite3"
    monkeypatch.setenv("AUDIT_CONFIG_PATH", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("AUDIT_DB_PATH", str(db_path))
    return db_path


def test_create_and_list_users(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["create-user", "john.doe", "john.doe@example.com", "AUDITOR"]) == 0
    assert "Created user #1: john.doe" in capsys.readouterr().out

    assert main.main(["list-users"]) == 0
    output = capsys.readouterr().out
    assert "1 user(s) found" in output
    assert "john.doe@example.com" in output


def test_create_user_reports_conflicts(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["create-user", "john.doe", "john.doe@example.com", "AUDITOR"]) == 0
    capsys.readouterr()

    assert main.main(["create-user", "john.doe", "other@example.com", "ADMIN"]) == 1
    assert "already exists with username" in capsys.readouterr().err


def test_create_user_validates_input(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["create-user", "jd", "not-an-email", "AUDITOR"]) == 1
    errors = capsys.readouterr().err
    assert "Invalid username" in errors
    assert "Invalid email" in errors


def test_init_db_creates_database(cli_env: Path) -> None:
    assert main.main(["init-db"]) == 0
    assert cli_env.exists()
