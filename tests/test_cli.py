"""Tests for the command-line entry point."""

import logging

import pytest

import main


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cli.sqlite"))
    monkeypatch.setenv("LOG_FOLDER", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield tmp_path
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_parser_knows_every_command():
    parser = main.build_parser()
    assert set(main.COMMANDS) == {
        "migrate", "enter-waitlist", "admit-pass", "manual-admit",
        "change-status", "snapshot", "stats", "lottery",
    }
    args = parser.parse_args(["change-status", "4", "rejected", "--reason", "moved away"])
    assert (args.participant_id, args.status, args.reason) == (4, "rejected", "moved away")


def test_parser_rejects_unknown_status():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(["change-status", "4", "graduated"])


def test_migrate_creates_database(cli_env, capsys):
    assert main.main(["migrate"]) == 0
    assert (cli_env / "cli.sqlite").exists()
    assert "Schema up to date" in capsys.readouterr().out


def test_domain_errors_exit_non_zero(cli_env, capsys):
    assert main.main(["admit-pass", "999"]) == 1
    assert "Institution 999 not found" in capsys.readouterr().err


def test_invalid_config_exits_before_touching_database(cli_env, monkeypatch):
    monkeypatch.setenv("FIRST_PRIORITY_QUOTA_RATIO", "2")
    assert main.main(["migrate"]) == 2
    assert not (cli_env / "cli.sqlite").exists()
