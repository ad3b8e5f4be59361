"""Unit tests for the command line interface."""

import logging
from pathlib import Path
from typing import Generator

import pytest
from pytest import MonkeyPatch
from typer.testing import CliRunner

from mo_linear.configuration.cli import build_settings, typer_app

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logging() -> Generator[None, None, None]:
    """Undo the root handler changes made by configure_logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_build_settings_applies_overrides(tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
    """Test that explicit options win over the environment."""
    monkeypatch.setenv("WEBHOOK_PORT", "4000")
    settings = build_settings(tmp_path, debug=True, enable_webhooks=True, heartbeat_interval=1.5)
    assert settings.MO_DATA_DIR == tmp_path
    assert settings.DEBUG is True
    assert settings.MO_ENABLE_WEBHOOKS is True
    assert settings.HEARTBEAT_INTERVAL == 1.5
    assert settings.WEBHOOK_PORT == 4000

    assert build_settings(tmp_path, debug=False, webhook_port=5000).WEBHOOK_PORT == 5000


def test_run_creates_and_lists_tasks(tmp_path: Path) -> None:
    """Test running single commands against a data directory."""
    created = runner.invoke(typer_app, ["run", 'new-task title:"Write release notes"', "--data-dir", str(tmp_path)])
    assert created.exit_code == 0
    assert "### Write release notes" in created.output
    assert (tmp_path / "tasks.json").exists()

    listed = runner.invoke(typer_app, ["run", "/mo tasks", "--data-dir", str(tmp_path), "--json"])
    assert listed.exit_code == 0
    assert '"message": "Found 1 task(s)"' in listed.output


def test_run_failure_exits_non_zero(tmp_path: Path) -> None:
    """Test that a failed command sets a non-zero exit code."""
    result = runner.invoke(typer_app, ["run", "does-not-exist", "--data-dir", str(tmp_path)])
    assert result.exit_code == 1
    assert "Unknown command" in result.output
