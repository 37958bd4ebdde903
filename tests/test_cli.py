"""Minimal smoke tests for the scenekeeper CLI wrapper.

Run with: python -m pytest tests/test_cli.py -v
"""
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parent.parent


def _run_cli(*args: str, env: dict[str, str] | None = None, timeout: int = 30) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "scenekeeper", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
        cwd=str(_ROOT),
        env={**os.environ, **(env or {})},
    )


class TestCLIHelp:
    """Verify that all subcommands register and print help without errors."""

    def test_main_help(self):
        result = _run_cli("--help")
        assert result.returncode == 0
        for command in ("doctor", "migrate", "serve", "config"):
            assert command in result.stdout

    def test_serve_help(self):
        result = _run_cli("serve", "--help")
        assert result.returncode == 0
        assert "--port" in result.stdout
        assert "--reload" in result.stdout

    def test_migrate_help(self):
        result = _run_cli("migrate", "--help")
        assert result.returncode == 0
        assert "--db" in result.stdout


class TestCommandsRun:
    def test_migrate_creates_database(self, tmp_path):
        db = tmp_path / "cli.db"
        result = _run_cli("migrate", "--db", str(db))
        assert result.returncode == 0, result.stdout + result.stderr
        assert "0001_init" in result.stdout
        again = _run_cli("migrate", "--db", str(db))
        assert "up to date" in again.stdout

    def test_config_shows_narrator_override(self):
        result = _run_cli("config", env={"SCENEKEEPER_NARRATOR_MODEL": "test-model"})
        assert result.returncode == 0
        assert "model=test-model" in result.stdout

    def test_doctor_exits_cleanly(self, tmp_path):
        result = _run_cli(
            "doctor", "--skip-narrator",
            env={"SCENEKEEPER_DB_PATH": str(tmp_path / "doctor.db")},
        )
        # 0 (all ok) or 1 (issues found), never a crash
        assert result.returncode in (0, 1)
        assert "Scenekeeper Doctor" in result.stdout
