"""Pytest setup: force temp files into workspace; shared campaign fixtures."""
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

import pytest

from backend.app.core.character_store import create_campaign, create_character
from backend.app.db.connection import get_connection
from backend.app.db.migrate import apply_schema
from backend.app.models.identity import CampaignRole, Caller


def pytest_sessionstart(session) -> None:
    """Redirect temp files to a writable workspace path for tests."""
    tmp_root = Path(__file__).resolve().parent / ".tmp"
    tmp_root.mkdir(parents=True, exist_ok=True)
    for key in ("TMPDIR", "TEMP", "TMP"):
        os.environ[key] = str(tmp_root)
    tempfile.tempdir = str(tmp_root)

    class _WorkspaceTemporaryDirectory:
        """TemporaryDirectory variant that uses a workspace path with safe permissions."""

        def __init__(self, suffix: str | None = None, prefix: str | None = None, dir: str | None = None, **_kwargs):
            base = Path(dir) if dir else tmp_root
            name = f"{(prefix or 'tmp')}{uuid4().hex}{suffix or ''}"
            self._path = base / name
            self._path.mkdir(parents=True, exist_ok=False)

        def __enter__(self) -> str:
            return str(self._path)

        def __exit__(self, exc_type, exc, tb) -> None:
            shutil.rmtree(self._path, ignore_errors=True)

    tempfile.TemporaryDirectory = _WorkspaceTemporaryDirectory


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as td:
        path = str(Path(td) / "scenes.db")
        apply_schema(path)
        yield path


@pytest.fixture
def conn(db_path):
    c = get_connection(db_path)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def party(conn):
    """One campaign, its admin, and three player characters (one per user)."""
    admin = Caller(user_id="gm", role=CampaignRole.ADMIN)
    campaign = create_campaign(conn, "Night Market", created_by=admin.user_id)
    players = {
        name: Caller(user_id=f"user-{name}", role=CampaignRole.PLAYER)
        for name in ("ash", "bo", "cy")
    }
    characters = {
        "ash": create_character(conn, campaign.id, "user-ash", "Ash", {"cool": 2, "hard": 1}),
        "bo": create_character(conn, campaign.id, "user-bo", "Bo", {"cool": 0, "sharp": 2}),
        "cy": create_character(conn, campaign.id, "user-cy", "Cy", {"cool": -1, "weird": 3}),
    }
    return SimpleNamespace(admin=admin, campaign=campaign, players=players, characters=characters)
