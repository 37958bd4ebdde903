"""Shared request dependencies: DB connection, caller identity, narrator and broadcaster singletons."""
from __future__ import annotations

from fastapi import Header, HTTPException

from backend.app.config import BROADCAST_URL, DEFAULT_DB_PATH
from backend.app.core.broadcast import Broadcaster, create_broadcaster
from backend.app.core.narrator import LLMNarrator, Narrator
from backend.app.db.connection import get_connection
from backend.app.models.identity import CampaignRole, Caller

_NARRATOR: Narrator | None = None
_BROADCASTER: Broadcaster | None = None


def _get_conn():
    """Return DB connection. Migrations are applied once at API startup."""
    return get_connection(DEFAULT_DB_PATH)


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_campaign_role: str | None = Header(default=None),
) -> Caller:
    """Identity set by the upstream gateway after authentication."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    role_raw = (x_campaign_role or CampaignRole.PLAYER.value).strip().lower()
    try:
        role = CampaignRole(role_raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown campaign role: {role_raw}") from None
    return Caller(user_id=user_id, role=role)


def get_narrator() -> Narrator:
    global _NARRATOR
    if _NARRATOR is None:
        _NARRATOR = LLMNarrator()
    return _NARRATOR


def get_broadcaster() -> Broadcaster:
    global _BROADCASTER
    if _BROADCASTER is None:
        _BROADCASTER = create_broadcaster(BROADCAST_URL)
    return _BROADCASTER
