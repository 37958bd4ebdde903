"""Scene and action-ledger reads. Transitions live in scene_machine.py."""
from __future__ import annotations

import sqlite3
from typing import Any

from backend.app.constants import RECENT_SCENES_DEFAULT, RECENT_SCENES_MAX
from backend.app.core.errors import NotFoundError
from backend.app.core.records import load_json, row_to_dict
from backend.app.models.scene import ActionStatus, PlayerAction, Scene, SceneStatus
from backend.app.models.turn_order import TurnOrderEntry


def _row_to_scene(row: Any) -> Scene:
    d = row_to_dict(row)
    return Scene(
        id=d["id"],
        campaign_id=d["campaign_id"],
        scene_number=int(d["scene_number"]),
        status=SceneStatus(d["status"]),
        participant_character_ids=load_json(d.get("participants_json"), []),
        intro_text=d.get("intro_text") or "",
        resolution_text=d.get("resolution_text"),
        resolution_attempts=int(d.get("resolution_attempts") or 0),
        last_resolution_error=d.get("last_resolution_error"),
        ended_by_admin=bool(d.get("ended_by_admin")),
        version=int(d.get("version") or 0),
        created_at=d.get("created_at"),
        resolved_at=d.get("resolved_at"),
    )


def _row_to_action(row: Any) -> PlayerAction:
    d = row_to_dict(row)
    return PlayerAction(
        id=d["id"],
        scene_id=d["scene_id"],
        character_id=d["character_id"],
        user_id=d["user_id"],
        action_text=d["action_text"],
        status=ActionStatus(d["status"]),
        attached_roll_id=d.get("attached_roll_id"),
        created_at=d.get("created_at"),
    )


def load_scene_row(conn: sqlite3.Connection, scene_id: str) -> dict | None:
    """Raw row including the resolution-claim columns the Scene model does not expose."""
    row = conn.execute("SELECT * FROM scenes WHERE id = ?", (scene_id,)).fetchone()
    return row_to_dict(row) if row is not None else None


def load_scene(conn: sqlite3.Connection, scene_id: str) -> Scene | None:
    row = conn.execute("SELECT * FROM scenes WHERE id = ?", (scene_id,)).fetchone()
    return _row_to_scene(row) if row is not None else None


def require_scene(conn: sqlite3.Connection, scene_id: str, campaign_id: str | None = None) -> Scene:
    scene = load_scene(conn, scene_id)
    if scene is None or (campaign_id is not None and scene.campaign_id != campaign_id):
        raise NotFoundError("Scene not found", scene_id=scene_id, campaign_id=campaign_id)
    return scene


def get_current_scene(conn: sqlite3.Connection, campaign_id: str) -> Scene | None:
    """The campaign's live scene (AWAITING_ACTIONS or RESOLVING), if any."""
    row = conn.execute(
        """SELECT * FROM scenes
           WHERE campaign_id = ? AND status IN ('AWAITING_ACTIONS', 'RESOLVING')
           ORDER BY scene_number DESC LIMIT 1""",
        (campaign_id,),
    ).fetchone()
    return _row_to_scene(row) if row is not None else None


def list_scenes(
    conn: sqlite3.Connection,
    campaign_id: str,
    status: SceneStatus | None = None,
    limit: int = RECENT_SCENES_DEFAULT,
) -> list[Scene]:
    """Newest first."""
    limit = max(1, min(int(limit), RECENT_SCENES_MAX))
    if status is None:
        rows = conn.execute(
            "SELECT * FROM scenes WHERE campaign_id = ? ORDER BY scene_number DESC LIMIT ?",
            (campaign_id, limit),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM scenes WHERE campaign_id = ? AND status = ? ORDER BY scene_number DESC LIMIT ?",
            (campaign_id, status.value, limit),
        ).fetchall()
    return [_row_to_scene(r) for r in rows]


def list_actions(conn: sqlite3.Connection, scene_id: str) -> list[PlayerAction]:
    """Ledger in submission order."""
    rows = conn.execute(
        "SELECT * FROM player_actions WHERE scene_id = ? ORDER BY created_at, rowid",
        (scene_id,),
    ).fetchall()
    return [_row_to_action(r) for r in rows]


def has_actions(conn: sqlite3.Connection, scene_id: str) -> bool:
    row = conn.execute(
        "SELECT EXISTS (SELECT 1 FROM player_actions WHERE scene_id = ?)",
        (scene_id,),
    ).fetchone()
    return bool(row[0])


def latest_unrolled_action(conn: sqlite3.Connection, scene_id: str, character_id: str) -> PlayerAction | None:
    """Most recent pending action by this character that has no roll attached yet."""
    row = conn.execute(
        """SELECT * FROM player_actions
           WHERE scene_id = ? AND character_id = ? AND status = 'pending' AND attached_roll_id IS NULL
           ORDER BY created_at DESC, rowid DESC LIMIT 1""",
        (scene_id, character_id),
    ).fetchone()
    return _row_to_action(row) if row is not None else None


def load_turn_order_snapshot(conn: sqlite3.Connection, scene_id: str) -> list[TurnOrderEntry]:
    row = conn.execute(
        "SELECT turn_order_snapshot_json FROM scenes WHERE id = ?",
        (scene_id,),
    ).fetchone()
    if row is None:
        return []
    return [TurnOrderEntry.model_validate(e) for e in load_json(row[0], [])]
