"""Scene state machine: AWAITING_ACTIONS -> RESOLVING -> RESOLVED, never backward.

Every transition is a compare-and-set on (status, version) inside one
IMMEDIATE write transaction, so concurrent callers get exactly one winner.
Resolution is claimed with a token: begin_resolution/retry_resolution hand
one out, complete_resolution only succeeds for the current holder, and a
failed narrator call releases the claim while the scene stays RESOLVING.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass

from backend.app.config import RESOLUTION_CLAIM_TTL_SECONDS
from backend.app.core.access import require_admin, require_owner
from backend.app.core.character_store import load_characters, require_campaign, require_character
from backend.app.core.deltas import apply_deltas
from backend.app.core.errors import (
    AlreadyResolvingError,
    ConcurrentUpdateError,
    ConflictError,
    EmptyLedgerError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from backend.app.core.records import load_json, seconds_since, utc_now
from backend.app.core.scene_store import has_actions, load_scene, load_scene_row, require_scene
from backend.app.core.turn_tracker import end_active_tracker
from backend.app.db.connection import write_transaction
from backend.app.models.identity import Caller
from backend.app.models.narration import AppliedDeltas, NarratorDeltas
from backend.app.models.scene import PlayerAction, Scene, SceneStatus
from backend.app.models.turn_order import TurnTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionClaim:
    scene: Scene
    token: str
    ended_tracker: TurnTracker | None = None


@dataclass(frozen=True)
class SceneClosure:
    scene: Scene
    ended_tracker: TurnTracker | None = None
    applied: AppliedDeltas | None = None


def _log_transition(scene_row: dict, to_status: SceneStatus, **extra) -> None:
    suffix = "".join(f" {k}={v}" for k, v in extra.items())
    logger.info(
        "scene_transition campaign_id=%s scene_id=%s from=%s to=%s%s",
        scene_row["campaign_id"], scene_row["id"], scene_row["status"], to_status.value, suffix,
    )


def _dedupe(ids: list[str]) -> list[str]:
    out: list[str] = []
    for cid in ids:
        if cid not in out:
            out.append(cid)
    return out


def _live_scene_rows(conn: sqlite3.Connection, campaign_id: str) -> list[sqlite3.Row]:
    return conn.execute(
        """SELECT id, participants_json FROM scenes
           WHERE campaign_id = ? AND status IN ('AWAITING_ACTIONS', 'RESOLVING')""",
        (campaign_id,),
    ).fetchall()


def ensure_can_create_scene(conn: sqlite3.Connection, campaign_id: str, participant_ids: list[str]) -> None:
    """Raise ConflictError if a live scene exists or any participant is already in one."""
    for row in _live_scene_rows(conn, campaign_id):
        busy = set(load_json(row["participants_json"], [])) & set(participant_ids)
        if busy:
            raise ConflictError(
                "Characters are already in a live scene",
                scene_id=row["id"],
                character_ids=sorted(busy),
            )
        raise ConflictError("Campaign already has a live scene", scene_id=row["id"])


def create_scene(
    conn: sqlite3.Connection,
    caller: Caller,
    campaign_id: str,
    participant_ids: list[str],
    intro_text: str = "",
) -> Scene:
    require_admin(caller, "start a scene")
    require_campaign(conn, campaign_id)
    participant_ids = _dedupe(participant_ids)
    known = load_characters(conn, campaign_id, participant_ids)
    missing = [cid for cid in participant_ids if cid not in known]
    if missing:
        raise NotFoundError("Characters not found in this campaign", character_ids=missing)

    scene_id = str(uuid.uuid4())
    now = utc_now()
    with write_transaction(conn):
        ensure_can_create_scene(conn, campaign_id, participant_ids)
        row = conn.execute(
            "SELECT COALESCE(MAX(scene_number), 0) FROM scenes WHERE campaign_id = ?",
            (campaign_id,),
        ).fetchone()
        scene_number = int(row[0]) + 1
        try:
            conn.execute(
                """INSERT INTO scenes (id, campaign_id, scene_number, status, participants_json, intro_text,
                                       version, created_by, created_at, updated_at)
                   VALUES (?, ?, ?, 'AWAITING_ACTIONS', ?, ?, 0, ?, ?, ?)""",
                (scene_id, campaign_id, scene_number, json.dumps(participant_ids), intro_text or "",
                 caller.user_id, now, now),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("Campaign already has a live scene", campaign_id=campaign_id) from e

    logger.info(
        "scene_transition campaign_id=%s scene_id=%s from=none to=%s scene_number=%d",
        campaign_id, scene_id, SceneStatus.AWAITING_ACTIONS.value, scene_number,
    )
    return Scene(
        id=scene_id,
        campaign_id=campaign_id,
        scene_number=scene_number,
        status=SceneStatus.AWAITING_ACTIONS,
        participant_character_ids=participant_ids,
        intro_text=intro_text or "",
        created_at=now,
    )


def submit_action(
    conn: sqlite3.Connection,
    caller: Caller,
    scene_id: str,
    character_id: str,
    text: str,
) -> PlayerAction:
    """Append to the ledger. Leaves the Scene row untouched."""
    scene = require_scene(conn, scene_id)
    character = require_character(conn, scene.campaign_id, character_id)
    require_owner(caller, character)
    text = (text or "").strip()
    if not text:
        raise InvalidInputError("Action text is empty", scene_id=scene_id)

    action = PlayerAction(
        id=str(uuid.uuid4()),
        scene_id=scene_id,
        character_id=character_id,
        user_id=caller.user_id,
        action_text=text,
        created_at=utc_now(),
    )
    with write_transaction(conn):
        row = conn.execute("SELECT status FROM scenes WHERE id = ?", (scene_id,)).fetchone()
        if row[0] != SceneStatus.AWAITING_ACTIONS.value:
            raise InvalidStateError(
                f"Scene is not accepting actions (status={row[0]})",
                scene_id=scene_id,
                status=row[0],
            )
        conn.execute(
            """INSERT INTO player_actions (id, scene_id, character_id, user_id, action_text, status, created_at)
               VALUES (?, ?, ?, ?, ?, 'pending', ?)""",
            (action.id, scene_id, character_id, caller.user_id, text, action.created_at),
        )
    logger.info("action_submitted scene_id=%s character_id=%s action_id=%s", scene_id, character_id, action.id)
    return action


def _claim_is_live(row: dict) -> bool:
    if not row.get("resolution_claim"):
        return False
    age = seconds_since(row.get("resolution_claimed_at"))
    return age is None or age < RESOLUTION_CLAIM_TTL_SECONDS


def begin_resolution(conn: sqlite3.Connection, caller: Caller, scene_id: str) -> ResolutionClaim:
    """AWAITING_ACTIONS -> RESOLVING. Exactly one concurrent caller wins.

    Snapshots and ends the scene's active turn tracker in the same transaction.
    """
    require_admin(caller, "resolve a scene")
    token = str(uuid.uuid4())
    with write_transaction(conn):
        row = load_scene_row(conn, scene_id)
        if row is None:
            raise NotFoundError("Scene not found", scene_id=scene_id)
        if row["status"] == SceneStatus.RESOLVING.value:
            raise AlreadyResolvingError("Scene is already being resolved", scene_id=scene_id)
        if row["status"] != SceneStatus.AWAITING_ACTIONS.value:
            raise InvalidStateError(f"Scene cannot be resolved (status={row['status']})", scene_id=scene_id)
        if not has_actions(conn, scene_id):
            raise EmptyLedgerError("No actions submitted for this scene", scene_id=scene_id)

        tracker = end_active_tracker(conn, scene_id)
        snapshot = json.dumps([e.model_dump() for e in tracker.order]) if tracker else None
        now = utc_now()
        cur = conn.execute(
            """
            UPDATE scenes
            SET status = 'RESOLVING', resolution_claim = ?, resolution_claimed_at = ?,
                resolution_attempts = resolution_attempts + 1, last_resolution_error = NULL,
                turn_order_snapshot_json = COALESCE(?, turn_order_snapshot_json),
                version = version + 1, updated_at = ?
            WHERE id = ? AND status = 'AWAITING_ACTIONS' AND COALESCE(version, 0) = ?
            """,
            (token, now, snapshot, now, scene_id, int(row["version"] or 0)),
        )
        if getattr(cur, "rowcount", 0) != 1:
            raise AlreadyResolvingError("Scene is already being resolved", scene_id=scene_id)
    _log_transition(row, SceneStatus.RESOLVING, attempt=int(row["resolution_attempts"] or 0) + 1)
    return ResolutionClaim(scene=load_scene(conn, scene_id), token=token, ended_tracker=tracker)


def retry_resolution(conn: sqlite3.Connection, caller: Caller, scene_id: str) -> ResolutionClaim:
    """Re-claim a RESOLVING scene whose previous attempt failed or whose claim went stale."""
    require_admin(caller, "resolve a scene")
    token = str(uuid.uuid4())
    with write_transaction(conn):
        row = load_scene_row(conn, scene_id)
        if row is None:
            raise NotFoundError("Scene not found", scene_id=scene_id)
        if row["status"] != SceneStatus.RESOLVING.value:
            raise InvalidStateError(f"Scene is not awaiting a resolution retry (status={row['status']})", scene_id=scene_id)
        if _claim_is_live(row):
            raise AlreadyResolvingError("Scene is already being resolved", scene_id=scene_id)
        now = utc_now()
        cur = conn.execute(
            """
            UPDATE scenes
            SET resolution_claim = ?, resolution_claimed_at = ?, resolution_attempts = resolution_attempts + 1,
                version = version + 1, updated_at = ?
            WHERE id = ? AND status = 'RESOLVING' AND COALESCE(version, 0) = ?
            """,
            (token, now, now, scene_id, int(row["version"] or 0)),
        )
        if getattr(cur, "rowcount", 0) != 1:
            raise AlreadyResolvingError("Scene is already being resolved", scene_id=scene_id)
        # A tracker cannot start on a RESOLVING scene; this only cleans up legacy rows.
        tracker = end_active_tracker(conn, scene_id)
    logger.info(
        "resolution_retry campaign_id=%s scene_id=%s attempt=%d",
        row["campaign_id"], scene_id, int(row["resolution_attempts"] or 0) + 1,
    )
    return ResolutionClaim(scene=load_scene(conn, scene_id), token=token, ended_tracker=tracker)


def release_resolution_claim(conn: sqlite3.Connection, scene_id: str, token: str, error_message: str) -> None:
    """Drop a failed attempt's claim; the scene stays RESOLVING for retry."""
    with write_transaction(conn):
        cur = conn.execute(
            """
            UPDATE scenes
            SET resolution_claim = NULL, resolution_claimed_at = NULL, last_resolution_error = ?,
                version = version + 1, updated_at = ?
            WHERE id = ? AND status = 'RESOLVING' AND resolution_claim = ?
            """,
            (error_message[:1000], utc_now(), scene_id, token),
        )
    if getattr(cur, "rowcount", 0) != 1:
        logger.warning("resolution_claim_lost scene_id=%s (taken over or scene ended)", scene_id)


def complete_resolution(
    conn: sqlite3.Connection,
    scene_id: str,
    token: str,
    resolution_text: str,
    deltas: NarratorDeltas,
) -> SceneClosure:
    """RESOLVING -> RESOLVED with the narrator's deltas applied in the same transaction.

    Any failure rolls back both the deltas and the transition.
    """
    with write_transaction(conn):
        row = load_scene_row(conn, scene_id)
        if row is None:
            raise NotFoundError("Scene not found", scene_id=scene_id)
        if row["status"] != SceneStatus.RESOLVING.value:
            raise InvalidStateError(f"Scene is not resolving (status={row['status']})", scene_id=scene_id)
        if row["resolution_claim"] != token:
            raise AlreadyResolvingError("Resolution claim is held by another attempt", scene_id=scene_id)

        applied = apply_deltas(conn, row["campaign_id"], deltas)
        now = utc_now()
        cur = conn.execute(
            """
            UPDATE scenes
            SET status = 'RESOLVED', resolution_text = ?, resolution_claim = NULL, resolution_claimed_at = NULL,
                last_resolution_error = NULL, resolved_at = ?, version = version + 1, updated_at = ?
            WHERE id = ? AND status = 'RESOLVING' AND resolution_claim = ? AND COALESCE(version, 0) = ?
            """,
            (resolution_text, now, now, scene_id, token, int(row["version"] or 0)),
        )
        if getattr(cur, "rowcount", 0) != 1:
            raise ConcurrentUpdateError("Scene changed during resolution", scene_id=scene_id)
        conn.execute("UPDATE player_actions SET status = 'resolved' WHERE scene_id = ?", (scene_id,))
        tracker = end_active_tracker(conn, scene_id)

    _log_transition(row, SceneStatus.RESOLVED, deltas=applied.summary())
    return SceneClosure(scene=load_scene(conn, scene_id), ended_tracker=tracker, applied=applied)


def end_scene(conn: sqlite3.Connection, caller: Caller, scene_id: str) -> SceneClosure:
    """Admin abort: force RESOLVED from any live status without narration."""
    require_admin(caller, "end a scene")
    with write_transaction(conn):
        row = load_scene_row(conn, scene_id)
        if row is None:
            raise NotFoundError("Scene not found", scene_id=scene_id)
        if row["status"] == SceneStatus.RESOLVED.value:
            raise InvalidStateError("Scene is already resolved", scene_id=scene_id)
        now = utc_now()
        cur = conn.execute(
            """
            UPDATE scenes
            SET status = 'RESOLVED', ended_by_admin = 1, resolution_claim = NULL, resolution_claimed_at = NULL,
                resolved_at = ?, version = version + 1, updated_at = ?
            WHERE id = ? AND status IN ('AWAITING_ACTIONS', 'RESOLVING') AND COALESCE(version, 0) = ?
            """,
            (now, now, scene_id, int(row["version"] or 0)),
        )
        if getattr(cur, "rowcount", 0) != 1:
            raise ConcurrentUpdateError("Scene changed while ending", scene_id=scene_id)
        conn.execute("UPDATE player_actions SET status = 'resolved' WHERE scene_id = ?", (scene_id,))
        tracker = end_active_tracker(conn, scene_id)

    _log_transition(row, SceneStatus.RESOLVED, ended_by_admin=True)
    return SceneClosure(scene=load_scene(conn, scene_id), ended_tracker=tracker)
