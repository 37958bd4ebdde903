"""Turn order tracker: optional initiative-ordered turn alternation on top of a live scene.

A tracker row goes active -> ended and is never reused; a new exchange starts
a new tracker. Its position (current_turn_index, round_number, has_acted
flags) only changes through the operations below, each a versioned
compare-and-set inside one write transaction. Ordering and advancement are
pure functions so they can be tested without a database.
"""
from __future__ import annotations

import json
import logging
import random
import sqlite3
import uuid
from typing import Any

from backend.app.constants import INITIATIVE_STAT
from backend.app.core.access import require_admin, require_owner
from backend.app.core.broadcast import (
    Broadcaster,
    publish_safely,
    turn_order_ended_event,
    turn_order_updated_event,
)
from backend.app.core.character_store import load_characters
from backend.app.core.dice import roll_initiative
from backend.app.core.errors import (
    ConcurrentUpdateError,
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NoActiveTrackerError,
    NotFoundError,
    NotYourTurnError,
)
from backend.app.core.records import load_json, row_to_dict, utc_now
from backend.app.core.scene_store import require_scene
from backend.app.db.connection import write_transaction
from backend.app.models.identity import Caller
from backend.app.models.scene import SceneStatus
from backend.app.models.turn_order import SkipRecord, TrackerState, TurnOrderEntry, TurnTracker

logger = logging.getLogger(__name__)


# --- Pure ordering / advancement ---


def order_participants(participants: list[tuple[str, int]]) -> list[TurnOrderEntry]:
    """Initiative descending; ties keep the order participants were supplied in.

    Repeated character ids keep their first occurrence.
    """
    seen: set[str] = set()
    unique: list[tuple[str, int]] = []
    for character_id, initiative in participants:
        if character_id in seen:
            logger.warning("Duplicate turn order participant %s ignored", character_id)
            continue
        seen.add(character_id)
        unique.append((character_id, int(initiative)))
    ranked = sorted(unique, key=lambda p: p[1], reverse=True)
    return [TurnOrderEntry(character_id=cid, initiative=init) for cid, init in ranked]


def advance_position(tracker: TurnTracker, mark_acted: bool = True) -> TurnTracker:
    """Return the tracker moved past its current entry.

    The current entry is marked as having acted unless ``mark_acted`` is
    False (skips). The next actor is the first later entry in this pass that
    has not acted; when none is left the round rolls over: every flag resets,
    round_number increments, and the index returns to 0.
    """
    nxt = tracker.model_copy(deep=True)
    if not nxt.order:
        return nxt
    if mark_acted:
        nxt.order[nxt.current_turn_index].has_acted = True
    for idx in range(nxt.current_turn_index + 1, len(nxt.order)):
        if not nxt.order[idx].has_acted:
            nxt.current_turn_index = idx
            return nxt
    for entry in nxt.order:
        entry.has_acted = False
    nxt.round_number += 1
    nxt.current_turn_index = 0
    return nxt


# --- Persistence ---


def _row_to_tracker(row: Any) -> TurnTracker:
    d = row_to_dict(row)
    return TurnTracker(
        id=d["id"],
        campaign_id=d["campaign_id"],
        scene_id=d["scene_id"],
        order=[TurnOrderEntry.model_validate(e) for e in load_json(d.get("order_json"), [])],
        current_turn_index=int(d.get("current_turn_index") or 0),
        round_number=int(d.get("round_number") or 1),
        state=TrackerState(d["state"]),
        skip_log=[SkipRecord.model_validate(s) for s in load_json(d.get("skip_log_json"), [])],
        version=int(d.get("version") or 0),
    )


def load_active_tracker(conn: sqlite3.Connection, scene_id: str) -> TurnTracker | None:
    row = conn.execute(
        "SELECT * FROM turn_trackers WHERE scene_id = ? AND state = 'active'",
        (scene_id,),
    ).fetchone()
    return _row_to_tracker(row) if row is not None else None


def load_latest_tracker(conn: sqlite3.Connection, scene_id: str) -> TurnTracker | None:
    row = conn.execute(
        "SELECT * FROM turn_trackers WHERE scene_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
        (scene_id,),
    ).fetchone()
    return _row_to_tracker(row) if row is not None else None


def get_active_tracker(conn: sqlite3.Connection, scene_id: str) -> TurnTracker:
    tracker = load_active_tracker(conn, scene_id)
    if tracker is None:
        raise NoActiveTrackerError("No active turn order for this scene", scene_id=scene_id)
    return tracker


def _save_position(conn: sqlite3.Connection, before: TurnTracker, after: TurnTracker) -> TurnTracker:
    cur = conn.execute(
        """
        UPDATE turn_trackers
        SET order_json = ?, current_turn_index = ?, round_number = ?, skip_log_json = ?,
            version = version + 1, updated_at = ?
        WHERE id = ? AND state = 'active' AND COALESCE(version, 0) = ?
        """,
        (
            json.dumps([e.model_dump() for e in after.order]),
            after.current_turn_index,
            after.round_number,
            json.dumps([s.model_dump() for s in after.skip_log]),
            utc_now(),
            before.id,
            before.version,
        ),
    )
    if getattr(cur, "rowcount", 0) != 1:
        raise ConcurrentUpdateError("Turn order changed concurrently", tracker_id=before.id)
    return after.model_copy(update={"version": before.version + 1})


def end_active_tracker(conn: sqlite3.Connection, scene_id: str) -> TurnTracker | None:
    """End the scene's active tracker, if any. Runs inside the caller's transaction."""
    tracker = load_active_tracker(conn, scene_id)
    if tracker is None:
        return None
    now = utc_now()
    conn.execute(
        """UPDATE turn_trackers
           SET state = 'ended', ended_at = ?, updated_at = ?, version = version + 1
           WHERE id = ? AND state = 'active'""",
        (now, now, tracker.id),
    )
    logger.info("turn_order_ended scene_id=%s tracker_id=%s round=%d", scene_id, tracker.id, tracker.round_number)
    return tracker.model_copy(update={"state": TrackerState.ENDED, "version": tracker.version + 1})


# --- Operations ---


def start(
    conn: sqlite3.Connection,
    caller: Caller,
    scene_id: str,
    participants: list[dict],
    rng: random.Random | None = None,
    broadcaster: Broadcaster | None = None,
) -> TurnTracker:
    """Start combat for a scene awaiting actions.

    ``participants`` items are ``{"character_id": ..., "initiative": int | None}``;
    a missing initiative is rolled as 2d6 + cool.
    """
    require_admin(caller, "start turn order")
    scene = require_scene(conn, scene_id)
    if not participants:
        raise InvalidInputError("Turn order needs at least one participant", scene_id=scene_id)

    ids = [p["character_id"] for p in participants]
    characters = load_characters(conn, scene.campaign_id, ids)
    missing = [cid for cid in ids if cid not in characters]
    if missing:
        raise NotFoundError("Characters not found in this campaign", character_ids=missing)

    ranked_input: list[tuple[str, int]] = []
    for p in participants:
        initiative = p.get("initiative")
        if initiative is None:
            character = characters[p["character_id"]]
            initiative = roll_initiative(character.stat(INITIATIVE_STAT), rng)
        ranked_input.append((p["character_id"], int(initiative)))
    order = order_participants(ranked_input)

    tracker = TurnTracker(
        id=str(uuid.uuid4()),
        campaign_id=scene.campaign_id,
        scene_id=scene_id,
        order=order,
    )
    now = utc_now()
    with write_transaction(conn):
        status_row = conn.execute("SELECT status FROM scenes WHERE id = ?", (scene_id,)).fetchone()
        if status_row[0] != SceneStatus.AWAITING_ACTIONS.value:
            raise InvalidStateError(
                f"Turn order can only start while a scene awaits actions (status={status_row[0]})",
                scene_id=scene_id,
            )
        if load_active_tracker(conn, scene_id) is not None:
            raise ConflictError("Turn order already active for this scene", scene_id=scene_id)
        try:
            conn.execute(
                """INSERT INTO turn_trackers (id, campaign_id, scene_id, state, order_json, current_turn_index,
                                              round_number, skip_log_json, version, started_by, created_at, updated_at)
                   VALUES (?, ?, ?, 'active', ?, 0, 1, '[]', 0, ?, ?, ?)""",
                (
                    tracker.id,
                    tracker.campaign_id,
                    scene_id,
                    json.dumps([e.model_dump() for e in order]),
                    caller.user_id,
                    now,
                    now,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("Turn order already active for this scene", scene_id=scene_id) from e

    logger.info(
        "turn_order_started scene_id=%s tracker_id=%s order=%s",
        scene_id, tracker.id, [e.character_id for e in order],
    )
    publish_safely(broadcaster, turn_order_updated_event(tracker, characters))
    return tracker


def _move(
    conn: sqlite3.Connection,
    scene_id: str,
    check,
    mark_acted: bool,
    skip_reason: str | None = None,
    skipped_by: str | None = None,
) -> TurnTracker:
    with write_transaction(conn):
        tracker = get_active_tracker(conn, scene_id)
        check(tracker)
        after = advance_position(tracker, mark_acted=mark_acted)
        if skip_reason is not None:
            current = tracker.current_entry
            after.skip_log.append(
                SkipRecord(
                    character_id=current.character_id if current else "",
                    reason=skip_reason,
                    round_number=tracker.round_number,
                    skipped_by=skipped_by,
                )
            )
        saved = _save_position(conn, tracker, after)
    logger.info(
        "turn_order_advanced scene_id=%s round=%d index=%d skipped=%s",
        scene_id, saved.round_number, saved.current_turn_index, skip_reason is not None,
    )
    return saved


def _publish_update(conn: sqlite3.Connection, tracker: TurnTracker, broadcaster: Broadcaster | None) -> None:
    if broadcaster is None:
        return
    characters = load_characters(conn, tracker.campaign_id, [e.character_id for e in tracker.order])
    publish_safely(broadcaster, turn_order_updated_event(tracker, characters))


def end_turn(
    conn: sqlite3.Connection,
    caller: Caller,
    scene_id: str,
    character_id: str,
    broadcaster: Broadcaster | None = None,
) -> TurnTracker:
    """The current actor (or an admin) finishes their turn."""
    if not caller.is_admin:
        characters = load_characters(conn, require_scene(conn, scene_id).campaign_id, [character_id])
        if character_id not in characters:
            raise NotFoundError("Character not found", character_id=character_id)
        require_owner(caller, characters[character_id])

    def _check(tracker: TurnTracker) -> None:
        current = tracker.current_entry
        if caller.is_admin:
            return
        if current is None or current.character_id != character_id:
            raise NotYourTurnError(
                "Not your turn",
                character_id=character_id,
                current_character_id=current.character_id if current else None,
            )

    tracker = _move(conn, scene_id, _check, mark_acted=True)
    _publish_update(conn, tracker, broadcaster)
    return tracker


def advance(
    conn: sqlite3.Connection,
    caller: Caller,
    scene_id: str,
    broadcaster: Broadcaster | None = None,
) -> TurnTracker:
    """Admin "Next Turn": same advancement as end_turn without being the current actor."""
    require_admin(caller, "advance the turn order")
    tracker = _move(conn, scene_id, lambda _t: None, mark_acted=True)
    _publish_update(conn, tracker, broadcaster)
    return tracker


def skip(
    conn: sqlite3.Connection,
    caller: Caller,
    scene_id: str,
    reason: str,
    broadcaster: Broadcaster | None = None,
) -> TurnTracker:
    """Admin skip: move past the current actor without marking them as having acted."""
    require_admin(caller, "skip a turn")
    reason = (reason or "").strip() or "skipped"
    tracker = _move(
        conn, scene_id, lambda _t: None, mark_acted=False,
        skip_reason=reason, skipped_by=caller.user_id,
    )
    _publish_update(conn, tracker, broadcaster)
    return tracker


def end(
    conn: sqlite3.Connection,
    caller: Caller,
    scene_id: str,
    broadcaster: Broadcaster | None = None,
) -> TurnTracker:
    """End combat. Ending an already-ended tracker returns it unchanged."""
    require_admin(caller, "end turn order")
    require_scene(conn, scene_id)
    with write_transaction(conn):
        ended = end_active_tracker(conn, scene_id)
        if ended is None:
            latest = load_latest_tracker(conn, scene_id)
            if latest is None:
                raise NoActiveTrackerError("No turn order for this scene", scene_id=scene_id)
            return latest
    publish_safely(broadcaster, turn_order_ended_event(ended))
    return ended
