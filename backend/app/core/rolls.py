"""Persisted dice rolls: score, consume forward hold, record, attach to the ledger.

All of it runs in one write transaction. The roll is computed from the
character row the hold-consumption CAS succeeds against, so a concurrent
resolution can never cause forward to be applied twice or lost.
"""
from __future__ import annotations

import logging
import random
import sqlite3
import uuid
from typing import Any

from backend.app.core import dice
from backend.app.core.access import require_owner
from backend.app.core.character_store import require_character, update_character_versioned
from backend.app.core.clamping import normalize_stat_key
from backend.app.core.moves import load_move_catalog
from backend.app.core.records import row_to_dict, utc_now
from backend.app.core.scene_store import latest_unrolled_action, require_scene
from backend.app.db.connection import write_transaction
from backend.app.models.character import Character
from backend.app.models.dice import DiceRoll, ModifierBreakdown, Outcome, RollType
from backend.app.models.identity import Caller

logger = logging.getLogger(__name__)


def _row_to_roll(row: Any) -> DiceRoll:
    d = row_to_dict(row)
    return DiceRoll(
        id=d["id"],
        campaign_id=d["campaign_id"],
        scene_id=d.get("scene_id"),
        character_id=d["character_id"],
        user_id=d["user_id"],
        dice=(int(d["die_one"]), int(d["die_two"])),
        stat_key=d.get("stat_key"),
        breakdown=ModifierBreakdown(
            stat=int(d.get("stat_value") or 0),
            situational=int(d.get("situational") or 0),
            forward=int(d.get("forward_applied") or 0),
            ongoing=int(d.get("ongoing_applied") or 0),
        ),
        modifier=int(d["modifier"]),
        total=int(d["total"]),
        outcome=Outcome(d["outcome"]),
        roll_type=RollType(d.get("roll_type") or RollType.CUSTOM.value),
        move_id=d.get("move_id"),
        description=d.get("description"),
        is_secret=bool(d.get("is_secret")),
        created_at=d.get("created_at"),
    )


def perform_roll(
    conn: sqlite3.Connection,
    caller: Caller,
    campaign_id: str,
    character_id: str,
    stat_key: str | None = None,
    situational_modifier: int = 0,
    scene_id: str | None = None,
    move_id: str | None = None,
    roll_type: RollType = RollType.CUSTOM,
    description: str | None = None,
    is_secret: bool = False,
    rng: random.Random | None = None,
) -> DiceRoll:
    character = require_character(conn, campaign_id, character_id)
    require_owner(caller, character)
    if scene_id is not None:
        require_scene(conn, scene_id, campaign_id)

    move = load_move_catalog().get(move_id) if move_id else None
    if move_id and move is None:
        logger.warning("Unknown move id %r; recorded as given", move_id)
    if stat_key is None and move is not None:
        stat_key = move.stat
    if move is not None and roll_type == RollType.CUSTOM:
        roll_type = RollType.MOVE
    stat_key = normalize_stat_key(stat_key)

    computed: dict[str, dice.RollComputation] = {}

    def _roll_and_consume(c: Character) -> Character:
        result = dice.roll(c, stat_key, situational_modifier, rng)
        computed["roll"] = result
        if result.consumed_forward:
            c.holds.forward = 0
        return c

    roll_id = str(uuid.uuid4())
    now = utc_now()
    with write_transaction(conn):
        update_character_versioned(conn, character_id, _roll_and_consume)
        result = computed["roll"]
        conn.execute(
            """INSERT INTO dice_rolls (id, campaign_id, scene_id, character_id, user_id, die_one, die_two,
                                       stat_key, stat_value, situational, forward_applied, ongoing_applied,
                                       modifier, total, outcome, roll_type, move_id, description, is_secret, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                roll_id, campaign_id, scene_id, character_id, caller.user_id,
                result.dice[0], result.dice[1],
                result.stat_key, result.breakdown.stat, result.breakdown.situational,
                result.breakdown.forward, result.breakdown.ongoing,
                result.modifier, result.total, result.outcome.value,
                roll_type.value, move.id if move else move_id, description, int(is_secret), now,
            ),
        )
        if scene_id is not None:
            action = latest_unrolled_action(conn, scene_id, character_id)
            if action is not None:
                conn.execute(
                    "UPDATE player_actions SET attached_roll_id = ? WHERE id = ?",
                    (roll_id, action.id),
                )

    logger.info(
        "roll campaign_id=%s character_id=%s dice=%s modifier=%d total=%d outcome=%s forward_consumed=%s secret=%s",
        campaign_id, character_id, list(result.dice), result.modifier, result.total,
        result.outcome.value, result.consumed_forward, is_secret,
    )
    return DiceRoll(
        id=roll_id,
        campaign_id=campaign_id,
        scene_id=scene_id,
        character_id=character_id,
        user_id=caller.user_id,
        dice=result.dice,
        stat_key=result.stat_key,
        breakdown=result.breakdown,
        modifier=result.modifier,
        total=result.total,
        outcome=result.outcome,
        roll_type=roll_type,
        move_id=move.id if move else move_id,
        description=description,
        is_secret=is_secret,
        created_at=now,
    )


def list_rolls(
    conn: sqlite3.Connection,
    viewer: Caller,
    campaign_id: str,
    scene_id: str | None = None,
    character_id: str | None = None,
    limit: int = 50,
) -> list[DiceRoll]:
    """Newest first. Secret rolls are visible to their roller only."""
    sql = "SELECT * FROM dice_rolls WHERE campaign_id = ? AND (is_secret = 0 OR user_id = ?)"
    params: list[Any] = [campaign_id, viewer.user_id]
    if scene_id is not None:
        sql += " AND scene_id = ?"
        params.append(scene_id)
    if character_id is not None:
        sql += " AND character_id = ?"
        params.append(character_id)
    sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
    params.append(max(1, min(int(limit), 200)))
    return [_row_to_roll(r) for r in conn.execute(sql, params).fetchall()]


def scene_roll_history(conn: sqlite3.Connection, scene_id: str) -> list[DiceRoll]:
    """Every roll made in the scene, secret ones included, oldest first. Narrator input only."""
    rows = conn.execute(
        "SELECT * FROM dice_rolls WHERE scene_id = ? ORDER BY created_at, rowid",
        (scene_id,),
    ).fetchall()
    return [_row_to_roll(r) for r in rows]
