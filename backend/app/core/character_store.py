"""Campaign and character persistence with per-row optimistic versioning.

Character harm/condition/hold fields have two writers (roll hold consumption
and scene resolution). Both go through ``update_character_versioned`` so a
write computed from a stale read is retried against the fresh row.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Callable
from typing import Any

from backend.app.config import CAS_MAX_RETRIES
from backend.app.core.access import require_admin
from backend.app.core.clamping import clamp_harm, normalize_conditions, normalize_stats
from backend.app.core.errors import ConcurrentUpdateError, NotFoundError
from backend.app.core.records import load_json, row_to_dict, utc_now
from backend.app.db.connection import write_transaction
from backend.app.models.character import Campaign, Character, Holds
from backend.app.models.identity import Caller

logger = logging.getLogger(__name__)


def _row_to_character(row: Any) -> Character:
    d = row_to_dict(row)
    return Character(
        id=d["id"],
        campaign_id=d["campaign_id"],
        user_id=d["user_id"],
        name=d["name"],
        stats=load_json(d.get("stats_json"), {}),
        harm=clamp_harm(d.get("harm")),
        conditions=load_json(d.get("conditions_json"), []),
        holds=Holds(forward=int(d.get("hold_forward") or 0), ongoing=int(d.get("hold_ongoing") or 0)),
        version=int(d.get("version") or 0),
    )


def create_campaign(conn: sqlite3.Connection, title: str, created_by: str | None = None) -> Campaign:
    campaign_id = str(uuid.uuid4())
    now = utc_now()
    with write_transaction(conn):
        conn.execute(
            "INSERT INTO campaigns (id, title, created_by, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (campaign_id, title, created_by, now, now),
        )
    logger.info("campaign_created campaign_id=%s", campaign_id)
    return Campaign(id=campaign_id, title=title, created_by=created_by, created_at=now)


def load_campaign(conn: sqlite3.Connection, campaign_id: str) -> Campaign | None:
    row = conn.execute(
        "SELECT id, title, created_by, created_at FROM campaigns WHERE id = ?",
        (campaign_id,),
    ).fetchone()
    if row is None:
        return None
    return Campaign(**row_to_dict(row))


def require_campaign(conn: sqlite3.Connection, campaign_id: str) -> Campaign:
    campaign = load_campaign(conn, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign not found", campaign_id=campaign_id)
    return campaign


def create_character(
    conn: sqlite3.Connection,
    campaign_id: str,
    user_id: str,
    name: str,
    stats: dict[str, Any] | None = None,
) -> Character:
    require_campaign(conn, campaign_id)
    character = Character(
        id=str(uuid.uuid4()),
        campaign_id=campaign_id,
        user_id=user_id,
        name=name,
        stats=normalize_stats(stats),
    )
    now = utc_now()
    with write_transaction(conn):
        conn.execute(
            """INSERT INTO characters (id, campaign_id, user_id, name, stats_json, harm, conditions_json,
                                       hold_forward, hold_ongoing, version, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 0, '[]', 0, 0, 0, ?, ?)""",
            (character.id, campaign_id, user_id, name, json.dumps(character.stats), now, now),
        )
    return character


def load_character(conn: sqlite3.Connection, character_id: str) -> Character | None:
    row = conn.execute("SELECT * FROM characters WHERE id = ?", (character_id,)).fetchone()
    return _row_to_character(row) if row is not None else None


def require_character(conn: sqlite3.Connection, campaign_id: str, character_id: str) -> Character:
    character = load_character(conn, character_id)
    if character is None or character.campaign_id != campaign_id:
        raise NotFoundError("Character not found", campaign_id=campaign_id, character_id=character_id)
    return character


def list_characters(conn: sqlite3.Connection, campaign_id: str) -> list[Character]:
    rows = conn.execute(
        "SELECT * FROM characters WHERE campaign_id = ? ORDER BY created_at, rowid",
        (campaign_id,),
    ).fetchall()
    return [_row_to_character(r) for r in rows]


def load_characters(conn: sqlite3.Connection, campaign_id: str, character_ids: list[str]) -> dict[str, Character]:
    """Characters of this campaign keyed by id; ids from other campaigns are left out."""
    if not character_ids:
        return {}
    placeholders = ",".join("?" for _ in character_ids)
    rows = conn.execute(
        f"SELECT * FROM characters WHERE campaign_id = ? AND id IN ({placeholders})",
        (campaign_id, *character_ids),
    ).fetchall()
    return {c.id: c for c in (_row_to_character(r) for r in rows)}


def update_character_versioned(
    conn: sqlite3.Connection,
    character_id: str,
    mutate: Callable[[Character], Character],
    max_retries: int = CAS_MAX_RETRIES,
) -> Character:
    """Read, mutate, and compare-and-set a character on its version column.

    Does not commit; run it inside the caller's write_transaction so the
    character change lands with whatever else the caller writes.
    """
    if max_retries < 1:
        max_retries = 1

    for attempt in range(max_retries):
        current = load_character(conn, character_id)
        if current is None:
            raise NotFoundError("Character not found", character_id=character_id)

        updated = mutate(current.model_copy(deep=True))
        cur = conn.execute(
            """
            UPDATE characters
            SET harm = ?, conditions_json = ?, hold_forward = ?, hold_ongoing = ?,
                version = version + 1, updated_at = ?
            WHERE id = ? AND COALESCE(version, 0) = ?
            """,
            (
                clamp_harm(updated.harm),
                json.dumps(normalize_conditions(updated.conditions)),
                int(updated.holds.forward),
                int(updated.holds.ongoing),
                utc_now(),
                character_id,
                current.version,
            ),
        )
        if cur.rowcount == 1:
            return updated.model_copy(update={"version": current.version + 1})
        logger.info(
            "character_version_conflict character_id=%s version=%d attempt=%d",
            character_id, current.version, attempt + 1,
        )

    raise ConcurrentUpdateError(
        f"Failed to update character {character_id} after {max_retries} attempts",
        character_id=character_id,
    )


def set_holds(
    conn: sqlite3.Connection,
    caller: Caller,
    campaign_id: str,
    character_id: str,
    forward: int | None = None,
    ongoing: int | None = None,
) -> Character:
    """Admin grant/removal of holds; omitted values are left as they are."""
    require_admin(caller, "change holds")
    require_character(conn, campaign_id, character_id)

    def _apply(c: Character) -> Character:
        if forward is not None:
            c.holds.forward = int(forward)
        if ongoing is not None:
            c.holds.ongoing = int(ongoing)
        return c

    with write_transaction(conn):
        updated = update_character_versioned(conn, character_id, _apply)
    logger.info(
        "holds_set campaign_id=%s character_id=%s forward=%d ongoing=%d",
        campaign_id, character_id, updated.holds.forward, updated.holds.ongoing,
    )
    return updated
