"""Campaign countdown clocks."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import Any

from backend.app.constants import CLOCK_DEFAULT_MAX_TICKS
from backend.app.core.access import require_admin
from backend.app.core.character_store import require_campaign
from backend.app.core.clamping import clamp_clock_ticks
from backend.app.core.errors import ConflictError, InvalidInputError
from backend.app.core.records import row_to_dict, utc_now
from backend.app.db.connection import write_transaction
from backend.app.models.clock import Clock
from backend.app.models.identity import Caller

logger = logging.getLogger(__name__)


def _row_to_clock(row: Any) -> Clock:
    d = row_to_dict(row)
    return Clock(
        id=d["id"],
        campaign_id=d["campaign_id"],
        name=d["name"],
        current_ticks=int(d.get("current_ticks") or 0),
        max_ticks=int(d.get("max_ticks") or CLOCK_DEFAULT_MAX_TICKS),
        is_hidden=bool(d.get("is_hidden")),
    )


def insert_clock(
    conn: sqlite3.Connection,
    campaign_id: str,
    name: str,
    max_ticks: int = CLOCK_DEFAULT_MAX_TICKS,
    current_ticks: int = 0,
    is_hidden: bool = False,
) -> Clock:
    """Insert without committing; runs inside the caller's transaction."""
    max_ticks = max(1, int(max_ticks))
    clock = Clock(
        id=str(uuid.uuid4()),
        campaign_id=campaign_id,
        name=name,
        current_ticks=clamp_clock_ticks(current_ticks, max_ticks),
        max_ticks=max_ticks,
        is_hidden=is_hidden,
    )
    now = utc_now()
    try:
        conn.execute(
            """INSERT INTO clocks (id, campaign_id, name, current_ticks, max_ticks, is_hidden, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (clock.id, campaign_id, name, clock.current_ticks, max_ticks, int(is_hidden), now, now),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("A clock with this name already exists", name=name) from e
    return clock


def create_clock(
    conn: sqlite3.Connection,
    caller: Caller,
    campaign_id: str,
    name: str,
    max_ticks: int = CLOCK_DEFAULT_MAX_TICKS,
    current_ticks: int = 0,
    is_hidden: bool = False,
) -> Clock:
    require_admin(caller, "create clocks")
    require_campaign(conn, campaign_id)
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("Clock name is empty")
    with write_transaction(conn):
        clock = insert_clock(conn, campaign_id, name, max_ticks, current_ticks, is_hidden)
    logger.info("clock_created campaign_id=%s clock=%s max_ticks=%d", campaign_id, name, clock.max_ticks)
    return clock


def list_clocks(conn: sqlite3.Connection, campaign_id: str, include_hidden: bool = False) -> list[Clock]:
    sql = "SELECT * FROM clocks WHERE campaign_id = ?"
    if not include_hidden:
        sql += " AND is_hidden = 0"
    rows = conn.execute(sql + " ORDER BY created_at, rowid", (campaign_id,)).fetchall()
    return [_row_to_clock(r) for r in rows]


def find_clock(conn: sqlite3.Connection, campaign_id: str, ref: str) -> Clock | None:
    """Match by id, then by case-insensitive name."""
    row = conn.execute(
        "SELECT * FROM clocks WHERE campaign_id = ? AND id = ?",
        (campaign_id, ref),
    ).fetchone()
    if row is None:
        row = conn.execute(
            "SELECT * FROM clocks WHERE campaign_id = ? AND lower(name) = lower(?)",
            (campaign_id, ref.strip()),
        ).fetchone()
    return _row_to_clock(row) if row is not None else None


def set_clock_ticks(conn: sqlite3.Connection, clock: Clock, ticks: int) -> Clock:
    """Clamped write without committing."""
    value = clamp_clock_ticks(ticks, clock.max_ticks)
    conn.execute(
        "UPDATE clocks SET current_ticks = ?, updated_at = ? WHERE id = ?",
        (value, utc_now(), clock.id),
    )
    return clock.model_copy(update={"current_ticks": value})
