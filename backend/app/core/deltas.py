"""Apply narrator deltas (harm, conditions, clocks, relationships) inside the resolving transaction.

Nothing here commits. Targets outside the campaign are skipped with a
warning; numbers are clamped, never rejected.
"""
from __future__ import annotations

import logging
import sqlite3

from backend.app.constants import HARM_MAX, TAKEN_OUT_CONDITION
from backend.app.core.character_store import load_characters, update_character_versioned
from backend.app.core.clamping import clamp_harm, clamp_relationship, normalize_conditions
from backend.app.core.clocks import find_clock, insert_clock, set_clock_ticks
from backend.app.core.records import utc_now
from backend.app.models.character import Character
from backend.app.models.narration import AppliedDeltas, ClockChange, NarratorDeltas, RelationshipChange

logger = logging.getLogger(__name__)


def _character_targets(deltas: NarratorDeltas) -> list[str]:
    ids: list[str] = []
    for change in (*deltas.harm, *deltas.conditions, *deltas.relationships):
        if change.character_id not in ids:
            ids.append(change.character_id)
    return ids


def _apply_character_changes(
    conn: sqlite3.Connection,
    character_id: str,
    deltas: NarratorDeltas,
    applied: AppliedDeltas,
) -> None:
    harm_changes = [h.delta for h in deltas.harm if h.character_id == character_id]
    to_add: list[str] = []
    to_remove: list[str] = []
    for change in deltas.conditions:
        if change.character_id == character_id:
            to_add.extend(change.add)
            to_remove.extend(change.remove)
    to_add = normalize_conditions(to_add)
    to_remove = normalize_conditions(to_remove)
    if not harm_changes and not to_add and not to_remove:
        return

    prior: dict[str, list[str]] = {}

    def _mutate(c: Character) -> Character:
        prior["conditions"] = list(c.conditions)
        c.harm = clamp_harm(c.harm + sum(harm_changes))
        conditions = [x for x in c.conditions if x not in to_remove]
        conditions.extend(to_add)
        if c.harm >= HARM_MAX:
            conditions.append(TAKEN_OUT_CONDITION)
        c.conditions = normalize_conditions(conditions)
        return c

    updated = update_character_versioned(conn, character_id, _mutate)
    if harm_changes:
        applied.harm[character_id] = updated.harm
    added = [c for c in updated.conditions if c not in prior["conditions"]]
    removed = [c for c in prior["conditions"] if c not in updated.conditions]
    if added:
        applied.conditions_added[character_id] = added
    if removed:
        applied.conditions_removed[character_id] = removed


def _apply_clock_change(
    conn: sqlite3.Connection,
    campaign_id: str,
    change: ClockChange,
    applied: AppliedDeltas,
) -> None:
    clock = find_clock(conn, campaign_id, change.clock)
    if clock is None:
        if change.max_ticks is None:
            logger.warning("Narrator referenced unknown clock %r; skipped", change.clock)
            applied.skipped.append(f"clock:{change.clock}")
            return
        clock = insert_clock(
            conn,
            campaign_id,
            change.clock.strip(),
            max_ticks=change.max_ticks,
            current_ticks=change.delta,
            is_hidden=change.is_hidden,
        )
        applied.clocks[clock.name] = clock.current_ticks
        return
    updated = set_clock_ticks(conn, clock, clock.current_ticks + change.delta)
    applied.clocks[updated.name] = updated.current_ticks


def _apply_relationship_change(conn: sqlite3.Connection, change: RelationshipChange, applied: AppliedDeltas) -> None:
    row = conn.execute(
        "SELECT score FROM relationships WHERE character_id = ? AND entity_id = ?",
        (change.character_id, change.entity_id),
    ).fetchone()
    score = clamp_relationship((int(row[0]) if row else 0) + change.delta)
    conn.execute(
        """INSERT INTO relationships (character_id, entity_id, entity_name, score, updated_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(character_id, entity_id)
           DO UPDATE SET score = excluded.score,
                         entity_name = COALESCE(excluded.entity_name, relationships.entity_name),
                         updated_at = excluded.updated_at""",
        (change.character_id, change.entity_id, change.entity_name, score, utc_now()),
    )
    applied.relationships[f"{change.character_id}->{change.entity_id}"] = score


def apply_deltas(conn: sqlite3.Connection, campaign_id: str, deltas: NarratorDeltas) -> AppliedDeltas:
    applied = AppliedDeltas()
    if deltas.is_empty():
        return applied

    targets = _character_targets(deltas)
    known = load_characters(conn, campaign_id, targets)
    for character_id in targets:
        if character_id not in known:
            logger.warning(
                "Narrator delta names character %s outside campaign %s; skipped",
                character_id, campaign_id,
            )
            applied.skipped.append(f"character:{character_id}")
            continue
        _apply_character_changes(conn, character_id, deltas, applied)

    for change in deltas.clocks:
        _apply_clock_change(conn, campaign_id, change, applied)

    for change in deltas.relationships:
        if change.character_id in known:
            _apply_relationship_change(conn, change, applied)

    return applied


def list_relationships(conn: sqlite3.Connection, character_id: str) -> list[dict]:
    rows = conn.execute(
        "SELECT entity_id, entity_name, score FROM relationships WHERE character_id = ? ORDER BY entity_id",
        (character_id,),
    ).fetchall()
    return [{"entity_id": r[0], "entity_name": r[1], "score": int(r[2])} for r in rows]

