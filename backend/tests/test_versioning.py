"""Optimistic versioning on character and tracker rows, and transaction nesting."""
from __future__ import annotations

import pytest

from backend.app.core import turn_tracker
from backend.app.core.character_store import load_character, update_character_versioned
from backend.app.core.errors import ConcurrentUpdateError
from backend.app.core.scene_machine import create_scene
from backend.app.db.connection import write_transaction


def _bump_version(conn, character_id: str, harm: int) -> None:
    conn.execute(
        "UPDATE characters SET harm = ?, version = version + 1 WHERE id = ?",
        (harm, character_id),
    )


def test_stale_character_write_is_retried_against_fresh_row(conn, party) -> None:
    ash = party.characters["ash"]
    seen: list[int] = []

    def take_one_harm(c):
        seen.append(c.version)
        if len(seen) == 1:
            # A roll lands between this read and this write
            _bump_version(conn, ash.id, harm=3)
        c.harm += 1
        return c

    with write_transaction(conn):
        updated = update_character_versioned(conn, ash.id, take_one_harm)

    assert seen == [ash.version, ash.version + 1]
    assert updated.harm == 4
    stored = load_character(conn, ash.id)
    assert stored.harm == 4
    assert stored.version == ash.version + 2 == updated.version


def test_character_retries_exhausted_raise_and_roll_back(conn, party) -> None:
    bo = party.characters["bo"]
    attempts: list[int] = []

    def always_contended(c):
        attempts.append(c.version)
        _bump_version(conn, bo.id, harm=c.harm)
        c.harm += 1
        return c

    with pytest.raises(ConcurrentUpdateError) as exc:
        with write_transaction(conn):
            update_character_versioned(conn, bo.id, always_contended, max_retries=3)

    assert len(attempts) == 3
    assert exc.value.retryable is True
    stored = load_character(conn, bo.id)
    assert (stored.harm, stored.version) == (0, bo.version)


def test_stale_tracker_position_is_rejected(conn, party) -> None:
    ch = party.characters
    scene = create_scene(conn, party.admin, party.campaign.id, [ch["ash"].id, ch["bo"].id], "Docks.")
    turn_tracker.start(
        conn, party.admin, scene.id,
        [{"character_id": ch["ash"].id, "initiative": 8}, {"character_id": ch["bo"].id, "initiative": 3}],
    )
    stale = turn_tracker.get_active_tracker(conn, scene.id)
    turn_tracker.advance(conn, party.admin, scene.id)

    with pytest.raises(ConcurrentUpdateError):
        with write_transaction(conn):
            turn_tracker._save_position(conn, stale, turn_tracker.advance_position(stale))

    fresh = turn_tracker.get_active_tracker(conn, scene.id)
    assert fresh.current_entry.character_id == ch["bo"].id
    assert fresh.version == stale.version + 1


def test_write_transaction_refuses_to_nest(conn, party) -> None:
    ash = party.characters["ash"]
    with pytest.raises(RuntimeError):
        with write_transaction(conn):
            _bump_version(conn, ash.id, harm=2)
            with write_transaction(conn):
                pass
    # The outer block rolled back; nothing was committed under the inner one
    assert load_character(conn, ash.id).harm == 0
