"""Narrator delta application: clamping, unknown targets, clocks, relationships."""
from __future__ import annotations

import pytest

from backend.app.core import clocks
from backend.app.core.character_store import load_character
from backend.app.core.deltas import apply_deltas, list_relationships
from backend.app.core.errors import ConflictError, PermissionDeniedError
from backend.app.db.connection import write_transaction
from backend.app.models.narration import NarratorDeltas


def _apply(conn, campaign_id: str, **deltas):
    with write_transaction(conn):
        return apply_deltas(conn, campaign_id, NarratorDeltas.model_validate(deltas))


def test_empty_deltas_change_nothing(conn, party) -> None:
    applied = _apply(conn, party.campaign.id)
    assert applied.summary() == "no changes"


def test_harm_and_conditions_combine_per_character(conn, party) -> None:
    cy = party.characters["cy"]
    applied = _apply(
        conn, party.campaign.id,
        harm=[{"character_id": cy.id, "delta": 2}, {"character_id": cy.id, "delta": 3}],
        conditions=[{"character_id": cy.id, "add": ["shaken", "shaken", " marked "]}],
    )
    updated = load_character(conn, cy.id)
    assert updated.harm == 5
    assert updated.conditions == ["shaken", "marked"]
    assert updated.version == cy.version + 1
    assert applied.conditions_added == {cy.id: ["shaken", "marked"]}


def test_healing_never_goes_below_zero(conn, party) -> None:
    ash = party.characters["ash"]
    _apply(conn, party.campaign.id, harm=[{"character_id": ash.id, "delta": -4}])
    assert load_character(conn, ash.id).harm == 0


def test_condition_removal(conn, party) -> None:
    ash = party.characters["ash"]
    _apply(conn, party.campaign.id, conditions=[{"character_id": ash.id, "add": ["hunted", "angry"]}])
    applied = _apply(conn, party.campaign.id, conditions=[{"character_id": ash.id, "remove": ["angry"]}])
    assert load_character(conn, ash.id).conditions == ["hunted"]
    assert applied.conditions_removed == {ash.id: ["angry"]}


def test_unknown_character_is_skipped(conn, party) -> None:
    ash = party.characters["ash"]
    applied = _apply(
        conn, party.campaign.id,
        harm=[{"character_id": "ghost", "delta": 2}, {"character_id": ash.id, "delta": 1}],
    )
    assert applied.skipped == ["character:ghost"]
    assert load_character(conn, ash.id).harm == 1


def test_clock_ticks_clamp_and_unknown_clock_rules(conn, party) -> None:
    clock = clocks.create_clock(conn, party.admin, party.campaign.id, "Gang War", max_ticks=4)
    applied = _apply(
        conn, party.campaign.id,
        clocks=[
            {"clock": "gang war", "delta": 9},
            {"clock": "Nobody Knows", "delta": 1},
            {"clock": "Storm", "delta": 2, "max_ticks": 8, "is_hidden": True},
        ],
    )
    assert applied.clocks == {"Gang War": 4, "Storm": 2}
    assert applied.skipped == ["clock:Nobody Knows"]
    visible = clocks.list_clocks(conn, party.campaign.id)
    assert [c.name for c in visible] == ["Gang War"]
    assert visible[0].id == clock.id
    everything = clocks.list_clocks(conn, party.campaign.id, include_hidden=True)
    assert {c.name: c.current_ticks for c in everything} == {"Gang War": 4, "Storm": 2}


def test_relationships_accumulate_and_clamp(conn, party) -> None:
    bo = party.characters["bo"]
    _apply(conn, party.campaign.id, relationships=[{"character_id": bo.id, "entity_id": "npc-rook", "entity_name": "Rook", "delta": 7}])
    _apply(conn, party.campaign.id, relationships=[{"character_id": bo.id, "entity_id": "npc-rook", "delta": 7}])
    assert list_relationships(conn, bo.id) == [{"entity_id": "npc-rook", "entity_name": "Rook", "score": 10}]


def test_clock_creation_rules(conn, party) -> None:
    with pytest.raises(PermissionDeniedError):
        clocks.create_clock(conn, party.players["ash"], party.campaign.id, "Nope")
    clocks.create_clock(conn, party.admin, party.campaign.id, "Heat", current_ticks=20, max_ticks=6)
    with pytest.raises(ConflictError):
        clocks.create_clock(conn, party.admin, party.campaign.id, "Heat")
    assert clocks.find_clock(conn, party.campaign.id, "HEAT").current_ticks == 6
