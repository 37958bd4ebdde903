"""Persisted rolls: hold consumption, ledger attachment, secret visibility, moves."""
from __future__ import annotations

import random

import pytest

from backend.app.core import rolls, scene_machine
from backend.app.core.character_store import load_character, set_holds
from backend.app.core.errors import NotFoundError, PermissionDeniedError
from backend.app.core.scene_store import list_actions
from backend.app.models.dice import RollType


def test_roll_consumes_forward_once_and_keeps_ongoing(conn, party) -> None:
    ash = party.characters["ash"]
    set_holds(conn, party.admin, party.campaign.id, ash.id, forward=1, ongoing=1)
    player = party.players["ash"]

    first = rolls.perform_roll(conn, player, party.campaign.id, ash.id, stat_key="cool", rng=random.Random(1))
    assert first.breakdown.forward == 1
    assert first.breakdown.ongoing == 1
    assert first.modifier == 4  # cool 2 + forward 1 + ongoing 1
    assert first.total == sum(first.dice) + 4

    second = rolls.perform_roll(conn, player, party.campaign.id, ash.id, stat_key="cool", rng=random.Random(1))
    assert second.breakdown.forward == 0
    assert second.breakdown.ongoing == 1
    holds = load_character(conn, ash.id).holds
    assert (holds.forward, holds.ongoing) == (0, 1)


def test_negative_forward_is_also_one_shot(conn, party) -> None:
    bo = party.characters["bo"]
    set_holds(conn, party.admin, party.campaign.id, bo.id, forward=-1)
    roll = rolls.perform_roll(conn, party.players["bo"], party.campaign.id, bo.id, stat_key="sharp")
    assert roll.breakdown.forward == -1
    assert load_character(conn, bo.id).holds.forward == 0


def test_only_owner_can_roll(conn, party) -> None:
    with pytest.raises(PermissionDeniedError):
        rolls.perform_roll(conn, party.players["bo"], party.campaign.id, party.characters["ash"].id)
    with pytest.raises(NotFoundError):
        rolls.perform_roll(conn, party.players["bo"], party.campaign.id, "missing")


def test_roll_attaches_to_latest_unrolled_action(conn, party) -> None:
    ash = party.characters["ash"]
    player = party.players["ash"]
    scene = scene_machine.create_scene(conn, party.admin, party.campaign.id, [ash.id], "Market.")
    first = scene_machine.submit_action(conn, player, scene.id, ash.id, "Pick a pocket")
    second = scene_machine.submit_action(conn, player, scene.id, ash.id, "Slip away")

    r1 = rolls.perform_roll(conn, player, party.campaign.id, ash.id, stat_key="cool", scene_id=scene.id)
    r2 = rolls.perform_roll(conn, player, party.campaign.id, ash.id, stat_key="cool", scene_id=scene.id)
    attached = {a.id: a.attached_roll_id for a in list_actions(conn, scene.id)}
    assert attached == {first.id: r2.id, second.id: r1.id}
    assert [r.id for r in rolls.scene_roll_history(conn, scene.id)] == [r1.id, r2.id]


def test_secret_rolls_visible_to_roller_only(conn, party) -> None:
    ash, bo = party.characters["ash"], party.characters["bo"]
    secret = rolls.perform_roll(conn, party.players["ash"], party.campaign.id, ash.id, is_secret=True)
    public = rolls.perform_roll(conn, party.players["bo"], party.campaign.id, bo.id)

    own = rolls.list_rolls(conn, party.players["ash"], party.campaign.id)
    assert {r.id for r in own} == {secret.id, public.id}
    others = rolls.list_rolls(conn, party.players["bo"], party.campaign.id)
    assert [r.id for r in others] == [public.id]
    assert [r.id for r in rolls.list_rolls(conn, party.admin, party.campaign.id)] == [public.id]


def test_move_supplies_stat_and_type(conn, party) -> None:
    cy = party.characters["cy"]
    roll = rolls.perform_roll(conn, party.players["cy"], party.campaign.id, cy.id, move_id="open-your-brain")
    assert roll.stat_key == "weird"
    assert roll.breakdown.stat == 3
    assert roll.roll_type == RollType.MOVE

    unknown = rolls.perform_roll(conn, party.players["cy"], party.campaign.id, cy.id, move_id="homebrew")
    assert unknown.move_id == "homebrew"
    assert unknown.roll_type == RollType.CUSTOM
    assert unknown.breakdown.stat == 0
