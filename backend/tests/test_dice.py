"""Dice engine: outcome thresholds, modifier composition, hold consumption."""
from __future__ import annotations

import random

import pytest

from backend.app.core.dice import classify_outcome, compute_roll, outcome_label, roll, roll_initiative
from backend.app.models.character import Character, Holds
from backend.app.models.dice import Outcome


@pytest.mark.parametrize("total", range(-6, 22))
def test_classify_outcome_tiers(total: int) -> None:
    expected = Outcome.STRONG_HIT if total >= 10 else Outcome.WEAK_HIT if total >= 7 else Outcome.MISS
    assert classify_outcome(total) == expected


def test_outcome_boundaries() -> None:
    assert classify_outcome(6) == Outcome.MISS
    assert classify_outcome(7) == Outcome.WEAK_HIT
    assert classify_outcome(9) == Outcome.WEAK_HIT
    assert classify_outcome(10) == Outcome.STRONG_HIT
    assert outcome_label(Outcome.WEAK_HIT) == "Weak hit"


def test_compute_roll_sums_all_modifiers() -> None:
    result = compute_roll((3, 4), stat_value=2, situational_modifier=-1, forward_hold=1, ongoing_hold=1, stat_key="cool")
    assert result.modifier == 3
    assert result.total == 10
    assert result.outcome == Outcome.STRONG_HIT
    assert result.consumed_forward is True


def test_compute_roll_allows_negative_totals() -> None:
    result = compute_roll((1, 1), stat_value=-2, situational_modifier=-3)
    assert result.total == -3
    assert result.outcome == Outcome.MISS
    assert result.consumed_forward is False


def test_roll_uses_character_stat_and_holds() -> None:
    character = Character(
        id="c1", campaign_id="camp", user_id="u1", name="Ash",
        stats={"hard": 2}, holds=Holds(forward=1, ongoing=-1),
    )
    result = roll(character, "Hard", 1, rng=random.Random(7))
    assert result.stat_key == "hard"
    assert result.breakdown.stat == 2
    assert result.breakdown.forward == 1
    assert result.breakdown.ongoing == -1
    assert result.modifier == 3
    assert all(1 <= d <= 6 for d in result.dice)
    assert result.total == sum(result.dice) + 3


def test_unknown_stat_contributes_nothing() -> None:
    character = Character(id="c1", campaign_id="camp", user_id="u1", name="Ash", stats={"cool": 3})
    result = roll(character, "luck", rng=random.Random(1))
    assert result.stat_key is None
    assert result.breakdown.stat == 0


def test_seeded_rolls_are_deterministic() -> None:
    character = Character(id="c1", campaign_id="camp", user_id="u1", name="Ash")
    assert roll(character, rng=random.Random(42)).dice == roll(character, rng=random.Random(42)).dice
    assert roll_initiative(1, random.Random(3)) == roll_initiative(1, random.Random(3))
    assert 3 <= roll_initiative(1, random.Random(3)) <= 13
