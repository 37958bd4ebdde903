"""Dice resolution engine: 2d6 + modifiers scored against the fixed PbtA outcome table.

Pure and deterministic when a seeded ``random.Random`` is passed. Persisting
the roll and consuming the forward hold is the caller's job (see rolls.py).
"""
from __future__ import annotations

import random
from dataclasses import dataclass

from backend.app.constants import DIE_FACES, STRONG_HIT_MIN, WEAK_HIT_MIN
from backend.app.core.clamping import normalize_stat_key
from backend.app.models.character import Character
from backend.app.models.dice import ModifierBreakdown, Outcome


@dataclass(frozen=True)
class RollComputation:
    dice: tuple[int, int]
    stat_key: str | None
    breakdown: ModifierBreakdown
    modifier: int
    total: int
    outcome: Outcome

    @property
    def consumed_forward(self) -> bool:
        return self.breakdown.forward != 0


def classify_outcome(total: int) -> Outcome:
    """Map a roll total to its tier: >=10 strong hit, 7-9 weak hit, <=6 miss."""
    if total >= STRONG_HIT_MIN:
        return Outcome.STRONG_HIT
    if total >= WEAK_HIT_MIN:
        return Outcome.WEAK_HIT
    return Outcome.MISS


def outcome_label(outcome: Outcome) -> str:
    match outcome:
        case Outcome.STRONG_HIT:
            return "Strong hit"
        case Outcome.WEAK_HIT:
            return "Weak hit"
        case Outcome.MISS:
            return "Miss"


def roll_2d6(rng: random.Random | None = None) -> tuple[int, int]:
    roller = rng or random.Random()
    return roller.randint(1, DIE_FACES), roller.randint(1, DIE_FACES)


def compute_roll(
    dice: tuple[int, int],
    stat_value: int = 0,
    situational_modifier: int = 0,
    forward_hold: int = 0,
    ongoing_hold: int = 0,
    stat_key: str | None = None,
) -> RollComputation:
    """Score already-drawn dice. Total over the integers; never raises."""
    breakdown = ModifierBreakdown(
        stat=int(stat_value),
        situational=int(situational_modifier),
        forward=int(forward_hold),
        ongoing=int(ongoing_hold),
    )
    modifier = breakdown.total
    total = dice[0] + dice[1] + modifier
    return RollComputation(
        dice=dice,
        stat_key=stat_key,
        breakdown=breakdown,
        modifier=modifier,
        total=total,
        outcome=classify_outcome(total),
    )


def roll(
    character: Character,
    stat_key: str | None = None,
    situational_modifier: int = 0,
    rng: random.Random | None = None,
) -> RollComputation:
    """Roll 2d6 for a character using its stat and the holds it carries right now.

    Unknown stat keys contribute 0 (logged by normalize_stat_key).
    """
    key = normalize_stat_key(stat_key)
    return compute_roll(
        roll_2d6(rng),
        stat_value=character.stat(key),
        situational_modifier=situational_modifier,
        forward_hold=character.holds.forward,
        ongoing_hold=character.holds.ongoing,
        stat_key=key,
    )


def roll_initiative(stat_value: int = 0, rng: random.Random | None = None) -> int:
    d1, d2 = roll_2d6(rng)
    return d1 + d2 + int(stat_value)
