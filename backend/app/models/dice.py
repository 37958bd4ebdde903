"""Dice roll records: 2d6 + modifier scored into a closed three-way outcome."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    STRONG_HIT = "strongHit"
    WEAK_HIT = "weakHit"
    MISS = "miss"


class RollType(str, Enum):
    MOVE = "move"
    CUSTOM = "custom"
    HELP = "help"
    INTERFERE = "interfere"


class ModifierBreakdown(BaseModel):
    """Components that sum to DiceRoll.modifier."""
    stat: int = 0
    situational: int = 0
    forward: int = 0
    ongoing: int = 0

    @property
    def total(self) -> int:
        return self.stat + self.situational + self.forward + self.ongoing


class DiceRoll(BaseModel):
    id: str
    campaign_id: str
    scene_id: str | None = None
    character_id: str
    user_id: str
    dice: tuple[int, int]
    stat_key: str | None = None
    breakdown: ModifierBreakdown = Field(default_factory=ModifierBreakdown)
    modifier: int
    total: int
    outcome: Outcome
    roll_type: RollType = RollType.CUSTOM
    move_id: str | None = None
    description: str | None = None
    is_secret: bool = False
    created_at: str | None = None

    def public_view(self) -> dict:
        """Fields safe to show users other than the roller."""
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "scene_id": self.scene_id,
            "character_id": self.character_id,
            "dice": list(self.dice),
            "modifier": self.modifier,
            "total": self.total,
            "outcome": self.outcome.value,
            "roll_type": self.roll_type.value,
            "move_id": self.move_id,
            "created_at": self.created_at,
        }
