"""Narrator boundary models: the scene snapshot sent out and the structured result coming back.

The narrator is untrusted; everything it returns is validated against these
models before any delta touches the store.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from backend.app.models.character import Character
from backend.app.models.clock import Clock
from backend.app.models.dice import DiceRoll
from backend.app.models.scene import PlayerAction, Scene


class HarmChange(BaseModel):
    """Positive delta inflicts harm, negative heals."""
    character_id: str
    delta: int


class ConditionChange(BaseModel):
    character_id: str
    add: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)


class ClockChange(BaseModel):
    """Matches an existing clock by id or name; creates one when max_ticks is given and none matches."""
    clock: str = Field(..., min_length=1)
    delta: int = 0
    max_ticks: int | None = Field(default=None, ge=1)
    is_hidden: bool = False


class RelationshipChange(BaseModel):
    character_id: str
    entity_id: str
    entity_name: str | None = None
    delta: int


class NarratorDeltas(BaseModel):
    harm: list[HarmChange] = Field(default_factory=list)
    conditions: list[ConditionChange] = Field(default_factory=list)
    clocks: list[ClockChange] = Field(default_factory=list)
    relationships: list[RelationshipChange] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.harm or self.conditions or self.clocks or self.relationships)


class NarrationResult(BaseModel):
    resolution_text: str = Field(..., min_length=1)
    deltas: NarratorDeltas = Field(default_factory=NarratorDeltas)


class NarrationRequest(BaseModel):
    """Everything the narrator sees for one resolution attempt.

    ``ledger`` is ordered by the scene's turn-order snapshot when one exists,
    then by submission order. ``rolls`` include secret rolls, flagged.
    """
    scene: Scene
    ledger: list[PlayerAction] = Field(default_factory=list)
    rolls: list[DiceRoll] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    clocks: list[Clock] = Field(default_factory=list)


class AppliedDeltas(BaseModel):
    """What completeResolution actually changed, after clamping and skipping unknown targets."""
    harm: dict[str, int] = Field(default_factory=dict)
    conditions_added: dict[str, list[str]] = Field(default_factory=dict)
    conditions_removed: dict[str, list[str]] = Field(default_factory=dict)
    clocks: dict[str, int] = Field(default_factory=dict)
    relationships: dict[str, int] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        parts: list[str] = []
        for char_id, harm in sorted(self.harm.items()):
            parts.append(f"{char_id} harm={harm}")
        for char_id, conds in sorted(self.conditions_added.items()):
            parts.append(f"{char_id} +{','.join(conds)}")
        for char_id, conds in sorted(self.conditions_removed.items()):
            parts.append(f"{char_id} -{','.join(conds)}")
        for name, ticks in sorted(self.clocks.items()):
            parts.append(f"clock {name}={ticks}")
        for key, score in sorted(self.relationships.items()):
            parts.append(f"rel {key}={score}")
        return "; ".join(parts) if parts else "no changes"
