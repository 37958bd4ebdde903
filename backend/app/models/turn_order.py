"""Initiative-ordered turn tracker layered on one live scene."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class TrackerState(str, Enum):
    # "inactive" is the absence of a tracker row for the scene
    ACTIVE = "active"
    ENDED = "ended"


class TurnOrderEntry(BaseModel):
    character_id: str
    initiative: int
    has_acted: bool = False


class SkipRecord(BaseModel):
    character_id: str
    reason: str
    round_number: int
    skipped_by: str | None = None


class TurnTracker(BaseModel):
    id: str
    campaign_id: str
    scene_id: str
    order: list[TurnOrderEntry] = Field(default_factory=list)
    current_turn_index: int = Field(default=0, ge=0)
    round_number: int = Field(default=1, ge=1)
    state: TrackerState = TrackerState.ACTIVE
    skip_log: list[SkipRecord] = Field(default_factory=list)
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.state == TrackerState.ACTIVE

    @property
    def current_entry(self) -> TurnOrderEntry | None:
        if not self.order or not 0 <= self.current_turn_index < len(self.order):
            return None
        return self.order[self.current_turn_index]
