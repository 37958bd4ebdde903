"""Campaign and character records mutated by rolls and scene resolution."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Campaign(BaseModel):
    id: str
    title: str
    created_by: str | None = None
    created_at: str | None = None


class Holds(BaseModel):
    """Roll modifiers held by a character: forward is one-shot, ongoing is sticky."""
    forward: int = 0
    ongoing: int = 0


class HarmStatus(str, Enum):
    FINE = "fine"
    IMPAIRED = "impaired"
    TAKEN_OUT = "taken_out"


class Character(BaseModel):
    id: str
    campaign_id: str
    user_id: str
    name: str
    stats: dict[str, int] = Field(default_factory=dict)
    harm: int = Field(default=0, ge=0, le=6)
    conditions: list[str] = Field(default_factory=list)
    holds: Holds = Field(default_factory=Holds)
    version: int = 0

    def stat(self, key: str | None) -> int:
        if not key:
            return 0
        return int(self.stats.get(key, 0))
