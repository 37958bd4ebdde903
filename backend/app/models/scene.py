"""Scene lifecycle and the append-only action ledger."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SceneStatus(str, Enum):
    AWAITING_ACTIONS = "AWAITING_ACTIONS"
    RESOLVING = "RESOLVING"
    RESOLVED = "RESOLVED"


LIVE_SCENE_STATUSES: tuple[SceneStatus, ...] = (
    SceneStatus.AWAITING_ACTIONS,
    SceneStatus.RESOLVING,
)


class ActionStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class Scene(BaseModel):
    id: str
    campaign_id: str
    scene_number: int = Field(..., ge=1)
    status: SceneStatus = SceneStatus.AWAITING_ACTIONS
    participant_character_ids: list[str] = Field(default_factory=list)
    intro_text: str = ""
    resolution_text: str | None = None
    resolution_attempts: int = 0
    last_resolution_error: str | None = None
    ended_by_admin: bool = False
    version: int = 0
    created_at: str | None = None
    resolved_at: str | None = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_SCENE_STATUSES


class PlayerAction(BaseModel):
    id: str
    scene_id: str
    character_id: str
    user_id: str
    action_text: str
    status: ActionStatus = ActionStatus.PENDING
    attached_roll_id: str | None = None
    created_at: str | None = None
