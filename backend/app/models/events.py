"""Broadcast event envelope. Payloads carry public fields only."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

EventType = Literal["scene.resolved", "turnOrder.updated", "turnOrder.ended"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BroadcastEvent(BaseModel):
    event_type: EventType
    campaign_id: str
    scene_id: str | None = None
    payload: dict = Field(default_factory=dict)
    emitted_at: str = Field(default_factory=_now)

    @property
    def channel(self) -> str:
        return f"campaign-{self.campaign_id}"
