"""Campaign countdown clocks advanced by scene resolution."""
from __future__ import annotations

from pydantic import BaseModel, Field


class Clock(BaseModel):
    id: str
    campaign_id: str
    name: str
    current_ticks: int = Field(default=0, ge=0)
    max_ticks: int = Field(default=6, ge=1)
    is_hidden: bool = False
