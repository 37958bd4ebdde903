"""Caller identity handed to every mutating operation (authentication happens upstream)."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class CampaignRole(str, Enum):
    ADMIN = "admin"
    PLAYER = "player"


class Caller(BaseModel):
    """Pre-authenticated user plus their role in the campaign being addressed."""
    user_id: str
    role: CampaignRole = CampaignRole.PLAYER

    @property
    def is_admin(self) -> bool:
        return self.role == CampaignRole.ADMIN
