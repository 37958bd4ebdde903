"""Campaign clocks API. Hidden clocks are admin-only."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api import deps
from backend.app.api.deps import get_caller
from backend.app.constants import CLOCK_DEFAULT_MAX_TICKS
from backend.app.core import clocks
from backend.app.core.character_store import require_campaign
from backend.app.models.clock import Clock
from backend.app.models.identity import Caller

router = APIRouter(prefix="/v2", tags=["v2-clocks"])


class CreateClockRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    max_ticks: int = Field(default=CLOCK_DEFAULT_MAX_TICKS, ge=1, le=12)
    current_ticks: int = Field(default=0, ge=0)
    is_hidden: bool = False


@router.post("/campaigns/{campaign_id}/clocks", response_model=Clock)
def create_clock(campaign_id: str, body: CreateClockRequest, caller: Caller = Depends(get_caller)):
    conn = deps._get_conn()
    try:
        return clocks.create_clock(
            conn, caller, campaign_id, body.name,
            max_ticks=body.max_ticks, current_ticks=body.current_ticks, is_hidden=body.is_hidden,
        )
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/clocks")
def list_clocks(campaign_id: str, caller: Caller = Depends(get_caller)):
    conn = deps._get_conn()
    try:
        require_campaign(conn, campaign_id)
        found = clocks.list_clocks(conn, campaign_id, include_hidden=caller.is_admin)
        return {"clocks": [c.model_dump() for c in found]}
    finally:
        conn.close()
