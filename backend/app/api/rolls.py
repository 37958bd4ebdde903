"""Dice roll API. Secret rolls are only ever returned to their roller."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.app.api import deps
from backend.app.api.deps import get_caller
from backend.app.core import rolls
from backend.app.core.character_store import require_campaign
from backend.app.core.dice import outcome_label
from backend.app.models.dice import DiceRoll, RollType
from backend.app.models.identity import Caller

router = APIRouter(prefix="/v2", tags=["v2-rolls"])


class RollRequest(BaseModel):
    character_id: str
    stat_key: str | None = Field(default=None, description="cool | hard | hot | sharp | weird; omit for no-stat rolls")
    modifier: int = Field(default=0, ge=-10, le=10, description="Situational modifier (help/interfere etc.)")
    scene_id: str | None = None
    move_id: str | None = None
    roll_type: RollType = RollType.CUSTOM
    description: str | None = Field(default=None, max_length=500)
    is_secret: bool = False


class RollResponse(BaseModel):
    roll: DiceRoll
    label: str


@router.post("/campaigns/{campaign_id}/rolls", response_model=RollResponse)
def create_roll(campaign_id: str, body: RollRequest, caller: Caller = Depends(get_caller)):
    conn = deps._get_conn()
    try:
        roll = rolls.perform_roll(
            conn,
            caller,
            campaign_id,
            body.character_id,
            stat_key=body.stat_key,
            situational_modifier=body.modifier,
            scene_id=body.scene_id,
            move_id=body.move_id,
            roll_type=body.roll_type,
            description=body.description,
            is_secret=body.is_secret,
        )
        return RollResponse(roll=roll, label=outcome_label(roll.outcome))
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/rolls")
def list_rolls(
    campaign_id: str,
    scene_id: str | None = Query(default=None),
    character_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    caller: Caller = Depends(get_caller),
):
    conn = deps._get_conn()
    try:
        require_campaign(conn, campaign_id)
        found = rolls.list_rolls(conn, caller, campaign_id, scene_id=scene_id, character_id=character_id, limit=limit)
        return {
            "rolls": [
                r.model_dump(mode="json") if r.user_id == caller.user_id else r.public_view()
                for r in found
            ]
        }
    finally:
        conn.close()
