"""Turn order API: start/advance/skip/end combat for a live scene."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api import deps
from backend.app.api.deps import get_broadcaster, get_caller
from backend.app.core import turn_tracker
from backend.app.core.broadcast import Broadcaster
from backend.app.core.scene_store import require_scene
from backend.app.models.identity import Caller
from backend.app.models.turn_order import TurnTracker

router = APIRouter(prefix="/v2", tags=["v2-turn-order"])


class Participant(BaseModel):
    character_id: str
    initiative: int | None = Field(default=None, description="Omit to roll 2d6 + cool")


class StartTurnOrderRequest(BaseModel):
    participants: list[Participant] = Field(..., min_length=1)


class EndTurnRequest(BaseModel):
    character_id: str


class SkipRequest(BaseModel):
    reason: str = Field(default="", max_length=500)


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/turn-order", response_model=TurnTracker)
def start_turn_order(
    campaign_id: str,
    scene_id: str,
    body: StartTurnOrderRequest,
    caller: Caller = Depends(get_caller),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    conn = deps._get_conn()
    try:
        require_scene(conn, scene_id, campaign_id)
        return turn_tracker.start(
            conn, caller, scene_id, [p.model_dump() for p in body.participants], broadcaster=broadcaster
        )
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/scenes/{scene_id}/turn-order", response_model=TurnTracker)
def get_turn_order(campaign_id: str, scene_id: str):
    """404 NO_ACTIVE_TRACKER means the scene is in freeform mode."""
    conn = deps._get_conn()
    try:
        require_scene(conn, scene_id, campaign_id)
        return turn_tracker.get_active_tracker(conn, scene_id)
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/turn-order/end-turn", response_model=TurnTracker)
def end_turn(
    campaign_id: str,
    scene_id: str,
    body: EndTurnRequest,
    caller: Caller = Depends(get_caller),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    conn = deps._get_conn()
    try:
        require_scene(conn, scene_id, campaign_id)
        return turn_tracker.end_turn(conn, caller, scene_id, body.character_id, broadcaster=broadcaster)
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/turn-order/advance", response_model=TurnTracker)
def advance_turn(
    campaign_id: str,
    scene_id: str,
    caller: Caller = Depends(get_caller),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    conn = deps._get_conn()
    try:
        require_scene(conn, scene_id, campaign_id)
        return turn_tracker.advance(conn, caller, scene_id, broadcaster=broadcaster)
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/turn-order/skip", response_model=TurnTracker)
def skip_turn(
    campaign_id: str,
    scene_id: str,
    body: SkipRequest,
    caller: Caller = Depends(get_caller),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    conn = deps._get_conn()
    try:
        require_scene(conn, scene_id, campaign_id)
        return turn_tracker.skip(conn, caller, scene_id, body.reason, broadcaster=broadcaster)
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/turn-order/end", response_model=TurnTracker)
def end_turn_order(
    campaign_id: str,
    scene_id: str,
    caller: Caller = Depends(get_caller),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    conn = deps._get_conn()
    try:
        require_scene(conn, scene_id, campaign_id)
        return turn_tracker.end(conn, caller, scene_id, broadcaster=broadcaster)
    finally:
        conn.close()
