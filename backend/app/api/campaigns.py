"""Campaign and character records: create/read, plus admin hold changes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api import deps
from backend.app.api.deps import get_caller
from backend.app.core import character_store
from backend.app.core.clamping import harm_status
from backend.app.core.deltas import list_relationships
from backend.app.core.moves import load_move_catalog
from backend.app.models.character import Campaign, Character
from backend.app.models.identity import Caller

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v2", tags=["v2-campaigns"])


class CreateCampaignRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class CreateCharacterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    user_id: str | None = Field(default=None, description="Owner; defaults to the caller. Admins may create for others.")
    stats: dict[str, int] = Field(default_factory=dict)


class SetHoldsRequest(BaseModel):
    forward: int | None = None
    ongoing: int | None = None


def _character_view(conn, character: Character) -> dict:
    return {
        **character.model_dump(),
        "harm_status": harm_status(character.harm).value,
        "relationships": list_relationships(conn, character.id),
    }


@router.post("/campaigns", response_model=Campaign)
def create_campaign(body: CreateCampaignRequest, caller: Caller = Depends(get_caller)):
    """Create a campaign. The creator is expected to hold the admin role upstream."""
    conn = deps._get_conn()
    try:
        return character_store.create_campaign(conn, body.title, created_by=caller.user_id)
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}", response_model=Campaign)
def get_campaign(campaign_id: str):
    conn = deps._get_conn()
    try:
        return character_store.require_campaign(conn, campaign_id)
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/characters")
def create_character(campaign_id: str, body: CreateCharacterRequest, caller: Caller = Depends(get_caller)):
    """Create a character; unknown stat keys are dropped and values clamped."""
    owner = body.user_id if (body.user_id and caller.is_admin) else caller.user_id
    conn = deps._get_conn()
    try:
        character = character_store.create_character(conn, campaign_id, owner, body.name, body.stats)
        return _character_view(conn, character)
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/characters")
def list_characters(campaign_id: str):
    conn = deps._get_conn()
    try:
        character_store.require_campaign(conn, campaign_id)
        return {"characters": [_character_view(conn, c) for c in character_store.list_characters(conn, campaign_id)]}
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/characters/{character_id}")
def get_character(campaign_id: str, character_id: str):
    conn = deps._get_conn()
    try:
        return _character_view(conn, character_store.require_character(conn, campaign_id, character_id))
    finally:
        conn.close()


@router.put("/campaigns/{campaign_id}/characters/{character_id}/holds")
def set_holds(
    campaign_id: str,
    character_id: str,
    body: SetHoldsRequest,
    caller: Caller = Depends(get_caller),
):
    """Admin: grant forward, or change/remove ongoing."""
    conn = deps._get_conn()
    try:
        character = character_store.set_holds(
            conn, caller, campaign_id, character_id, forward=body.forward, ongoing=body.ongoing
        )
        return _character_view(conn, character)
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/moves")
def list_moves(campaign_id: str):
    """Basic move catalog (same for every campaign)."""
    return {"moves": [m.model_dump() for m in load_move_catalog().moves]}
