"""Scene lifecycle API: start, list, submit actions, resolve, end."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.app.api import deps
from backend.app.api.deps import get_broadcaster, get_caller, get_narrator
from backend.app.constants import RECENT_SCENES_DEFAULT, RECENT_SCENES_MAX
from backend.app.core import scene_machine, scene_store
from backend.app.core.broadcast import Broadcaster
from backend.app.core.character_store import require_campaign
from backend.app.core.narrator import Narrator
from backend.app.core.resolution import ResolutionCoordinator
from backend.app.models.identity import Caller
from backend.app.models.scene import PlayerAction, Scene, SceneStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v2", tags=["v2-scenes"])


class StartSceneRequest(BaseModel):
    participant_character_ids: list[str] = Field(default_factory=list)
    intro_text: str | None = Field(default=None, description="Omit to have the narrator write the opening")


class SubmitActionRequest(BaseModel):
    character_id: str
    action_text: str = Field(..., min_length=1, max_length=4000)


class ResolveResponse(BaseModel):
    scene: Scene
    summary: str


def _scene_detail(conn, scene: Scene) -> dict:
    return {**scene.model_dump(), "actions": [a.model_dump() for a in scene_store.list_actions(conn, scene.id)]}


@router.post("/campaigns/{campaign_id}/scenes", response_model=Scene)
def start_scene(
    campaign_id: str,
    body: StartSceneRequest,
    caller: Caller = Depends(get_caller),
    narrator: Narrator = Depends(get_narrator),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    conn = deps._get_conn()
    try:
        coordinator = ResolutionCoordinator(narrator, broadcaster)
        return coordinator.open_scene(conn, caller, campaign_id, body.participant_character_ids, body.intro_text)
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/scenes")
def list_scenes(
    campaign_id: str,
    status: SceneStatus | None = Query(default=None),
    limit: int = Query(default=RECENT_SCENES_DEFAULT, ge=1, le=RECENT_SCENES_MAX),
):
    """Recent scenes, newest first."""
    conn = deps._get_conn()
    try:
        require_campaign(conn, campaign_id)
        return {"scenes": [s.model_dump() for s in scene_store.list_scenes(conn, campaign_id, status, limit)]}
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/scenes/current")
def get_current_scene(campaign_id: str):
    """The live scene, or {"scene": null} between scenes."""
    conn = deps._get_conn()
    try:
        require_campaign(conn, campaign_id)
        scene = scene_store.get_current_scene(conn, campaign_id)
        return {"scene": _scene_detail(conn, scene) if scene else None}
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/scenes/{scene_id}")
def get_scene(campaign_id: str, scene_id: str):
    conn = deps._get_conn()
    try:
        return _scene_detail(conn, scene_store.require_scene(conn, scene_id, campaign_id))
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/actions", response_model=PlayerAction)
def submit_action(
    campaign_id: str,
    scene_id: str,
    body: SubmitActionRequest,
    caller: Caller = Depends(get_caller),
):
    conn = deps._get_conn()
    try:
        scene_store.require_scene(conn, scene_id, campaign_id)
        return scene_machine.submit_action(conn, caller, scene_id, body.character_id, body.action_text)
    finally:
        conn.close()


@router.get("/campaigns/{campaign_id}/scenes/{scene_id}/actions")
def list_actions(campaign_id: str, scene_id: str):
    conn = deps._get_conn()
    try:
        scene_store.require_scene(conn, scene_id, campaign_id)
        return {"actions": [a.model_dump() for a in scene_store.list_actions(conn, scene_id)]}
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/resolve", response_model=ResolveResponse)
def resolve_scene(
    campaign_id: str,
    scene_id: str,
    caller: Caller = Depends(get_caller),
    narrator: Narrator = Depends(get_narrator),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Resolve, or retry a failed resolution. A narrator failure answers 503 and leaves the scene RESOLVING."""
    conn = deps._get_conn()
    try:
        scene_store.require_scene(conn, scene_id, campaign_id)
        closure = ResolutionCoordinator(narrator, broadcaster).resolve(conn, caller, scene_id)
        summary = closure.applied.summary() if closure.applied else "no changes"
        return ResolveResponse(scene=closure.scene, summary=summary)
    finally:
        conn.close()


@router.post("/campaigns/{campaign_id}/scenes/{scene_id}/end", response_model=Scene)
def end_scene(
    campaign_id: str,
    scene_id: str,
    caller: Caller = Depends(get_caller),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Admin abort: force RESOLVED without narration."""
    conn = deps._get_conn()
    try:
        scene_store.require_scene(conn, scene_id, campaign_id)
        return ResolutionCoordinator(None, broadcaster).end_scene(conn, caller, scene_id).scene
    finally:
        conn.close()
