"""Resolution coordinator: claim the scene, call the narrator with no lock held, apply the result atomically.

    begin/retry claim (short write txn)
        -> read ledger + rolls + characters (no txn)
        -> narrator.narrate (slow, may fail)
        -> complete_resolution (short write txn: deltas + RESOLVED together)

A narrator failure releases the claim and leaves the scene RESOLVING; the
admin re-invokes resolve to retry. Nothing is applied until the narrator
has returned a valid result.
"""
from __future__ import annotations

import logging
import sqlite3

from backend.app.core import scene_machine
from backend.app.core.access import require_admin
from backend.app.core.broadcast import (
    Broadcaster,
    publish_safely,
    scene_resolved_event,
    turn_order_ended_event,
)
from backend.app.core.character_store import load_characters, require_campaign
from backend.app.core.clocks import list_clocks
from backend.app.core.error_handling import log_error_with_context
from backend.app.core.errors import InvalidStateError, NarratorFailure
from backend.app.core.narrator import Narrator
from backend.app.core.rolls import scene_roll_history
from backend.app.core.scene_store import list_actions, load_turn_order_snapshot, require_scene
from backend.app.models.identity import Caller
from backend.app.models.narration import NarrationRequest
from backend.app.models.scene import PlayerAction, Scene, SceneStatus
from backend.app.models.turn_order import TurnOrderEntry

logger = logging.getLogger(__name__)


def order_ledger(actions: list[PlayerAction], snapshot: list[TurnOrderEntry]) -> list[PlayerAction]:
    """Initiative order first (each character's actions in submission order), then the rest as submitted."""
    if not snapshot:
        return list(actions)
    ordered: list[PlayerAction] = []
    for entry in snapshot:
        ordered.extend(a for a in actions if a.character_id == entry.character_id)
    in_order = {e.character_id for e in snapshot}
    ordered.extend(a for a in actions if a.character_id not in in_order)
    return ordered


def build_narration_request(conn: sqlite3.Connection, scene: Scene) -> NarrationRequest:
    actions = list_actions(conn, scene.id)
    ledger = order_ledger(actions, load_turn_order_snapshot(conn, scene.id))
    character_ids = list(scene.participant_character_ids)
    for action in actions:
        if action.character_id not in character_ids:
            character_ids.append(action.character_id)
    characters = load_characters(conn, scene.campaign_id, character_ids)
    return NarrationRequest(
        scene=scene,
        ledger=ledger,
        rolls=scene_roll_history(conn, scene.id),
        characters=[characters[cid] for cid in character_ids if cid in characters],
        clocks=list_clocks(conn, scene.campaign_id, include_hidden=True),
    )


class ResolutionCoordinator:
    def __init__(self, narrator: Narrator | None, broadcaster: Broadcaster | None = None):
        self.narrator = narrator
        self.broadcaster = broadcaster

    def open_scene(
        self,
        conn: sqlite3.Connection,
        caller: Caller,
        campaign_id: str,
        participant_ids: list[str],
        intro_text: str | None = None,
    ) -> Scene:
        """Start a scene; the narrator writes the intro unless one is supplied.

        A narrator failure here creates nothing.
        """
        require_admin(caller, "start a scene")
        require_campaign(conn, campaign_id)
        if not intro_text:
            scene_machine.ensure_can_create_scene(conn, campaign_id, participant_ids)
            row = conn.execute(
                "SELECT COALESCE(MAX(scene_number), 0) FROM scenes WHERE campaign_id = ?",
                (campaign_id,),
            ).fetchone()
            characters = load_characters(conn, campaign_id, participant_ids)
            intro_text = self.narrator.open_scene(
                campaign_id,
                int(row[0]) + 1,
                [characters[cid] for cid in participant_ids if cid in characters],
            )
        return scene_machine.create_scene(conn, caller, campaign_id, participant_ids, intro_text)

    def resolve(self, conn: sqlite3.Connection, caller: Caller, scene_id: str) -> scene_machine.SceneClosure:
        require_admin(caller, "resolve a scene")
        scene = require_scene(conn, scene_id)
        if scene.status == SceneStatus.RESOLVING:
            claim = scene_machine.retry_resolution(conn, caller, scene_id)
        else:
            claim = scene_machine.begin_resolution(conn, caller, scene_id)
        if claim.ended_tracker is not None:
            publish_safely(self.broadcaster, turn_order_ended_event(claim.ended_tracker))

        try:
            request = build_narration_request(conn, claim.scene)
            try:
                result = self.narrator.narrate(request)
            except NarratorFailure:
                raise
            except Exception as e:
                raise NarratorFailure(f"Narrator call failed: {type(e).__name__}: {e}") from e
            closure = scene_machine.complete_resolution(
                conn, scene_id, claim.token, result.resolution_text, result.deltas
            )
        except InvalidStateError:
            # Ended by an admin mid-call; there is no claim left to release
            raise
        except Exception as e:
            self._record_failure(conn, claim, e)
            raise
        publish_safely(self.broadcaster, scene_resolved_event(closure.scene, closure.applied))
        return closure

    def _record_failure(self, conn: sqlite3.Connection, claim: scene_machine.ResolutionClaim, error: Exception) -> None:
        """Release the claim so the admin can retry at once instead of waiting out the claim TTL."""
        try:
            scene_machine.release_resolution_claim(conn, claim.scene.id, claim.token, str(error))
        except sqlite3.Error as release_error:
            # The claim then expires after RESOLUTION_CLAIM_TTL_SECONDS
            logger.warning(
                "resolution_claim_release_failed scene_id=%s error=%s", claim.scene.id, release_error
            )
        log_error_with_context(
            error=error,
            node_name="resolution",
            campaign_id=claim.scene.campaign_id,
            scene_id=claim.scene.id,
            operation="ResolutionCoordinator.resolve",
            extra_context={"attempt": claim.scene.resolution_attempts},
        )

    def end_scene(self, conn: sqlite3.Connection, caller: Caller, scene_id: str) -> scene_machine.SceneClosure:
        closure = scene_machine.end_scene(conn, caller, scene_id)
        if closure.ended_tracker is not None:
            publish_safely(self.broadcaster, turn_order_ended_event(closure.ended_tracker))
        publish_safely(self.broadcaster, scene_resolved_event(closure.scene))
        return closure
