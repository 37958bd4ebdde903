"""Real-time fan-out of scene and turn-order events.

Transport is external: events are posted to a webhook when
SCENEKEEPER_BROADCAST_URL is set, otherwise only logged. Publishing happens
after the triggering transition has committed, and a failed publish never
fails that transition.
"""
from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from backend.app.core.error_handling import log_error_with_context
from backend.app.models.character import Character
from backend.app.models.events import BroadcastEvent
from backend.app.models.narration import AppliedDeltas
from backend.app.models.scene import Scene
from backend.app.models.turn_order import TurnTracker

logger = logging.getLogger(__name__)

_WEBHOOK_TIMEOUT = 5.0


@runtime_checkable
class Broadcaster(Protocol):
    def publish(self, event: BroadcastEvent) -> None:
        ...


class InMemoryBroadcaster:
    """Keeps published events in order; used when no transport is configured and in tests."""

    def __init__(self) -> None:
        self.events: list[BroadcastEvent] = []

    def publish(self, event: BroadcastEvent) -> None:
        self.events.append(event)
        logger.info(
            "broadcast event=%s channel=%s scene_id=%s",
            event.event_type, event.channel, event.scene_id,
        )

    def of_type(self, event_type: str) -> list[BroadcastEvent]:
        return [e for e in self.events if e.event_type == event_type]


class WebhookBroadcaster:
    """POSTs each event as JSON to a fan-out service."""

    def __init__(self, url: str, timeout: float = _WEBHOOK_TIMEOUT):
        self.url = url
        self.client = httpx.Client(timeout=timeout)

    def close(self) -> None:
        self.client.close()

    def publish(self, event: BroadcastEvent) -> None:
        response = self.client.post(
            self.url,
            json={"channel": event.channel, "event": event.event_type, "data": event.model_dump()},
        )
        response.raise_for_status()


def create_broadcaster(url: str = "") -> Broadcaster:
    if url:
        logger.info("Broadcasting events to %s", url)
        return WebhookBroadcaster(url)
    return InMemoryBroadcaster()


def publish_safely(broadcaster: Broadcaster | None, event: BroadcastEvent) -> None:
    if broadcaster is None:
        return
    try:
        broadcaster.publish(event)
    except Exception as e:
        log_error_with_context(
            error=e,
            node_name="broadcast",
            campaign_id=event.campaign_id,
            scene_id=event.scene_id,
            extra_context={"event_type": event.event_type},
        )


# --- Event builders (public fields only) ---


def scene_resolved_event(scene: Scene, applied: AppliedDeltas | None = None) -> BroadcastEvent:
    payload = {
        "scene_id": scene.id,
        "scene_number": scene.scene_number,
        "status": scene.status.value,
        "resolution_text": scene.resolution_text,
        "ended_by_admin": scene.ended_by_admin,
    }
    if applied is not None:
        payload["summary"] = applied.summary()
    return BroadcastEvent(
        event_type="scene.resolved",
        campaign_id=scene.campaign_id,
        scene_id=scene.id,
        payload=payload,
    )


def _tracker_payload(tracker: TurnTracker, characters: dict[str, Character] | None = None) -> dict:
    characters = characters or {}
    current = tracker.current_entry
    return {
        "tracker_id": tracker.id,
        "is_active": tracker.is_active,
        "round_number": tracker.round_number,
        "current_turn_index": tracker.current_turn_index,
        "current_character_id": current.character_id if current else None,
        "order": [
            {
                "character_id": e.character_id,
                "character_name": characters[e.character_id].name if e.character_id in characters else None,
                "initiative": e.initiative,
                "has_acted": e.has_acted,
            }
            for e in tracker.order
        ],
    }


def turn_order_updated_event(tracker: TurnTracker, characters: dict[str, Character] | None = None) -> BroadcastEvent:
    return BroadcastEvent(
        event_type="turnOrder.updated",
        campaign_id=tracker.campaign_id,
        scene_id=tracker.scene_id,
        payload=_tracker_payload(tracker, characters),
    )


def turn_order_ended_event(tracker: TurnTracker) -> BroadcastEvent:
    return BroadcastEvent(
        event_type="turnOrder.ended",
        campaign_id=tracker.campaign_id,
        scene_id=tracker.scene_id,
        payload={"tracker_id": tracker.id, "round_number": tracker.round_number},
    )
