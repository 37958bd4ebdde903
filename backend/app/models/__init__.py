"""Application models (scenes, characters, rolls, turn order, narrator boundary)."""
from .character import Campaign, Character, HarmStatus, Holds
from .clock import Clock
from .dice import DiceRoll, ModifierBreakdown, Outcome, RollType
from .events import BroadcastEvent
from .identity import CampaignRole, Caller
from .narration import (
    AppliedDeltas,
    ClockChange,
    ConditionChange,
    HarmChange,
    NarrationRequest,
    NarrationResult,
    NarratorDeltas,
    RelationshipChange,
)
from .scene import ActionStatus, LIVE_SCENE_STATUSES, PlayerAction, Scene, SceneStatus
from .turn_order import SkipRecord, TrackerState, TurnOrderEntry, TurnTracker

__all__ = [
    "ActionStatus",
    "AppliedDeltas",
    "BroadcastEvent",
    "Caller",
    "Campaign",
    "CampaignRole",
    "Character",
    "Clock",
    "ClockChange",
    "ConditionChange",
    "DiceRoll",
    "HarmChange",
    "HarmStatus",
    "Holds",
    "LIVE_SCENE_STATUSES",
    "ModifierBreakdown",
    "NarrationRequest",
    "NarrationResult",
    "NarratorDeltas",
    "Outcome",
    "PlayerAction",
    "RelationshipChange",
    "RollType",
    "Scene",
    "SceneStatus",
    "SkipRecord",
    "TrackerState",
    "TurnOrderEntry",
    "TurnTracker",
]
