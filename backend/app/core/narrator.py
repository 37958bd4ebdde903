"""Narrator boundary: turns a scene's ledger and roll history into prose plus structured deltas.

The narrator is untrusted and may be slow or fail. Every failure mode
(transport error, timeout, unparseable or invalid output) surfaces as a
retryable NarratorFailure; there is no synthetic fallback narration.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from backend.app.config import NARRATOR_CONFIG, NARRATOR_TIMEOUT
from backend.app.core.clamping import harm_status
from backend.app.core.dice import outcome_label
from backend.app.core.errors import NarratorFailure
from backend.app.core.json_repair import extract_json_object
from backend.app.core.llm_provider import LLMProviderError, create_provider
from backend.app.models.character import Character
from backend.app.models.narration import NarrationRequest, NarrationResult

logger = logging.getLogger(__name__)


@runtime_checkable
class Narrator(Protocol):
    def narrate(self, request: NarrationRequest) -> NarrationResult:
        """Resolve a scene. Raises NarratorFailure."""
        ...

    def open_scene(self, campaign_id: str, scene_number: int, characters: list[Character]) -> str:
        """Write a scene intro. Raises NarratorFailure."""
        ...


RESOLVE_SYSTEM_PROMPT = """You are the MC of a Powered by the Apocalypse game.
Resolve the scene from the players' actions and their dice results.
Strong hits succeed cleanly, weak hits succeed at a cost, misses let the MC make a hard move.
Reply with ONE JSON object and nothing else:
{
  "resolution_text": "2-4 paragraphs of second-person prose",
  "deltas": {
    "harm": [{"character_id": "...", "delta": 1}],
    "conditions": [{"character_id": "...", "add": ["shaken"], "remove": []}],
    "clocks": [{"clock": "clock name or id", "delta": 1, "max_ticks": 6}],
    "relationships": [{"character_id": "...", "entity_id": "...", "entity_name": "...", "delta": 1}]
  }
}
Use only character_id values listed in the prompt. Omit empty lists."""

OPEN_SYSTEM_PROMPT = """You are the MC of a Powered by the Apocalypse game.
Write a short, vivid scene opening (one or two paragraphs) that puts the listed characters
somewhere charged and ends on a prompt for action. Plain prose, no JSON, no headings."""


_SECRET_NOTE = " (secret: do not reveal the number)"


def _character_line(c: Character) -> str:
    stats = ", ".join(f"{k} {v:+d}" for k, v in sorted(c.stats.items()))
    conditions = ", ".join(c.conditions) or "none"
    return (
        f"- {c.name} (character_id={c.id}): {stats}; harm {c.harm}/6 "
        f"({harm_status(c.harm).value}); conditions: {conditions}"
    )


def build_resolve_prompt(request: NarrationRequest) -> str:
    names = {c.id: c.name for c in request.characters}
    rolls_by_id = {r.id: r for r in request.rolls}
    lines = [f"Scene {request.scene.scene_number}", "", "Opening:", request.scene.intro_text or "(none)", ""]
    lines.append("Characters:")
    lines.extend(_character_line(c) for c in request.characters)
    lines.append("")
    lines.append("Actions (in turn order):")
    for i, action in enumerate(request.ledger, start=1):
        who = names.get(action.character_id, action.character_id)
        line = f"{i}. {who}: {action.action_text}"
        roll = rolls_by_id.get(action.attached_roll_id) if action.attached_roll_id else None
        if roll is not None:
            line += f" [rolled {roll.total}: {outcome_label(roll.outcome)}{_SECRET_NOTE if roll.is_secret else ''}]"
        lines.append(line)
    unattached = [r for r in request.rolls if r.id not in {a.attached_roll_id for a in request.ledger}]
    if unattached:
        lines.append("")
        lines.append("Other rolls this scene:")
        for r in unattached:
            who = names.get(r.character_id, r.character_id)
            secret = _SECRET_NOTE if r.is_secret else ""
            move = f" {r.move_id}" if r.move_id else ""
            lines.append(f"- {who}{move}: {r.total} {outcome_label(r.outcome)}{secret}")
    if request.clocks:
        lines.append("")
        lines.append("Clocks:")
        for clock in request.clocks:
            lines.append(f"- {clock.name} (id={clock.id}): {clock.current_ticks}/{clock.max_ticks}")
    return "\n".join(lines)


def parse_narration(raw: str) -> NarrationResult:
    """Validate raw narrator output. Raises NarratorFailure on anything unusable."""
    extracted = extract_json_object(raw or "")
    if extracted is None:
        raise NarratorFailure("Narrator returned no JSON object")
    try:
        data: Any = json.loads(extracted)
    except json.JSONDecodeError as e:
        raise NarratorFailure(f"Narrator returned malformed JSON: {e}") from e
    try:
        return NarrationResult.model_validate(data)
    except ValidationError as e:
        raise NarratorFailure(f"Narrator result failed validation: {e.error_count()} error(s)") from e


class LLMNarrator:
    """Narrator backed by the configured LLM provider."""

    def __init__(self, client: Any = None, config: dict[str, str] | None = None):
        cfg = config or NARRATOR_CONFIG
        self.config = cfg
        self.client = client or create_provider(
            cfg.get("provider", "ollama"),
            cfg.get("model", ""),
            base_url=cfg.get("base_url", ""),
            api_key=cfg.get("api_key", ""),
            timeout=NARRATOR_TIMEOUT,
        )

    def _complete(self, prompt: str, system_prompt: str, json_mode: bool) -> str:
        try:
            return self.client.complete(prompt, system_prompt=system_prompt, json_mode=json_mode)
        except LLMProviderError as e:
            raise NarratorFailure(f"Narrator call failed: {e}") from e

    def narrate(self, request: NarrationRequest) -> NarrationResult:
        raw = self._complete(build_resolve_prompt(request), RESOLVE_SYSTEM_PROMPT, json_mode=True)
        result = parse_narration(raw)
        logger.info(
            "narration scene_id=%s chars=%d deltas_empty=%s",
            request.scene.id, len(result.resolution_text), result.deltas.is_empty(),
        )
        return result

    def open_scene(self, campaign_id: str, scene_number: int, characters: list[Character]) -> str:
        names = ", ".join(c.name for c in characters) or "the crew"
        prompt = f"Campaign {campaign_id}, scene {scene_number}. Characters present: {names}."
        text = self._complete(prompt, OPEN_SYSTEM_PROMPT, json_mode=False).strip()
        if not text:
            raise NarratorFailure("Narrator returned an empty scene opening")
        return text
