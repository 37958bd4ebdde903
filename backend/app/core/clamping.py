"""Input normalization and numeric clamping. Nothing here raises: inputs are normalized, not rejected."""
from __future__ import annotations

import logging
from typing import Any

from backend.app.constants import (
    HARM_IMPAIRED_AT,
    HARM_MAX,
    HARM_MIN,
    RELATIONSHIP_MAX,
    RELATIONSHIP_MIN,
    STAT_KEYS,
    STAT_MAX,
    STAT_MIN,
)
from backend.app.models.character import HarmStatus

logger = logging.getLogger(__name__)


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clamp_harm(value: Any) -> int:
    return clamp(coerce_int(value), HARM_MIN, HARM_MAX)


def harm_status(harm: int) -> HarmStatus:
    h = clamp_harm(harm)
    if h >= HARM_MAX:
        return HarmStatus.TAKEN_OUT
    if h >= HARM_IMPAIRED_AT:
        return HarmStatus.IMPAIRED
    return HarmStatus.FINE


def clamp_clock_ticks(value: Any, max_ticks: int) -> int:
    return clamp(coerce_int(value), 0, max(1, max_ticks))


def clamp_relationship(value: Any) -> int:
    return clamp(coerce_int(value), RELATIONSHIP_MIN, RELATIONSHIP_MAX)


def normalize_stat_key(stat_key: str | None) -> str | None:
    """Return the canonical stat key, or None for no-stat/unknown keys (logged)."""
    if stat_key is None:
        return None
    key = str(stat_key).strip().lower()
    if not key:
        return None
    if key not in STAT_KEYS:
        logger.warning("Unknown stat key %r; treating as modifier 0", stat_key)
        return None
    return key


def normalize_stats(raw: dict[str, Any] | None) -> dict[str, int]:
    """Fixed stat key set: unknown keys dropped with a warning, missing keys 0, values clamped."""
    raw = raw or {}
    stats = {key: 0 for key in STAT_KEYS}
    for key, value in raw.items():
        canonical = str(key).strip().lower()
        if canonical not in STAT_KEYS:
            logger.warning("Dropping unknown stat key %r", key)
            continue
        stats[canonical] = clamp(coerce_int(value), STAT_MIN, STAT_MAX)
    return stats


def normalize_conditions(conditions: Any) -> list[str]:
    """Dedupe and trim condition tags, preserving first-seen order."""
    out: list[str] = []
    for c in conditions or []:
        tag = str(c).strip()
        if tag and tag not in out:
            out.append(tag)
    return out
