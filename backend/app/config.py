"""App config: DB path, narrator provider selection, resolution and broadcast settings.

Narrator env overrides: SCENEKEEPER_NARRATOR_PROVIDER, SCENEKEEPER_NARRATOR_MODEL,
SCENEKEEPER_NARRATOR_BASE_URL, SCENEKEEPER_NARRATOR_API_KEY (fallback: NARRATOR_*).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

from shared.config import DATA_ROOT, _env_float, _env_int

logger = logging.getLogger(__name__)


DEFAULT_DB_PATH = os.environ.get(
    "SCENEKEEPER_DB_PATH", str(DATA_ROOT / "scenekeeper.db")
).strip()


def _role_env(key: str, role: str, default: str = "") -> str:
    """Env override: SCENEKEEPER_{ROLE}_{KEY} first, then {ROLE}_{KEY} fallback."""
    role_upper = role.upper()
    val = os.environ.get(f"SCENEKEEPER_{role_upper}_{key}", "").strip()
    if not val:
        val = os.environ.get(f"{role_upper}_{key}", default).strip()
    return val or default


def _narrator_config() -> dict[str, str]:
    cfg = {"provider": "ollama", "model": "mistral-nemo:latest"}
    override_provider = _role_env("PROVIDER", "narrator")
    if override_provider:
        cfg["provider"] = override_provider
    override_model = _role_env("MODEL", "narrator")
    if override_model:
        cfg["model"] = override_model
    override_url = _role_env("BASE_URL", "narrator")
    if override_url:
        cfg["base_url"] = override_url
    api_key = _role_env("API_KEY", "narrator")
    if api_key:
        cfg["api_key"] = api_key
    return cfg


NARRATOR_CONFIG = _narrator_config()

# Seconds; a timeout surfaces as a retryable NarratorFailure
NARRATOR_TIMEOUT = _env_float("SCENEKEEPER_NARRATOR_TIMEOUT", 120.0)

# Seconds after which an abandoned resolution claim may be re-taken
RESOLUTION_CLAIM_TTL_SECONDS = _env_int("SCENEKEEPER_RESOLUTION_CLAIM_TTL", 600)

# Optimistic-versioning retry budget for scene/character/tracker rows
CAS_MAX_RETRIES = max(1, _env_int("SCENEKEEPER_CAS_MAX_RETRIES", 5))

# Empty: events are logged only
BROADCAST_URL = os.environ.get("SCENEKEEPER_BROADCAST_URL", "").strip()

MOVES_FILE = os.environ.get(
    "SCENEKEEPER_MOVES_FILE",
    str(Path(__file__).resolve().parent / "rules" / "moves.yaml"),
).strip()


def log_resolved_config() -> None:
    """Log resolved narrator/store config at startup (no secrets)."""
    logger.info(
        "Narrator config: provider=%s model=%s base_url=%s timeout=%.0fs",
        NARRATOR_CONFIG.get("provider", ""),
        NARRATOR_CONFIG.get("model", ""),
        NARRATOR_CONFIG.get("base_url", "(default)"),
        NARRATOR_TIMEOUT,
    )
    logger.info(
        "Store config: db=%s claim_ttl=%ss cas_retries=%d broadcast=%s",
        DEFAULT_DB_PATH,
        RESOLUTION_CLAIM_TTL_SECONDS,
        CAS_MAX_RETRIES,
        BROADCAST_URL or "(log only)",
    )
