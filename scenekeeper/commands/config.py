"""`scenekeeper config` - show effective narrator and store configuration."""
from __future__ import annotations

from backend.app import config


def register(subparsers) -> None:
    p = subparsers.add_parser("config", help="Show effective narrator/store config")
    p.set_defaults(func=run)


def run(args) -> int:
    cfg = config.NARRATOR_CONFIG
    print("Effective config (after env overrides):")
    print()
    print(
        f"- narrator: provider={cfg.get('provider', '')} model={cfg.get('model', '')} "
        f"base_url={cfg.get('base_url', '(default)')} api_key={'set' if cfg.get('api_key') else 'unset'}"
    )
    print(f"- narrator timeout: {config.NARRATOR_TIMEOUT:.0f}s")
    print(f"- database: {config.DEFAULT_DB_PATH}")
    print(f"- resolution claim TTL: {config.RESOLUTION_CLAIM_TTL_SECONDS}s")
    print(f"- CAS retries: {config.CAS_MAX_RETRIES}")
    print(f"- broadcast: {config.BROADCAST_URL or '(log only)'}")
    print(f"- moves file: {config.MOVES_FILE}")

    print("\nOverride pattern:")
    print("  SCENEKEEPER_NARRATOR_PROVIDER, SCENEKEEPER_NARRATOR_MODEL, SCENEKEEPER_NARRATOR_BASE_URL")
    print("Example (narrator on an OpenAI-compatible API):")
    print("  SCENEKEEPER_NARRATOR_PROVIDER=openai")
    print("  SCENEKEEPER_NARRATOR_MODEL=gpt-4o-mini")
    print("  SCENEKEEPER_NARRATOR_API_KEY=<your-key>")
    return 0
