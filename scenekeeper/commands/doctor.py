"""``scenekeeper doctor`` - environment health check.

Checks: Python version, deps installed, database writable and migrated,
moves catalog loadable, narrator endpoint reachable.
"""
from __future__ import annotations

import importlib.util
import sqlite3
import sys

# ANSI helpers (no-op on dumb terminals)
_COLOR = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _ok(msg: str) -> str:
    return f"  [OK]   {msg}" if not _COLOR else f"  \033[32m[OK]\033[0m   {msg}"


def _warn(msg: str) -> str:
    return f"  [WARN] {msg}" if not _COLOR else f"  \033[33m[WARN]\033[0m {msg}"


def _fail(msg: str) -> str:
    return f"  [FAIL] {msg}" if not _COLOR else f"  \033[31m[FAIL]\033[0m {msg}"


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def register(subparsers) -> None:
    p = subparsers.add_parser("doctor", help="Check environment health")
    p.add_argument("--skip-narrator", action="store_true", help="Skip the narrator reachability check")
    p.set_defaults(func=run)


def _check_python() -> bool:
    v = sys.version_info
    ok = v >= (3, 11)
    line = f"Python {v.major}.{v.minor}.{v.micro}"
    print(_ok(line) if ok else _fail(f"{line}: need 3.11+"))
    return ok


def _check_deps() -> list[str]:
    required = ["fastapi", "uvicorn", "pydantic", "yaml", "httpx"]
    missing = []
    for mod in required:
        try:
            if importlib.util.find_spec(mod) is None:
                missing.append(mod)
        except (ImportError, ValueError):
            missing.append(mod)
    if missing:
        print(_fail(f"Missing packages: {', '.join(missing)}"))
        print("         Run: pip install -e .")
    else:
        print(_ok(f"All {len(required)} required packages installed"))
    return missing


def _check_database() -> bool:
    from backend.app.config import DEFAULT_DB_PATH
    from backend.app.db.migrate import apply_schema

    try:
        applied = apply_schema(DEFAULT_DB_PATH)
    except (sqlite3.Error, OSError) as e:
        print(_fail(f"Database not writable at {DEFAULT_DB_PATH}: {e}"))
        return False
    suffix = f" ({len(applied)} migration(s) applied)" if applied else ""
    print(_ok(f"Database: {DEFAULT_DB_PATH}{suffix}"))
    return True


def _check_moves() -> bool:
    from backend.app.config import MOVES_FILE
    from backend.app.core.moves import load_move_catalog

    catalog = load_move_catalog(MOVES_FILE)
    if not catalog.moves:
        print(_warn(f"No moves loaded from {MOVES_FILE} (rolls still work with explicit stats)"))
        return True
    print(_ok(f"Moves: {len(catalog.moves)} loaded from {MOVES_FILE}"))
    return True


def _check_narrator() -> bool:
    """Reachability only; nothing is generated."""
    from backend.app.config import NARRATOR_CONFIG
    from backend.app.core.llm_provider import create_provider

    provider = NARRATOR_CONFIG.get("provider", "ollama")
    try:
        client = create_provider(
            provider,
            NARRATOR_CONFIG.get("model", ""),
            base_url=NARRATOR_CONFIG.get("base_url", ""),
            api_key=NARRATOR_CONFIG.get("api_key", ""),
        )
    except ValueError as e:
        print(_fail(str(e)))
        return False
    with client:
        result = client.probe()
    if not result["ok"]:
        detail = result.get("error") or f"HTTP {result.get('status_code')}"
        print(_warn(f"Narrator ({provider}) not reachable at {result['url']}: {detail}"))
        print("         Scene resolution will fail (retryably) until it is")
        return False
    print(_ok(f"Narrator ({provider}) reachable at {result['url']} (model {result['model']})"))
    return True


def run(args) -> int:
    print(_section("Scenekeeper Doctor"))
    errors = 0

    if not _check_python():
        errors += 1

    missing = _check_deps()
    if missing:
        errors += 1
        # Remaining checks import the backend
        print()
        print(_fail(f"{errors} issue(s) found - see above for fixes"))
        return 1

    if not _check_database():
        errors += 1

    _check_moves()

    if not args.skip_narrator and not _check_narrator():
        errors += 1

    print()
    if errors == 0:
        print(_ok("All checks passed - ready to run!"))
        return 0
    print(_fail(f"{errors} issue(s) found - see above for fixes"))
    return 1
