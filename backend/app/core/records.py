"""Row decoding helpers shared by the sqlite stores."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def row_to_dict(row: Any) -> dict:
    """Convert sqlite3.Row or tuple-with-description to dict."""
    if hasattr(row, "keys"):
        return dict(zip(row.keys(), row))
    return dict(row)


def load_json(raw: Any, default: Any) -> Any:
    """Parse a *_json column; malformed or mistyped content falls back to default."""
    if raw is None or raw == "":
        return default
    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except (TypeError, json.JSONDecodeError):
        return default
    return value if isinstance(value, type(default)) else default


def seconds_since(iso_ts: str | None) -> float | None:
    if not iso_ts:
        return None
    try:
        then = datetime.fromisoformat(iso_ts)
    except ValueError:
        return None
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - then).total_seconds()
