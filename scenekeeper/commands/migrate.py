"""``scenekeeper migrate`` - apply pending schema migrations."""
from __future__ import annotations

import sqlite3


def register(subparsers) -> None:
    p = subparsers.add_parser("migrate", help="Apply pending SQLite migrations")
    p.add_argument("--db", default=None, help="Database path (default: SCENEKEEPER_DB_PATH)")
    p.set_defaults(func=run)


def run(args) -> int:
    from backend.app.config import DEFAULT_DB_PATH
    from backend.app.db.migrate import apply_schema

    db_path = args.db or DEFAULT_DB_PATH
    try:
        applied = apply_schema(db_path)
    except sqlite3.Error as e:
        print(f"ERROR: migration failed for {db_path}: {e}")
        return 1
    if applied:
        for name in applied:
            print(f"  applied {name}")
    else:
        print(f"  {db_path} is up to date")
    return 0
