"""Numbered SQL migrations (migrations/0001_*.sql, 0002_*.sql, ...) applied in filename order.

Each file runs in its own transaction together with its schema_migrations
row, so a failed file leaves nothing half-applied and is retried next start.

    python -m backend.app.db.migrate --db ./data/scenekeeper.db
"""
import argparse
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from backend.app.config import DEFAULT_DB_PATH
from backend.app.db.connection import get_connection

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def pending_migrations(conn: sqlite3.Connection) -> list[Path]:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (name TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    done = {row[0] for row in conn.execute("SELECT name FROM schema_migrations")}
    return [fp for fp in sorted(MIGRATIONS_DIR.glob("*.sql")) if fp.stem not in done]


def _apply_one(conn: sqlite3.Connection, fp: Path) -> None:
    stamp = datetime.now(timezone.utc).isoformat()
    record = "INSERT INTO schema_migrations (name, applied_at) VALUES ('{}', '{}');".format(
        fp.stem.replace("'", "''"), stamp
    )
    script = "BEGIN;\n" + fp.read_text(encoding="utf-8") + "\n" + record + "\nCOMMIT;"
    try:
        conn.executescript(script)
    except sqlite3.Error:
        if conn.in_transaction:
            conn.rollback()
        raise


def apply_schema(db_path: str) -> list[str]:
    """Bring db_path up to date. Returns the migration names applied by this call."""
    conn = get_connection(db_path)
    applied: list[str] = []
    try:
        for fp in pending_migrations(conn):
            conn.commit()
            _apply_one(conn, fp)
            applied.append(fp.stem)
            logger.info("migration applied name=%s db=%s", fp.stem, db_path)
        conn.commit()
    finally:
        conn.close()
    return applied


def main() -> None:
    parser = argparse.ArgumentParser(description="Apply pending migrations to the Scenekeeper database.")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="SQLite database file")
    args = parser.parse_args()
    names = apply_schema(args.db)
    print(f"{args.db}: {len(names)} migration(s) applied")


if __name__ == "__main__":
    main()
