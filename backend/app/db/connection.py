"""SQLite connection factory for the Scenekeeper database layer.

Provides configured connections with:
- sqlite3.Row row factory (dict-like access)
- Foreign keys enabled (PRAGMA foreign_keys = ON)
- A busy timeout so concurrent writers wait instead of failing immediately
"""
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

DEFAULT_BUSY_TIMEOUT = 5.0


def get_connection(db_path: str, timeout: float = DEFAULT_BUSY_TIMEOUT) -> sqlite3.Connection:
    """Return a configured SQLite connection.

    Args:
        db_path: Path to the SQLite database file. Parent directories
                 are created if they do not exist.
        timeout: Seconds to wait on a locked database before raising.

    Returns:
        sqlite3.Connection with row_factory=sqlite3.Row and foreign
        keys enabled.

    Note:
        The connection does not auto-close; callers must close it.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside one IMMEDIATE transaction: commit on success, roll back on error.

    IMMEDIATE takes the write lock up front so read-then-write sequences in
    the block cannot interleave with another writer. Blocks do not nest: a
    connection that already has a transaction open is refused rather than
    having that earlier work committed under it.
    """
    if conn.in_transaction:
        raise RuntimeError("write_transaction cannot start: the connection already has an open transaction")
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()

