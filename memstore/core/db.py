"""
SQLite foundation: connections, schema and transactions.

Every public store operation opens its own connection and runs as one
transaction. Writers use ``BEGIN IMMEDIATE`` so SQLite's reserved lock is
taken before the first read of the transaction.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional

from .config import ensure_db_directory
from .errors import StorageFailureError

SCHEMA_VERSION = 1

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS memories (
    id            TEXT PRIMARY KEY,
    owner         TEXT,
    text          TEXT NOT NULL,
    embedding     BLOB,              -- little-endian float64
    dimension     INTEGER,
    metadata      TEXT NOT NULL DEFAULT '{}',
    content_hash  TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL,
    deleted_at    TEXT
);

-- No foreign key: history must outlive a hard-deleted memory
CREATE TABLE IF NOT EXISTS memory_history (
    id             TEXT PRIMARY KEY,
    memory_id      TEXT NOT NULL,
    owner          TEXT,
    action         TEXT NOT NULL CHECK (action IN ('ADD','UPDATE','UPDATE_SEMANTIC','UPDATE_HASH','DELETE')),
    previous_value TEXT,
    new_value      TEXT,
    metadata       TEXT NOT NULL DEFAULT '{}',
    created_at     TEXT NOT NULL,
    tombstoned     INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS search_query_log (
    id                    TEXT PRIMARY KEY,
    query_text            TEXT,
    owner                 TEXT,
    limit_requested       INTEGER NOT NULL,
    threshold             REAL NOT NULL,
    filters               TEXT,
    result_ids            TEXT NOT NULL DEFAULT '[]',
    top_scores            TEXT NOT NULL DEFAULT '[]',
    result_count          INTEGER NOT NULL,
    search_duration_ms    REAL NOT NULL,
    embedding_duration_ms REAL,
    session_id            TEXT,
    metadata              TEXT NOT NULL DEFAULT '{}',
    created_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS category_registry (
    category_name            TEXT PRIMARY KEY,
    item_count               INTEGER NOT NULL DEFAULT 0,
    is_active                INTEGER NOT NULL DEFAULT 0,
    min_items_for_activation INTEGER NOT NULL DEFAULT 1,
    first_activation         TEXT,
    last_modified            TEXT NOT NULL,
    created_at               TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memories_hash_owner ON memories(content_hash, owner);
CREATE INDEX IF NOT EXISTS idx_memories_owner_created ON memories(owner, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_memories_deleted ON memories(deleted_at);
CREATE INDEX IF NOT EXISTS idx_history_memory ON memory_history(memory_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_history_owner ON memory_history(owner);
CREATE INDEX IF NOT EXISTS idx_search_log_created ON search_query_log(created_at);
CREATE INDEX IF NOT EXISTS idx_search_log_owner ON search_query_log(owner);
"""

REQUIRED_TABLES = ("memories", "memory_history", "search_query_log", "category_registry")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


@contextmanager
def get_db(db_path: str, timeout: float = 30.0) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection in autocommit mode."""
    try:
        conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None,
                               check_same_thread=False)
    except sqlite3.Error as e:
        raise StorageFailureError(f"Cannot open database {db_path}: {e}") from e
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection, immediate: bool = True) -> Generator[sqlite3.Connection, None, None]:
    """Run a block as one transaction; sqlite errors surface as StorageFailureError."""
    try:
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    except sqlite3.Error as e:
        raise StorageFailureError(f"Cannot begin transaction: {e}") from e
    try:
        yield conn
    except sqlite3.Error as e:
        _rollback(conn)
        raise StorageFailureError(str(e)) from e
    except BaseException:
        _rollback(conn)
        raise
    else:
        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            _rollback(conn)
            raise StorageFailureError(f"Commit failed: {e}") from e


def _rollback(conn: sqlite3.Connection) -> None:
    # SQLite may already have rolled back on its own (e.g. SQLITE_FULL)
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def init_db(db_path: str, timeout: float = 30.0) -> None:
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)
    with get_db(db_path, timeout) as conn:
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA_SQL)
            conn.execute(
                "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )
        except sqlite3.Error as e:
            raise StorageFailureError(f"Schema initialization failed: {e}") from e


def health_check(db_path: str) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    except (sqlite3.Error, StorageFailureError):
        return False
    table_names = {row[0] for row in rows}
    return all(table in table_names for table in REQUIRED_TABLES)
