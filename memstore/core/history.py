"""
History / audit log.

Append-only: rows are never erased. The only mutation is the tombstone flag
set when the subject record is hard-deleted, so the trail stays queryable
after the memory itself is gone.
"""

import json
import sqlite3
import uuid
from typing import Any, Dict, List, Optional

from .db import utcnow, to_db_time, from_db_time
from .records import scope_clause
from .schema import HistoryAction, HistoryEntry


def _row_to_entry(row: sqlite3.Row) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"],
        memory_id=row["memory_id"],
        owner=row["owner"],
        action=HistoryAction(row["action"]),
        previous_value=row["previous_value"],
        new_value=row["new_value"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_at=from_db_time(row["created_at"]),
        tombstoned=bool(row["tombstoned"]),
    )


class HistoryLog:
    """Audit trail of every mutation of every memory."""

    def __init__(self, global_records_visible: bool = False):
        self.global_records_visible = global_records_visible

    def append(self, conn: sqlite3.Connection, memory_id: str, owner: Optional[str],
               action: HistoryAction, previous_value: Optional[str] = None,
               new_value: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> HistoryEntry:
        entry = HistoryEntry(
            id=str(uuid.uuid4()),
            memory_id=memory_id,
            owner=owner,
            action=action,
            previous_value=previous_value,
            new_value=new_value,
            metadata=metadata or {},
            created_at=utcnow(),
        )
        conn.execute(
            "INSERT INTO memory_history (id, memory_id, owner, action, previous_value, new_value, "
            "metadata, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (entry.id, memory_id, owner, action.value, previous_value, new_value,
             json.dumps(entry.metadata, ensure_ascii=False), to_db_time(entry.created_at)),
        )
        return entry

    def list_for(self, conn: sqlite3.Connection, memory_id: str) -> List[HistoryEntry]:
        """Entries for one memory, newest first."""
        rows = conn.execute(
            "SELECT * FROM memory_history WHERE memory_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (memory_id,),
        ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def tombstone_for(self, conn: sqlite3.Connection, memory_id: str) -> int:
        cursor = conn.execute(
            "UPDATE memory_history SET tombstoned = 1 WHERE memory_id = ?", (memory_id,)
        )
        return cursor.rowcount

    def count(self, conn: sqlite3.Connection, owner: Optional[str] = None) -> int:
        scope_sql, params = scope_clause(owner, self.global_records_visible)
        row = conn.execute(f"SELECT COUNT(*) FROM memory_history WHERE {scope_sql}", params).fetchone()
        return row[0]
