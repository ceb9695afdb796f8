"""
Memory record store: the canonical ``memories`` table and its CRUD
primitives.

All functions take an open connection so the caller decides the
transaction boundary. Mutations stage a domain event on the bus; nothing
here touches history, the vector index or counters.
"""

import hashlib
import sqlite3
import uuid
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .db import utcnow, to_db_time, from_db_time
from .events import EventBus, RecordEvent, RecordEventKind
from .metadata import MetadataDocument
from .schema import MemoryRecord

_COLUMNS = ("id, owner, text, embedding, metadata, content_hash, "
            "created_at, updated_at, deleted_at")


def generate_memory_id() -> str:
    return "mem_" + uuid.uuid4().hex[:24]


def compute_content_hash(text: str, owner: Optional[str]) -> str:
    """SHA-256 over the owner token and the normalised text."""
    content = f"{owner if owner is not None else 'null'}:{text.strip().lower()}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def encode_embedding(embedding: Optional[Sequence[float]]) -> Optional[bytes]:
    if embedding is None:
        return None
    return np.asarray(embedding, dtype="<f8").tobytes()


def decode_embedding(blob: Optional[bytes]) -> Optional[List[float]]:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype="<f8").tolist()


def scope_clause(owner: Optional[str], global_visible: bool, column: str = "owner") -> Tuple[str, list]:
    """SQL predicate for the owner scope.

    A query without owner sees every record. A query with an owner sees its
    own records, plus unowned ones when global records are visible.
    """
    if owner is None:
        return "1=1", []
    if global_visible:
        return f"({column} = ? OR {column} IS NULL)", [owner]
    return f"{column} = ?", [owner]


def owner_in_scope(record_owner: Optional[str], owner: Optional[str], global_visible: bool) -> bool:
    """Python counterpart of ``scope_clause`` for a single record."""
    if owner is None:
        return True
    if record_owner is None:
        return global_visible
    return record_owner == owner


def row_to_record(row: sqlite3.Row) -> MemoryRecord:
    return MemoryRecord(
        id=row["id"],
        owner=row["owner"],
        text=row["text"],
        embedding=decode_embedding(row["embedding"]),
        metadata=MetadataDocument.from_json(row["metadata"]),
        content_hash=row["content_hash"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        deleted_at=from_db_time(row["deleted_at"]),
    )


class MemoryRecordStore:
    """CRUD primitives over the memories table."""

    def __init__(self, events: EventBus, global_records_visible: bool = False):
        self.events = events
        self.global_records_visible = global_records_visible

    # Reads

    def get(self, conn: sqlite3.Connection, memory_id: str) -> Optional[MemoryRecord]:
        row = conn.execute(f"SELECT {_COLUMNS} FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return row_to_record(row) if row else None

    def get_active(self, conn: sqlite3.Connection, memory_id: str) -> Optional[MemoryRecord]:
        record = self.get(conn, memory_id)
        if record is None or record.is_deleted:
            return None
        return record

    def find_by_hash(self, conn: sqlite3.Connection, content_hash: str,
                     owner: Optional[str]) -> Optional[MemoryRecord]:
        """Active record with this hash and exactly this owner (None matches None)."""
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM memories "
            "WHERE content_hash = ? AND owner IS ? AND deleted_at IS NULL "
            "ORDER BY created_at, id LIMIT 1",
            (content_hash, owner),
        ).fetchone()
        return row_to_record(row) if row else None

    def list(self, conn: sqlite3.Connection, owner: Optional[str], limit: int, offset: int,
             metadata_filter: Optional[dict] = None, include_deleted: bool = False) -> List[MemoryRecord]:
        """Newest first, offset pagination applied after the metadata filter."""
        scope_sql, params = scope_clause(owner, self.global_records_visible)
        sql = f"SELECT {_COLUMNS} FROM memories WHERE {scope_sql}"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        sql += " ORDER BY created_at DESC, rowid DESC"

        if not metadata_filter:
            rows = conn.execute(sql + " LIMIT ? OFFSET ?", (*params, limit, offset)).fetchall()
            return [row_to_record(row) for row in rows]

        page: List[MemoryRecord] = []
        skipped = 0
        for row in conn.execute(sql, params):
            record = row_to_record(row)
            if not record.metadata.contains(metadata_filter):
                continue
            if skipped < offset:
                skipped += 1
                continue
            page.append(record)
            if len(page) >= limit:
                break
        return page

    def in_scope(self, record_owner: Optional[str], owner: Optional[str]) -> bool:
        return owner_in_scope(record_owner, owner, self.global_records_visible)

    def iter_embedded(self, conn: sqlite3.Connection) -> Iterator[MemoryRecord]:
        """Every active record carrying an embedding."""
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM memories WHERE deleted_at IS NULL AND embedding IS NOT NULL"
        )
        for row in rows:
            yield row_to_record(row)

    def missing_embeddings(self, conn: sqlite3.Connection, limit: int) -> List[MemoryRecord]:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM memories WHERE deleted_at IS NULL AND embedding IS NULL "
            "ORDER BY created_at LIMIT ?",
            (limit,),
        ).fetchall()
        return [row_to_record(row) for row in rows]

    def counts(self, conn: sqlite3.Connection, owner: Optional[str]) -> Tuple[int, int, int, int]:
        """(total, active, deleted, with_embedding) within the owner scope."""
        scope_sql, params = scope_clause(owner, self.global_records_visible)
        row = conn.execute(
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN deleted_at IS NULL THEN 1 ELSE 0 END), 0) AS active, "
            "COALESCE(SUM(CASE WHEN deleted_at IS NOT NULL THEN 1 ELSE 0 END), 0) AS deleted, "
            "COALESCE(SUM(CASE WHEN embedding IS NOT NULL THEN 1 ELSE 0 END), 0) AS embedded "
            f"FROM memories WHERE {scope_sql}",
            params,
        ).fetchone()
        return row["total"], row["active"], row["deleted"], row["embedded"]

    # Writes

    def insert(self, conn: sqlite3.Connection, owner: Optional[str], text: str,
               embedding: Optional[List[float]], metadata: MetadataDocument,
               content_hash: str) -> MemoryRecord:
        now = utcnow()
        record = MemoryRecord(
            id=generate_memory_id(), owner=owner, text=text, embedding=embedding,
            metadata=metadata, content_hash=content_hash, created_at=now, updated_at=now,
        )
        conn.execute(
            "INSERT INTO memories (id, owner, text, embedding, dimension, metadata, content_hash, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (record.id, owner, text, encode_embedding(embedding),
             len(embedding) if embedding is not None else None, metadata.to_json(),
             content_hash, to_db_time(now), to_db_time(now)),
        )
        self.events.stage(RecordEvent(RecordEventKind.INSERTED, record.id, owner, now,
                                      new_metadata=metadata))
        return record

    def overwrite(self, conn: sqlite3.Connection, record: MemoryRecord, text: str,
                  embedding: Optional[List[float]], metadata: MetadataDocument,
                  content_hash: str) -> MemoryRecord:
        """Replace the mutable fields of an active record and bump updated_at."""
        now = utcnow()
        conn.execute(
            "UPDATE memories SET text = ?, embedding = ?, dimension = ?, metadata = ?, "
            "content_hash = ?, updated_at = ? WHERE id = ?",
            (text, encode_embedding(embedding), len(embedding) if embedding is not None else None,
             metadata.to_json(), content_hash, to_db_time(now), record.id),
        )
        self.events.stage(RecordEvent(RecordEventKind.UPDATED, record.id, record.owner, now,
                                      old_metadata=record.metadata, new_metadata=metadata,
                                      was_active=True))
        return MemoryRecord(
            id=record.id, owner=record.owner, text=text, embedding=embedding, metadata=metadata,
            content_hash=content_hash, created_at=record.created_at, updated_at=now,
        )

    def set_embedding(self, conn: sqlite3.Connection, record: MemoryRecord,
                      embedding: List[float]) -> None:
        """Maintenance write for backfill; does not count as a content change."""
        conn.execute(
            "UPDATE memories SET embedding = ?, dimension = ? WHERE id = ?",
            (encode_embedding(embedding), len(embedding), record.id),
        )

    def soft_delete(self, conn: sqlite3.Connection, record: MemoryRecord) -> MemoryRecord:
        now = utcnow()
        conn.execute("UPDATE memories SET deleted_at = ?, updated_at = ? WHERE id = ?",
                     (to_db_time(now), to_db_time(now), record.id))
        self.events.stage(RecordEvent(RecordEventKind.SOFT_DELETED, record.id, record.owner, now,
                                      old_metadata=record.metadata, was_active=True))
        record.deleted_at = now
        record.updated_at = now
        return record

    def hard_delete(self, conn: sqlite3.Connection, record: MemoryRecord) -> None:
        conn.execute("DELETE FROM memories WHERE id = ?", (record.id,))
        self.events.stage(RecordEvent(RecordEventKind.HARD_DELETED, record.id, record.owner, utcnow(),
                                      old_metadata=record.metadata, was_active=not record.is_deleted))
