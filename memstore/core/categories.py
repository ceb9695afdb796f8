"""
Category counters maintained from record-store domain events.

Each active memory whose ``metadata["category"]`` is a string counts toward
that category. A category becomes active once it holds
``min_items_for_activation`` items and is registered on first sight.
"""

import sqlite3
from typing import Any, Dict, List, Optional

from .db import get_db, transaction, utcnow, to_db_time, from_db_time
from .events import RecordEvent, RecordEventKind
from .metadata import MetadataDocument
from .schema import CategoryCount
from ..util.logging import logger

CATEGORY_KEY = "category"


def category_of(metadata: Optional[MetadataDocument]) -> Optional[str]:
    if metadata is None:
        return None
    value = metadata.get(CATEGORY_KEY)
    return value if isinstance(value, str) and value else None


def _row_to_count(row: sqlite3.Row) -> CategoryCount:
    return CategoryCount(
        category_name=row["category_name"],
        item_count=row["item_count"],
        is_active=bool(row["is_active"]),
        min_items_for_activation=row["min_items_for_activation"],
        first_activation=from_db_time(row["first_activation"]),
        last_modified=from_db_time(row["last_modified"]),
    )


class CategoryCounter:
    """Subscriber that keeps ``category_registry`` in step with the memories table."""

    def __init__(self, db_path: str, timeout: float = 30.0, min_items_for_activation: int = 1):
        self.db_path = db_path
        self.timeout = timeout
        self.min_items_for_activation = min_items_for_activation

    def __call__(self, event: RecordEvent) -> None:
        self.handle(event)

    def handle(self, event: RecordEvent) -> None:
        old_category = category_of(event.old_metadata) if event.was_active else None

        if event.kind == RecordEventKind.INSERTED:
            deltas = {category_of(event.new_metadata): 1}
        elif event.kind == RecordEventKind.UPDATED:
            new_category = category_of(event.new_metadata)
            if old_category == new_category:
                return
            deltas = {old_category: -1, new_category: 1}
        elif event.kind in (RecordEventKind.SOFT_DELETED, RecordEventKind.HARD_DELETED):
            deltas = {old_category: -1}
        else:
            return

        deltas = {name: delta for name, delta in deltas.items() if name is not None}
        if not deltas:
            return

        with get_db(self.db_path, self.timeout) as conn:
            with transaction(conn):
                for name, delta in deltas.items():
                    self._apply(conn, name, delta)

        logger.log_operation("category.count", "success",
                             {"event": event.kind.value, "memory_id": event.memory_id, "deltas": deltas})

    def _register(self, conn: sqlite3.Connection, name: str) -> None:
        now = to_db_time(utcnow())
        conn.execute(
            "INSERT OR IGNORE INTO category_registry (category_name, item_count, is_active, "
            "min_items_for_activation, last_modified, created_at) VALUES (?, 0, 0, ?, ?, ?)",
            (name, self.min_items_for_activation, now, now),
        )

    def _apply(self, conn: sqlite3.Connection, name: str, delta: int) -> None:
        self._register(conn, name)
        row = conn.execute(
            "SELECT item_count, is_active, min_items_for_activation, first_activation "
            "FROM category_registry WHERE category_name = ?",
            (name,),
        ).fetchone()
        self._store(conn, name, max(0, row["item_count"] + delta), row)

    def _store(self, conn: sqlite3.Connection, name: str, count: int, row: sqlite3.Row) -> None:
        now = to_db_time(utcnow())
        active = count >= row["min_items_for_activation"]
        first_activation = row["first_activation"]
        if active and not row["is_active"] and first_activation is None:
            first_activation = now
        conn.execute(
            "UPDATE category_registry SET item_count = ?, is_active = ?, first_activation = ?, "
            "last_modified = ? WHERE category_name = ?",
            (count, int(active), first_activation, now, name),
        )

    def resync(self) -> int:
        """Recount every category from the memories table. Returns the number of categories."""
        counts: Dict[str, int] = {}
        with get_db(self.db_path, self.timeout) as conn:
            with transaction(conn):
                for row in conn.execute("SELECT metadata FROM memories WHERE deleted_at IS NULL"):
                    name = category_of(MetadataDocument.from_json(row["metadata"]))
                    if name is not None:
                        counts[name] = counts.get(name, 0) + 1

                known = [r["category_name"] for r in conn.execute("SELECT category_name FROM category_registry")]
                for name in set(known) | set(counts):
                    self._register(conn, name)
                    row = conn.execute(
                        "SELECT item_count, is_active, min_items_for_activation, first_activation "
                        "FROM category_registry WHERE category_name = ?",
                        (name,),
                    ).fetchone()
                    self._store(conn, name, counts.get(name, 0), row)
        return len(set(known) | set(counts))

    def get(self, name: str) -> Optional[CategoryCount]:
        with get_db(self.db_path, self.timeout) as conn:
            row = conn.execute("SELECT * FROM category_registry WHERE category_name = ?", (name,)).fetchone()
        return _row_to_count(row) if row else None

    def active_categories(self) -> List[CategoryCount]:
        with get_db(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                "SELECT * FROM category_registry WHERE is_active = 1 "
                "ORDER BY item_count DESC, category_name"
            ).fetchall()
        return [_row_to_count(row) for row in rows]

    def category_stats(self) -> Dict[str, Any]:
        with get_db(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                "SELECT * FROM category_registry ORDER BY is_active DESC, item_count DESC, category_name"
            ).fetchall()
        categories = [_row_to_count(row) for row in rows]
        return {
            "total_categories": len(categories),
            "active_categories": sum(1 for c in categories if c.is_active),
            "total_items": sum(c.item_count for c in categories),
            "categories": categories,
        }
