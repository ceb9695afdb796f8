"""
Search analytics: one append-only entry per search call, plus the
reporting queries run over them.
"""

import json
import sqlite3
import uuid
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, List, Optional

import numpy as np

from .db import get_db, transaction, utcnow, to_db_time, from_db_time
from .schema import SearchLog
from ..util.logging import logger

TOP_SCORES_KEPT = 5


class IAnalyticsSink(ABC):
    """Append-only destination for search analytics entries."""

    @abstractmethod
    def record(self, entry: SearchLog) -> None:
        pass


def _row_to_log(row: sqlite3.Row) -> SearchLog:
    return SearchLog(
        id=row["id"],
        query_text=row["query_text"],
        owner=row["owner"],
        limit_requested=row["limit_requested"],
        threshold=row["threshold"],
        filters=json.loads(row["filters"]) if row["filters"] else None,
        result_ids=json.loads(row["result_ids"]),
        top_scores=json.loads(row["top_scores"]),
        result_count=row["result_count"],
        search_duration_ms=row["search_duration_ms"],
        embedding_duration_ms=row["embedding_duration_ms"],
        session_id=row["session_id"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_at=from_db_time(row["created_at"]),
    )


class SqliteSearchLog(IAnalyticsSink):
    """Analytics sink backed by the ``search_query_log`` table."""

    def __init__(self, db_path: str, timeout: float = 30.0, retention_days: int = 90):
        self.db_path = db_path
        self.timeout = timeout
        self.retention_days = retention_days

    def record(self, entry: SearchLog) -> None:
        if entry.id is None:
            entry.id = str(uuid.uuid4())
        if entry.created_at is None:
            entry.created_at = utcnow()

        with get_db(self.db_path, self.timeout) as conn:
            with transaction(conn):
                conn.execute(
                    "INSERT INTO search_query_log (id, query_text, owner, limit_requested, threshold, "
                    "filters, result_ids, top_scores, result_count, search_duration_ms, "
                    "embedding_duration_ms, session_id, metadata, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.id,
                        entry.query_text,
                        entry.owner,
                        entry.limit_requested,
                        entry.threshold,
                        json.dumps(entry.filters) if entry.filters is not None else None,
                        json.dumps(entry.result_ids),
                        json.dumps(entry.top_scores[:TOP_SCORES_KEPT]),
                        entry.result_count,
                        entry.search_duration_ms,
                        entry.embedding_duration_ms,
                        entry.session_id,
                        json.dumps(entry.metadata),
                        to_db_time(entry.created_at),
                    ),
                )

    def recent(self, owner: Optional[str] = None, days: int = 7, limit: int = 100) -> List[SearchLog]:
        """Entries from the last ``days`` days, newest first."""
        since = to_db_time(utcnow() - timedelta(days=days))
        sql = "SELECT * FROM search_query_log WHERE created_at >= ?"
        params: List[Any] = [since]
        if owner is not None:
            sql += " AND owner = ?"
            params.append(owner)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        with get_db(self.db_path, self.timeout) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_log(row) for row in rows]

    def popular_queries(self, limit: int = 20) -> List[Dict[str, Any]]:
        with get_db(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                "SELECT query_text, COUNT(*) AS query_count, AVG(result_count) AS avg_results, "
                "AVG(search_duration_ms) AS avg_duration_ms, MIN(created_at) AS first_searched, "
                "MAX(created_at) AS last_searched "
                "FROM search_query_log WHERE query_text IS NOT NULL "
                "GROUP BY query_text ORDER BY query_count DESC, last_searched DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]

    def zero_result_searches(self, limit: int = 20) -> List[Dict[str, Any]]:
        with get_db(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                "SELECT query_text, COUNT(*) AS zero_result_count, MAX(created_at) AS last_occurrence "
                "FROM search_query_log WHERE result_count = 0 AND query_text IS NOT NULL "
                "GROUP BY query_text ORDER BY zero_result_count DESC, last_occurrence DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]

    def performance_stats(self, days: int = 30) -> List[Dict[str, Any]]:
        """Per-day search volume and latency, newest day first."""
        since = to_db_time(utcnow() - timedelta(days=days))
        with get_db(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                "SELECT substr(created_at, 1, 10) AS search_date, owner, result_count, search_duration_ms "
                "FROM search_query_log WHERE created_at >= ?",
                (since,),
            ).fetchall()

        by_day: Dict[str, List[sqlite3.Row]] = {}
        for row in rows:
            by_day.setdefault(row["search_date"], []).append(row)

        stats = []
        for day in sorted(by_day, reverse=True):
            day_rows = by_day[day]
            durations = np.array([r["search_duration_ms"] for r in day_rows], dtype=float)
            results = np.array([r["result_count"] for r in day_rows], dtype=float)
            stats.append({
                "search_date": day,
                "total_searches": len(day_rows),
                "unique_owners": len({r["owner"] for r in day_rows if r["owner"] is not None}),
                "avg_results": float(results.mean()),
                "avg_duration_ms": float(durations.mean()),
                "median_duration_ms": float(np.percentile(durations, 50)),
                "p95_duration_ms": float(np.percentile(durations, 95)),
                "zero_result_count": int((results == 0).sum()),
            })
        return stats

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete entries older than the retention window. Returns rows deleted."""
        if retention_days is None:
            retention_days = self.retention_days
        cutoff = to_db_time(utcnow() - timedelta(days=retention_days))
        with get_db(self.db_path, self.timeout) as conn:
            with transaction(conn):
                deleted = conn.execute(
                    "DELETE FROM search_query_log WHERE created_at < ?", (cutoff,)
                ).rowcount

        logger.log_operation("analytics.cleanup", "success",
                             {"retention_days": retention_days, "deleted": deleted})
        return deleted
