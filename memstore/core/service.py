"""
Semantic memory store facade.

SQLite is the canonical truth for records, history and analytics. The
vector index is an advisory overlay: it is rebuilt from SQLite when the
store opens and refreshed after every committed write. A failed index
refresh is logged and never undoes the SQLite write; ``rebuild_index``
recovers from it.

Writes are serialised by a store-level lock held from the dedup read to the
index refresh, on top of SQLite's ``BEGIN IMMEDIATE``. The index and the lock
belong to one ``SemanticMemoryStore`` instance. Open one instance per
database file: a second instance, in this process or another, does not see
the first one's writes in its index until ``rebuild_index()``, so its
semantic dedup and search miss them. The exact hash stage reads SQLite and
stays correct across instances.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

import numpy as np

from .analytics import IAnalyticsSink, SqliteSearchLog, TOP_SCORES_KEPT
from .categories import CategoryCounter
from .config import StoreSettings, validate_config, get_vector_store, get_embedding_provider
from .db import get_db, init_db, transaction, health_check as db_health_check
from .dedup import SemanticCandidate, HashCandidate, SemanticMatch, HashMatch, decide, meets_threshold
from .errors import InvalidArgumentError, NotFoundError, ProviderUnavailableError
from .events import EventBus
from .history import HistoryLog
from .metadata import MetadataDocument
from .records import MemoryRecordStore, compute_content_hash
from .schema import HistoryAction, HistoryEntry, MemoryRecord, MemoryStats, SearchHit, SearchLog
from ..api.schemas import (
    IngestRequest, UpdateRequest, SearchRequest, TextSearchRequest, ListRequest, validate_request,
)
from ..util.logging import logger, audit_event
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore, cosine_similarity
from ..vector.types import VectorRecord

# Extra index candidates re-scored beyond k, covering float32 near-ties at the cut
RESCORE_MARGIN = 8


def _as_floats(values: Optional[Sequence[float]], name: str) -> Optional[List[float]]:
    """Plain Python floats from any sequence of numbers (lists, numpy arrays)."""
    if values is None:
        return None
    try:
        return [float(x) for x in values]
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"{name} must be a sequence of numbers: {e}") from e


class SemanticMemoryStore:
    """Deduplicating memory store with similarity search and an audit trail."""

    def __init__(self, settings: Optional[StoreSettings] = None,
                 vector_store: Optional[IVectorStore] = None,
                 embedding_provider: Optional[IEmbeddingProvider] = None,
                 analytics: Optional[IAnalyticsSink] = None,
                 session_id: Optional[str] = None):
        self.settings = settings or StoreSettings.from_env()
        issues = validate_config(self.settings)
        if issues:
            raise InvalidArgumentError("Invalid configuration: " + "; ".join(issues))

        init_db(self.settings.db_path, self.settings.busy_timeout_sec)

        self.vector_store = vector_store if vector_store is not None else get_vector_store(self.settings)
        self.embedding_provider = (embedding_provider if embedding_provider is not None
                                   else get_embedding_provider(self.settings))
        self.analytics = analytics if analytics is not None else SqliteSearchLog(
            self.settings.db_path, self.settings.busy_timeout_sec, self.settings.search_log_retention_days)
        self.session_id = session_id or str(uuid.uuid4())
        if self.settings.debug:
            logger.logger.setLevel(logging.DEBUG)

        self.events = EventBus()
        self.records = MemoryRecordStore(self.events, self.settings.global_records_visible)
        self.history_log = HistoryLog(self.settings.global_records_visible)
        self.categories = CategoryCounter(self.settings.db_path, self.settings.busy_timeout_sec)
        self.events.subscribe(self.categories)

        self._write_lock = threading.RLock()

        self.rebuild_index()
        self.categories.resync()

    @property
    def dimension(self) -> int:
        return self.settings.embedding_dimension

    # Plumbing

    @contextmanager
    def _connect(self) -> Generator:
        with get_db(self.settings.db_path, self.settings.busy_timeout_sec) as conn:
            yield conn

    @contextmanager
    def _read(self) -> Generator:
        with self._connect() as conn:
            with transaction(conn, immediate=False):
                yield conn

    @contextmanager
    def _write(self) -> Generator:
        """One IMMEDIATE transaction; staged events are dropped if it fails."""
        with self._connect() as conn:
            try:
                with transaction(conn, immediate=True):
                    yield conn
            except BaseException:
                self.events.discard()
                raise

    def _check_dimension(self, vector: Sequence[float], name: str) -> List[float]:
        if len(vector) != self.dimension:
            raise InvalidArgumentError(
                f"{name} has dimension {len(vector)}, expected {self.dimension}")
        return [float(x) for x in vector]

    def _embed_or_none(self, text: str, operation: str) -> Optional[List[float]]:
        """Ask the provider for an embedding; any failure degrades to None."""
        if self.embedding_provider is None:
            return None
        try:
            vector = self.embedding_provider.embed_text(text)
        except Exception as e:
            logger.log_provider_unavailable(operation, e)
            return None
        if vector is None or len(vector) != self.dimension:
            logger.log_provider_unavailable(operation, ProviderUnavailableError(
                f"provider returned dimension {len(vector) if vector is not None else 0}, "
                f"expected {self.dimension}"))
            return None
        return [float(x) for x in vector]

    def _refresh_index(self, record: MemoryRecord) -> None:
        """Mirror a committed record into the vector index."""
        try:
            if record.embedding is None or record.is_deleted:
                self.vector_store.delete(record.id)
                logger.log_vector_operation("delete", record.id)
            else:
                self.vector_store.add(self._index_entry(record))
                logger.log_vector_operation("upsert", record.id, {"dimension": len(record.embedding)})
        except Exception as e:
            # Vector operations never break SQLite functionality
            logger.log_vector_operation("refresh", record.id, {
                "provider": self.vector_store.__class__.__name__,
                "error": str(e)[:100],
            }, status="failed")

    def _drop_from_index(self, memory_id: str) -> None:
        try:
            self.vector_store.delete(memory_id)
            logger.log_vector_operation("delete", memory_id)
        except Exception as e:
            logger.log_vector_operation("delete", memory_id, {
                "provider": self.vector_store.__class__.__name__,
                "error": str(e)[:100],
            }, status="failed")

    def _index_entry(self, record: MemoryRecord) -> VectorRecord:
        return VectorRecord(
            id=record.id,
            vector=np.asarray(record.embedding, dtype=np.float32),
            metadata={"owner": record.owner, "metadata": record.metadata},
        )

    def _nearest(self, conn, embedding: List[float], owner: Optional[str], k: int,
                 metadata_filter: Optional[dict] = None) -> List[Tuple[MemoryRecord, float]]:
        """Best k active records in scope, scored in float64 against their stored embeddings.

        The index narrows the candidates by owner and metadata and ranks them
        in float32. Its answers are re-checked against SQLite and re-scored so
        a similarity equal to a threshold is not lost to float32 rounding.
        """
        def eligible(record_id: str, entry: Dict[str, Any]) -> bool:
            if not self.records.in_scope(entry.get("owner"), owner):
                return False
            document = entry.get("metadata")
            return not metadata_filter or (document is not None and document.contains(metadata_filter))

        query = np.asarray(embedding, dtype=np.float64)
        scored = []
        for result in self.vector_store.knn(embedding, k + RESCORE_MARGIN, filter=eligible):
            record = self.records.get_active(conn, result.id)
            # The index can lag SQLite; the stored row decides
            if record is None or record.embedding is None or not self.records.in_scope(record.owner, owner):
                continue
            if metadata_filter and not record.metadata.contains(metadata_filter):
                continue
            scored.append((record, cosine_similarity(query, record.embedding)))

        scored.sort(key=lambda item: (-item[1], item[0].id))
        return scored[:k]

    # Ingest

    def ingest(self, text: str, owner: Optional[str] = None, embedding: Optional[Sequence[float]] = None,
               metadata: Optional[Dict[str, Any]] = None, explicit_hash: Optional[str] = None,
               semantic_threshold: Optional[float] = None) -> str:
        """Store a memory, overwriting a near-duplicate when one exists.

        Stages run in order: semantic similarity against the owner's scope,
        then exact content hash for the same owner, then insert. Returns the
        id of the record that now holds the text.
        """
        if semantic_threshold is None:
            semantic_threshold = self.settings.semantic_dedup_threshold
        request = validate_request(
            IngestRequest, text=text, owner=owner,
            embedding=_as_floats(embedding, "embedding"),
            metadata=metadata, explicit_hash=explicit_hash, semantic_threshold=semantic_threshold,
        )
        document = MetadataDocument(request.metadata)
        if request.embedding is not None:
            vector = self._check_dimension(request.embedding, "embedding")
        else:
            vector = self._embed_or_none(request.text, "ingest")

        with self._write_lock:
            with self._write() as conn:
                semantic = None
                if vector is not None:
                    nearest = self._nearest(conn, vector, request.owner, k=1)
                    if nearest:
                        best, similarity = nearest[0]
                        semantic = SemanticCandidate(best.id, similarity)

                content_hash = request.explicit_hash or compute_content_hash(request.text, request.owner)
                existing = self.records.find_by_hash(conn, content_hash, request.owner)
                hashed = HashCandidate(existing.id) if existing else None

                decision = decide(semantic, hashed, request.semantic_threshold)

                if isinstance(decision, SemanticMatch):
                    target = self.records.get_active(conn, decision.memory_id)
                    stored = self.records.overwrite(
                        conn, target, request.text, vector, document,
                        request.explicit_hash or compute_content_hash(request.text, target.owner),
                    )
                    self.history_log.append(conn, stored.id, stored.owner, HistoryAction.UPDATE_SEMANTIC,
                                            target.text, request.text,
                                            {"similarity": decision.similarity, "dedup_method": "semantic",
                                             "metadata": document.to_dict()})
                elif isinstance(decision, HashMatch):
                    stored = self.records.overwrite(
                        conn, existing, request.text,
                        vector if vector is not None else existing.embedding,
                        document, content_hash,
                    )
                    self.history_log.append(conn, stored.id, stored.owner, HistoryAction.UPDATE_HASH,
                                            existing.text, request.text,
                                            {"dedup_method": "hash", "metadata": document.to_dict()})
                else:
                    stored = self.records.insert(conn, request.owner, request.text, vector, document,
                                                 content_hash)
                    self.history_log.append(conn, stored.id, stored.owner, HistoryAction.ADD,
                                            None, request.text, {"metadata": document.to_dict()})

            self._refresh_index(stored)
            self.events.flush()

        logger.log_dedup_decision(decision.outcome, stored.id,
                                  getattr(decision, "similarity", None), request.owner)
        logger.log_memory_operation("ingest", stored.id, request.owner,
                                    {"outcome": decision.outcome, "has_embedding": vector is not None})
        return stored.id

    # Update

    def update(self, memory_id: str, new_text: Optional[str] = None,
               new_embedding: Optional[Sequence[float]] = None,
               metadata_patch: Optional[Dict[str, Any]] = None,
               merge_metadata: bool = True) -> MemoryRecord:
        """Edit an active memory in place.

        A text change without a new embedding re-embeds through the provider
        when one is configured, and keeps the stored embedding otherwise.
        """
        request = validate_request(
            UpdateRequest, memory_id=memory_id, new_text=new_text,
            new_embedding=_as_floats(new_embedding, "new_embedding"),
            metadata_patch=metadata_patch, merge_metadata=merge_metadata,
        )
        vector = None
        if request.new_embedding is not None:
            vector = self._check_dimension(request.new_embedding, "new_embedding")
        elif request.new_text is not None:
            vector = self._embed_or_none(request.new_text, "update")

        with self._write_lock:
            with self._write() as conn:
                current = self.records.get_active(conn, request.memory_id)
                if current is None:
                    raise NotFoundError(request.memory_id)

                text = request.new_text if request.new_text is not None else current.text
                if request.metadata_patch is None:
                    document = current.metadata
                elif request.merge_metadata:
                    document = current.metadata.merge(request.metadata_patch)
                else:
                    document = current.metadata.replace(request.metadata_patch)
                content_hash = (compute_content_hash(text, current.owner)
                                if request.new_text is not None else current.content_hash)

                stored = self.records.overwrite(
                    conn, current, text, vector if vector is not None else current.embedding,
                    document, content_hash,
                )
                self.history_log.append(conn, stored.id, stored.owner, HistoryAction.UPDATE,
                                        current.text, text,
                                        {"metadata": document.to_dict(),
                                         "merge_metadata": request.merge_metadata,
                                         "embedding_updated": vector is not None})

            self._refresh_index(stored)
            self.events.flush()

        logger.log_memory_operation("update", stored.id, stored.owner,
                                    {"text_changed": request.new_text is not None,
                                     "embedding_updated": vector is not None})
        return stored

    # Search

    def search(self, query_embedding: Sequence[float], owner: Optional[str] = None, limit: int = 10,
               metadata_filter: Optional[Dict[str, Any]] = None, threshold: Optional[float] = None,
               query_text: Optional[str] = None) -> List[SearchHit]:
        """Rank active, embedded memories in scope by cosine similarity to the query."""
        if threshold is None:
            threshold = self.settings.search_threshold
        request = validate_request(
            SearchRequest, query_embedding=_as_floats(query_embedding, "query_embedding"), owner=owner, limit=limit,
            metadata_filter=metadata_filter, threshold=threshold, query_text=query_text,
        )
        vector = self._check_dimension(request.query_embedding, "query_embedding")
        return self._search(vector, request.owner, request.limit, request.metadata_filter,
                            request.threshold, request.query_text)

    def search_by_text(self, query_text: str, owner: Optional[str] = None, limit: int = 10,
                       metadata_filter: Optional[Dict[str, Any]] = None,
                       threshold: Optional[float] = None) -> List[SearchHit]:
        """Embed the query through the provider, then search."""
        if threshold is None:
            threshold = self.settings.search_threshold
        request = validate_request(
            TextSearchRequest, query_text=query_text, owner=owner, limit=limit,
            metadata_filter=metadata_filter, threshold=threshold,
        )
        if self.embedding_provider is None:
            raise ProviderUnavailableError("No embedding provider configured for text search")

        started = time.perf_counter()
        try:
            vector = self.embedding_provider.embed_text(request.query_text)
        except ProviderUnavailableError:
            raise
        except Exception as e:
            raise ProviderUnavailableError(f"Embedding provider failed: {e}") from e
        embedding_ms = (time.perf_counter() - started) * 1000
        if len(vector) != self.dimension:
            raise ProviderUnavailableError(
                f"Provider returned dimension {len(vector)}, expected {self.dimension}")

        return self._search([float(x) for x in vector], request.owner, request.limit,
                            request.metadata_filter, request.threshold, request.query_text,
                            embedding_duration_ms=embedding_ms)

    def _search(self, vector: List[float], owner: Optional[str], limit: int,
                metadata_filter: Optional[dict], threshold: float, query_text: Optional[str],
                embedding_duration_ms: Optional[float] = None) -> List[SearchHit]:
        if metadata_filter is not None:
            # Reject non-JSON filters the same way metadata is rejected
            MetadataDocument(metadata_filter)

        started = time.perf_counter()
        hits: List[SearchHit] = []
        with self._read() as conn:
            for record, similarity in self._nearest(conn, vector, owner, limit, metadata_filter):
                if not meets_threshold(similarity, threshold):
                    break
                hits.append(SearchHit(record=record, similarity=similarity))
        duration_ms = (time.perf_counter() - started) * 1000

        self._record_search(SearchLog(
            owner=owner,
            limit_requested=limit,
            threshold=threshold,
            filters=metadata_filter,
            result_ids=[hit.record.id for hit in hits],
            top_scores=[hit.similarity for hit in hits[:TOP_SCORES_KEPT]],
            result_count=len(hits),
            search_duration_ms=duration_ms,
            query_text=query_text,
            embedding_duration_ms=embedding_duration_ms,
            session_id=self.session_id,
            metadata={"exact_index": self.vector_store.exact},
        ))
        logger.log_search(owner, len(hits), duration_ms, threshold, limit)
        return hits

    def _record_search(self, entry: SearchLog) -> None:
        try:
            self.analytics.record(entry)
        except Exception as e:
            # Analytics is best effort; the search result stands
            logger.warning(f"Search analytics write failed: {e}")

    # List / get / delete

    def list(self, owner: Optional[str] = None, limit: int = 50, offset: int = 0,
             metadata_filter: Optional[Dict[str, Any]] = None,
             include_deleted: bool = False) -> List[MemoryRecord]:
        """Memories in scope, newest first."""
        request = validate_request(
            ListRequest, owner=owner, limit=limit, offset=offset,
            metadata_filter=metadata_filter, include_deleted=include_deleted,
        )
        if request.metadata_filter is not None:
            MetadataDocument(request.metadata_filter)
        with self._read() as conn:
            return self.records.list(conn, request.owner, request.limit, request.offset,
                                     request.metadata_filter, request.include_deleted)

    def get(self, memory_id: str, include_history: bool = False) -> MemoryRecord:
        """Fetch a record by id; soft-deleted records still resolve."""
        with self._read() as conn:
            record = self.records.get(conn, memory_id)
            if record is None:
                raise NotFoundError(memory_id)
            if include_history:
                record.history = self.history_log.list_for(conn, memory_id)
        return record

    def delete(self, memory_id: str, hard: bool = False) -> bool:
        """Soft delete by default. Returns False when there is nothing to delete."""
        with self._write_lock:
            with self._write() as conn:
                record = self.records.get(conn, memory_id)
                if record is None or (record.is_deleted and not hard):
                    return False

                if hard:
                    self.history_log.append(conn, record.id, record.owner, HistoryAction.DELETE,
                                            record.text, None, {"hard_delete": True})
                    self.records.hard_delete(conn, record)
                    self.history_log.tombstone_for(conn, record.id)
                else:
                    self.records.soft_delete(conn, record)
                    self.history_log.append(conn, record.id, record.owner, HistoryAction.DELETE,
                                            record.text, None, {"hard_delete": False})

            self._drop_from_index(memory_id)
            self.events.flush()

        if hard:
            audit_event("memory.hard_delete", {"memory_id": memory_id, "owner": record.owner},
                        {"text": record.text})
        else:
            logger.log_memory_operation("delete", memory_id, record.owner, {"hard": hard})
        return True

    # History / stats

    def history(self, memory_id: str) -> List[HistoryEntry]:
        """Audit entries for a memory, newest first; survives hard delete."""
        with self._read() as conn:
            return self.history_log.list_for(conn, memory_id)

    def stats(self, owner: Optional[str] = None) -> MemoryStats:
        with self._read() as conn:
            total, active, deleted, embedded = self.records.counts(conn, owner)
            history_total = self.history_log.count(conn, owner)
        return MemoryStats(
            total_memories=total,
            active_memories=active,
            deleted_memories=deleted,
            memories_with_embeddings=embedded,
            total_history_entries=history_total,
        )

    def category_stats(self) -> Dict[str, Any]:
        return self.categories.category_stats()

    def active_categories(self):
        return self.categories.active_categories()

    # Maintenance

    def rebuild_index(self) -> int:
        """Reload the vector index from SQLite. Returns the number of vectors indexed."""
        with self._write_lock:
            self.vector_store.clear()
            indexed = 0
            skipped = 0
            with self._read() as conn:
                for record in self.records.iter_embedded(conn):
                    if len(record.embedding) != self.dimension:
                        skipped += 1
                        continue
                    self.vector_store.add(self._index_entry(record))
                    indexed += 1

        if skipped:
            logger.warning(f"Skipped {skipped} stored embeddings whose dimension is not {self.dimension}")
        logger.log_operation("index.rebuild", "success", {
            "provider": self.vector_store.__class__.__name__,
            "indexed": indexed,
        })
        return indexed

    def backfill_embeddings(self, limit: int = 100) -> int:
        """Embed active memories stored without a vector. Returns how many were filled.

        Backfill is maintenance: it writes no history entry and leaves
        ``updated_at`` alone.
        """
        if limit < 1:
            raise InvalidArgumentError("limit must be >= 1")
        if self.embedding_provider is None:
            raise ProviderUnavailableError("No embedding provider configured for backfill")

        with self._read() as conn:
            pending = self.records.missing_embeddings(conn, limit)

        filled = 0
        for candidate in pending:
            vector = self._embed_or_none(candidate.text, "backfill")
            if vector is None:
                continue
            with self._write_lock:
                with self._write() as conn:
                    record = self.records.get_active(conn, candidate.id)
                    # Skip records edited or deleted since they were read
                    if record is None or record.embedding is not None or record.text != candidate.text:
                        continue
                    self.records.set_embedding(conn, record, vector)
                record.embedding = vector
                self._refresh_index(record)
            filled += 1

        logger.log_operation("embedding.backfill", "success", {"pending": len(pending), "filled": filled})
        return filled

    def health_check(self) -> bool:
        """True when the database is reachable and every table exists."""
        return db_health_check(self.settings.db_path)
