"""
Domain records for the memory store: memories, their audit trail,
search hits, statistics and analytics entries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .metadata import MetadataDocument


class HistoryAction(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    UPDATE_SEMANTIC = "UPDATE_SEMANTIC"
    UPDATE_HASH = "UPDATE_HASH"
    DELETE = "DELETE"


@dataclass
class MemoryRecord:
    id: str
    owner: Optional[str]
    text: str
    embedding: Optional[List[float]]
    metadata: MetadataDocument
    content_hash: str
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    history: Optional[List["HistoryEntry"]] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "owner": self.owner,
            "text": self.text,
            "has_embedding": self.embedding is not None,
            "metadata": self.metadata.to_dict(),
            "content_hash": self.content_hash,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
        if self.history is not None:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data


@dataclass
class HistoryEntry:
    id: str
    memory_id: str
    owner: Optional[str]
    action: HistoryAction
    previous_value: Optional[str]
    new_value: Optional[str]
    metadata: Dict[str, Any]
    created_at: datetime
    tombstoned: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "memory_id": self.memory_id,
            "owner": self.owner,
            "action": self.action.value,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "tombstoned": self.tombstoned,
        }


@dataclass
class SearchHit:
    record: MemoryRecord
    similarity: float


@dataclass
class MemoryStats:
    total_memories: int
    active_memories: int
    deleted_memories: int
    memories_with_embeddings: int
    total_history_entries: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_memories": self.total_memories,
            "active_memories": self.active_memories,
            "deleted_memories": self.deleted_memories,
            "memories_with_embeddings": self.memories_with_embeddings,
            "total_history_entries": self.total_history_entries,
        }


@dataclass
class SearchLog:
    """One analytics entry per search call."""
    owner: Optional[str]
    limit_requested: int
    threshold: float
    filters: Optional[Dict[str, Any]]
    result_ids: List[str]
    top_scores: List[float]
    result_count: int
    search_duration_ms: float
    query_text: Optional[str] = None
    embedding_duration_ms: Optional[float] = None
    session_id: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CategoryCount:
    category_name: str
    item_count: int
    is_active: bool
    min_items_for_activation: int
    first_activation: Optional[datetime]
    last_modified: datetime
