"""
Semantic memory store: deduplicating free-text memories with vector search,
an append-only audit trail and search analytics, on top of SQLite.
"""

from .core.config import StoreSettings, VERSION
from .core.errors import (
    MemoryStoreError,
    NotFoundError,
    InvalidArgumentError,
    ProviderUnavailableError,
    StorageFailureError,
)
from .core.metadata import MetadataDocument
from .core.schema import HistoryAction, HistoryEntry, MemoryRecord, MemoryStats, SearchHit
from .core.service import SemanticMemoryStore

__version__ = VERSION

__all__ = [
    'SemanticMemoryStore',
    'StoreSettings',
    'MetadataDocument',
    'MemoryRecord',
    'HistoryEntry',
    'HistoryAction',
    'MemoryStats',
    'SearchHit',
    'MemoryStoreError',
    'NotFoundError',
    'InvalidArgumentError',
    'ProviderUnavailableError',
    'StorageFailureError',
]
