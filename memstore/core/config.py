"""
Memory store configuration.

Settings come from environment variables. ``StoreSettings.from_env()``
snapshots them so a store instance is not affected by later changes to
the environment; tests build ``StoreSettings`` directly.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

# Database path configuration
DB_PATH = os.getenv("MEMSTORE_DB_PATH", "./data/memory.db")

# Version string
VERSION = "0.4.0"

VECTOR_PROVIDERS = ("memory", "faiss")
FAISS_INDEX_TYPES = ("flat", "hnsw")
EMBED_PROVIDERS = ("none", "hash", "sentence_transformers", "openai")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class StoreSettings:
    db_path: str = DB_PATH
    embedding_dimension: int = 1536
    semantic_dedup_threshold: float = 0.95
    search_threshold: float = 0.1
    vector_provider: str = "memory"          # memory|faiss
    faiss_index_type: str = "flat"           # flat|hnsw
    embed_provider: str = "none"             # none|hash|sentence_transformers|openai
    embed_model_name: Optional[str] = None
    global_records_visible: bool = False
    search_log_retention_days: int = 90
    busy_timeout_sec: float = 30.0
    debug: bool = False

    @classmethod
    def from_env(cls) -> "StoreSettings":
        return cls(
            db_path=os.getenv("MEMSTORE_DB_PATH", "./data/memory.db"),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "1536")),
            semantic_dedup_threshold=float(os.getenv("SEMANTIC_DEDUP_THRESHOLD", "0.95")),
            search_threshold=float(os.getenv("SEARCH_THRESHOLD", "0.1")),
            vector_provider=os.getenv("VECTOR_PROVIDER", "memory"),
            faiss_index_type=os.getenv("FAISS_INDEX_TYPE", "flat"),
            embed_provider=os.getenv("EMBED_PROVIDER", "none"),
            embed_model_name=os.getenv("EMBED_MODEL_NAME") or None,
            global_records_visible=_env_bool("GLOBAL_RECORDS_VISIBLE"),
            search_log_retention_days=int(os.getenv("SEARCH_LOG_RETENTION_DAYS", "90")),
            busy_timeout_sec=float(os.getenv("SQLITE_BUSY_TIMEOUT_SEC", "30")),
            debug=_env_bool("DEBUG"),
        )


def validate_config(settings: StoreSettings) -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if settings.embedding_dimension < 1:
        issues.append("EMBEDDING_DIMENSION must be >= 1")

    if not -1.0 <= settings.semantic_dedup_threshold <= 1.0:
        issues.append(f"SEMANTIC_DEDUP_THRESHOLD must be within [-1, 1]: {settings.semantic_dedup_threshold}")

    if not -1.0 <= settings.search_threshold <= 1.0:
        issues.append(f"SEARCH_THRESHOLD must be within [-1, 1]: {settings.search_threshold}")

    if settings.vector_provider not in VECTOR_PROVIDERS:
        issues.append(f"Invalid VECTOR_PROVIDER: {settings.vector_provider}")

    if settings.faiss_index_type not in FAISS_INDEX_TYPES:
        issues.append(f"Invalid FAISS_INDEX_TYPE: {settings.faiss_index_type}")

    if settings.embed_provider not in EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {settings.embed_provider}")

    if settings.embed_provider == "openai" and settings.embedding_dimension != 1536 \
            and not settings.embed_model_name:
        issues.append("EMBED_PROVIDER=openai defaults to a 1536-dimension model; set EMBED_MODEL_NAME "
                      "for other dimensions")

    if settings.search_log_retention_days < 1:
        issues.append("SEARCH_LOG_RETENTION_DAYS must be >= 1")

    if settings.busy_timeout_sec < 0:
        issues.append("SQLITE_BUSY_TIMEOUT_SEC must be >= 0")

    return issues


def get_vector_store(settings: StoreSettings):
    """Get configured vector index implementation."""
    if settings.vector_provider == "faiss":
        from ..vector.faiss_store import FaissVectorStore
        return FaissVectorStore(dimension=settings.embedding_dimension,
                                index_type=settings.faiss_index_type)

    from ..vector.index import SimpleInMemoryVectorStore
    return SimpleInMemoryVectorStore()


def get_embedding_provider(settings: StoreSettings):
    """Get configured embedding provider. Returns None when embedding is disabled."""
    if settings.embed_provider == "hash":
        from ..vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=settings.embedding_dimension)
    elif settings.embed_provider == "sentence_transformers":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(settings.embed_model_name or "all-mpnet-base-v2")
    elif settings.embed_provider == "openai":
        from ..vector.embeddings import OpenAIEmbedding
        return OpenAIEmbedding(model=settings.embed_model_name or "text-embedding-3-small",
                               dimension=settings.embedding_dimension)
    return None


def ensure_db_directory(db_path: str) -> None:
    """Ensure the database directory exists."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
