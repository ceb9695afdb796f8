"""
Vector similarity index and embedding providers.
Non-canonical, advisory layer over SQLite canonical truth.
"""

from .index import IVectorStore, SimpleInMemoryVectorStore, cosine_similarity
from .faiss_store import FaissVectorStore
from .types import VectorRecord, QueryResult
from .embeddings import (
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    SentenceTransformerEmbedding,
    OpenAIEmbedding,
)

__all__ = [
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'FaissVectorStore',
    'VectorRecord',
    'QueryResult',
    'cosine_similarity',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OpenAIEmbedding',
]
