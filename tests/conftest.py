"""
Shared fixtures: a fresh SQLite database per test and small, hand-built
embeddings with known cosine similarities.
"""

import math

import pytest

from memstore.core.config import StoreSettings
from memstore.core.service import SemanticMemoryStore

DIMENSION = 4


def vector_at(cosine: float, axis: int = 1):
    """Unit vector whose cosine with E1 = [1, 0, 0, 0] is exactly ``cosine``."""
    vector = [0.0] * DIMENSION
    vector[0] = cosine
    vector[axis] = math.sqrt(1.0 - cosine * cosine)
    return vector


E1 = [1.0, 0.0, 0.0, 0.0]
E2 = vector_at(0.97)           # cosine(E1, E2) = 0.97
E3 = vector_at(0.10, axis=2)   # cosine(E1, E3) = 0.10


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway database with 4-dimensional embeddings."""
    return StoreSettings(db_path=str(tmp_path / "memory.db"), embedding_dimension=DIMENSION)


@pytest.fixture
def store(settings):
    """Store with no embedding provider and the exact in-memory index."""
    return SemanticMemoryStore(settings)
