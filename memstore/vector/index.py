"""
Vector similarity index - advisory layer over SQLite canonical truth.

Every backend answers ``knn(query, k, filter)``: the k records with the
highest cosine similarity among those accepted by ``filter``, best first.
Ties on the score are ordered by id so exact backends are deterministic.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Union
import numpy as np

from .types import VectorRecord, QueryResult, RecordFilter

VectorLike = Union[np.ndarray, Sequence[float]]


def as_vector(values: VectorLike) -> np.ndarray:
    """Coerce a list or array into a flat float32 numpy vector."""
    return np.asarray(values, dtype=np.float32).reshape(-1)


def normalize(vector: np.ndarray) -> Optional[np.ndarray]:
    """Return the unit vector, or None for the zero vector."""
    norm = np.linalg.norm(vector)
    if norm == 0:
        return None
    return vector / norm


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity of two vectors in float64; 0.0 when either is the zero vector."""
    va = np.asarray(a, dtype=np.float64).reshape(-1)
    vb = np.asarray(b, dtype=np.float64).reshape(-1)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


class IVectorStore(ABC):
    """Abstract interface for vector similarity index operations."""

    @property
    @abstractmethod
    def exact(self) -> bool:
        """True when knn results are guaranteed to be the true nearest neighbours."""
        pass

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        pass

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    @abstractmethod
    def knn(self, query_vector: VectorLike, k: int = 5,
            filter: Optional[RecordFilter] = None) -> List[QueryResult]:
        """Return up to k nearest records by cosine similarity, best first."""
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID. Unknown ids are ignored."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    @abstractmethod
    def __contains__(self, record_id: object) -> bool:
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """Exact in-memory index: brute-force cosine similarity over a numpy matrix."""

    def __init__(self):
        self._vectors: Dict[str, VectorRecord] = {}   # record_id -> VectorRecord
        self._index: Dict[str, np.ndarray] = {}       # record_id -> normalized vector

    @property
    def exact(self) -> bool:
        return True

    def add(self, record: VectorRecord) -> None:
        """Add a single vector record; an existing id is replaced."""
        if record.vector is None:
            self.delete(record.id)
            return

        vector = as_vector(record.vector)
        self._vectors[record.id] = record
        unit = normalize(vector)
        # Zero vectors stay stored but score 0 against everything
        self._index[record.id] = unit if unit is not None else vector

    def knn(self, query_vector: VectorLike, k: int = 5,
            filter: Optional[RecordFilter] = None) -> List[QueryResult]:
        if not self._index or k <= 0:
            return []

        query = normalize(as_vector(query_vector))
        if query is None:
            return []

        ids = [rid for rid in self._index if filter is None or filter(rid, self._vectors[rid].metadata)]
        if not ids:
            return []

        matrix = np.vstack([self._index[rid] for rid in ids])
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(f"Query dimension {query.shape[0]} does not match index dimension {matrix.shape[1]}")
        scores = matrix @ query

        ranked = sorted(zip(ids, scores.tolist()), key=lambda item: (-item[1], item[0]))
        return [
            QueryResult(id=rid, score=float(score), metadata=self._vectors[rid].metadata)
            for rid, score in ranked[:k]
        ]

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        self._vectors.pop(record_id, None)
        self._index.pop(record_id, None)

    def clear(self) -> None:
        """Clear all records from the store."""
        self._vectors.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._index
