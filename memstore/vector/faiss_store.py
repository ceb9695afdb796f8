"""
FAISS-backed vector similarity index.

Two index types are supported:

* ``flat`` - ``IndexFlatIP`` over unit vectors, exact inner-product search.
* ``hnsw`` - ``IndexHNSWFlat`` graph index, approximate. Recall is not
  guaranteed to be 100%; a true nearest neighbour can be missed. Callers
  must not assume otherwise.

HNSW cannot remove vectors in place, so deleted or replaced entries are
masked and dropped on the next ``compact()``.
"""

from typing import Dict, List, Optional, Set
import numpy as np

from .types import VectorRecord, QueryResult, RecordFilter
from .index import IVectorStore, VectorLike, as_vector, normalize

INDEX_TYPES = ("flat", "hnsw")


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore."""

    def __init__(self, dimension: int = 1536, index_type: str = "flat",
                 hnsw_m: int = 32, ef_search: int = 64, compact_ratio: float = 0.25):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the vectors
            index_type: "flat" (exact) or "hnsw" (approximate)
            hnsw_m: HNSW graph degree
            ef_search: HNSW search breadth; higher trades speed for recall
            compact_ratio: masked/total ratio that triggers an automatic compact
        """
        try:
            import faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        if index_type not in INDEX_TYPES:
            raise ValueError(f"index_type must be one of {INDEX_TYPES}, got {index_type!r}")

        self.faiss = faiss
        self.dimension = dimension
        self.index_type = index_type
        self.hnsw_m = hnsw_m
        self.ef_search = ef_search
        self.compact_ratio = compact_ratio
        self._reset()

    def _reset(self) -> None:
        if self.index_type == "hnsw":
            inner = self.faiss.IndexHNSWFlat(self.dimension, self.hnsw_m, self.faiss.METRIC_INNER_PRODUCT)
            inner.hnsw.efSearch = self.ef_search
        else:
            inner = self.faiss.IndexFlatIP(self.dimension)
        self._inner = inner
        self.index = self.faiss.IndexIDMap2(inner)

        self.id_to_vector_index: Dict[str, int] = {}
        self.vector_id_map: Dict[int, str] = {}
        self._vectors: Dict[int, np.ndarray] = {}
        self._metadata: Dict[str, Dict[str, object]] = {}
        self._masked: Set[int] = set()
        self.next_vector_index = 0

    @property
    def exact(self) -> bool:
        return self.index_type == "flat"

    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        self.delete(record.id)
        if record.vector is None:
            return

        vector = as_vector(record.vector)
        if vector.shape[0] != self.dimension:
            raise ValueError(f"Vector dimension {vector.shape[0]} does not match expected dimension {self.dimension}")

        unit = normalize(vector)
        if unit is None:
            # Zero vectors have no direction; they can never match anything
            return

        vector_index = self.next_vector_index
        self.next_vector_index += 1
        self.index.add_with_ids(unit.reshape(1, -1).astype(np.float32),
                                np.array([vector_index], dtype=np.int64))

        self.id_to_vector_index[record.id] = vector_index
        self.vector_id_map[vector_index] = record.id
        self._vectors[vector_index] = unit
        self._metadata[record.id] = record.metadata

    def knn(self, query_vector: VectorLike, k: int = 5,
            filter: Optional[RecordFilter] = None) -> List[QueryResult]:
        live = len(self.id_to_vector_index)
        if not live or k <= 0:
            return []

        query = as_vector(query_vector)
        if query.shape[0] != self.dimension:
            raise ValueError(f"Query dimension {query.shape[0]} does not match index dimension {self.dimension}")
        query = normalize(query)
        if query is None:
            return []
        query = query.reshape(1, -1).astype(np.float32)

        # Over-fetch so masked and filtered-out entries do not starve the result
        fetch = min(self.index.ntotal, max(k * 4, k + len(self._masked)))
        while True:
            scores, indices = self.index.search(query, fetch)
            hits = []
            for score, vector_index in zip(scores[0], indices[0]):
                vector_index = int(vector_index)
                if vector_index < 0 or vector_index in self._masked:
                    continue
                record_id = self.vector_id_map.get(vector_index)
                if record_id is None:
                    continue
                if filter is not None and not filter(record_id, self._metadata.get(record_id, {})):
                    continue
                hits.append((record_id, float(score)))
            if len(hits) >= k or fetch >= self.index.ntotal:
                break
            fetch = min(self.index.ntotal, fetch * 2)

        hits.sort(key=lambda item: (-item[1], item[0]))
        return [
            QueryResult(id=record_id, score=score, metadata=self._metadata.get(record_id, {}))
            for record_id, score in hits[:k]
        ]

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID.

        The flat index removes the vector physically; HNSW masks it until
        the next compact.
        """
        vector_index = self.id_to_vector_index.pop(record_id, None)
        if vector_index is None:
            return
        self.vector_id_map.pop(vector_index, None)
        self._vectors.pop(vector_index, None)
        self._metadata.pop(record_id, None)

        if self.index_type == "flat":
            self.index.remove_ids(np.array([vector_index], dtype=np.int64))
        else:
            self._masked.add(vector_index)
            if self.index.ntotal and len(self._masked) / self.index.ntotal >= self.compact_ratio:
                self.compact()

    def compact(self) -> None:
        """Rebuild the FAISS index from live vectors, dropping masked entries."""
        live = [(self.vector_id_map[i], self._vectors[i]) for i in sorted(self._vectors)]
        metadata = dict(self._metadata)
        self._reset()
        for record_id, unit in live:
            self.add(VectorRecord(id=record_id, vector=unit, metadata=metadata.get(record_id, {})))

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        self._reset()

    def __len__(self) -> int:
        return len(self.id_to_vector_index)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self.id_to_vector_index
