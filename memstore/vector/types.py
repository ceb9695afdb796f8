"""
Vector value types shared by the similarity index backends.
The index is an advisory overlay; SQLite rows remain the canonical truth.
"""

from typing import Callable, Dict, Optional
import numpy as np
from dataclasses import dataclass, field


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Memory id the vector belongs to"""

    vector: Optional[np.ndarray]
    """The embedding; records without one are never indexed"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Additional metadata associated with the vector"""


@dataclass
class QueryResult:
    """Represents a nearest-neighbour hit from the vector index."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match, in [-1, 1]"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Metadata associated with the matched record"""


# Candidate predicate applied before ranking, called with (record id, record metadata).
RecordFilter = Callable[[str, Dict[str, object]], bool]
