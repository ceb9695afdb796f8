"""
Dedup decision policy.

``decide`` is pure: it looks at the best semantic candidate and the exact
hash candidate and says which stage matched. The caller gathers the
candidates and performs the mutation.
"""

from dataclasses import dataclass
from typing import Optional, Union

# Rounding slack for similarity-vs-threshold comparisons
SIMILARITY_TOLERANCE = 1e-9


@dataclass(frozen=True)
class SemanticCandidate:
    memory_id: str
    similarity: float


@dataclass(frozen=True)
class HashCandidate:
    memory_id: str


@dataclass(frozen=True)
class SemanticMatch:
    memory_id: str
    similarity: float

    outcome = "semantic"


@dataclass(frozen=True)
class HashMatch:
    memory_id: str

    outcome = "hash"


@dataclass(frozen=True)
class NoMatch:
    outcome = "insert"


Decision = Union[SemanticMatch, HashMatch, NoMatch]


def meets_threshold(similarity: float, threshold: float) -> bool:
    return similarity >= threshold - SIMILARITY_TOLERANCE


def decide(semantic_candidate: Optional[SemanticCandidate],
           hash_candidate: Optional[HashCandidate],
           threshold: float) -> Decision:
    """Semantic stage first, then hash stage, else insert."""
    if semantic_candidate is not None and meets_threshold(semantic_candidate.similarity, threshold):
        return SemanticMatch(semantic_candidate.memory_id, semantic_candidate.similarity)
    if hash_candidate is not None:
        return HashMatch(hash_candidate.memory_id)
    return NoMatch()
