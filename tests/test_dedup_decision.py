"""
The pure dedup decision, exercised without a store.
"""

import pytest

from memstore.core.dedup import (
    HashCandidate, HashMatch, NoMatch, SemanticCandidate, SemanticMatch, decide,
)


def test_semantic_match_at_threshold():
    decision = decide(SemanticCandidate("mem_a", 0.95), None, 0.95)

    assert decision == SemanticMatch("mem_a", 0.95)
    assert decision.outcome == "semantic"


def test_semantic_wins_over_hash():
    decision = decide(SemanticCandidate("mem_a", 0.97), HashCandidate("mem_b"), 0.95)

    assert isinstance(decision, SemanticMatch)
    assert decision.memory_id == "mem_a"
    assert decision.similarity == pytest.approx(0.97)


def test_below_threshold_falls_back_to_hash():
    decision = decide(SemanticCandidate("mem_a", 0.94), HashCandidate("mem_b"), 0.95)

    assert decision == HashMatch("mem_b")
    assert decision.outcome == "hash"


def test_no_candidates_inserts():
    assert isinstance(decide(None, None, 0.95), NoMatch)
    assert decide(None, None, 0.95).outcome == "insert"


def test_below_threshold_without_hash_inserts():
    assert isinstance(decide(SemanticCandidate("mem_a", 0.10), None, 0.95), NoMatch)


def test_hash_only():
    assert decide(None, HashCandidate("mem_b"), 0.95) == HashMatch("mem_b")


def test_rounding_below_threshold_still_matches():
    decision = decide(SemanticCandidate("mem_a", 0.95 - 1e-12), None, 0.95)
    assert isinstance(decision, SemanticMatch)

    assert isinstance(decide(SemanticCandidate("mem_a", 0.95 - 1e-6), None, 0.95), NoMatch)


@pytest.mark.parametrize("threshold,expected", [
    (-1.0, SemanticMatch),
    (0.5, SemanticMatch),
    (0.51, NoMatch),
])
def test_threshold_boundaries(threshold, expected):
    assert isinstance(decide(SemanticCandidate("mem_a", 0.5), None, threshold), expected)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
