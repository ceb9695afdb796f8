"""
Audit trail ordering and aggregate statistics.
"""

import pytest

from memstore import HistoryAction, SemanticMemoryStore

from conftest import E1, E2, E3


def test_history_newest_first(store):
    memory_id = store.ingest("v1", embedding=E1)
    store.ingest("v2", embedding=E2)
    store.update(memory_id, new_text="v3")
    store.delete(memory_id)

    actions = [entry.action for entry in store.history(memory_id)]

    assert actions == [HistoryAction.DELETE, HistoryAction.UPDATE,
                       HistoryAction.UPDATE_SEMANTIC, HistoryAction.ADD]


def test_history_unknown_id_is_empty(store):
    assert store.history("mem_000000000000000000000000") == []


def test_history_entries_carry_owner(store):
    memory_id = store.ingest("owned", owner="alice")

    assert store.history(memory_id)[0].owner == "alice"


def test_stats_counts(store):
    kept = store.ingest("kept", embedding=E1)
    soft = store.ingest("soft", embedding=E3)
    store.ingest("no vector")
    hard = store.ingest("hard")
    store.delete(soft)
    store.delete(hard, hard=True)
    store.update(kept, metadata_patch={"x": 1})

    stats = store.stats()

    assert stats.total_memories == 3
    assert stats.active_memories == 2
    assert stats.deleted_memories == 1
    # Soft-deleted records still count when they carry a vector
    assert stats.memories_with_embeddings == 2
    # 4 ADD + soft DELETE + hard DELETE + UPDATE
    assert stats.total_history_entries == 7


def test_stats_scoped_by_owner(store):
    store.ingest("alice one", owner="alice")
    erased = store.ingest("alice two", owner="alice")
    store.ingest("bob one", owner="bob")
    store.ingest("global one")
    store.delete(erased, hard=True)

    alice = store.stats(owner="alice")
    assert alice.total_memories == 1
    # History of the hard-deleted record still counts for its owner
    assert alice.total_history_entries == 3

    assert store.stats(owner="bob").total_memories == 1
    assert store.stats().total_memories == 3


def test_stats_include_global_when_visible(settings):
    settings.global_records_visible = True
    store = SemanticMemoryStore(settings)
    store.ingest("alice one", owner="alice")
    store.ingest("global one")
    store.ingest("bob one", owner="bob")

    assert store.stats(owner="alice").total_memories == 2


def test_stats_to_dict(store):
    store.ingest("one")

    assert store.stats().to_dict() == {
        "total_memories": 1,
        "active_memories": 1,
        "deleted_memories": 0,
        "memories_with_embeddings": 0,
        "total_history_entries": 1,
    }


def test_empty_store_stats(store):
    stats = store.stats()

    assert stats.total_memories == 0
    assert stats.memories_with_embeddings == 0
    assert stats.total_history_entries == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
