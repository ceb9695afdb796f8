"""
Update: text, embedding and metadata edits of active memories.
"""

import pytest
from unittest.mock import MagicMock

from memstore import HistoryAction, InvalidArgumentError, NotFoundError, SemanticMemoryStore
from memstore.core.records import compute_content_hash

from conftest import E1, E2, E3


def test_metadata_merge(store):
    memory_id = store.ingest("with metadata", metadata={"b": 2})

    updated = store.update(memory_id, metadata_patch={"a": 1}, merge_metadata=True)

    assert updated.metadata == {"a": 1, "b": 2}
    assert store.get(memory_id).metadata == {"a": 1, "b": 2}


def test_metadata_replace(store):
    memory_id = store.ingest("with metadata", metadata={"b": 2})

    updated = store.update(memory_id, metadata_patch={"a": 1}, merge_metadata=False)

    assert updated.metadata == {"a": 1}
    assert store.get(memory_id).metadata == {"a": 1}


def test_merge_patch_keys_win(store):
    memory_id = store.ingest("x", metadata={"a": 1, "nested": {"k": "old"}})

    updated = store.update(memory_id, metadata_patch={"nested": {"j": "new"}})

    # Shallow merge: the nested object is replaced, not merged
    assert updated.metadata == {"a": 1, "nested": {"j": "new"}}


def test_new_text_recomputes_hash(store):
    memory_id = store.ingest("old text", owner="alice")

    updated = store.update(memory_id, new_text="new text")

    assert updated.text == "new text"
    assert updated.content_hash == compute_content_hash("new text", "alice")
    # The old text no longer hash-matches
    assert store.ingest("old text", owner="alice") != memory_id


def test_update_bumps_updated_at(store):
    memory_id = store.ingest("timestamps")
    before = store.get(memory_id)

    updated = store.update(memory_id, metadata_patch={"seen": True})

    assert updated.updated_at > before.updated_at
    assert updated.created_at == before.created_at


def test_update_appends_history(store):
    memory_id = store.ingest("before")
    store.update(memory_id, new_text="after")

    entry = store.history(memory_id)[0]
    assert entry.action == HistoryAction.UPDATE
    assert entry.previous_value == "before"
    assert entry.new_value == "after"


def test_update_without_changes_still_records(store):
    memory_id = store.ingest("unchanged")
    store.update(memory_id)

    assert [e.action for e in store.history(memory_id)] == [HistoryAction.UPDATE, HistoryAction.ADD]


def test_new_embedding_refreshes_index(store):
    memory_id = store.ingest("moving vector", embedding=E3)

    store.update(memory_id, new_embedding=E1)

    hits = store.search(E1, threshold=0.99)
    assert [hit.record.id for hit in hits] == [memory_id]
    assert store.get(memory_id).embedding == pytest.approx(E1)


def test_new_embedding_dimension_mismatch(store):
    memory_id = store.ingest("vector", embedding=E1)

    with pytest.raises(InvalidArgumentError):
        store.update(memory_id, new_embedding=[1.0])

    assert store.get(memory_id).embedding == pytest.approx(E1)


def test_new_text_is_reembedded_by_provider(settings):
    provider = MagicMock()
    provider.embed_text.side_effect = [E1, E2]
    store = SemanticMemoryStore(settings, embedding_provider=provider)
    memory_id = store.ingest("first wording")

    store.update(memory_id, new_text="second wording")

    assert store.get(memory_id).embedding == pytest.approx(E2)


def test_reembed_failure_keeps_embedding(settings):
    provider = MagicMock()
    provider.embed_text.side_effect = [E1, RuntimeError("down")]
    store = SemanticMemoryStore(settings, embedding_provider=provider)
    memory_id = store.ingest("first wording")

    updated = store.update(memory_id, new_text="second wording")

    assert updated.text == "second wording"
    assert updated.embedding == pytest.approx(E1)


def test_update_unknown_id(store):
    with pytest.raises(NotFoundError):
        store.update("mem_000000000000000000000000", new_text="x")


def test_update_soft_deleted(store):
    memory_id = store.ingest("gone soon")
    store.delete(memory_id)

    with pytest.raises(NotFoundError):
        store.update(memory_id, new_text="revived")


def test_update_empty_text_rejected(store):
    memory_id = store.ingest("keep me")

    with pytest.raises(InvalidArgumentError):
        store.update(memory_id, new_text="   ")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
