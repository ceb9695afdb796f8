"""
MetadataDocument: validation, merge/replace and JSON containment.
"""

import pytest

from memstore import InvalidArgumentError, MetadataDocument


def test_empty_by_default():
    doc = MetadataDocument()

    assert len(doc) == 0
    assert doc.to_json() == "{}"


def test_merge_is_shallow_and_patch_wins():
    doc = MetadataDocument({"a": 1, "nested": {"x": 1}})

    merged = doc.merge({"nested": {"y": 2}, "b": True})

    assert merged == {"a": 1, "nested": {"y": 2}, "b": True}
    # The original is untouched
    assert doc == {"a": 1, "nested": {"x": 1}}


def test_replace():
    doc = MetadataDocument({"a": 1})

    assert doc.replace({"b": 2}) == {"b": 2}
    assert doc.replace(None) == {}


def test_key_order_preserved():
    doc = MetadataDocument({"z": 1, "a": 2, "m": 3})

    assert list(doc) == ["z", "a", "m"]
    assert doc.to_json() == '{"z":1,"a":2,"m":3}'


def test_json_round_trip_keeps_unicode():
    doc = MetadataDocument({"city": "Zürich", "list": [1, 2.5, None, "x"]})

    restored = MetadataDocument.from_json(doc.to_json())

    assert restored == doc
    assert "Zürich" in doc.to_json()
    assert MetadataDocument.from_json(None) == {}


def test_caller_mutation_does_not_leak():
    source = {"tags": ["a"]}
    doc = MetadataDocument(source)
    source["tags"].append("b")

    assert doc["tags"] == ["a"]


@pytest.mark.parametrize("bad", [
    {"when": object()},
    {1: "non-string key"},
    {"nan": float("nan")},
    {"inf": float("inf")},
    {"nested": {"deep": {1, 2}}},
])
def test_invalid_values_rejected(bad):
    with pytest.raises(InvalidArgumentError):
        MetadataDocument(bad)


def test_non_mapping_rejected():
    with pytest.raises(InvalidArgumentError):
        MetadataDocument(["not", "a", "mapping"])


def test_depth_limit():
    deep = {}
    node = deep
    for _ in range(40):
        node["child"] = {}
        node = node["child"]

    with pytest.raises(InvalidArgumentError):
        MetadataDocument(deep)


class TestContains:
    """JSONB-style containment used by metadata filters."""

    doc = MetadataDocument({
        "topic": "lang",
        "tags": ["ts", "js", {"kind": "web"}],
        "author": {"name": "ada", "langs": ["en", "fr"]},
        "count": 3,
        "flag": True,
    })

    def test_empty_pattern_matches(self):
        assert self.doc.contains({})
        assert self.doc.contains(None)

    def test_scalar_keys(self):
        assert self.doc.contains({"topic": "lang", "count": 3})
        assert not self.doc.contains({"topic": "city"})
        assert not self.doc.contains({"missing": None})

    def test_nested_objects(self):
        assert self.doc.contains({"author": {"name": "ada"}})
        assert self.doc.contains({"author": {"langs": ["fr"]}})
        assert not self.doc.contains({"author": {"name": "bob"}})

    def test_arrays_contain_every_element(self):
        assert self.doc.contains({"tags": ["js"]})
        assert self.doc.contains({"tags": ["js", "ts"]})
        assert self.doc.contains({"tags": [{"kind": "web"}]})
        assert not self.doc.contains({"tags": ["go"]})
        assert not self.doc.contains({"tags": "js"})

    def test_bool_is_not_a_number(self):
        assert self.doc.contains({"flag": True})
        assert not self.doc.contains({"flag": 1})
        assert not self.doc.contains({"count": True})

    def test_int_float_equal(self):
        assert self.doc.contains({"count": 3.0})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
