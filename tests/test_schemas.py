"""
Request models and their translation to InvalidArgumentError.
"""

import pytest
from pydantic import ValidationError

from memstore.api.schemas import (
    IngestRequest, ListRequest, SearchRequest, TextSearchRequest, UpdateRequest, validate_request,
)
from memstore.core.errors import InvalidArgumentError


def test_ingest_request_defaults():
    request = IngestRequest(text="hello")

    assert request.owner is None
    assert request.embedding is None
    assert request.semantic_threshold == 0.95


def test_ingest_request_rejects_blank_text():
    with pytest.raises(ValidationError, match="text cannot be empty"):
        IngestRequest(text="   ")


def test_ingest_request_rejects_non_finite_embedding():
    with pytest.raises(ValidationError):
        IngestRequest(text="x", embedding=[1.0, float("nan")])
    with pytest.raises(ValidationError):
        IngestRequest(text="x", embedding=[])


def test_update_request_allows_partial_fields():
    request = UpdateRequest(memory_id="mem_1", metadata_patch={"a": 1})

    assert request.new_text is None
    assert request.merge_metadata is True


def test_search_request_bounds():
    with pytest.raises(ValidationError):
        SearchRequest(query_embedding=[1.0], limit=0)
    with pytest.raises(ValidationError):
        SearchRequest(query_embedding=[1.0], threshold=1.01)
    assert SearchRequest(query_embedding=[1.0], threshold=-1.0).threshold == -1.0


def test_text_search_request():
    with pytest.raises(ValidationError):
        TextSearchRequest(query_text="")
    assert TextSearchRequest(query_text="coffee").limit == 10


def test_list_request_bounds():
    assert ListRequest().limit == 50
    with pytest.raises(ValidationError):
        ListRequest(offset=-1)


def test_validate_request_translates_errors():
    with pytest.raises(InvalidArgumentError) as excinfo:
        validate_request(ListRequest, limit=0, offset=-5)

    message = str(excinfo.value)
    assert "limit" in message
    assert "offset" in message
    assert isinstance(excinfo.value.__cause__, ValidationError)


def test_validate_request_metadata_must_be_object():
    with pytest.raises(InvalidArgumentError):
        validate_request(IngestRequest, text="x", metadata=["not", "an", "object"])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
