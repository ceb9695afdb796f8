"""
Caller-contract request models for the memory store operations.

Shape and range checks live here; checks that depend on store
configuration (embedding dimensionality) are made by the store itself.
"""

import math
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError, field_validator

from ..core.errors import InvalidArgumentError

MAX_LIMIT = 1000

ModelT = TypeVar("ModelT", bound=BaseModel)


def _check_vector(v: Optional[List[float]], name: str) -> Optional[List[float]]:
    if v is None:
        return v
    if not v:
        raise ValueError(f'{name} cannot be empty')
    if not all(math.isfinite(x) for x in v):
        raise ValueError(f'{name} must contain only finite numbers')
    return v


def _check_threshold(v: float) -> float:
    if not -1.0 <= v <= 1.0:
        raise ValueError('threshold must be within [-1, 1]')
    return v


class IngestRequest(BaseModel):
    text: str
    owner: Optional[str] = None
    embedding: Optional[List[float]] = None
    metadata: Optional[Dict[str, Any]] = None
    explicit_hash: Optional[str] = None
    semantic_threshold: float = 0.95

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v

    @field_validator('embedding')
    @classmethod
    def embedding_must_be_finite(cls, v):
        return _check_vector(v, 'embedding')

    @field_validator('explicit_hash')
    @classmethod
    def hash_must_not_be_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError('explicit_hash cannot be empty')
        return v

    @field_validator('semantic_threshold')
    @classmethod
    def threshold_in_range(cls, v):
        return _check_threshold(v)


class UpdateRequest(BaseModel):
    memory_id: str
    new_text: Optional[str] = None
    new_embedding: Optional[List[float]] = None
    metadata_patch: Optional[Dict[str, Any]] = None
    merge_metadata: bool = True

    @field_validator('memory_id')
    @classmethod
    def id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('memory_id cannot be empty')
        return v

    @field_validator('new_text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError('new_text cannot be empty')
        return v

    @field_validator('new_embedding')
    @classmethod
    def embedding_must_be_finite(cls, v):
        return _check_vector(v, 'new_embedding')


class SearchRequest(BaseModel):
    query_embedding: List[float]
    owner: Optional[str] = None
    limit: int = 10
    metadata_filter: Optional[Dict[str, Any]] = None
    threshold: float = 0.1
    query_text: Optional[str] = None

    @field_validator('query_embedding')
    @classmethod
    def embedding_must_be_finite(cls, v):
        return _check_vector(v, 'query_embedding')

    @field_validator('limit')
    @classmethod
    def limit_in_range(cls, v):
        if not 1 <= v <= MAX_LIMIT:
            raise ValueError(f'limit must be between 1 and {MAX_LIMIT}')
        return v

    @field_validator('threshold')
    @classmethod
    def threshold_in_range(cls, v):
        return _check_threshold(v)


class TextSearchRequest(BaseModel):
    query_text: str
    owner: Optional[str] = None
    limit: int = 10
    metadata_filter: Optional[Dict[str, Any]] = None
    threshold: float = 0.1

    @field_validator('query_text')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query_text cannot be empty')
        return v

    @field_validator('limit')
    @classmethod
    def limit_in_range(cls, v):
        if not 1 <= v <= MAX_LIMIT:
            raise ValueError(f'limit must be between 1 and {MAX_LIMIT}')
        return v

    @field_validator('threshold')
    @classmethod
    def threshold_in_range(cls, v):
        return _check_threshold(v)


class ListRequest(BaseModel):
    owner: Optional[str] = None
    limit: int = 50
    offset: int = 0
    metadata_filter: Optional[Dict[str, Any]] = None
    include_deleted: bool = False

    @field_validator('limit')
    @classmethod
    def limit_in_range(cls, v):
        if not 1 <= v <= MAX_LIMIT:
            raise ValueError(f'limit must be between 1 and {MAX_LIMIT}')
        return v

    @field_validator('offset')
    @classmethod
    def offset_not_negative(cls, v):
        if v < 0:
            raise ValueError('offset cannot be negative')
        return v


def validate_request(model: Type[ModelT], **fields) -> ModelT:
    """Build a request model, reporting validation failures as InvalidArgumentError."""
    try:
        return model(**fields)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidArgumentError(problems) from e
