"""
Open-schema metadata attached to memory records.

A ``MetadataDocument`` is an ordered mapping of string keys to JSON values
(None, bool, int, float, str, list, nested mapping). It is immutable from
the outside: ``merge`` and ``replace`` return new documents.
"""

import json
import math
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional

from .errors import InvalidArgumentError

MAX_DEPTH = 32


def _check_value(value: Any, path: str, depth: int = 0) -> Any:
    """Validate a JSON value and return a detached copy of it."""
    if depth > MAX_DEPTH:
        raise InvalidArgumentError(f"metadata nested too deeply at '{path}'")
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidArgumentError(f"metadata value at '{path}' is not a finite number")
        return value
    if isinstance(value, (list, tuple)):
        return [_check_value(item, f"{path}[{i}]", depth + 1) for i, item in enumerate(value)]
    if isinstance(value, Mapping):
        out = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidArgumentError(f"metadata keys must be strings, got {type(key).__name__} at '{path}'")
            out[key] = _check_value(item, f"{path}.{key}" if path else key, depth + 1)
        return out
    raise InvalidArgumentError(f"metadata value at '{path}' has unsupported type {type(value).__name__}")


def _contains(container: Any, pattern: Any) -> bool:
    """JSON containment: ``container`` holds everything in ``pattern``.

    Objects are contained key by key, recursively. An array contains another
    array when every pattern element is contained by some container element.
    Scalars compare by equality, with bool never equal to a number.
    """
    if isinstance(pattern, dict):
        if not isinstance(container, dict):
            return False
        return all(key in container and _contains(container[key], value)
                   for key, value in pattern.items())
    if isinstance(pattern, list):
        if not isinstance(container, list):
            return False
        return all(any(_contains(item, wanted) for item in container) for wanted in pattern)
    if isinstance(pattern, bool) or isinstance(container, bool):
        return isinstance(pattern, bool) and isinstance(container, bool) and pattern == container
    return container == pattern


class MetadataDocument(Mapping):
    """Typed, ordered JSON document with explicit merge semantics."""

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping] = None):
        if data is None:
            data = {}
        if isinstance(data, MetadataDocument):
            self._data = dict(data._data)
            return
        if not isinstance(data, Mapping):
            raise InvalidArgumentError(f"metadata must be an object, got {type(data).__name__}")
        self._data: Dict[str, Any] = _check_value(data, "")

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MetadataDocument):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"MetadataDocument({self._data!r})"

    def merge(self, patch: Optional[Mapping]) -> "MetadataDocument":
        """Shallow merge: patch keys override, untouched keys survive."""
        patch_doc = MetadataDocument(patch)
        merged = dict(self._data)
        merged.update(patch_doc._data)
        return MetadataDocument(merged)

    def replace(self, patch: Optional[Mapping]) -> "MetadataDocument":
        """Wholesale replacement."""
        return MetadataDocument(patch)

    def contains(self, pattern: Optional[Mapping]) -> bool:
        """True when this document is a superset of ``pattern``."""
        if not pattern:
            return True
        return _contains(self._data, MetadataDocument(pattern)._data)

    def to_dict(self) -> Dict[str, Any]:
        return json.loads(self.to_json())

    def to_json(self) -> str:
        return json.dumps(self._data, ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "MetadataDocument":
        if not raw:
            return cls()
        return cls(json.loads(raw))
