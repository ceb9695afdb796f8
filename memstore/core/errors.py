"""Error kinds surfaced by the memory store."""


class MemoryStoreError(Exception):
    """Base class for all memory store errors."""
    pass


class NotFoundError(MemoryStoreError):
    """The id is absent, or the record was hard-deleted."""

    def __init__(self, memory_id: str):
        super().__init__(f"Memory not found: {memory_id}")
        self.memory_id = memory_id


class InvalidArgumentError(MemoryStoreError):
    """Empty text, malformed metadata, bad paging values or a dimension mismatch."""
    pass


class ProviderUnavailableError(MemoryStoreError):
    """The embedding provider is down, missing, or returned an unusable vector."""
    pass


class StorageFailureError(MemoryStoreError):
    """The underlying SQLite store failed. Never retried internally."""
    pass
