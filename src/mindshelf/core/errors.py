"""Error taxonomy for search, storage and caching."""


class MindshelfError(Exception):
    """Base class for mindshelf errors."""


class InvalidQuery(MindshelfError):
    """Malformed search input. Fixable by the caller, never retried."""


class StoreUnavailable(MindshelfError):
    """Transient failure of the authoritative store or search backend."""


class CacheCorrupt(MindshelfError):
    """Persisted cache bytes could not be decoded."""


class CacheOverflow(MindshelfError):
    """Encoded cache entry exceeds the byte budget."""

    def __init__(self, size_bytes: int, budget: int) -> None:
        super().__init__(f"Cache entry is {size_bytes} bytes, budget is {budget}")
        self.size_bytes = size_bytes
        self.budget = budget


class EmbeddingUnavailable(MindshelfError):
    """The embedding service could not produce a vector."""


class DeleteFailed(MindshelfError):
    """The store rejected a delete after the item was removed from view."""

    def __init__(self, item_id: str, reason: str) -> None:
        super().__init__(f"Could not delete item {item_id}: {reason}")
        self.item_id = item_id
        self.reason = reason
