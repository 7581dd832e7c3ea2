"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from mindshelf.core.entities import Item, ScoredItem


class ItemStore(ABC):
    """Interface for the authoritative, owner-scoped item store."""

    @abstractmethod
    async def fetch_page(self, owner_id: str, offset: int, limit: int) -> list[Item]:
        """Fetch a page of items, newest insertion first."""
        pass

    @abstractmethod
    async def insert(self, item: Item) -> Item:
        """Insert a new item."""
        pass

    @abstractmethod
    async def update(self, owner_id: str, item_id: str, fields: dict[str, Any]) -> Item:
        """Update fields of an existing item."""
        pass

    @abstractmethod
    async def delete(self, owner_id: str, item_id: str) -> None:
        """Delete an item."""
        pass


class SearchBackend(ABC):
    """Interface for ranked search executed by the data store."""

    @abstractmethod
    async def search(
        self,
        owner_id: str,
        query_text: str,
        similarity_threshold: float = 0.1,
        max_results: int = 100,
    ) -> list[ScoredItem]:
        """Return items ranked by relevance to the query."""
        pass


class CandidateSource(ABC):
    """Interface for the rows a ranking engine scores."""

    @abstractmethod
    async def candidates(self, owner_id: str) -> list[Item]:
        """Return every item belonging to the owner."""
        pass


class Embedder(ABC):
    """Interface for the text embedding service."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return a fixed-length vector for the text."""
        pass


class KeyValueStore(ABC):
    """Interface for a durable byte-string key-value substrate."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored value or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key if present."""
        pass

    @abstractmethod
    async def keys(self) -> list[str]:
        """List all stored keys."""
        pass
