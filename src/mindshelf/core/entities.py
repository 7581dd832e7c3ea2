"""Core domain entities."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class ItemKind(str, Enum):
    """Type of saved item."""

    NOTE = "note"
    LINK = "link"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ItemKind":
        """Map a stored discriminator to a kind, defaulting to link."""
        if value == cls.NOTE.value:
            return cls.NOTE
        return cls.LINK


class SortOrder(str, Enum):
    """Ordering of the in-memory collection."""

    NEWEST = "newest"
    OLDEST = "oldest"
    MODIFIED = "modified"


SEARCHED_FIELDS = ("title", "summary", "tags", "source_name", "user_notes")


@dataclass
class Item:
    """A saved link or note owned by exactly one user."""

    id: str
    owner_id: str
    created_at: datetime
    title: Optional[str] = None
    summary: Optional[str] = None
    tags: Optional[Union[str, list[str]]] = None
    source_name: Optional[str] = None
    user_notes: Optional[str] = None
    kind: ItemKind = ItemKind.LINK
    thumbnail_url: Optional[str] = None
    original_url: Optional[str] = None
    updated_at: Optional[datetime] = None
    title_embedding: Optional[list[float]] = None
    content_embedding: Optional[list[float]] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Item id cannot be empty")
        if not self.owner_id:
            raise ValueError("Owner id cannot be empty")
        if isinstance(self.tags, (list, tuple)):
            self.tags = ", ".join(str(t).strip() for t in self.tags if str(t).strip())

    @property
    def modified_at(self) -> datetime:
        return self.updated_at or self.created_at

    @property
    def tag_list(self) -> list[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]

    def searchable_fields(self) -> list[tuple[str, str]]:
        """Return (field name, text) pairs for the non-empty searched fields."""
        fields = []
        for name in SEARCHED_FIELDS:
            value = getattr(self, name)
            if value:
                fields.append((name, value))
        return fields


def sort_items(items: list[Item], order: SortOrder) -> list[Item]:
    """Return items sorted by the given order.

    Ties fall back to the id so the result never depends on input order.
    """
    by_id = sorted(items, key=lambda i: i.id)
    if order == SortOrder.OLDEST:
        return sorted(by_id, key=lambda i: i.created_at)
    if order == SortOrder.MODIFIED:
        return sorted(by_id, key=lambda i: i.modified_at, reverse=True)
    return sorted(by_id, key=lambda i: i.created_at, reverse=True)


@dataclass
class ScoredItem:
    """Item paired with its relevance score."""

    item: Item
    score: float


class CacheTier(str, Enum):
    """Rung of the cache write ladder that a write ended on."""

    FULL = "full"
    REDUCED = "reduced"
    MINIMAL = "minimal"
    FAILED = "failed"


@dataclass
class CacheInfo:
    """Diagnostic view of a cache entry."""

    exists: bool
    size_bytes: int = 0
    item_count: int = 0
    cached_at: Optional[datetime] = None


@dataclass(frozen=True)
class SearchSession:
    """One dispatched query."""

    session_id: int
    query: str


class ResultSource(str, Enum):
    """Where a search view's items came from."""

    ALL = "all"
    LOCAL = "local"
    REMOTE = "remote"
    FALLBACK = "fallback"


@dataclass
class SearchView:
    """Result set currently shown for a query."""

    session_id: int
    query: str
    items: list[Item]
    source: ResultSource
    scores: dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None


class LoadStatus(str, Enum):
    """Load state of the paginated collection."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"
    ERROR = "error"
