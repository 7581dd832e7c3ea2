"""Core domain layer."""

from mindshelf.core.cache_store import CacheStore
from mindshelf.core.entities import (
    CacheInfo,
    CacheTier,
    Item,
    ItemKind,
    LoadStatus,
    ResultSource,
    ScoredItem,
    SearchSession,
    SearchView,
    SortOrder,
    sort_items,
)
from mindshelf.core.errors import (
    CacheCorrupt,
    CacheOverflow,
    DeleteFailed,
    EmbeddingUnavailable,
    InvalidQuery,
    MindshelfError,
    StoreUnavailable,
)
from mindshelf.core.interfaces import CandidateSource, Embedder, ItemStore, KeyValueStore, SearchBackend
from mindshelf.core.pagination import PaginationController
from mindshelf.core.ranking import RankingEngine
from mindshelf.core.search_orchestrator import SearchOrchestrator

__all__ = [
    "Item",
    "ItemKind",
    "SortOrder",
    "sort_items",
    "ScoredItem",
    "CacheInfo",
    "CacheTier",
    "SearchSession",
    "SearchView",
    "ResultSource",
    "LoadStatus",
    "MindshelfError",
    "InvalidQuery",
    "StoreUnavailable",
    "CacheCorrupt",
    "CacheOverflow",
    "EmbeddingUnavailable",
    "DeleteFailed",
    "ItemStore",
    "SearchBackend",
    "CandidateSource",
    "Embedder",
    "KeyValueStore",
    "CacheStore",
    "RankingEngine",
    "PaginationController",
    "SearchOrchestrator",
]
