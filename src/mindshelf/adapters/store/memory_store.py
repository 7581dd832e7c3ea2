"""In-memory authoritative store that runs the ranking engine itself."""

import itertools
import logging
from collections import defaultdict, deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from mindshelf.core.entities import Item, ScoredItem
from mindshelf.core.errors import StoreUnavailable
from mindshelf.core.interfaces import CandidateSource, Embedder, ItemStore, SearchBackend
from mindshelf.core.ranking import DEFAULT_MAX_QUERY_LENGTH, RankingEngine

logger = logging.getLogger(__name__)


class InMemoryItemStore(ItemStore, CandidateSource, SearchBackend):
    """Owner-scoped item table held in memory.

    Search is executed next to the data, the way a database function
    would run it. ``fail_next`` queues errors for the next calls of an
    operation, which is how tests and demos simulate an unreachable store.
    """

    def __init__(
        self,
        items: Optional[Iterable[Item]] = None,
        embedder: Optional[Embedder] = None,
        max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
    ) -> None:
        self._rows: dict[str, tuple[int, Item]] = {}
        self._seq = itertools.count()
        self._failures: dict[str, deque[Exception]] = defaultdict(deque)
        self.ranking = RankingEngine(self, embedder=embedder, max_query_length=max_query_length)
        for item in items or []:
            self._rows[item.id] = (next(self._seq), item)

    def fail_next(self, operation: str, error: Optional[Exception] = None, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        for _ in range(times):
            self._failures[operation].append(error or StoreUnavailable(f"{operation} unavailable"))

    def _maybe_fail(self, operation: str) -> None:
        if self._failures[operation]:
            raise self._failures[operation].popleft()

    def _owned(self, owner_id: str) -> list[Item]:
        rows = [(seq, item) for seq, item in self._rows.values() if item.owner_id == owner_id]
        rows.sort(key=lambda row: (row[1].created_at, row[0]), reverse=True)
        return [item for _, item in rows]

    async def fetch_page(self, owner_id: str, offset: int, limit: int) -> list[Item]:
        self._maybe_fail("fetch_page")
        return self._owned(owner_id)[offset:offset + limit]

    async def candidates(self, owner_id: str) -> list[Item]:
        self._maybe_fail("candidates")
        return self._owned(owner_id)

    async def search(
        self,
        owner_id: str,
        query_text: str,
        similarity_threshold: float = 0.1,
        max_results: int = 100,
    ) -> list[ScoredItem]:
        self._maybe_fail("search")
        return await self.ranking.search(owner_id, query_text, similarity_threshold, max_results)

    async def insert(self, item: Item) -> Item:
        self._maybe_fail("insert")
        if item.id in self._rows:
            raise ValueError(f"Item {item.id} already exists")
        self._rows[item.id] = (next(self._seq), item)
        logger.debug("Inserted %s for owner %s", item.id, item.owner_id)
        return item

    async def update(self, owner_id: str, item_id: str, fields: dict[str, Any]) -> Item:
        self._maybe_fail("update")
        seq, item = self._get_owned(owner_id, item_id)
        if "id" in fields or "owner_id" in fields:
            raise ValueError("id and owner_id are immutable")
        changes = dict(fields)
        changes.setdefault("updated_at", datetime.now(timezone.utc))
        updated = replace(item, **changes)
        self._rows[item_id] = (seq, updated)
        return updated

    async def delete(self, owner_id: str, item_id: str) -> None:
        self._maybe_fail("delete")
        row = self._rows.get(item_id)
        if row is not None and row[1].owner_id == owner_id:
            del self._rows[item_id]
            logger.debug("Deleted %s for owner %s", item_id, owner_id)

    def _get_owned(self, owner_id: str, item_id: str) -> tuple[int, Item]:
        row = self._rows.get(item_id)
        if row is None or row[1].owner_id != owner_id:
            raise KeyError(f"No item {item_id} for owner {owner_id}")
        return row
