"""Paged, cached, always-sorted in-memory collection of an owner's items."""

import asyncio
import logging
import math
from typing import Optional, Union

from mindshelf.core.cache_store import CacheStore
from mindshelf.core.entities import Item, LoadStatus, SortOrder, sort_items
from mindshelf.core.errors import DeleteFailed, MindshelfError, StoreUnavailable
from mindshelf.core.interfaces import ItemStore

logger = logging.getLogger(__name__)


class PaginationController:
    """Keeps the authoritative, deduplicated, sorted item collection.

    All mutations of the collection and of the cache go through one
    asyncio.Lock. ``load_more`` calls made while a load is in flight are
    dropped rather than queued.
    """

    def __init__(
        self,
        owner_id: str,
        store: ItemStore,
        cache: CacheStore,
        page_size: int = 50,
        sort_order: SortOrder = SortOrder.NEWEST,
    ) -> None:
        if not owner_id:
            raise ValueError("Owner id cannot be empty")
        if page_size < 1:
            raise ValueError("Page size must be positive")
        self._owner_id = owner_id
        self.store = store
        self.cache = cache
        self.page_size = page_size
        self._sort_order = SortOrder(sort_order)
        self._items: list[Item] = []
        self._page = 0
        self._has_more = False
        self._status = LoadStatus.IDLE
        self._last_error: Optional[str] = None
        self._loading = False
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def items(self) -> tuple[Item, ...]:
        return tuple(self._items)

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def page(self) -> int:
        return self._page

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def sort_order(self) -> SortOrder:
        return self._sort_order

    async def load(self, force_refresh: bool = False) -> None:
        """Load the first page, or adopt the cache when it is fresh.

        A failed fetch keeps whatever data is already held; only when
        there is none at all does the status become ERROR.
        """
        async with self._lock:
            self._loading = True
            self._status = LoadStatus.LOADING
            owner_id = self._owner_id
            try:
                if not force_refresh:
                    cached = await self.cache.get(owner_id)
                    if cached is not None:
                        self._adopt(cached)
                        logger.info("Loaded %d items for owner %s from cache", len(cached), owner_id)
                        return

                try:
                    page = await self.store.fetch_page(owner_id, 0, self.page_size)
                except StoreUnavailable as e:
                    await self._degrade(e)
                    return

                self._items = sort_items(list({item.id: item for item in page}.values()), self._sort_order)
                self._page = 0
                self._has_more = len(page) == self.page_size
                self._status = LoadStatus.READY
                self._last_error = None
                logger.info("Fetched %d items for owner %s", len(page), owner_id)
                await self.cache.set(owner_id, self._items)
            finally:
                self._loading = False

    async def refresh(self) -> None:
        """Manual refresh: drop the cache and refetch from the store."""
        await self.cache.clear(self._owner_id)
        await self.load(force_refresh=True)

    async def handle_change(self) -> None:
        """React to a change notification for the owner's items."""
        self.refresh_count += 1
        await self.load(force_refresh=True)

    async def load_more(self) -> bool:
        """Fetch and merge the next page.

        Returns False without fetching when a load is in flight or the
        collection is exhausted.
        """
        if self._loading or not self._has_more:
            logger.debug("load_more skipped (loading=%s, has_more=%s)", self._loading, self._has_more)
            return False

        self._loading = True
        try:
            async with self._lock:
                if not self._has_more:
                    return False
                owner_id = self._owner_id
                next_page = self._page + 1
                try:
                    page = await self.store.fetch_page(owner_id, len(self._items), self.page_size)
                except StoreUnavailable as e:
                    self._last_error = str(e)
                    logger.warning("Could not load page %d for owner %s: %s", next_page, owner_id, e)
                    return False

                merged = {item.id: item for item in self._items}
                for item in page:
                    merged[item.id] = item
                self._items = sort_items(list(merged.values()), self._sort_order)
                self._page = next_page
                self._has_more = len(page) == self.page_size
                self._last_error = None
                logger.debug("Merged page %d (%d items), collection now %d", next_page, len(page), len(self._items))
                await self.cache.set(owner_id, self._items)
                return True
        finally:
            self._loading = False

    def set_sort_order(self, order: Union[SortOrder, str]) -> None:
        """Re-sort the held collection; no fetch."""
        self._sort_order = SortOrder(order)
        self._items = sort_items(self._items, self._sort_order)

    async def delete(self, item_id: str) -> None:
        """Remove an item from view, then from the store.

        If the store refuses, the item is put back in its sorted position
        and DeleteFailed is raised.
        """
        async with self._lock:
            owner_id = self._owner_id
            removed = next((item for item in self._items if item.id == item_id), None)
            self._items = [item for item in self._items if item.id != item_id]

            try:
                await self.store.delete(owner_id, item_id)
            except MindshelfError as e:
                if removed is not None:
                    self._items = sort_items(self._items + [removed], self._sort_order)
                logger.error("Delete of %s failed for owner %s: %s", item_id, owner_id, e)
                raise DeleteFailed(item_id, str(e)) from e

            await self.cache.set(owner_id, self._items)

    async def reset(self) -> None:
        """Drop the cache entry and the collection of the current owner."""
        async with self._lock:
            await self._clear()

    async def switch_owner(self, owner_id: str) -> None:
        """Drop everything held for the current owner and start over."""
        if not owner_id:
            raise ValueError("Owner id cannot be empty")
        async with self._lock:
            await self._clear()
            logger.info("Switching owner %s -> %s", self._owner_id, owner_id)
            self._owner_id = owner_id

    async def _clear(self) -> None:
        await self.cache.clear(self._owner_id)
        self._items = []
        self._page = 0
        self._has_more = False
        self._status = LoadStatus.IDLE
        self._last_error = None

    def _adopt(self, items: list[Item]) -> None:
        self._items = sort_items(items, self._sort_order)
        self._page = max(math.ceil(len(items) / self.page_size) - 1, 0)
        # A cached collection may have been truncated on write; only a fetch can tell.
        self._has_more = bool(items)
        self._status = LoadStatus.READY
        self._last_error = None

    async def _degrade(self, error: StoreUnavailable) -> None:
        logger.warning("Could not load items for owner %s: %s", self._owner_id, error)
        if not self._items:
            cached = await self.cache.get(self._owner_id)
            if cached:
                self._adopt(cached)
        self._last_error = str(error)
        self._status = LoadStatus.STALE if self._items else LoadStatus.ERROR
