"""Business logic use cases."""

from typing import Callable, Optional

from mindshelf.config import Settings
from mindshelf.core import (
    CacheStore,
    Item,
    ItemStore,
    KeyValueStore,
    PaginationController,
    SearchBackend,
    SearchOrchestrator,
    SearchView,
    SortOrder,
)


def build_cache(kv: KeyValueStore, settings: Settings) -> CacheStore:
    """Create a cache store from settings."""
    cache = settings.cache
    return CacheStore(
        kv,
        ttl_seconds=cache.ttl_seconds,
        max_items=cache.max_items,
        byte_budget=cache.byte_budget,
        reduced_items=cache.reduced_items,
        minimal_items=cache.minimal_items,
        schema_version=cache.schema_version,
    )


class LibrarySession:
    """One signed-in owner's browsing and search session.

    Owns the paginated collection and the search orchestrator that
    filters it, and keeps them consistent across refreshes, change
    notifications, deletions and owner switches.
    """

    def __init__(
        self,
        collection: PaginationController,
        orchestrator: SearchOrchestrator,
    ) -> None:
        self.collection = collection
        self.orchestrator = orchestrator

    @classmethod
    def create(
        cls,
        owner_id: str,
        store: ItemStore,
        search_backend: SearchBackend,
        cache: CacheStore,
        settings: Optional[Settings] = None,
        on_view: Optional[Callable[[SearchView], None]] = None,
    ) -> "LibrarySession":
        settings = settings or Settings()
        collection = PaginationController(
            owner_id,
            store,
            cache,
            page_size=settings.pagination.page_size,
            sort_order=SortOrder(settings.pagination.sort_order),
        )
        search = settings.search
        orchestrator = SearchOrchestrator(
            collection,
            search_backend,
            debounce_seconds=search.debounce_seconds,
            short_query_cutoff=search.short_query_cutoff,
            request_timeout=search.request_timeout,
            max_retries=search.max_retries,
            similarity_threshold=search.similarity_threshold,
            max_results=search.max_results,
            on_view=on_view,
        )
        return cls(collection, orchestrator)

    @property
    def owner_id(self) -> str:
        return self.collection.owner_id

    @property
    def items(self) -> tuple[Item, ...]:
        return self.collection.items

    @property
    def view(self) -> Optional[SearchView]:
        return self.orchestrator.view

    async def start(self) -> None:
        """Read through the cache, falling back to the first page."""
        await self.collection.load()
        await self._refresh_view()

    async def refresh(self) -> None:
        """Pull-to-refresh."""
        await self.collection.refresh()
        await self._refresh_view()

    async def handle_change(self) -> None:
        """Change-notification hook for inserts, updates and deletes."""
        await self.collection.handle_change()
        await self._refresh_view()

    async def load_more(self) -> bool:
        loaded = await self.collection.load_more()
        if loaded:
            await self._refresh_view()
        return loaded

    def type(self, text: str) -> None:
        """Feed a keystroke to the debounced search."""
        self.orchestrator.on_keystroke(text)

    async def search(self, text: str) -> Optional[SearchView]:
        """Run a query immediately."""
        return await self.orchestrator.dispatch(text)

    async def set_sort_order(self, order: SortOrder) -> None:
        self.collection.set_sort_order(order)
        await self._refresh_view()

    async def delete(self, item_id: str) -> None:
        """Delete an item. DeleteFailed propagates so the caller can report it."""
        await self.collection.delete(item_id)
        self.orchestrator.forget(item_id)

    async def switch_owner(self, owner_id: str) -> None:
        """Sign in as another owner: nothing of the previous owner survives."""
        self.orchestrator.reset()
        await self.collection.switch_owner(owner_id)
        await self.collection.load()

    async def sign_out(self) -> None:
        self.orchestrator.reset()
        await self.collection.reset()

    async def _refresh_view(self) -> None:
        # Views built from the collection are snapshots; rebuild them in place.
        self.orchestrator.rebuild_local()
