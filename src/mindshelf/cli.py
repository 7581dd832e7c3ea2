"""CLI entry point for mindshelf."""

import asyncio
from typing import Optional

import typer

from mindshelf.adapters.embeddings import HttpEmbedder
from mindshelf.adapters.storage import FileKeyValueStore
from mindshelf.adapters.store import InMemoryItemStore, RestItemStore
from mindshelf.config import Settings, get_settings
from mindshelf.core import CacheStore, Item, ItemStore, LoadStatus, SearchBackend, SearchView, SortOrder, StoreUnavailable
from mindshelf.logging_config import configure_logging
from mindshelf.use_cases import LibrarySession, build_cache

app = typer.Typer(help="Browse and search your saved links and notes.")


def _rest_store(settings: Settings) -> RestItemStore:
    if not settings.store_url or not settings.api_key:
        print("✗ MINDSHELF_STORE_URL and MINDSHELF_API_KEY must be set")
        raise typer.Exit(code=1)
    return RestItemStore(
        settings.store_url,
        settings.api_key,
        access_token=settings.access_token,
        timeout=settings.store.timeout,
        table=settings.store.table,
        search_function=settings.store.search_function,
    )


def _cache(settings: Settings) -> CacheStore:
    return build_cache(FileKeyValueStore(settings.cache_dir), settings)


def _print_item(item: Item, score: Optional[float] = None) -> None:
    title = item.title or "(untitled)"
    prefix = f"[{score:.2f}] " if score is not None else ""
    print(f"  • {prefix}{title[:70]}  ({item.kind.value}, {item.created_at:%Y-%m-%d})")
    if item.original_url:
        print(f"     └─ {item.original_url}")


def _print_view(view: Optional[SearchView]) -> None:
    if view is None:
        print("Search was superseded")
        return
    print(f"\n🔍 {len(view.items)} results for {view.query!r} ({view.source.value})")
    if view.error:
        print(f"  ⚠️  Search service unavailable, showing local matches: {view.error}")
    for item in view.items:
        _print_item(item, view.scores.get(item.id))


async def _local_index(store: ItemStore, owner: str, settings: Settings) -> InMemoryItemStore:
    """Pull every page of the owner's items into a local, searchable store."""
    items: list[Item] = []
    offset = 0
    page_size = settings.page_size
    while True:
        try:
            page = await store.fetch_page(owner, offset, page_size)
        except StoreUnavailable as e:
            print(f"❌ Unable to load items for local search: {e}")
            raise typer.Exit(code=1)
        items.extend(page)
        if len(page) < page_size:
            break
        offset += page_size

    embedder = None
    if settings.embedding_url:
        embedder = HttpEmbedder(
            settings.embedding_url,
            model=settings.store.embedding_model,
            timeout=settings.search.request_timeout,
            dimension=settings.store.embedding_dimension,
        )
    return InMemoryItemStore(items, embedder=embedder, max_query_length=settings.search.max_query_length)


@app.command("list")
def list_items(
    owner: str = typer.Option(..., "--owner", help="Owner (user) id"),
    sort: SortOrder = typer.Option(SortOrder.NEWEST, "--sort", help="Sort order"),
    pages: int = typer.Option(1, "--pages", help="Number of pages to load"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List saved items."""
    configure_logging(verbose)
    asyncio.run(_list(owner, sort, pages, refresh))


async def _list(owner: str, sort: SortOrder, pages: int, refresh: bool) -> None:
    settings = get_settings()
    store = _rest_store(settings)
    session = LibrarySession.create(owner, store, store, _cache(settings), settings)

    if refresh:
        await session.refresh()
    else:
        await session.start()
    for _ in range(pages - 1):
        if not await session.load_more():
            break
    await session.set_sort_order(sort)

    collection = session.collection
    if collection.status == LoadStatus.ERROR:
        print(f"❌ Unable to load items: {collection.last_error}")
        raise typer.Exit(code=1)
    if collection.status == LoadStatus.STALE:
        print(f"⚠️  Showing last known items: {collection.last_error}")

    print(f"\n📚 {len(session.items)} items ({sort.value}){' - more available' if collection.has_more else ''}")
    for item in session.items:
        _print_item(item)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search text"),
    owner: str = typer.Option(..., "--owner", help="Owner (user) id"),
    local: bool = typer.Option(False, "--local", help="Rank locally instead of calling the search function"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Search saved items."""
    configure_logging(verbose)
    asyncio.run(_search(query, owner, local))


async def _search(query: str, owner: str, local: bool) -> None:
    settings = get_settings()
    store = _rest_store(settings)
    backend: SearchBackend = store
    if local:
        backend = await _local_index(store, owner, settings)

    session = LibrarySession.create(owner, store, backend, _cache(settings), settings)
    await session.start()
    _print_view(await session.search(query))


@app.command("cache-info")
def cache_info(
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner (user) id; all entries if omitted"),
) -> None:
    """Show cache diagnostics."""
    asyncio.run(_cache_info(owner))


async def _cache_info(owner: Optional[str]) -> None:
    settings = get_settings()
    cache = _cache(settings)
    if owner:
        info = await cache.info(owner)
        if not info.exists:
            print(f"No cache for owner {owner}")
            return
        print(f"Owner {owner}: {info.item_count} items, {info.size_bytes / 1024:.2f}KB, cached {info.cached_at:%Y-%m-%d %H:%M:%S}")
        return

    usage = await cache.usage()
    print(f"{usage['key_count']} cache entries, {usage['total_size'] / 1024:.2f}KB total")
    for key, size in usage["breakdown"].items():
        print(f"  • {key}: {size / 1024:.2f}KB")


@app.command("cache-clear")
def cache_clear(
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner (user) id; all entries if omitted"),
) -> None:
    """Delete cached items."""
    asyncio.run(_cache_clear(owner))


async def _cache_clear(owner: Optional[str]) -> None:
    cache = _cache(get_settings())
    if owner:
        await cache.clear(owner)
        print(f"✓ Cache cleared for owner {owner}")
    else:
        removed = await cache.clear_all()
        print(f"✓ Cleared {removed} cache entries")


if __name__ == "__main__":
    app()
