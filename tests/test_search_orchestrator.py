"""Tests for debounced, session-ordered search dispatch."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import patch

import pytest

from mindshelf.adapters.storage import MemoryKeyValueStore
from mindshelf.adapters.store import InMemoryItemStore
from mindshelf.core import (
    CacheStore,
    InvalidQuery,
    Item,
    PaginationController,
    ResultSource,
    ScoredItem,
    SearchBackend,
    SearchOrchestrator,
    SearchView,
)

BASE = datetime(2024, 6, 1, tzinfo=timezone.utc)


class GatedBackend(SearchBackend):
    """Delegates to a real backend, holding chosen queries until released."""

    def __init__(self, inner: SearchBackend) -> None:
        self.inner = inner
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    async def search(
        self,
        owner_id: str,
        query_text: str,
        similarity_threshold: float = 0.1,
        max_results: int = 100,
    ) -> list[ScoredItem]:
        self.calls.append(query_text)
        gate = self.gates.get(query_text)
        if gate is not None:
            await gate.wait()
        return await self.inner.search(owner_id, query_text, similarity_threshold, max_results)


class SlowBackend(SearchBackend):
    """Never answers in time."""

    async def search(
        self,
        owner_id: str,
        query_text: str,
        similarity_threshold: float = 0.1,
        max_results: int = 100,
    ) -> list[ScoredItem]:
        await asyncio.sleep(1)
        return []


@pytest.fixture
def store() -> InMemoryItemStore:
    return InMemoryItemStore([
        Item(id="recipe", owner_id="owner-1", created_at=BASE, title="Recipe: Pasta"),
        Item(id="trip", owner_id="owner-1", created_at=BASE - timedelta(days=1), title="Trip Notes",
             user_notes="Pack the pasta maker"),
        Item(id="review", owner_id="owner-1", created_at=BASE - timedelta(days=2), title="Pasta Machine Review",
             tags="kitchen, gear"),
    ])


async def make_orchestrator(backend: SearchBackend, store: InMemoryItemStore, **kwargs) -> SearchOrchestrator:
    collection = PaginationController("owner-1", store, CacheStore(MemoryKeyValueStore()), page_size=10)
    await collection.load()
    kwargs.setdefault("debounce_seconds", 0.01)
    return SearchOrchestrator(collection, backend, **kwargs)


def view_ids(view: Optional[SearchView]) -> list[str]:
    assert view is not None
    return [item.id for item in view.items]


def test_classify() -> None:
    orchestrator = SearchOrchestrator(None, None, short_query_cutoff=3)

    assert orchestrator.classify("") == ResultSource.ALL
    assert orchestrator.classify("   ") == ResultSource.ALL
    assert orchestrator.classify("pas") == ResultSource.LOCAL
    assert orchestrator.classify(" pas ") == ResultSource.LOCAL
    assert orchestrator.classify("past") == ResultSource.REMOTE


@pytest.mark.asyncio
async def test_empty_query_shows_everything(store: InMemoryItemStore) -> None:
    orchestrator = await make_orchestrator(store, store)

    with patch.object(store, "search", wraps=store.search) as search:
        view = await orchestrator.dispatch("  ")

    search.assert_not_called()
    assert view.source == ResultSource.ALL
    assert view_ids(view) == ["recipe", "trip", "review"]


@pytest.mark.asyncio
async def test_short_query_filters_locally(store: InMemoryItemStore) -> None:
    """Test short queries never reach the backend."""
    orchestrator = await make_orchestrator(store, store)

    with patch.object(store, "search", wraps=store.search) as search:
        view = await orchestrator.dispatch("PAS")
        gear = await orchestrator.dispatch("gea")

    search.assert_not_called()
    assert view.source == ResultSource.LOCAL
    assert view_ids(view) == ["recipe", "trip", "review"]
    assert view_ids(gear) == ["review"]


@pytest.mark.asyncio
async def test_long_query_goes_remote(store: InMemoryItemStore) -> None:
    orchestrator = await make_orchestrator(store, store)

    view = await orchestrator.dispatch("pasta machine")

    assert view.source == ResultSource.REMOTE
    assert view_ids(view)[0] == "review"
    assert view.scores["review"] > 0.1
    assert orchestrator.view is view


@pytest.mark.asyncio
async def test_keystrokes_are_debounced(store: InMemoryItemStore) -> None:
    """Test a burst of keystrokes dispatches only the final text."""
    backend = GatedBackend(store)
    orchestrator = await make_orchestrator(backend, store)

    for text in ("p", "pa", "pas", "past", "pasta"):
        orchestrator.on_keystroke(text)
    await orchestrator.wait_idle()

    assert backend.calls == ["pasta"]
    assert orchestrator.text == "pasta"
    assert orchestrator.view.query == "pasta"
    assert orchestrator.view.source == ResultSource.REMOTE


@pytest.mark.asyncio
async def test_stale_result_is_discarded(store: InMemoryItemStore) -> None:
    """Test a slow response never overwrites a newer query's view."""
    backend = GatedBackend(store)
    backend.gates["pasta"] = asyncio.Event()
    views: list[SearchView] = []
    orchestrator = await make_orchestrator(backend, store, on_view=views.append)

    slow = asyncio.create_task(orchestrator.dispatch("pasta"))
    await asyncio.sleep(0)
    newer = await orchestrator.dispatch("trip notes")

    backend.gates["pasta"].set()
    assert await slow is None

    assert orchestrator.view is newer
    assert view_ids(orchestrator.view) == ["trip"]
    assert [v.query for v in views] == ["trip notes"]
    assert orchestrator.latest_session_id == newer.session_id


@pytest.mark.asyncio
async def test_session_ids_increase(store: InMemoryItemStore) -> None:
    orchestrator = await make_orchestrator(store, store)

    first = await orchestrator.dispatch("pa")
    second = await orchestrator.dispatch("")
    third = await orchestrator.dispatch("pasta")

    assert first.session_id < second.session_id < third.session_id


@pytest.mark.asyncio
async def test_retries_transient_failure_once(store: InMemoryItemStore) -> None:
    backend = GatedBackend(store)
    orchestrator = await make_orchestrator(backend, store)
    store.fail_next("search")

    view = await orchestrator.dispatch("pasta")

    assert backend.calls == ["pasta", "pasta"]
    assert view.source == ResultSource.REMOTE
    assert view.error is None


@pytest.mark.asyncio
async def test_falls_back_to_local_filter(store: InMemoryItemStore) -> None:
    """Test the collection is filtered locally when the backend stays down."""
    backend = GatedBackend(store)
    orchestrator = await make_orchestrator(backend, store)
    store.fail_next("search", times=2)

    view = await orchestrator.dispatch("pasta")

    assert len(backend.calls) == 2
    assert view.source == ResultSource.FALLBACK
    assert view.error == "search unavailable"
    assert view_ids(view) == ["recipe", "trip", "review"]


@pytest.mark.asyncio
async def test_invalid_query_is_not_retried(store: InMemoryItemStore) -> None:
    backend = GatedBackend(store)
    orchestrator = await make_orchestrator(backend, store)
    store.fail_next("search", InvalidQuery("bad query"))

    view = await orchestrator.dispatch("pasta")

    assert backend.calls == ["pasta"]
    assert view.source == ResultSource.FALLBACK
    assert view.error == "bad query"


@pytest.mark.asyncio
async def test_timeout_falls_back(store: InMemoryItemStore) -> None:
    orchestrator = await make_orchestrator(SlowBackend(), store, request_timeout=0.01, max_retries=0)

    view = await orchestrator.dispatch("machine")

    assert view.source == ResultSource.FALLBACK
    assert "timed out" in view.error
    assert view_ids(view) == ["review"]


@pytest.mark.asyncio
async def test_reset_invalidates_inflight_search(store: InMemoryItemStore) -> None:
    backend = GatedBackend(store)
    backend.gates["pasta"] = asyncio.Event()
    orchestrator = await make_orchestrator(backend, store)

    pending = asyncio.create_task(orchestrator.dispatch("pasta"))
    await asyncio.sleep(0)
    orchestrator.reset()
    backend.gates["pasta"].set()

    assert await pending is None
    assert orchestrator.view is None
    assert orchestrator.text == ""


@pytest.mark.asyncio
async def test_forget_removes_item_from_view(store: InMemoryItemStore) -> None:
    orchestrator = await make_orchestrator(store, store)
    await orchestrator.dispatch("pasta")

    orchestrator.forget("recipe")

    assert "recipe" not in view_ids(orchestrator.view)
    assert "recipe" not in orchestrator.view.scores


@pytest.mark.asyncio
async def test_rebuild_local_only_for_current_collection_view(store: InMemoryItemStore) -> None:
    orchestrator = await make_orchestrator(store, store)
    local = await orchestrator.dispatch("pas")
    await orchestrator.collection.delete("trip")

    rebuilt = orchestrator.rebuild_local()

    assert rebuilt.session_id == local.session_id
    assert view_ids(rebuilt) == ["recipe", "review"]

    remote = await orchestrator.dispatch("pasta")
    assert orchestrator.rebuild_local() is None
    assert orchestrator.view is remote
