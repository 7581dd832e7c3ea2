"""Tests for the in-memory item store."""

from datetime import datetime, timedelta, timezone

import pytest

from mindshelf.adapters.store import InMemoryItemStore
from mindshelf.core import Item, StoreUnavailable

BASE = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryItemStore:
    return InMemoryItemStore([
        Item(id="a", owner_id="alice", created_at=BASE - timedelta(days=1), title="Older"),
        Item(id="b", owner_id="alice", created_at=BASE, title="Newer"),
        Item(id="c", owner_id="alice", created_at=BASE, title="Same time, inserted later"),
        Item(id="x", owner_id="bob", created_at=BASE, title="Not yours"),
    ])


@pytest.mark.asyncio
async def test_fetch_page_newest_insertion_first(store: InMemoryItemStore) -> None:
    first = await store.fetch_page("alice", 0, 2)
    rest = await store.fetch_page("alice", 2, 2)

    assert [i.id for i in first] == ["c", "b"]
    assert [i.id for i in rest] == ["a"]
    assert await store.fetch_page("alice", 4, 2) == []


@pytest.mark.asyncio
async def test_update(store: InMemoryItemStore) -> None:
    updated = await store.update("alice", "a", {"user_notes": "Re-read this"})

    assert updated.user_notes == "Re-read this"
    assert updated.updated_at is not None
    assert (await store.fetch_page("alice", 2, 1))[0].user_notes == "Re-read this"

    with pytest.raises(KeyError):
        await store.update("bob", "a", {"title": "Stolen"})
    with pytest.raises(ValueError):
        await store.update("alice", "a", {"owner_id": "bob"})


@pytest.mark.asyncio
async def test_delete_is_owner_scoped(store: InMemoryItemStore) -> None:
    await store.delete("bob", "a")
    assert len(await store.candidates("alice")) == 3

    await store.delete("alice", "a")
    assert [i.id for i in await store.candidates("alice")] == ["c", "b"]


@pytest.mark.asyncio
async def test_insert_rejects_duplicates(store: InMemoryItemStore) -> None:
    with pytest.raises(ValueError):
        await store.insert(Item(id="a", owner_id="alice", created_at=BASE))


@pytest.mark.asyncio
async def test_fail_next(store: InMemoryItemStore) -> None:
    store.fail_next("candidates", times=2)

    for _ in range(2):
        with pytest.raises(StoreUnavailable):
            await store.candidates("alice")

    assert len(await store.candidates("alice")) == 3


@pytest.mark.asyncio
async def test_search_runs_ranking(store: InMemoryItemStore) -> None:
    results = await store.search("alice", "newer")

    assert [r.item.id for r in results] == ["b"]
