"""Tests for the hybrid ranking engine."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from mindshelf.core import EmbeddingUnavailable, InvalidQuery, Item, RankingEngine

BASE = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_item(item_id: str, title: str, days_ago: int = 0, owner_id: str = "owner-1", **kwargs) -> Item:
    return Item(
        id=item_id,
        owner_id=owner_id,
        created_at=BASE - timedelta(days=days_ago),
        title=title,
        **kwargs,
    )


@pytest.fixture
def library() -> list[Item]:
    """Three items of one owner, newest first."""
    return [
        make_item("recipe", "Recipe: Pasta", days_ago=0),
        make_item("trip", "Trip Notes", days_ago=1),
        make_item("review", "Pasta Machine Review", days_ago=2),
    ]


def make_engine(items: list[Item], embedder: AsyncMock = None) -> RankingEngine:
    source = AsyncMock()
    source.candidates.return_value = items
    return RankingEngine(source, embedder=embedder)


def test_rank_lexical_query(library: list[Item]) -> None:
    """Test both pasta items are found and the unrelated one is not."""
    engine = make_engine(library)

    results = engine.rank("pasta", library)

    assert [r.item.id for r in results] == ["recipe", "review"]
    assert all(r.score > 0.1 for r in results)


def test_rank_misspelled_query(library: list[Item]) -> None:
    """Test the fuzzy signal rescues a misspelling."""
    engine = make_engine(library)

    results = engine.rank("pasat", library)

    assert {r.item.id for r in results} == {"recipe", "review"}
    assert "trip" not in [r.item.id for r in results]


def test_rank_exact_title_scores_highest(library: list[Item]) -> None:
    engine = make_engine(library)

    results = engine.rank("Trip Notes", library)

    assert results[0].item.id == "trip"
    assert results[0].score == pytest.approx(1.0)


def test_rank_tie_breaks_by_date_then_id() -> None:
    items = [
        make_item("b", "Pasta", days_ago=1),
        make_item("a", "Pasta", days_ago=1),
        make_item("c", "Pasta", days_ago=0),
    ]
    engine = make_engine(items)

    results = engine.rank("pasta", items)

    assert [r.item.id for r in results] == ["c", "a", "b"]


def test_rank_searches_all_fields() -> None:
    items = [
        make_item("notes", "Untitled", user_notes="great carbonara tips"),
        make_item("tags", "Untitled", tags=["carbonara", "dinner"]),
        make_item("source", "Untitled", source_name="Carbonara Club"),
        make_item("summary", "Untitled", summary="How to make carbonara"),
        make_item("none", "Untitled"),
    ]
    engine = make_engine(items)

    results = engine.rank("carbonara", items)

    assert {r.item.id for r in results} == {"notes", "tags", "source", "summary"}


def test_rank_requires_all_query_tokens_for_lexical_match(library: list[Item]) -> None:
    engine = make_engine(library)

    results = engine.rank("pasta machine", library)

    assert results[0].item.id == "review"


def test_rank_punctuation_only_query() -> None:
    """Test a query without word characters falls back to containment."""
    items = [
        make_item("hit", "What?! Really"),
        make_item("miss", "Calm title"),
    ]
    engine = make_engine(items)

    results = engine.rank("?!", items)

    assert [r.item.id for r in results] == ["hit"]
    assert results[0].score == pytest.approx(0.5)


def test_rank_truncates_to_max_results() -> None:
    items = [make_item(f"i{n}", f"Pasta {n}", days_ago=n) for n in range(5)]
    engine = make_engine(items)

    results = engine.rank("pasta", items, max_results=2)

    assert [r.item.id for r in results] == ["i0", "i1"]


def test_rank_blank_query_returns_nothing(library: list[Item]) -> None:
    engine = make_engine(library)

    assert engine.rank("   ", library) == []


@pytest.mark.asyncio
async def test_search_uses_vector_signal() -> None:
    """Test an item with no textual overlap is found through its embedding."""
    items = [
        make_item("semantic", "Spaghetti evening", title_embedding=[1.0, 0.0]),
        make_item("far", "Gardening", title_embedding=[0.0, 1.0]),
        make_item("plain", "Pasta", days_ago=1),
    ]
    embedder = AsyncMock()
    embedder.embed.return_value = [1.0, 0.0]
    engine = make_engine(items, embedder=embedder)

    results = await engine.search("owner-1", "pasta")

    ids = [r.item.id for r in results]
    assert ids == ["semantic", "plain"]
    embedder.embed.assert_called_once_with("pasta")


@pytest.mark.asyncio
async def test_search_without_embeddings_skips_embedder(library: list[Item]) -> None:
    embedder = AsyncMock()
    engine = make_engine(library, embedder=embedder)

    results = await engine.search("owner-1", "pasta")

    assert len(results) == 2
    embedder.embed.assert_not_called()


@pytest.mark.asyncio
async def test_search_embedding_failure_degrades_to_text_signals() -> None:
    items = [make_item("plain", "Pasta", title_embedding=[0.5, 0.5])]
    embedder = AsyncMock()
    embedder.embed.side_effect = EmbeddingUnavailable("down")
    engine = make_engine(items, embedder=embedder)

    results = await engine.search("owner-1", "pasta")

    assert [r.item.id for r in results] == ["plain"]


@pytest.mark.asyncio
async def test_search_is_owner_scoped() -> None:
    items = [
        make_item("mine", "Pasta"),
        make_item("theirs", "Pasta", owner_id="owner-2"),
    ]
    engine = make_engine(items)

    results = await engine.search("owner-1", "pasta")

    assert [r.item.id for r in results] == ["mine"]
    engine.source.candidates.assert_called_once_with("owner-1")


@pytest.mark.asyncio
async def test_search_blank_query_skips_candidates(library: list[Item]) -> None:
    engine = make_engine(library)

    assert await engine.search("owner-1", "  ") == []
    engine.source.candidates.assert_not_called()


@pytest.mark.asyncio
async def test_search_rejects_invalid_input(library: list[Item]) -> None:
    """Test malformed queries raise InvalidQuery."""
    engine = make_engine(library)

    with pytest.raises(InvalidQuery):
        await engine.search("owner-1", "x" * 501)
    with pytest.raises(InvalidQuery):
        await engine.search("owner-1", "pasta", similarity_threshold=1.0)
    with pytest.raises(InvalidQuery):
        await engine.search("owner-1", "pasta", similarity_threshold=-0.1)
    with pytest.raises(InvalidQuery):
        await engine.search("owner-1", "pasta", max_results=0)
    with pytest.raises(InvalidQuery):
        await engine.search("", "pasta")

    engine.source.candidates.assert_not_called()
