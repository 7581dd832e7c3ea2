"""Hybrid ranking of saved items against a free-text query.

Three signals are computed for every searched field of every candidate:

- lexical: token overlap, with a boolean "all query tokens present" match
  against the concatenation of the searched fields;
- fuzzy: trigram Jaccard similarity, tolerant of misspellings and partial words;
- vector: cosine similarity between the query embedding and the title embedding.

An item's score is the maximum over all signals and fields, so one strong
signal is enough to surface it and items without embeddings are not
penalized.
"""

import logging
from typing import Optional, Sequence

from mindshelf.core.entities import Item, ScoredItem
from mindshelf.core.errors import EmbeddingUnavailable, InvalidQuery
from mindshelf.core.interfaces import CandidateSource, Embedder, SearchBackend
from mindshelf.core.similarity import (
    cosine_similarity,
    fuzzy_similarity,
    lexical_similarity,
    substring_similarity,
    tokenize,
    trigrams,
)

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.1
DEFAULT_MAX_RESULTS = 100
DEFAULT_MAX_QUERY_LENGTH = 500


class RankingEngine(SearchBackend):
    """Scores an owner's items against a query."""

    def __init__(
        self,
        source: CandidateSource,
        embedder: Optional[Embedder] = None,
        max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
    ) -> None:
        self.source = source
        self.embedder = embedder
        self.max_query_length = max_query_length

    async def search(
        self,
        owner_id: str,
        query_text: str,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> list[ScoredItem]:
        """Return the owner's items ranked by relevance to the query.

        Raises:
            InvalidQuery: query too long, bad threshold or result cap.
            StoreUnavailable: the candidate source failed.
        """
        if not owner_id:
            raise InvalidQuery("Owner id is required")
        self.validate(query_text, similarity_threshold, max_results)
        if not query_text.strip():
            return []

        candidates = [c for c in await self.source.candidates(owner_id) if c.owner_id == owner_id]
        query_embedding = None
        if any(c.title_embedding for c in candidates):
            query_embedding = await self._embed_query(query_text.strip())

        results = self.rank(
            query_text,
            candidates,
            query_embedding=query_embedding,
            similarity_threshold=similarity_threshold,
            max_results=max_results,
        )
        logger.debug(
            "Ranked %d of %d candidates for owner %s (vector=%s)",
            len(results), len(candidates), owner_id, query_embedding is not None,
        )
        return results

    def validate(self, query_text: str, similarity_threshold: float, max_results: int) -> None:
        if not isinstance(query_text, str):
            raise InvalidQuery("Query must be a string")
        if len(query_text) > self.max_query_length:
            raise InvalidQuery(
                f"Query is {len(query_text)} characters, limit is {self.max_query_length}"
            )
        if not 0.0 <= similarity_threshold < 1.0:
            raise InvalidQuery(f"Similarity threshold must be in [0, 1), got {similarity_threshold}")
        if max_results < 1:
            raise InvalidQuery(f"max_results must be positive, got {max_results}")

    def rank(
        self,
        query_text: str,
        candidates: Sequence[Item],
        query_embedding: Optional[Sequence[float]] = None,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> list[ScoredItem]:
        """Score candidates and return the best ones.

        Order is score descending, then created_at descending, then id.
        """
        query = query_text.strip()
        if not query:
            return []

        query_tokens = tokenize(query)
        query_grams = trigrams(query)

        scored: list[ScoredItem] = []
        for item in candidates:
            score = self._score(item, query, query_tokens, query_grams, query_embedding, similarity_threshold)
            if score is not None:
                scored.append(ScoredItem(item=item, score=score))

        scored.sort(key=lambda s: s.item.id)
        scored.sort(key=lambda s: (s.score, s.item.created_at), reverse=True)
        return scored[:max_results]

    def _score(
        self,
        item: Item,
        query: str,
        query_tokens: list[str],
        query_grams: set[str],
        query_embedding: Optional[Sequence[float]],
        threshold: float,
    ) -> Optional[float]:
        """Return the item's score, or None when it is not a match."""
        fields = item.searchable_fields()

        if query_tokens:
            index_tokens: set[str] = set()
            for _, text in fields:
                index_tokens.update(tokenize(text))
            lexical_match = set(query_tokens) <= index_tokens
            lexical = max((lexical_similarity(query_tokens, text) for _, text in fields), default=0.0)
        else:
            # Nothing tokenizable, fall back to raw containment
            lexical = max((substring_similarity(query, text) for _, text in fields), default=0.0)
            lexical_match = lexical > 0.0

        fuzzy = max((fuzzy_similarity(query_grams, text) for _, text in fields), default=0.0)
        vector = 0.0
        if query_embedding is not None and item.title_embedding:
            vector = cosine_similarity(query_embedding, item.title_embedding)

        if not (lexical_match or fuzzy > threshold or vector > threshold):
            return None

        score = min(max(lexical, fuzzy, vector), 1.0)
        if score <= threshold:
            return None
        return score

    async def _embed_query(self, query: str) -> Optional[list[float]]:
        if self.embedder is None:
            return None
        try:
            return await self.embedder.embed(query)
        except EmbeddingUnavailable as e:
            logger.warning("Query embedding unavailable, using lexical and fuzzy signals only: %s", e)
            return None
