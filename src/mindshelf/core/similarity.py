"""Text and vector similarity signals used by the ranking engine."""

import math
import re
from typing import Optional, Sequence

_WORD_RE = re.compile(r"\w+", re.UNICODE)

# A single-word hit never outranks a whole-field match.
WORD_MATCH_DAMPING = 0.9


def tokenize(text: str) -> list[str]:
    """Split text into lower-cased word tokens (no stemming)."""
    return [token.lower() for token in _WORD_RE.findall(text)]


def trigrams(text: str) -> set[str]:
    """Return the trigram set of text.

    Each word is padded with two leading spaces and one trailing space,
    so short words and word starts still produce trigrams.
    """
    grams: set[str] = set()
    for word in tokenize(text):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return grams


def jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def trigram_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the trigram sets of two strings."""
    return jaccard(trigrams(a), trigrams(b))


def fuzzy_similarity(query_grams: set[str], text: str) -> float:
    """Best trigram similarity between the query and a field.

    Compares against the whole field and against each word of it, so a
    misspelled word still matches inside a long title.
    """
    if not query_grams:
        return 0.0
    best = jaccard(query_grams, trigrams(text))
    for word in set(tokenize(text)):
        best = max(best, jaccard(query_grams, trigrams(word)) * WORD_MATCH_DAMPING)
    return best


def lexical_similarity(query_tokens: Sequence[str], text: str) -> float:
    """Token overlap between the query and a field.

    Average of query coverage (share of query tokens found) and the
    token-set Jaccard, so 1.0 only for an exact token match.
    """
    query_set = set(query_tokens)
    field_set = set(tokenize(text))
    if not query_set or not field_set:
        return 0.0
    shared = len(query_set & field_set)
    coverage = shared / len(query_set)
    return (coverage + shared / len(query_set | field_set)) / 2


def substring_similarity(query: str, text: str) -> float:
    """Raw containment score used when a query has no word tokens."""
    needle = query.strip().lower()
    haystack = text.strip().lower()
    if not needle or needle not in haystack:
        return 0.0
    return 1.0 if needle == haystack else 0.5


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity; 0.0 for missing or mismatched vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
