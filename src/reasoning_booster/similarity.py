"""Token-level text similarity shared by the filter, verifier and selector."""

from __future__ import annotations

import re
from collections.abc import Iterable

_NON_WORD_RE = re.compile(r"[^\w\s]|_", flags=re.UNICODE)

NEAR_DUPLICATE = 0.9


def tokenize(text: str) -> list[str]:
    """Lower-case, strip punctuation and split on whitespace."""

    if not text:
        return []
    return _NON_WORD_RE.sub(" ", text.lower()).split()


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    set_a = set(a)
    set_b = set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def text_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the token sets of two texts."""

    return jaccard_similarity(tokenize(a), tokenize(b))


def text_distance(a: str, b: str) -> float:
    return 1.0 - text_similarity(a, b)


def extract_keywords(text: str, min_len: int = 5) -> set[str]:
    return {token for token in tokenize(text) if len(token) >= min_len}


def max_similarity(text: str, others: Iterable[str]) -> float:
    best = 0.0
    tokens = tokenize(text)
    for other in others:
        sim = jaccard_similarity(tokens, tokenize(other))
        if sim > best:
            best = sim
    return best


def avg_similarity(text: str, others: Iterable[str]) -> float:
    tokens = tokenize(text)
    sims = [jaccard_similarity(tokens, tokenize(other)) for other in others]
    if not sims:
        return 0.0
    return sum(sims) / len(sims)


def is_near_duplicate(text: str, others: Iterable[str], threshold: float = NEAR_DUPLICATE) -> bool:
    return max_similarity(text, others) >= threshold
