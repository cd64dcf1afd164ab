"""
Similarity features for entity resolution.

Responsibilities:
- Compute string similarity between a free-text reference and a field.
- Compute keyword overlap between two texts.
- Blend vector and keyword similarity into one hybrid score.

Non-Responsibilities:
- No ranking or threshold logic.
- No service access.

Invariant:
Every feature is a float in [0, 1]. Missing text scores 0, never raises.
"""

from typing import Optional

from rapidfuzz import fuzz

from ..normalize import extract_keywords, normalize_text

# Subset matches ("dentist" in "dentist appointment") score just under an exact hit
TOKEN_SET_WEIGHT = 0.95
PARTIAL_WEIGHT = 0.9


def text_similarity(query: Optional[str], text: Optional[str]) -> float:
    """
    Similarity between a reference and a candidate text.

    Exact match after normalization scores 1.0. Otherwise the best of the
    plain ratio, a slightly discounted token-set ratio (word reordering and
    subsets) and a more discounted partial ratio (substrings).
    """
    q = normalize_text(query)
    t = normalize_text(text)
    if not q or not t:
        return 0.0
    if q == t:
        return 1.0
    score = max(
        fuzz.ratio(q, t) / 100.0,
        TOKEN_SET_WEIGHT * fuzz.token_set_ratio(q, t) / 100.0,
        PARTIAL_WEIGHT * fuzz.partial_ratio(q, t) / 100.0,
    )
    return min(score, 1.0)


def keyword_score(text1: Optional[str], text2: Optional[str]) -> float:
    """Jaccard overlap of the two texts' keywords (stop words and short words dropped)."""
    k1 = set(extract_keywords(text1))
    k2 = set(extract_keywords(text2))
    if not k1 or not k2:
        return 0.0
    return len(k1 & k2) / len(k1 | k2)


def hybrid_score(vector_similarity: float, keyword: float, vector_weight: float = 0.7) -> float:
    return vector_weight * vector_similarity + (1.0 - vector_weight) * keyword


def is_exact(query: Optional[str], text: Optional[str]) -> bool:
    q = normalize_text(query)
    return bool(q) and q == normalize_text(text)
