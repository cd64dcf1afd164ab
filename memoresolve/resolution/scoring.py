"""
Fuzzy and hybrid matcher.

Responsibilities:
- Score a set of entities against a free-text reference over named keys.
- Order results by descending score, keeping input order on ties.
- Produce low-relevance suggestions for the not-found case.

Non-Responsibilities:
- No auto-resolve or disambiguation decisions.
- No service access.

Invariant:
Given the same inputs the ranking is identical.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence

from .features import hybrid_score, is_exact, keyword_score, text_similarity

Entity = Mapping[str, Any]


@dataclass(frozen=True)
class ScoredEntity:
    entity: Entity
    score: float
    matched_key: Optional[str] = None


def field_text(entity: Entity, key: str) -> str:
    value = entity.get(key)
    if value is None:
        return ""
    if isinstance(value, Mapping):
        return " ".join(str(v) for v in value.values() if v)
    return str(value)


def score_entity(
    query: str,
    entity: Entity,
    keys: Sequence[str],
    text_of: Callable[[Entity, str], str] = field_text,
) -> ScoredEntity:
    best = ScoredEntity(entity, 0.0)
    for key in keys:
        score = text_similarity(query, text_of(entity, key))
        if score > best.score:
            best = ScoredEntity(entity, score, key)
    return best


def rank(scored: Sequence[ScoredEntity]) -> List[ScoredEntity]:
    return sorted(scored, key=lambda s: s.score, reverse=True)


def match(
    query: str,
    entities: Sequence[Entity],
    keys: Sequence[str],
    threshold: float,
    exact_first: bool = True,
    text_of: Callable[[Entity, str], str] = field_text,
) -> List[ScoredEntity]:
    """
    Entities scoring at least ``threshold``, best first.

    With ``exact_first`` an exact (case-insensitive) hit on the first key
    short-circuits: only the exact hits are returned, each scored 1.0.
    """
    if exact_first and keys:
        exact = [
            ScoredEntity(e, 1.0, keys[0])
            for e in entities
            if is_exact(query, text_of(e, keys[0]))
        ]
        if exact:
            return exact

    scored = [score_entity(query, e, keys, text_of) for e in entities]
    return rank([s for s in scored if s.score >= threshold])


def suggestions(
    query: str,
    entities: Sequence[Entity],
    keys: Sequence[str],
    low: float,
    high: float,
    limit: int,
    label: Callable[[Entity], str],
    text_of: Callable[[Entity, str], str] = field_text,
) -> List[str]:
    """Labels of entities scoring in [low, high): near misses worth offering."""
    scored = rank([score_entity(query, e, keys, text_of) for e in entities])
    return [label(s.entity) for s in scored if low <= s.score < high][:limit]


def hybrid_rank(
    query: str,
    memories: Sequence[Entity],
    vector_weight: float = 0.7,
    content_key: str = "content",
) -> List[ScoredEntity]:
    """
    Rank vector-search hits by ``w * similarity + (1 - w) * keyword overlap``.

    Each memory must carry the ``similarity`` returned by the vault.
    """
    scored = [
        ScoredEntity(
            m,
            hybrid_score(
                float(m.get("similarity", 0.0)),
                keyword_score(query, m.get(content_key)),
                vector_weight,
            ),
            content_key,
        )
        for m in memories
    ]
    return rank(scored)
