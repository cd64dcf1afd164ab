"""
Candidate selection.

Responsibilities:
- Decide between auto-resolving to the top candidate and asking the human.
- Bound the options offered to the human.

Non-Responsibilities:
- No scoring.
- No service access.

Invariant:
Auto-resolve happens only with a single candidate or when the top score
beats the runner-up by strictly more than the gap.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ..models import ResolutionCandidate

# Score differences are compared at this precision so 1.0 - 0.85 counts as 0.15
GAP_PRECISION = 9


def order(candidates: Sequence[ResolutionCandidate]) -> Tuple[ResolutionCandidate, ...]:
    """Descending by score; ties keep their input order."""
    return tuple(sorted(candidates, key=lambda c: c.score, reverse=True))


def score_gap(ordered: Sequence[ResolutionCandidate]) -> float:
    if len(ordered) < 2:
        return 1.0
    return round(ordered[0].score - ordered[1].score, GAP_PRECISION)


@dataclass(frozen=True)
class GapDecision:
    chosen: Optional[ResolutionCandidate]
    options: Tuple[ResolutionCandidate, ...] = ()

    @property
    def is_confident(self) -> bool:
        return self.chosen is not None


def decide(
    candidates: Sequence[ResolutionCandidate],
    gap: float,
    max_options: int = 5,
) -> GapDecision:
    """
    Apply the gap rule.

    Returns a decision with ``chosen`` set when the top candidate can be
    taken without asking, otherwise the top ``max_options`` to offer.
    """
    ordered = order(candidates)
    if not ordered:
        return GapDecision(None)
    if len(ordered) == 1 or score_gap(ordered) > gap:
        return GapDecision(ordered[0])
    return GapDecision(None, ordered[:max_options])
