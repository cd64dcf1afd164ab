"""
Domain resolver contract.

Responsibilities:
- Short-circuit actions that need no lookup and concrete identifiers.
- Apply the gap rule to ranked candidates.
- Apply a parsed selection to a previously offered candidate list.

Non-Responsibilities:
- No persistence of pending clarifications.
- No interpretation of raw reply text (see selection.py).

Invariant:
A resolver never raises for a step-scoped problem. Not found, an
underspecified query and an unusable selection all come back as
outcome values.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..arguments import Arguments
from ..config import ResolutionConfig
from ..errors import ServiceLookupError
from ..logger import get_logger
from ..models import (
    ClarifyQuery,
    Disambiguation,
    DisambiguationKind,
    NotFound,
    ResolutionCandidate,
    ResolutionOutcome,
    Resolved,
    ResolverContext,
)
from ..services import DomainServices
from .behaviors import get_behavior
from .candidate_selector import decide
from .selection import Selection

logger = get_logger()

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "multiple": "I found several matching {noun}s:\n{options}\n\nWhich one did you mean?",
        "multiple_or_all": "I found several matching {noun}s:\n{options}\n\nWhich one? (or \"both\" for all)",
        "not_found": "No {noun} matching \"{searched_for}\" found",
        "invalid_selection": "Invalid selection. Please reply with a number between 1 and {count}.",
    },
    "he": {
        "multiple": "מצאתי כמה התאמות ({noun}):\n{options}\n\nלמה התכוונת?",
        "multiple_or_all": "מצאתי כמה התאמות ({noun}):\n{options}\n\nלמה התכוונת? (או \"שניהם\" לבחירת כולם)",
        "not_found": "לא מצאתי {noun} התואם ל-\"{searched_for}\"",
        "invalid_selection": "בחירה לא תקינה. נא לבחור מספר בין 1 ל-{count}.",
    },
}


def message(key: str, language: str, **values: Any) -> str:
    table = MESSAGES.get(language, MESSAGES["en"])
    return table.get(key, MESSAGES["en"][key]).format(**values)


def numbered(candidates: Sequence[ResolutionCandidate]) -> str:
    return "\n".join(f"{i}. {c.display_text}" for i, c in enumerate(candidates, start=1))


class DomainResolver(ABC):
    capability: str = ""
    resolved_actions: Tuple[str, ...] = ()
    nouns: Dict[str, str] = {"en": "item", "he": "פריט"}

    def __init__(self, services: DomainServices, config: ResolutionConfig):
        self.services = services
        self.config = config

    def noun(self, language: str) -> str:
        return self.nouns.get(language, self.nouns["en"])

    def resolve(self, action: str, arguments: Arguments, context: ResolverContext) -> ResolutionOutcome:
        """Resolve free-text references in ``arguments`` to concrete identifiers."""
        if action not in self.resolved_actions:
            return Resolved(arguments)

        outcome = self._resolve(action, arguments, context)
        logger.record_resolution(
            self.capability,
            outcome.type,
            auto_resolved=isinstance(outcome, Resolved),
        )
        logger.debug(
            "Resolver outcome",
            capability=self.capability,
            action=action,
            outcome=outcome.type,
            user_id=context.user_id,
        )
        return outcome

    @abstractmethod
    def _resolve(self, action: str, arguments: Arguments, context: ResolverContext) -> ResolutionOutcome:
        ...

    @abstractmethod
    def bind(self, arguments: Arguments, chosen: Sequence[ResolutionCandidate]) -> Resolved:
        """Write the chosen candidate ids into the domain's identifier fields."""

    def apply_selection(
        self,
        selection: Selection,
        candidates: Sequence[ResolutionCandidate],
        original_arguments: Arguments,
        allow_multiple: bool = False,
        kind: DisambiguationKind = DisambiguationKind.PICK_ONE,
        question: str = "",
        context: Optional[ResolverContext] = None,
    ) -> ResolutionOutcome:
        """
        Bind the human's pick from ``candidates``.

        An invalid selection, a position outside the list, or several picks
        when ``allow_multiple`` is false re-ask over the identical list.
        """
        candidates = tuple(candidates)
        chosen = self.selected_candidates(selection, candidates, allow_multiple)
        if chosen is None:
            return self.reask(candidates, allow_multiple, kind, question, context)
        return self.bind(original_arguments, chosen)

    @staticmethod
    def selected_candidates(
        selection: Selection,
        candidates: Tuple[ResolutionCandidate, ...],
        allow_multiple: bool,
    ) -> Optional[Tuple[ResolutionCandidate, ...]]:
        if not selection.valid or not candidates:
            return None
        if selection.select_all:
            if len(candidates) > 1 and not allow_multiple:
                return None
            return candidates
        if any(i < 1 or i > len(candidates) for i in selection.indices):
            return None
        if len(selection.indices) > 1 and not allow_multiple:
            return None
        return tuple(candidates[i - 1] for i in selection.indices)

    def reask(
        self,
        candidates: Tuple[ResolutionCandidate, ...],
        allow_multiple: bool,
        kind: DisambiguationKind,
        question: str,
        context: Optional[ResolverContext] = None,
    ) -> Disambiguation:
        language = context.language if context else self.config.default_language
        prefix = message("invalid_selection", language, count=len(candidates))
        return Disambiguation(
            candidates=candidates,
            allow_multiple=allow_multiple,
            question=f"{prefix}\n\n{question}" if question else prefix,
            kind=kind,
        )

    # Uniform decision helpers

    def choose(
        self,
        action: str,
        arguments: Arguments,
        candidates: Sequence[ResolutionCandidate],
        context: ResolverContext,
        searched_for: str,
        suggestions: Sequence[str] = (),
    ) -> ResolutionOutcome:
        if not candidates:
            return self.not_found(searched_for, context, suggestions)
        decision = decide(candidates, self.config.disambiguation_gap, self.config.max_candidates)
        if decision.is_confident:
            return self.bind(arguments, [decision.chosen])
        allow_multiple = get_behavior(self.capability, action).allow_select_all
        return self.disambiguation(decision.options, allow_multiple, context)

    def disambiguation(
        self,
        options: Sequence[ResolutionCandidate],
        allow_multiple: bool,
        context: ResolverContext,
        question: Optional[str] = None,
    ) -> Disambiguation:
        options = tuple(options)
        if question is None:
            key = "multiple_or_all" if allow_multiple else "multiple"
            question = message(key, context.language, noun=self.noun(context.language), options=numbered(options))
        return Disambiguation(
            candidates=options,
            allow_multiple=allow_multiple,
            question=question,
            kind=DisambiguationKind.PICK_MANY if allow_multiple else DisambiguationKind.PICK_ONE,
        )

    def not_found(
        self,
        searched_for: str,
        context: ResolverContext,
        suggestions: Sequence[str] = (),
        noun: Optional[str] = None,
    ) -> NotFound:
        noun = noun or self.noun(context.language)
        return NotFound(
            searched_for=searched_for,
            error=message("not_found", context.language, noun=noun, searched_for=searched_for),
            suggestions=tuple(suggestions)[: self.config.max_suggestions],
        )

    def clarify(self, error: str, suggestion: str) -> ClarifyQuery:
        return ClarifyQuery(error=error, suggestions=(suggestion,))

    def lookup(self, fn: Optional[Callable[..., List[Any]]], *args: Any, **kwargs: Any) -> List[Any]:
        """Call a service; a missing service or a lookup failure yields []."""
        if fn is None:
            logger.warning("No service configured", capability=self.capability)
            return []
        try:
            return list(fn(*args, **kwargs))
        except ServiceLookupError as e:
            logger.warning(
                "Lookup failed, treating as no entities",
                capability=self.capability,
                service=e.service,
                error=str(e),
            )
            logger.record_lookup_failure(e.service)
            return []
