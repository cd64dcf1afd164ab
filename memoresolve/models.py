"""
Data model shared by resolvers, the coordinator and the ledger.

Outcomes are plain frozen dataclasses; exactly one is returned per
resolver call. Everything that crosses a turn boundary (pending
clarifications and the plan they park) has to_dict()/from_dict() so the
ledger can persist it as JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .arguments import ARGUMENT_TYPES, Arguments, GenericArguments, parse_arguments
from .normalize import normalize_text, to_snake_case

RETURN_TO = "entity_resolution:apply_selection"


class Capability(str, Enum):
    CALENDAR = "calendar"
    TASK_LIST = "task-list"
    MAIL = "mail"
    SEMANTIC_MEMORY = "semantic-memory"


CAPABILITY_ALIASES = {
    "database": Capability.TASK_LIST.value,
    "tasks": Capability.TASK_LIST.value,
    "gmail": Capability.MAIL.value,
    "email": Capability.MAIL.value,
    "second-brain": Capability.SEMANTIC_MEMORY.value,
    "second_brain": Capability.SEMANTIC_MEMORY.value,
    "memory": Capability.SEMANTIC_MEMORY.value,
}


def normalize_capability(value: str) -> str:
    """Map planner capability names onto the canonical set; unknown names pass through."""
    name = normalize_text(value)
    return CAPABILITY_ALIASES.get(name, name)


class DisambiguationKind(str, Enum):
    PICK_ONE = "pick_one"
    PICK_MANY = "pick_many"
    RECURRING_SCOPE = "recurring_scope"
    CONFLICT_OVERRIDE = "conflict_override"


@dataclass(frozen=True)
class OperationStep:
    id: str
    capability: str
    action: str
    arguments: Arguments = field(default_factory=GenericArguments)
    depends_on: Tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        id: str,
        capability: str,
        action: str,
        arguments: Optional[Mapping[str, Any]] = None,
        depends_on: Sequence[str] = (),
    ) -> "OperationStep":
        capability = normalize_capability(capability)
        action = to_snake_case(action)
        return cls(
            id=id,
            capability=capability,
            action=action,
            arguments=parse_arguments(capability, action, arguments),
            depends_on=tuple(depends_on),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "capability": self.capability,
            "action": self.action,
            "arguments": self.arguments.to_dict(),
            "depends_on": list(self.depends_on),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OperationStep":
        return cls.create(
            id=data["id"],
            capability=data["capability"],
            action=data["action"],
            arguments=data.get("arguments") or {},
            depends_on=data.get("depends_on") or (),
        )


@dataclass(frozen=True)
class ResolutionCandidate:
    id: str
    display_text: str
    entity: Mapping[str, Any] = field(default_factory=dict)
    score: float = 0.0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_text": self.display_text,
            "entity": dict(self.entity),
            "score": self.score,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResolutionCandidate":
        return cls(
            id=data["id"],
            display_text=data.get("display_text", ""),
            entity=data.get("entity") or {},
            score=float(data.get("score", 0.0)),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class Resolved:
    arguments: Arguments
    resolved_ids: Tuple[str, ...] = ()

    type = "resolved"


@dataclass(frozen=True)
class Disambiguation:
    candidates: Tuple[ResolutionCandidate, ...]
    allow_multiple: bool = False
    question: str = ""
    kind: DisambiguationKind = DisambiguationKind.PICK_ONE

    type = "disambiguation"


@dataclass(frozen=True)
class NotFound:
    searched_for: str
    error: str
    suggestions: Tuple[str, ...] = ()

    type = "not_found"


@dataclass(frozen=True)
class ClarifyQuery:
    error: str
    suggestions: Tuple[str, ...] = ()

    type = "clarify_query"


ResolutionOutcome = Union[Resolved, Disambiguation, NotFound, ClarifyQuery]


@dataclass(frozen=True)
class ResolverContext:
    user_id: str
    now: datetime
    language: str = "en"
    timezone: str = "UTC"


@dataclass(frozen=True)
class ConflictMatch:
    candidate_memory: Mapping[str, Any]
    similarity: float
    keyword_score: float
    is_strong_match: bool


def _arguments_to_dict(arguments: Arguments) -> Dict[str, Any]:
    return {"type": type(arguments).__name__, "values": arguments.to_dict()}


def _arguments_from_dict(data: Mapping[str, Any]) -> Arguments:
    cls = ARGUMENT_TYPES.get(data.get("type", ""), GenericArguments)
    return cls.from_dict(data.get("values") or {})


@dataclass
class PendingClarification:
    """
    A parked batch waiting on the human.

    Holds the candidates that were offered, the step that asked, and the
    rest of the plan so a later turn, possibly in another process, can
    route the reply back and continue.
    """

    domain: str
    candidates: List[ResolutionCandidate]
    allow_multiple: bool
    origin_step_id: str
    original_arguments: Arguments
    kind: DisambiguationKind = DisambiguationKind.PICK_ONE
    question: str = ""
    plan: List[OperationStep] = field(default_factory=list)
    resolved_arguments: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    user_selection: Optional[Any] = None
    resolved: bool = False
    return_to: str = RETURN_TO
    attempts: int = 0
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def targets_coordinator(self) -> bool:
        return self.return_to == RETURN_TO

    def origin_step(self) -> Optional[OperationStep]:
        for step in self.plan:
            if step.id == self.origin_step_id:
                return step
        return None

    def to_payload(self) -> Dict[str, Any]:
        """What the interaction layer needs to ask the question."""
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "allow_multiple": self.allow_multiple,
            "origin_step_id": self.origin_step_id,
            "kind": self.kind.value,
            "question": self.question,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "candidates": [c.to_dict() for c in self.candidates],
            "allow_multiple": self.allow_multiple,
            "origin_step_id": self.origin_step_id,
            "original_arguments": _arguments_to_dict(self.original_arguments),
            "kind": self.kind.value,
            "question": self.question,
            "plan": [s.to_dict() for s in self.plan],
            "resolved_arguments": self.resolved_arguments,
            "user_selection": self.user_selection,
            "resolved": self.resolved,
            "return_to": self.return_to,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        created_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> "PendingClarification":
        return cls(
            domain=data["domain"],
            candidates=[ResolutionCandidate.from_dict(c) for c in data.get("candidates", [])],
            allow_multiple=bool(data.get("allow_multiple", False)),
            origin_step_id=data["origin_step_id"],
            original_arguments=_arguments_from_dict(data.get("original_arguments") or {}),
            kind=DisambiguationKind(data.get("kind", DisambiguationKind.PICK_ONE.value)),
            question=data.get("question", ""),
            plan=[OperationStep.from_dict(s) for s in data.get("plan", [])],
            resolved_arguments=dict(data.get("resolved_arguments") or {}),
            user_selection=data.get("user_selection"),
            resolved=bool(data.get("resolved", False)),
            return_to=data.get("return_to", RETURN_TO),
            attempts=int(data.get("attempts", 0)),
            created_at=created_at,
            expires_at=expires_at,
        )


@dataclass(frozen=True)
class StepFailure:
    step_id: str
    reason: str
    error: str
    searched_for: str = ""
    suggestions: Tuple[str, ...] = ()

    @classmethod
    def from_outcome(cls, step_id: str, outcome: Union[NotFound, ClarifyQuery]) -> "StepFailure":
        return cls(
            step_id=step_id,
            reason=outcome.type,
            error=outcome.error,
            searched_for=getattr(outcome, "searched_for", ""),
            suggestions=tuple(outcome.suggestions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "reason": self.reason,
            "error": self.error,
            "searched_for": self.searched_for,
            "suggestions": list(self.suggestions),
        }


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    NEEDS_CLARIFICATION = "needs_clarification"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass
class TurnResult:
    status: TurnStatus
    resolved_arguments: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    failures: List[StepFailure] = field(default_factory=list)
    clarification: Optional[PendingClarification] = None
    is_resume: bool = False
    invalid_selection: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "resolved_arguments": self.resolved_arguments,
            "failures": [f.to_dict() for f in self.failures],
            "clarification": self.clarification.to_payload() if self.clarification else None,
            "is_resume": self.is_resume,
            "invalid_selection": self.invalid_selection,
        }
