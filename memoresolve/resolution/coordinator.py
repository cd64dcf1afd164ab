"""
Resolution coordinator.

Responsibilities:
- Run each turn's plan steps through their domain resolvers in plan order.
- Park the plan as a single pending clarification when a step is ambiguous.
- Route the human's reply back to the resolver that asked and carry on.

Non-Responsibilities:
- No step execution (the executor consumes resolved_arguments).
- No wording of questions beyond what the resolvers return.

Invariant:
At most one pending clarification exists per user, and the ledger is
written only once per turn, after every resolver call has returned.
"""

from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..config import ResolutionConfig
from ..errors import TurnCancelled
from ..ledger import ClarificationLedger, utc_now
from ..locks import UserTurnLock
from ..logger import get_logger
from ..models import (
    Disambiguation,
    OperationStep,
    PendingClarification,
    Resolved,
    ResolverContext,
    StepFailure,
    TurnResult,
    TurnStatus,
)
from ..schema import parse_plan
from ..services import DomainServices
from .base import DomainResolver
from .calendar import CalendarResolver
from .mail import MailResolver
from .memory import MemoryResolver
from .selection import parse_selection
from .tasks import TaskListResolver

logger = get_logger()

RESOLVER_TYPES = (CalendarResolver, TaskListResolver, MailResolver, MemoryResolver)


def build_resolvers(services: DomainServices, config: ResolutionConfig) -> Dict[str, DomainResolver]:
    """One resolver per capability, keyed by capability name."""
    return {cls.capability: cls(services, config) for cls in RESOLVER_TYPES}


class ResolutionCoordinator:
    def __init__(
        self,
        resolvers: Mapping[str, DomainResolver],
        ledger: ClarificationLedger,
        config: Optional[ResolutionConfig] = None,
        lock: Optional[UserTurnLock] = None,
        clock=utc_now,
    ):
        self.resolvers = dict(resolvers)
        self.ledger = ledger
        self.config = config or ResolutionConfig()
        self.lock = lock or UserTurnLock()
        self._clock = clock

    @classmethod
    def from_services(
        cls,
        services: DomainServices,
        config: ResolutionConfig,
        ledger: Optional[ClarificationLedger] = None,
        lock: Optional[UserTurnLock] = None,
        clock=utc_now,
    ) -> "ResolutionCoordinator":
        ledger = ledger or ClarificationLedger(config.db_path, config.clarification_ttl_seconds, clock=clock)
        return cls(build_resolvers(services, config), ledger, config, lock, clock)

    def context_for(self, user_id: str) -> ResolverContext:
        return ResolverContext(
            user_id=user_id,
            now=self._clock(),
            language=self.config.default_language,
            timezone=self.config.timezone,
        )

    def run_turn(
        self,
        user_id: str,
        plan: Optional[Union[Sequence[OperationStep], Any]] = None,
        selection: Any = None,
        context: Optional[ResolverContext] = None,
        cancel_event=None,
    ) -> TurnResult:
        """
        Resolve one turn for a user.

        Args:
            user_id: The user whose turn this is
            plan: Steps from the planner (OperationStep list or raw JSON plan)
            selection: The human's reply to a pending question
            context: Resolver context; built from config and clock if omitted
            cancel_event: Object with is_set(); checked around every resolver call

        Returns:
            TurnResult describing what was resolved, what failed, or the
            question now pending

        Raises:
            UserBusyError: If the user already has a turn in flight
            PlanValidationError: If a raw plan fails validation
            TurnCancelled: If cancel_event is set mid-turn
        """
        with self.lock.hold(user_id):
            context = context or self.context_for(user_id)
            pending = self.ledger.get(user_id)
            resume = pending is not None and selection is not None and pending.targets_coordinator

            if resume:
                return self._resume(user_id, pending, selection, context, cancel_event)

            if selection is not None:
                logger.info(
                    "Selection received with no pending clarification",
                    user_id=user_id,
                    has_pending=pending is not None,
                )
                return TurnResult(TurnStatus.EXPIRED)

            if plan is None:
                return TurnResult(TurnStatus.COMPLETED)

            steps = self._steps(plan)
            result = self._dispatch(steps, {}, context, cancel_event)
            self._finish(user_id, result, previous=pending)
            return result

    # Dispatch

    @staticmethod
    def _steps(plan: Union[Sequence[OperationStep], Any]) -> List[OperationStep]:
        if isinstance(plan, (list, tuple)) and plan and all(isinstance(s, OperationStep) for s in plan):
            return list(plan)
        return parse_plan(plan)

    @staticmethod
    def _check_cancel(cancel_event, step_id: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Turn cancelled", step_id=step_id)
            raise TurnCancelled(step_id)

    def _dispatch(
        self,
        steps: List[OperationStep],
        resolved: Dict[str, Dict[str, Any]],
        context: ResolverContext,
        cancel_event,
    ) -> TurnResult:
        resolved = dict(resolved)
        for step in steps:
            if step.id in resolved:
                continue

            resolver = self.resolvers.get(step.capability)
            if resolver is None:
                resolved[step.id] = step.arguments.to_dict()
                continue

            self._check_cancel(cancel_event, step.id)
            outcome = resolver.resolve(step.action, step.arguments, context)
            self._check_cancel(cancel_event, step.id)

            if isinstance(outcome, Resolved):
                resolved[step.id] = outcome.arguments.to_dict()
                continue

            if isinstance(outcome, Disambiguation):
                pending = PendingClarification(
                    domain=step.capability,
                    candidates=list(outcome.candidates),
                    allow_multiple=outcome.allow_multiple,
                    origin_step_id=step.id,
                    original_arguments=step.arguments,
                    kind=outcome.kind,
                    question=outcome.question,
                    plan=list(steps),
                    resolved_arguments=dict(resolved),
                )
                logger.info(
                    "Step needs clarification",
                    user_id=context.user_id,
                    step_id=step.id,
                    capability=step.capability,
                    action=step.action,
                    candidates=len(outcome.candidates),
                    kind=outcome.kind.value,
                )
                return TurnResult(TurnStatus.NEEDS_CLARIFICATION, resolved, clarification=pending)

            failure = StepFailure.from_outcome(step.id, outcome)
            logger.info(
                "Step could not be resolved",
                user_id=context.user_id,
                step_id=step.id,
                capability=step.capability,
                reason=failure.reason,
            )
            return TurnResult(TurnStatus.FAILED, resolved, failures=[failure])

        return TurnResult(TurnStatus.COMPLETED, resolved)

    # Resume

    def _resume(
        self,
        user_id: str,
        pending: PendingClarification,
        selection: Any,
        context: ResolverContext,
        cancel_event,
    ) -> TurnResult:
        resolver = self.resolvers.get(pending.domain)
        if resolver is None:
            logger.error("No resolver for pending domain", user_id=user_id, domain=pending.domain)
            self.ledger.clear(user_id)
            failure = StepFailure(pending.origin_step_id, "no_resolver", f"No resolver for {pending.domain}")
            return TurnResult(TurnStatus.FAILED, dict(pending.resolved_arguments), [failure], is_resume=True)

        parsed = parse_selection(selection, self.config.select_all_tokens)
        self._check_cancel(cancel_event, pending.origin_step_id)
        outcome = resolver.apply_selection(
            parsed,
            pending.candidates,
            pending.original_arguments,
            allow_multiple=pending.allow_multiple,
            kind=pending.kind,
            question=pending.question,
            context=context,
        )
        self._check_cancel(cancel_event, pending.origin_step_id)

        if isinstance(outcome, Disambiguation):
            logger.info(
                "Invalid selection, asking again",
                user_id=user_id,
                origin_step_id=pending.origin_step_id,
                selection=str(selection),
                attempts=pending.attempts + 1,
            )
            rearmed = self.ledger.rearm(user_id, pending)
            return TurnResult(
                TurnStatus.NEEDS_CLARIFICATION,
                dict(pending.resolved_arguments),
                clarification=replace(rearmed, question=outcome.question),
                is_resume=True,
                invalid_selection=True,
            )

        logger.record_clarification("resumed")
        if not isinstance(outcome, Resolved):
            self.ledger.clear(user_id)
            failure = StepFailure.from_outcome(pending.origin_step_id, outcome)
            return TurnResult(TurnStatus.FAILED, dict(pending.resolved_arguments), [failure], is_resume=True)

        resolved = dict(pending.resolved_arguments)
        resolved[pending.origin_step_id] = outcome.arguments.to_dict()
        logger.info(
            "Clarification resolved",
            user_id=user_id,
            origin_step_id=pending.origin_step_id,
            resolved_ids=list(outcome.resolved_ids),
        )

        result = self._dispatch(pending.plan, resolved, context, cancel_event)
        result.is_resume = True
        self._finish(user_id, result, previous=pending, resumed=True)
        return result

    # Ledger

    def _finish(
        self,
        user_id: str,
        result: TurnResult,
        previous: Optional[PendingClarification] = None,
        resumed: bool = False,
    ) -> None:
        if previous is not None and not resumed:
            logger.info(
                "Fresh plan supersedes pending clarification",
                user_id=user_id,
                origin_step_id=previous.origin_step_id,
            )
            logger.record_clarification("superseded")

        if result.clarification is not None:
            self.ledger.put(user_id, result.clarification)
            logger.record_clarification("opened")
        elif previous is not None:
            self.ledger.clear(user_id)

    def pending(self, user_id: str) -> Optional[PendingClarification]:
        return self.ledger.get(user_id)

    def cancel_pending(self, user_id: str) -> bool:
        """Drop the user's pending clarification, if any."""
        with self.lock.hold(user_id):
            removed = self.ledger.clear(user_id)
        if removed:
            logger.info("Pending clarification cancelled", user_id=user_id)
        return removed
