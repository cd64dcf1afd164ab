"""Per-operation resolution behaviour."""

from dataclasses import dataclass

SINGLE = "single"
ALL = "all"


@dataclass(frozen=True)
class OperationBehavior:
    # single: must end on one entity; all: every match is the target, never ask
    multiple_match: str = SINGLE
    # Whether a disambiguation may accept several picks or "both"/"all"
    allow_select_all: bool = False


DEFAULT_BEHAVIOR = OperationBehavior()

OPERATION_BEHAVIORS = {
    "calendar.delete_by_window": OperationBehavior(multiple_match=ALL),
    "calendar.update_by_window": OperationBehavior(multiple_match=ALL),
    "task-list.delete_many": OperationBehavior(allow_select_all=True),
    "semantic-memory.delete_many": OperationBehavior(allow_select_all=True),
}


def get_behavior(capability: str, action: str) -> OperationBehavior:
    return OPERATION_BEHAVIORS.get(f"{capability}.{action}", DEFAULT_BEHAVIOR)
