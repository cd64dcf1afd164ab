"""
Typed argument structs, one per capability.

Planners emit loosely typed argument bags with camelCase or snake_case
keys. parse_arguments() maps a bag onto the struct for its capability
once, at plan-parse time; anything without a named field lands in
``extra`` and is handed back unchanged by to_dict().
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from .normalize import to_snake_case

# Keys some planners emit under another name
FIELD_ALIASES = {
    "search_criteria": "search",
    "task_text": "text",
    "name": "list_name",
    "from": "sender",
    "memory_type": "kind",
}

LIST_ITEM_ACTIONS = ("add_item", "toggle_item", "delete_item")


@dataclass(frozen=True)
class Arguments:
    extra: Mapping[str, Any] = field(default_factory=dict)

    # Fields holding id lists; stored as tuples
    SEQUENCE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # Fields holding a nested struct
    NESTED_FIELDS: ClassVar[Dict[str, type]] = {}
    # Aliases that only make sense for this capability
    ALIASES: ClassVar[Dict[str, str]] = {}

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name != "extra")

    @classmethod
    def field_for(cls, key: Any) -> str:
        name = to_snake_case(str(key))
        return cls.ALIASES.get(name) or FIELD_ALIASES.get(name, name)

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]):
        known = set(cls.field_names())
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        # Canonical keys first so they win over an alias for the same field
        items = sorted((raw or {}).items(), key=lambda kv: cls.field_for(kv[0]) != to_snake_case(str(kv[0])))
        for key, value in items:
            name = cls.field_for(key)
            if name in known and name not in values:
                values[name] = cls._coerce(name, value)
            else:
                extra[key] = value
        return cls(extra=extra, **values)

    @classmethod
    def _coerce(cls, name: str, value: Any) -> Any:
        nested = cls.NESTED_FIELDS.get(name)
        if nested is not None and isinstance(value, Mapping):
            return nested.from_dict(value)
        if name in cls.SEQUENCE_FIELDS and isinstance(value, (list, tuple)):
            return tuple(value)
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict of the set fields, with ``extra`` merged underneath."""
        out: Dict[str, Any] = dict(self.extra)
        for name in self.field_names():
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, Arguments):
                value = value.to_dict()
                if not value:
                    continue
            elif isinstance(value, tuple):
                value = list(value)
            out[name] = value
        return out

    def evolve(self, **changes: Any):
        """Return a copy with ``changes`` applied; the original is untouched."""
        coerced = {k: self._coerce(k, v) for k, v in changes.items()}
        return replace(self, **coerced)


@dataclass(frozen=True)
class CalendarSearch(Arguments):
    summary: Optional[str] = None
    time_min: Optional[str] = None
    time_max: Optional[str] = None
    day_of_week: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


@dataclass(frozen=True)
class CalendarArguments(Arguments):
    event_id: Optional[str] = None
    event_ids: Optional[Tuple[str, ...]] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    time_min: Optional[str] = None
    time_max: Optional[str] = None
    search: Optional[CalendarSearch] = None
    exclude_summaries: Optional[Tuple[str, ...]] = None
    recurring_series_intent: Optional[bool] = None
    is_recurring_series: Optional[bool] = None
    recurring_event_id: Optional[str] = None
    is_recurring: Optional[bool] = None

    SEQUENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("event_ids", "exclude_summaries")
    NESTED_FIELDS: ClassVar[Dict[str, type]] = {"search": CalendarSearch}

    @property
    def search_summary(self) -> Optional[str]:
        # For updates ``summary`` may carry the new title, so the search block wins
        if self.search is not None and self.search.summary:
            return self.search.summary
        return self.summary

    @property
    def window(self) -> Tuple[Optional[str], Optional[str]]:
        search = self.search or CalendarSearch()
        return (self.time_min or search.time_min, self.time_max or search.time_max)


@dataclass(frozen=True)
class TaskArguments(Arguments):
    task_id: Optional[str] = None
    task_ids: Optional[Tuple[str, ...]] = None
    text: Optional[str] = None
    category: Optional[str] = None
    due_date: Optional[str] = None
    reminder: Optional[Any] = None
    reminder_recurrence: Optional[Mapping[str, Any]] = None

    SEQUENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("task_ids",)


@dataclass(frozen=True)
class ListArguments(Arguments):
    list_id: Optional[str] = None
    list_ids: Optional[Tuple[str, ...]] = None
    list_name: Optional[str] = None
    is_checklist: Optional[bool] = None
    item: Optional[Any] = None

    SEQUENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("list_ids",)


@dataclass(frozen=True)
class MailArguments(Arguments):
    message_id: Optional[str] = None
    query: Optional[str] = None
    subject_hint: Optional[str] = None
    subject: Optional[str] = None
    sender: Optional[str] = None
    selection_index: Optional[int] = None


@dataclass(frozen=True)
class MemoryArguments(Arguments):
    memory_id: Optional[str] = None
    memory_ids: Optional[Tuple[str, ...]] = None
    query: Optional[str] = None
    content: Optional[str] = None
    kind: Optional[str] = None
    subject: Optional[str] = None
    conflict_decision: Optional[str] = None
    conflict_target_id: Optional[str] = None

    SEQUENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("memory_ids",)
    ALIASES: ClassVar[Dict[str, str]] = {"type": "kind", "text": "query"}


@dataclass(frozen=True)
class GenericArguments(Arguments):
    pass


def _flatten_memory_bag(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Lift a nested ``memory: {type, content, metadata: {subject}}`` bag to the top level.

    Top-level keys win. The nested bag itself stays in ``extra`` so the
    executor still sees the shape it was given.
    """
    flat = dict(raw)
    nested = raw.get("memory")
    if isinstance(nested, Mapping):
        for key, value in nested.items():
            if key != "metadata":
                flat.setdefault(key, value)
        if "metadata" not in flat and isinstance(nested.get("metadata"), Mapping):
            flat["metadata"] = nested["metadata"]
    metadata = flat.get("metadata")
    if isinstance(metadata, Mapping) and metadata.get("subject"):
        flat.setdefault("subject", metadata["subject"])
    return flat


_LIST_MARKERS = {"list_id", "list_ids", "list_name", "name", "is_checklist"}


def _is_list_bag(action: str, raw: Mapping[str, Any]) -> bool:
    keys = {to_snake_case(str(k)) for k in raw}
    if keys & _LIST_MARKERS:
        return True
    return action in LIST_ITEM_ACTIONS


def parse_arguments(capability: str, action: str, raw: Optional[Mapping[str, Any]]) -> Arguments:
    """
    Build the argument struct for a capability/action pair.

    Args:
        capability: Normalized capability name
        action: Normalized (snake_case) action name
        raw: Argument bag from the planner

    Returns:
        Arguments subclass instance; GenericArguments for unknown capabilities
    """
    raw = raw or {}
    if capability == "calendar":
        return CalendarArguments.from_dict(raw)
    if capability == "task-list":
        if _is_list_bag(action, raw):
            return ListArguments.from_dict(raw)
        return TaskArguments.from_dict(raw)
    if capability == "mail":
        return MailArguments.from_dict(raw)
    if capability == "semantic-memory":
        return MemoryArguments.from_dict(_flatten_memory_bag(raw))
    return GenericArguments.from_dict(raw)


ARGUMENT_TYPES = {
    cls.__name__: cls
    for cls in (
        CalendarArguments,
        TaskArguments,
        ListArguments,
        MailArguments,
        MemoryArguments,
        GenericArguments,
    )
}
