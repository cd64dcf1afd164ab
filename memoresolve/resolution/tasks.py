"""
Task and list resolver.

Responsibilities:
- Resolve task references by text and list references by name.
- Treat exact duplicates (same text, same reminder/category/due-date shape)
  as one entity.
- Ask when tasks share a text but differ in those fields.

Non-Responsibilities:
- No task or list mutation.

Invariant:
An identifier counts as concrete only when it is a UUID; anything else
the planner put in an id field is treated as search text.
"""

from typing import List, Mapping, Sequence, Tuple, Union

from ..arguments import ListArguments, TaskArguments
from ..models import ResolutionCandidate, ResolutionOutcome, Resolved, ResolverContext
from ..normalize import is_uuid, normalize_text
from .base import DomainResolver
from .scoring import match, suggestions

TASK_ACTIONS = ("get", "update", "delete", "delete_many", "complete", "add_subtask")
LIST_ACTIONS = ("get", "update", "delete", "add_item", "toggle_item", "delete_item")

DIFFERENT_FIELDS_QUESTIONS = {
    "en": "I found tasks with the same name but different settings:\n{options}\n\nWhich one did you mean?",
    "he": "מצאתי כמה משימות עם אותו שם אך הגדרות שונות:\n{options}\n\nלאיזו התכוונת?",
}


def reminder_type(task: Mapping) -> str:
    recurrence = task.get("reminder_recurrence") or task.get("reminderRecurrence")
    if isinstance(recurrence, Mapping) and recurrence.get("type"):
        return str(recurrence["type"])
    if (task.get("due_date") or task.get("dueDate")) and task.get("reminder"):
        return "one-time"
    return "none"


def identity_fields(task: Mapping) -> Tuple[str, str, bool]:
    """The fields that decide whether two same-text tasks are the same entity."""
    return (
        reminder_type(task),
        normalize_text(task.get("category")),
        bool(task.get("due_date") or task.get("dueDate")),
    )


def group_same_text(candidates: Sequence[ResolutionCandidate]) -> Tuple[str, Tuple[ResolutionCandidate, ...]]:
    """
    Classify candidates that all carry the same text.

    Returns ("identical", all) when every candidate also shares its
    identity fields, ("different_fields", all) when the text is shared but
    the fields are not, and ("mixed", ()) otherwise.
    """
    texts = {normalize_text(c.entity.get("text")) for c in candidates}
    if len(candidates) < 2 or len(texts) != 1:
        return "mixed", ()
    shapes = {identity_fields(c.entity) for c in candidates}
    if len(shapes) == 1:
        return "identical", tuple(candidates)
    return "different_fields", tuple(candidates)


class TaskListResolver(DomainResolver):
    capability = "task-list"
    resolved_actions = tuple(dict.fromkeys(TASK_ACTIONS + LIST_ACTIONS))
    nouns = {"en": "task", "he": "משימה"}

    def _resolve(
        self, action: str, arguments: Union[TaskArguments, ListArguments], context: ResolverContext
    ) -> ResolutionOutcome:
        if isinstance(arguments, ListArguments):
            if action not in LIST_ACTIONS:
                return Resolved(arguments)
            return self._resolve_list(action, arguments, context)
        if action not in TASK_ACTIONS:
            return Resolved(arguments)
        return self._resolve_task(action, arguments, context)

    def noun_for(self, arguments, language: str) -> str:
        if isinstance(arguments, ListArguments):
            return "רשימה" if language == "he" else "list"
        return self.noun(language)

    # Tasks

    def _resolve_task(self, action: str, arguments: TaskArguments, context: ResolverContext) -> ResolutionOutcome:
        if is_uuid(arguments.task_id):
            return Resolved(arguments, (arguments.task_id,))
        if arguments.task_ids and all(is_uuid(t) for t in arguments.task_ids):
            return Resolved(arguments, tuple(arguments.task_ids))

        search_text = arguments.text or arguments.task_id
        if not search_text:
            return self.clarify("No task description provided", "Provide the task name or description")

        service = self.services.tasks
        tasks = self.lookup(service.list_tasks if service else None, context.user_id)

        matches = match(search_text, tasks, ("text",), self.config.fuzzy_match_min)
        candidates = [self._task_candidate(m.entity, m.score) for m in matches]
        if not candidates:
            near = suggestions(
                search_text, tasks, ("text",),
                low=self.config.low_confidence_min,
                high=self.config.fuzzy_match_min,
                limit=self.config.max_suggestions,
                label=lambda t: t.get("text") or "Untitled Task",
            )
            return self.not_found(search_text, context, near)

        shape, grouped = group_same_text(candidates)
        if shape == "identical":
            return self.bind(arguments, grouped)
        if shape == "different_fields":
            options = grouped[: self.config.max_candidates]
            language = "he" if context.language == "he" else "en"
            question = DIFFERENT_FIELDS_QUESTIONS[language].format(options=_numbered_with_fields(options))
            return self.disambiguation(options, False, context, question=question)
        return self.choose(action, arguments, candidates, context, search_text)

    def _task_candidate(self, task: Mapping, score: float) -> ResolutionCandidate:
        text = task.get("text") or "Untitled Task"
        kind = reminder_type(task)
        if kind != "none":
            display = f"{text} ({kind})"
        elif task.get("category"):
            display = f"{text} [{task['category']}]"
        else:
            display = text
        return ResolutionCandidate(
            id=task.get("id", ""),
            display_text=display,
            entity=task,
            score=score,
            metadata={
                "reminder_type": kind,
                "category": task.get("category"),
                "has_due_date": bool(task.get("due_date") or task.get("dueDate")),
            },
        )

    # Lists

    def _resolve_list(self, action: str, arguments: ListArguments, context: ResolverContext) -> ResolutionOutcome:
        if is_uuid(arguments.list_id):
            return Resolved(arguments, (arguments.list_id,))

        search_text = arguments.list_name or arguments.list_id
        if not search_text:
            return self.clarify("No list name provided", "Provide the list name")

        service = self.services.lists
        lists = self.lookup(service.list_lists if service else None, context.user_id)

        keys = ("list_name", "name")
        matches = match(search_text, [_with_list_name(lst) for lst in lists], keys, self.config.fuzzy_match_min)
        candidates = [
            ResolutionCandidate(
                id=m.entity.get("id", ""),
                display_text=m.entity.get("list_name") or "Untitled List",
                entity=m.entity,
                score=m.score,
                metadata={
                    "is_checklist": bool(m.entity.get("is_checklist") or m.entity.get("isChecklist")),
                    "item_count": len(m.entity.get("items") or []),
                },
            )
            for m in matches
        ]
        if not candidates:
            return self._list_not_found(search_text, lists, context)
        return self.choose(action, arguments, candidates, context, search_text)

    def _list_not_found(self, search_text: str, lists: List[Mapping], context: ResolverContext):
        near = suggestions(
            search_text, [_with_list_name(lst) for lst in lists], ("list_name",),
            low=self.config.low_confidence_min,
            high=self.config.fuzzy_match_min,
            limit=self.config.max_suggestions,
            label=lambda lst: lst.get("list_name") or "Untitled List",
        )
        return self.not_found(search_text, context, near, noun=self.noun_for(ListArguments(), context.language))

    # Binding

    def bind(self, arguments, chosen: Sequence[ResolutionCandidate]) -> Resolved:
        ids = tuple(c.id for c in chosen)
        if isinstance(arguments, ListArguments):
            changes = {"list_id": ids[0]}
            if len(ids) > 1:
                changes["list_ids"] = ids
        else:
            changes = {"task_id": ids[0]}
            if len(ids) > 1:
                changes["task_ids"] = ids
        return Resolved(arguments.evolve(**changes), ids)


def _with_list_name(lst: Mapping) -> dict:
    out = dict(lst)
    out.setdefault("list_name", lst.get("name") or lst.get("listName"))
    return out


def _numbered_with_fields(candidates: Sequence[ResolutionCandidate]) -> str:
    lines = []
    for i, c in enumerate(candidates, start=1):
        meta = c.metadata
        details = [meta.get("reminder_type") or "none"]
        if meta.get("category"):
            details.append(str(meta["category"]))
        details.append("due date" if meta.get("has_due_date") else "no due date")
        lines.append(f"{i}. {c.entity.get('text') or c.display_text} ({', '.join(details)})")
    return "\n".join(lines)
