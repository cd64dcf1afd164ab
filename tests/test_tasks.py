"""
Tests for the task and list resolver.
"""

import pytest

from memoresolve.arguments import ListArguments, TaskArguments, parse_arguments
from memoresolve.config import ResolutionConfig
from memoresolve.models import ClarifyQuery, Disambiguation, NotFound, Resolved
from memoresolve.resolution.selection import parse_selection
from memoresolve.resolution.tasks import TaskListResolver, group_same_text, identity_fields, reminder_type
from memoresolve.services import DomainServices

from conftest import FailingTasks

TASK_UUID = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"


@pytest.fixture
def resolver(services):
    return TaskListResolver(services, ResolutionConfig())


def task_args(action="delete", **raw):
    return parse_arguments("task-list", action, raw)


class TestTaskResolution:
    """Task lookups by text."""

    def test_uuid_task_id_passes_through(self, resolver, context):
        arguments = task_args(taskId=TASK_UUID)
        outcome = resolver.resolve("delete", arguments, context)

        assert isinstance(outcome, Resolved)
        assert outcome.arguments is arguments
        assert outcome.resolved_ids == (TASK_UUID,)

    def test_non_uuid_task_id_is_search_text(self, resolver, context):
        outcome = resolver.resolve("complete", task_args(taskId="buy milk"), context)

        assert isinstance(outcome, Resolved)
        assert outcome.arguments.task_id == "task-milk"

    def test_exact_text_resolves(self, resolver, context):
        outcome = resolver.resolve("update", task_args(text="Buy bread"), context)

        assert outcome.arguments.task_id == "task-bread"
        assert outcome.resolved_ids == ("task-bread",)

    def test_word_from_text_resolves(self, resolver, context):
        outcome = resolver.resolve("delete", task_args(text="milk"), context)

        assert isinstance(outcome, Resolved)
        assert outcome.arguments.task_id == "task-milk"

    def test_completed_tasks_are_not_candidates(self, resolver, context):
        outcome = resolver.resolve("delete", task_args(text="Pay rent"), context)

        assert isinstance(outcome, NotFound)

    def test_exact_duplicates_resolve_to_all(self, resolver, context):
        """Same text and same reminder/category/due-date shape are one task."""
        outcome = resolver.resolve("delete", task_args(text="Water plants"), context)

        assert isinstance(outcome, Resolved)
        assert outcome.resolved_ids == ("task-water-1", "task-water-2")
        assert outcome.arguments.task_id == "task-water-1"
        assert outcome.arguments.task_ids == ("task-water-1", "task-water-2")

    def test_same_text_different_fields_asks(self, resolver, context):
        outcome = resolver.resolve("delete", task_args(text="Call mom"), context)

        assert isinstance(outcome, Disambiguation)
        assert outcome.allow_multiple is False
        assert [c.id for c in outcome.candidates] == ["task-mom-1", "task-mom-2"]
        assert "same name but different settings" in outcome.question
        assert "weekly" in outcome.question

    def test_delete_allows_single_pick_only(self, resolver, context):
        outcome = resolver.resolve("delete", task_args(text="dentist"), context)

        assert isinstance(outcome, Disambiguation)
        assert outcome.allow_multiple is False
        assert {c.id for c in outcome.candidates} == {"task-dentist-1", "task-dentist-2"}

    def test_delete_many_allows_several_picks(self, resolver, context):
        outcome = resolver.resolve("delete_many", task_args(action="delete_many", text="dentist"), context)

        assert isinstance(outcome, Disambiguation)
        assert outcome.allow_multiple is True
        assert "both" in outcome.question

    def test_both_selects_every_candidate(self, resolver, context):
        arguments = task_args(action="delete_many", text="dentist")
        question = resolver.resolve("delete_many", arguments, context)

        outcome = resolver.apply_selection(
            parse_selection("both"), question.candidates, arguments, allow_multiple=True, context=context
        )

        assert isinstance(outcome, Resolved)
        assert set(outcome.resolved_ids) == {"task-dentist-1", "task-dentist-2"}
        assert set(outcome.arguments.task_ids) == {"task-dentist-1", "task-dentist-2"}

    def test_missing_text_asks(self, resolver, context):
        outcome = resolver.resolve("delete", task_args(), context)

        assert isinstance(outcome, ClarifyQuery)

    def test_shared_word_asks_between_tasks(self, resolver, context):
        outcome = resolver.resolve("delete", task_args(text="buy"), context)

        assert isinstance(outcome, Disambiguation)
        assert [c.id for c in outcome.candidates] == ["task-milk", "task-bread"]

    def test_lookup_failure_is_not_found(self, context):
        resolver = TaskListResolver(DomainServices(tasks=FailingTasks()), ResolutionConfig())
        outcome = resolver.resolve("delete", task_args(text="Buy milk"), context)

        assert isinstance(outcome, NotFound)

    def test_create_passes_through(self, resolver, context):
        arguments = task_args(action="create", text="Buy milk")
        outcome = resolver.resolve("create", arguments, context)

        assert outcome.arguments is arguments


class TestListResolution:
    """List lookups by name."""

    def test_list_name_resolves(self, resolver, context):
        arguments = parse_arguments("task-list", "add_item", {"listName": "shopping", "item": "bread"})
        outcome = resolver.resolve("add_item", arguments, context)

        assert isinstance(arguments, ListArguments)
        assert isinstance(outcome, Resolved)
        assert outcome.arguments.list_id == "list-shopping"
        assert outcome.arguments.item == "bread"

    def test_name_alias(self, resolver, context):
        arguments = parse_arguments("task-list", "delete", {"name": "Packing for trip"})
        outcome = resolver.resolve("delete", arguments, context)

        assert outcome.arguments.list_id == "list-packing"

    def test_uuid_list_id_passes_through(self, resolver, context):
        arguments = parse_arguments("task-list", "delete", {"listId": TASK_UUID})
        outcome = resolver.resolve("delete", arguments, context)

        assert outcome.resolved_ids == (TASK_UUID,)

    def test_list_not_found_names_lists(self, resolver, context):
        arguments = parse_arguments("task-list", "delete", {"listName": "Groceries"})
        outcome = resolver.resolve("delete", arguments, context)

        assert isinstance(outcome, NotFound)
        assert outcome.error == 'No list matching "Groceries" found'


class TestTaskGrouping:
    """Identity fields behind the duplicate check."""

    def test_reminder_type(self):
        assert reminder_type({"text": "x"}) == "none"
        assert reminder_type({"due_date": "2026-10-15", "reminder": "1 hour"}) == "one-time"
        assert reminder_type({"reminderRecurrence": {"type": "daily"}}) == "daily"

    def test_identity_fields(self):
        assert identity_fields({"category": " Home "}) == ("none", "home", False)

    def test_no_candidates_is_mixed(self):
        shape, grouped = group_same_text([])
        assert shape == "mixed"
        assert grouped == ()

    def test_task_arguments_type(self):
        assert isinstance(task_args(text="x"), TaskArguments)
