"""
Tests for the mail resolver.
"""

import pytest

from memoresolve.arguments import MailArguments
from memoresolve.config import ResolutionConfig
from memoresolve.logger import get_logger
from memoresolve.models import ClarifyQuery, Disambiguation, NotFound, Resolved
from memoresolve.resolution.mail import MailResolver, provider_query, sender_name
from memoresolve.services import DomainServices

from conftest import FailingMail


@pytest.fixture
def resolver(services):
    return MailResolver(services, ResolutionConfig())


def args(**raw) -> MailArguments:
    return MailArguments.from_dict(raw)


class TestMailResolution:

    def test_message_id_passes_through(self, resolver, context):
        arguments = args(messageId="msg-xyz")
        outcome = resolver.resolve("reply", arguments, context)

        assert outcome.arguments is arguments
        assert outcome.resolved_ids == ("msg-xyz",)

    def test_selection_index_picks_from_recent_inbox(self, resolver, context):
        outcome = resolver.resolve("get", args(selectionIndex=2), context)

        assert isinstance(outcome, Resolved)
        assert outcome.arguments.message_id == "msg-invoice-mar"

    def test_selection_index_accepts_digit_strings(self, resolver, context):
        outcome = resolver.resolve("get", args(selectionIndex="1"), context)

        assert outcome.arguments.message_id == "msg-invoice-apr"

    def test_selection_index_out_of_range(self, resolver, context):
        outcome = resolver.resolve("get", args(selectionIndex=11), context)

        assert isinstance(outcome, ClarifyQuery)
        assert outcome.error == "Invalid email number: 11"
        assert outcome.suggestions == ("Choose a number between 1 and 4",)

    def test_selection_index_with_empty_inbox(self, empty_services, context):
        resolver = MailResolver(empty_services, ResolutionConfig())
        outcome = resolver.resolve("get", args(selectionIndex=1), context)

        assert isinstance(outcome, ClarifyQuery)
        assert outcome.suggestions == ("There are no recent emails to choose from",)

    def test_similar_subjects_ask(self, resolver, context):
        outcome = resolver.resolve("reply", args(subject="Invoice"), context)

        assert isinstance(outcome, Disambiguation)
        assert outcome.allow_multiple is False
        assert [c.id for c in outcome.candidates] == ["msg-invoice-apr", "msg-invoice-mar"]
        assert "Invoice April - from Billing (2026-10-13)" in outcome.question

    def test_sender_address_resolves(self, resolver, context):
        outcome = resolver.resolve("get", args(sender="dana@example.com"), context)

        assert isinstance(outcome, Resolved)
        assert outcome.arguments.message_id == "msg-dana"

    def test_html_snippet_is_searched_as_text(self, resolver, context):
        outcome = resolver.resolve("get", args(query="quarterly report"), context)

        assert isinstance(outcome, Resolved)
        assert outcome.arguments.message_id == "msg-report"

    def test_nothing_to_search_asks(self, resolver, context):
        outcome = resolver.resolve("get", args(), context)

        assert isinstance(outcome, ClarifyQuery)
        assert outcome.error == "No email search criteria provided"

    def test_no_match_is_not_found(self, resolver, context):
        outcome = resolver.resolve("get", args(subject="Flight itinerary"), context)

        assert isinstance(outcome, NotFound)
        assert outcome.error == 'No email matching "Flight itinerary" found'

    def test_lookup_failure_is_not_found(self, context):
        resolver = MailResolver(DomainServices(mail=FailingMail()), ResolutionConfig())
        outcome = resolver.resolve("get", args(subject="Invoice"), context)

        assert isinstance(outcome, NotFound)
        assert get_logger().get_metrics()["lookup_failures_by_service"]["mail"] == 1

    def test_send_is_not_resolved(self, resolver, context):
        arguments = args(subject="Invoice")
        assert resolver.resolve("send", arguments, context).arguments is arguments


class TestMailHelpers:

    def test_provider_query(self):
        assert provider_query("dana@example.com") == "from:dana@example.com OR to:dana@example.com"
        assert provider_query("invoice") == "subject:invoice"

    def test_sender_name(self):
        assert sender_name("Dana <dana@example.com>") == "Dana"
        assert sender_name("dana@example.com") == "dana@example.com"
