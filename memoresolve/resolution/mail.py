"""
Mail resolver.

Responsibilities:
- Resolve a message reference by subject, sender or free text.
- Resolve a position in the user's recent inbox (``selection_index``).

Non-Responsibilities:
- No sending, replying or flag changes.

Invariant:
Mail actions always target one message; disambiguation never accepts
several picks.
"""

import re
from typing import Mapping, Sequence

from ..arguments import MailArguments
from ..models import ResolutionCandidate, ResolutionOutcome, Resolved, ResolverContext
from ..normalize import parse_timestamp, strip_html
from .base import DomainResolver
from .scoring import field_text, match

MAIL_ACTIONS = (
    "get",
    "get_email_by_id",
    "reply",
    "reply_preview",
    "reply_confirm",
    "mark_as_read",
    "mark_as_unread",
)
MATCH_KEYS = ("subject", "from", "snippet")

SEARCH_LIMIT = 20
RECENT_LIMIT = 10

_DISPLAY_NAME = re.compile(r"^([^<]+)")


def provider_query(text: str) -> str:
    """Address-looking text searches sender and recipient; anything else searches subjects."""
    if "@" in text:
        return f"from:{text} OR to:{text}"
    return f"subject:{text}"


def mail_text(message: Mapping, key: str) -> str:
    return strip_html(field_text(message, key))


def sender_name(sender: str) -> str:
    found = _DISPLAY_NAME.match(sender)
    return found.group(1).strip() if found else sender


class MailResolver(DomainResolver):
    capability = "mail"
    resolved_actions = MAIL_ACTIONS
    nouns = {"en": "email", "he": "מייל"}

    def _resolve(self, action: str, arguments: MailArguments, context: ResolverContext) -> ResolutionOutcome:
        if arguments.message_id:
            return Resolved(arguments, (arguments.message_id,))
        if arguments.selection_index is not None:
            return self._resolve_index(arguments, context)

        search_text = arguments.query or arguments.subject_hint or arguments.subject or arguments.sender
        if not search_text:
            return self.clarify(
                "No email search criteria provided",
                "Provide subject, sender, or selection number from list",
            )

        service = self.services.mail
        messages = self.lookup(
            service.search_messages if service else None,
            context.user_id,
            provider_query(search_text),
            max_results=SEARCH_LIMIT,
        )
        matches = match(
            search_text,
            messages,
            MATCH_KEYS,
            self.config.fuzzy_match_min,
            exact_first=False,
            text_of=mail_text,
        )
        candidates = [self.candidate(m.entity, m.score) for m in matches]
        return self.choose(action, arguments, candidates, context, search_text)

    def _resolve_index(self, arguments: MailArguments, context: ResolverContext) -> ResolutionOutcome:
        service = self.services.mail
        recent = self.lookup(
            service.recent_messages if service else None,
            context.user_id,
            max_results=RECENT_LIMIT,
        )
        index = arguments.selection_index
        position = int(index) if str(index).strip().isdigit() else 0
        if position < 1 or position > len(recent):
            if recent:
                hint = f"Choose a number between 1 and {len(recent)}"
            else:
                hint = "There are no recent emails to choose from"
            return self.clarify(f"Invalid email number: {index}", hint)
        message_id = recent[position - 1].get("id", "")
        return Resolved(arguments.evolve(message_id=message_id), (message_id,))

    def candidate(self, message: Mapping, score: float) -> ResolutionCandidate:
        return ResolutionCandidate(
            id=message.get("id", ""),
            display_text=self.display(message),
            entity=message,
            score=score,
            metadata={
                "from": message.get("from"),
                "subject": message.get("subject"),
                "date": message.get("date"),
            },
        )

    @staticmethod
    def display(message: Mapping) -> str:
        subject = message.get("subject") or "(No Subject)"
        sender = sender_name(message.get("from") or "Unknown")
        sent = parse_timestamp(message.get("date"))
        if sent is None:
            return f"{subject} - from {sender}"
        return f"{subject} - from {sender} ({sent.date().isoformat()})"

    def bind(self, arguments: MailArguments, chosen: Sequence[ResolutionCandidate]) -> Resolved:
        message_id = chosen[0].id
        return Resolved(arguments.evolve(message_id=message_id), (message_id,))
