"""
Pytest configuration and shared fixtures.
"""

import json
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

from memoresolve.config import ResolutionConfig
from memoresolve.errors import EmbeddingError, ServiceLookupError
from memoresolve.ledger import ClarificationLedger
from memoresolve.logger import get_logger
from memoresolve.models import ResolverContext
from memoresolve.services import CalendarService, DomainServices, Embedder, MailService, TaskService
from memoresolve.storage import StoreBackedServices

USER = "user-1"
NOW = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)  # a Wednesday


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeEmbedder(Embedder):
    """Returns a fixed vector per text; unknown texts get ``default``."""

    def __init__(self, vectors: Dict[str, List[float]] = None, default: List[float] = None):
        self.vectors = vectors or {}
        self.default = default or [0.0, 0.0, 1.0]
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))


class FailingEmbedder(Embedder):
    def embed(self, text: str) -> List[float]:
        raise EmbeddingError("provider unavailable")


class FailingCalendar(CalendarService):
    def list_events(self, user_id, time_min, time_max):
        raise ServiceLookupError("calendar", "503 from provider")


class FailingTasks(TaskService):
    def list_tasks(self, user_id, include_completed=False):
        raise ServiceLookupError("tasks", "connection reset")


class FailingMail(MailService):
    def search_messages(self, user_id, query, max_results=20):
        raise ServiceLookupError("mail", "timeout")

    def recent_messages(self, user_id, max_results=10):
        raise ServiceLookupError("mail", "timeout")


def event(event_id: str, summary: str, start: str, end: str = None, **extra) -> Dict[str, Any]:
    data = {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": start},
        "end": {"dateTime": end or start},
    }
    data.update(extra)
    return data


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Every test starts from zeroed resolution metrics."""
    get_logger().reset_metrics()
    yield


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def config(tmp_path) -> ResolutionConfig:
    return ResolutionConfig(
        db_path=tmp_path / "ledger.db",
        store_path=tmp_path / "store.json",
    )


@pytest.fixture
def context() -> ResolverContext:
    return ResolverContext(user_id=USER, now=NOW)


@pytest.fixture
def he_context() -> ResolverContext:
    return ResolverContext(user_id=USER, now=NOW, language="he", timezone="Asia/Jerusalem")


@pytest.fixture
def ledger(config, clock) -> ClarificationLedger:
    return ClarificationLedger(config.db_path, config.clarification_ttl_seconds, clock=clock)


@pytest.fixture
def store() -> Dict[str, Any]:
    """One user's entities across every domain."""
    return {
        "users": {
            USER: {
                "events": [
                    event("evt-dentist", "Dentist", "2026-10-16T10:00:00Z", "2026-10-16T11:00:00Z"),
                    event("evt-standup", "Team standup", "2026-10-15T08:30:00Z", "2026-10-15T08:45:00Z"),
                    event(
                        "evt-sync-1", "Weekly sync", "2026-10-15T14:00:00Z", "2026-10-15T15:00:00Z",
                        recurring_event_id="series-sync",
                    ),
                    event(
                        "evt-sync-2", "Weekly sync", "2026-10-22T14:00:00Z", "2026-10-22T15:00:00Z",
                        recurring_event_id="series-sync",
                    ),
                    event("evt-lunch-1", "Lunch with Dana", "2026-10-15T11:00:00Z", "2026-10-15T12:00:00Z"),
                    event("evt-lunch-2", "Lunch with Dana", "2026-10-20T11:00:00Z", "2026-10-20T12:00:00Z"),
                ],
                "tasks": [
                    {"id": "task-milk", "text": "Buy milk"},
                    {"id": "task-bread", "text": "Buy bread"},
                    {"id": "task-dentist-1", "text": "Dentist appointment"},
                    {"id": "task-dentist-2", "text": "Dentist notes"},
                    {"id": "task-water-1", "text": "Water plants"},
                    {"id": "task-water-2", "text": "Water plants"},
                    {
                        "id": "task-mom-1", "text": "Call mom",
                        "due_date": "2026-10-15T18:00:00Z", "reminder": "30 minutes",
                    },
                    {
                        "id": "task-mom-2", "text": "Call mom",
                        "reminder_recurrence": {"type": "weekly", "days": [5]},
                    },
                    {"id": "task-done", "text": "Pay rent", "completed": True},
                ],
                "lists": [
                    {"id": "list-shopping", "list_name": "Shopping", "items": ["milk", "eggs"]},
                    {"id": "list-packing", "list_name": "Packing for trip", "is_checklist": True, "items": []},
                ],
                "messages": [
                    {
                        "id": "msg-invoice-apr", "subject": "Invoice April", "from": "Billing <billing@acme.com>",
                        "snippet": "Your invoice for April", "date": "2026-10-13T09:00:00Z",
                    },
                    {
                        "id": "msg-invoice-mar", "subject": "Invoice March", "from": "Billing <billing@acme.com>",
                        "snippet": "Your invoice for March", "date": "2026-10-12T09:00:00Z",
                    },
                    {
                        "id": "msg-report", "subject": "Re: docs", "from": "Noa <noa@example.com>",
                        "snippet": "<p>The <b>quarterly report</b> is attached</p>", "date": "2026-10-11T09:00:00Z",
                    },
                    {
                        "id": "msg-dana", "subject": "Weekend plans", "from": "Dana <dana@example.com>",
                        "to": "me@example.com", "snippet": "Are we still on?", "date": "2026-10-10T09:00:00Z",
                    },
                ],
                "memories": [
                    {
                        "id": "mem-dentist-march", "kind": "note",
                        "content": "Dentist notes from March", "embedding": [1.0, 0.0, 0.0, 0.0, 0.0],
                    },
                    {
                        "id": "mem-dentist-insurance", "kind": "note",
                        "content": "Dentist notes about insurance", "embedding": [1.0, 0.0, 0.0, 0.0, 0.0],
                    },
                    {
                        "id": "mem-wifi", "kind": "note",
                        "content": "Home wifi password is on the router", "embedding": [0.0, 1.0, 0.0, 0.0, 0.0],
                    },
                    {
                        "id": "mem-haircuts", "kind": "kv", "subject": "haircuts",
                        "content": "Haircuts every 4 weeks at Dana's", "embedding": [0.0, 0.0, 1.0, 0.0, 0.0],
                    },
                    {
                        "id": "mem-contact-yossi", "kind": "contact",
                        "content": "Yossi plumber 050-1234567", "embedding": [0.0, 0.0, 0.0, 1.0, 0.0],
                    },
                ],
            }
        }
    }


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(
        {
            "dentist notes": [1.0, 0.0, 0.0, 0.0, 0.0],
            "wifi password": [0.0, 1.0, 0.0, 0.0, 0.0],
            "Haircuts every 6 weeks at Dana's": [0.0, 0.0, 1.0, 0.0, 0.0],
            "Haircut place changed": [0.0, 0.0, 1.0, 0.0, 0.0],
            "Yossi plumber 052-7654321": [0.0, 0.0, 0.0, 1.0, 0.0],
            "Shira dentist 03-5550000": [0.0, 0.0, 0.0, 1.0, 0.0],
        },
        default=[0.0, 0.0, 0.0, 0.0, 1.0],
    )


@pytest.fixture
def services(store, embedder) -> StoreBackedServices:
    return StoreBackedServices(store, embedder)


@pytest.fixture
def empty_services() -> DomainServices:
    return DomainServices()


@pytest.fixture
def store_file(tmp_path, store) -> Path:
    path = tmp_path / "store.json"
    path.write_text(json.dumps(store, indent=2, ensure_ascii=False), encoding="utf-8")
    return path
