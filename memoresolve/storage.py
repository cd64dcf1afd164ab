"""
JSON-file backed domain services.

The store document keeps each user's entities side by side:

    {"users": {"<user_id>": {"events": [...], "tasks": [...], "lists": [...],
                             "messages": [...], "memories": [...]}}}

Used by the CLI for local runs and by the test-suite. Production
deployments plug real providers in behind the same interfaces.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .errors import ServiceLookupError
from .normalize import normalize_text, parse_timestamp, strip_html
from .services import (
    CalendarService,
    DomainServices,
    Embedder,
    Entity,
    ListService,
    MailService,
    MemoryVault,
    TaskService,
)


def _empty_store() -> Dict[str, Any]:
    return {"users": {}}


def load_store(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return _empty_store()
    try:
        with path.open("r", encoding="utf-8") as f:
            content = f.read().strip()
            if not content:
                return _empty_store()
            return json.loads(content)
    except (json.JSONDecodeError, IOError):
        return _empty_store()


def user_section(store: Dict[str, Any], user_id: str, key: str) -> List[Entity]:
    users = store.get("users")
    if not isinstance(users, dict):
        raise ServiceLookupError(key, "store document has no 'users' mapping")
    section = users.get(user_id, {}).get(key, [])
    if not isinstance(section, list):
        raise ServiceLookupError(key, f"'{key}' for user {user_id} is not a list")
    return section


class StoreCalendar(CalendarService):
    def __init__(self, store: Dict[str, Any]):
        self.store = store

    def list_events(self, user_id: str, time_min: datetime, time_max: datetime) -> List[Entity]:
        events = []
        for event in user_section(self.store, user_id, "events"):
            start = parse_timestamp(event.get("start"))
            if start is None:
                continue
            if time_min <= start <= time_max:
                events.append(dict(event))
        events.sort(key=lambda e: parse_timestamp(e.get("start")))
        return events


class StoreTasks(TaskService):
    def __init__(self, store: Dict[str, Any]):
        self.store = store

    def list_tasks(self, user_id: str, include_completed: bool = False) -> List[Entity]:
        return [
            dict(task)
            for task in user_section(self.store, user_id, "tasks")
            if include_completed or not task.get("completed")
        ]


class StoreLists(ListService):
    def __init__(self, store: Dict[str, Any]):
        self.store = store

    def list_lists(self, user_id: str) -> List[Entity]:
        return [dict(lst) for lst in user_section(self.store, user_id, "lists")]


class StoreMail(MailService):
    """Understands the two query forms the mail resolver builds."""

    def __init__(self, store: Dict[str, Any]):
        self.store = store

    def _messages(self, user_id: str) -> List[Entity]:
        messages = [dict(m) for m in user_section(self.store, user_id, "messages")]
        messages.sort(key=lambda m: m.get("date") or "", reverse=True)
        return messages

    def search_messages(self, user_id: str, query: str, max_results: int = 20) -> List[Entity]:
        messages = self._messages(user_id)
        if query.startswith("from:") and " OR to:" in query:
            address = normalize_text(query[len("from:"):].split(" OR to:", 1)[0])
            hits = [
                m for m in messages
                if address in normalize_text(m.get("from")) or address in normalize_text(m.get("to"))
            ]
        elif query.startswith("subject:"):
            # Provider subject search is loose; the resolver does the real ranking
            words = normalize_text(query[len("subject:"):]).split()
            hits = [
                m for m in messages
                if any(w in normalize_text(m.get("subject")) or w in normalize_text(strip_html(m.get("snippet")))
                       for w in words)
            ]
        else:
            hits = messages
        return hits[:max_results]

    def recent_messages(self, user_id: str, max_results: int = 10) -> List[Entity]:
        return self._messages(user_id)[:max_results]


class JsonMemoryVault(MemoryVault):
    """Cosine search over the user's memories, embedding each memory on first use."""

    def __init__(self, store: Dict[str, Any], embedder: Embedder):
        self.store = store
        self.embedder = embedder
        self._cache: Dict[str, np.ndarray] = {}

    def _vector(self, memory: Entity) -> np.ndarray:
        if memory.get("embedding"):
            return np.asarray(memory["embedding"], dtype=np.float64)
        key = f"{memory.get('id')}:{memory.get('content', '')}"
        if key not in self._cache:
            self._cache[key] = np.asarray(self.embedder.embed(memory.get("content", "")), dtype=np.float64)
        return self._cache[key]

    def search(
        self,
        user_id: str,
        embedding: Sequence[float],
        min_similarity: float,
        limit: int,
        kind: Optional[str] = None,
    ) -> List[Entity]:
        memories = [
            m for m in user_section(self.store, user_id, "memories")
            if kind is None or m.get("kind") == kind
        ]
        if not memories:
            return []

        q = np.asarray(embedding, dtype=np.float64)
        qn = float(np.linalg.norm(q))
        if qn == 0.0:
            return []
        embs = np.vstack([self._vector(m) for m in memories])
        if embs.shape[1] != q.shape[0]:
            raise ServiceLookupError("memory", "embedding dimension mismatch")
        en = np.linalg.norm(embs, axis=1) * qn
        en = np.where(en == 0.0, 1e-12, en)
        scores = (embs @ q) / en

        results = []
        for i in np.argsort(-scores, kind="stable"):
            similarity = float(scores[i])
            if similarity < min_similarity:
                break
            hit = {k: v for k, v in memories[i].items() if k != "embedding"}
            hit["similarity"] = similarity
            results.append(hit)
            if len(results) >= limit:
                break
        return results


class StoreBackedServices(DomainServices):
    """Every domain service over one JSON store document."""

    def __init__(self, store: Dict[str, Any], embedder: Embedder):
        super().__init__(
            calendar=StoreCalendar(store),
            tasks=StoreTasks(store),
            lists=StoreLists(store),
            mail=StoreMail(store),
            memory=JsonMemoryVault(store, embedder),
            embedder=embedder,
        )
        self.store = store

    @classmethod
    def from_path(cls, path: Path, embedder: Embedder) -> "StoreBackedServices":
        return cls(load_store(path), embedder)
