"""
Domain service interfaces the resolvers read from.

Implementations raise ServiceLookupError when a lookup fails; resolvers
treat that as "no entities" and never let it escape a turn.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

Entity = Dict[str, Any]


class CalendarService(ABC):
    @abstractmethod
    def list_events(self, user_id: str, time_min: datetime, time_max: datetime) -> List[Entity]:
        """Events starting inside [time_min, time_max], recurring instances expanded."""


class TaskService(ABC):
    @abstractmethod
    def list_tasks(self, user_id: str, include_completed: bool = False) -> List[Entity]:
        ...


class ListService(ABC):
    @abstractmethod
    def list_lists(self, user_id: str) -> List[Entity]:
        ...


class MailService(ABC):
    @abstractmethod
    def search_messages(self, user_id: str, query: str, max_results: int = 20) -> List[Entity]:
        """Messages matching a provider query such as ``subject:invoice``."""

    @abstractmethod
    def recent_messages(self, user_id: str, max_results: int = 10) -> List[Entity]:
        """Most recent inbox messages, newest first."""


class MemoryVault(ABC):
    @abstractmethod
    def search(
        self,
        user_id: str,
        embedding: Sequence[float],
        min_similarity: float,
        limit: int,
        kind: Optional[str] = None,
    ) -> List[Entity]:
        """Memories ordered by descending cosine similarity, each with a ``similarity`` key."""


class Embedder(ABC):
    @abstractmethod
    def embed(self, text: str) -> List[float]:
        ...


@dataclass
class DomainServices:
    """Bundle handed to the resolver registry."""

    calendar: Optional[CalendarService] = None
    tasks: Optional[TaskService] = None
    lists: Optional[ListService] = None
    mail: Optional[MailService] = None
    memory: Optional[MemoryVault] = None
    embedder: Optional[Embedder] = None
