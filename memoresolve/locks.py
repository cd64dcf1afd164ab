"""
Per-user turn exclusion.

A user may have one turn in flight. A second message arriving while the
first is still resolving is rejected immediately instead of queued, so
two turns can never race on the same pending clarification.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Set

from .errors import UserBusyError
from .logger import get_logger

logger = get_logger()

ACCEPTED = "accepted"
REJECTED = "rejected"


@dataclass(frozen=True)
class ExclusiveResult:
    status: str
    result: Optional[Any] = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED


class UserTurnLock:
    """Thread-safe set of user ids with a turn in flight."""

    def __init__(self):
        self._guard = threading.Lock()
        self._busy: Set[str] = set()

    def is_busy(self, user_id: str) -> bool:
        with self._guard:
            return user_id in self._busy

    def try_acquire(self, user_id: str) -> bool:
        with self._guard:
            if user_id in self._busy:
                return False
            self._busy.add(user_id)
            return True

    def release(self, user_id: str) -> None:
        with self._guard:
            self._busy.discard(user_id)

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        """
        Hold the user's slot for the duration of the block.

        Raises:
            UserBusyError: If the user already has a turn in flight
        """
        if not self.try_acquire(user_id):
            logger.warning("Rejected concurrent turn", user_id=user_id)
            raise UserBusyError(user_id)
        try:
            yield
        finally:
            self.release(user_id)

    def run_exclusive(self, user_id: str, fn: Callable[[], Any]) -> ExclusiveResult:
        """Run fn while holding the user's slot; reject instead of raising when busy."""
        if not self.try_acquire(user_id):
            logger.warning("Rejected concurrent turn", user_id=user_id)
            return ExclusiveResult(REJECTED)
        try:
            return ExclusiveResult(ACCEPTED, fn())
        finally:
            self.release(user_id)
