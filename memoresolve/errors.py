"""
Exception taxonomy for the resolution engine.

Step-scoped outcomes (not found, underspecified query, invalid selection)
are returned as values by the resolvers. Exceptions are reserved for
configuration problems, malformed plans, external lookup failures and
turn-level conditions (busy user, cancelled turn).
"""

from typing import List, Optional


class ResolutionError(Exception):
    """Base class for every error raised by memoresolve."""
    pass


class ConfigError(ResolutionError):
    """Raised when an environment setting cannot be parsed."""
    pass


class PlanValidationError(ResolutionError):
    """Raised when a plan from the planner does not pass validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid plan: " + "; ".join(self.errors))


class ServiceLookupError(ResolutionError):
    """Raised by a domain service when a search/list call fails."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class EmbeddingError(ServiceLookupError):
    """Raised when text cannot be embedded."""

    def __init__(self, message: str):
        super().__init__("embeddings", message)


class CircuitOpenError(ServiceLookupError):
    """Raised when a circuit breaker refuses a call."""

    def __init__(self, service: str, retry_after: float):
        self.retry_after = retry_after
        super().__init__(
            service,
            f"circuit breaker is OPEN, retry after {retry_after:.0f}s",
        )


class UserBusyError(ResolutionError):
    """Raised when a user already has a turn in flight."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"A turn is already running for user {user_id}")


class TurnCancelled(ResolutionError):
    """Raised when the caller cancels a turn mid-resolution."""

    def __init__(self, step_id: Optional[str] = None):
        self.step_id = step_id
        where = f" at step {step_id}" if step_id else ""
        super().__init__(f"Turn cancelled{where}")
