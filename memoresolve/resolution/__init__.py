"""Entity resolution: domain resolvers, the gap rule and the turn coordinator."""

from .base import DomainResolver
from .calendar import CalendarResolver
from .coordinator import ResolutionCoordinator, build_resolvers
from .mail import MailResolver
from .memory import MemoryResolver
from .selection import Selection, parse_selection
from .tasks import TaskListResolver

__all__ = [
    "CalendarResolver",
    "DomainResolver",
    "MailResolver",
    "MemoryResolver",
    "ResolutionCoordinator",
    "Selection",
    "TaskListResolver",
    "build_resolvers",
    "parse_selection",
]
