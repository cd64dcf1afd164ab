"""
Calendar resolver.

Responsibilities:
- Find the event(s) a free-text reference points at inside a time window.
- Narrow by time of day and day of week when the reference carries them.
- Ask whether a recurring instance or its whole series is meant.
- Resolve window-wide bulk operations to every matching event.

Non-Responsibilities:
- No event mutation.

Invariant:
Window bulk actions never ask; single-event actions follow the gap rule
unless every candidate is an instance of the same series.
"""

from datetime import datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..arguments import CalendarArguments
from ..models import (
    Disambiguation,
    DisambiguationKind,
    NotFound,
    ResolutionCandidate,
    ResolutionOutcome,
    Resolved,
    ResolverContext,
)
from ..normalize import normalize_text, parse_timestamp
from .base import DomainResolver
from .candidate_selector import decide
from .scoring import match, suggestions
from .selection import Selection

MATCH_KEYS = ("summary", "description")
WINDOW_ACTIONS = ("delete_by_window", "update_by_window")
SCOPED_ACTIONS = ("delete", "update")

SERIES_OPTION = "all"
INSTANCE_OPTION = "single"

DAY_NAMES: Dict[str, int] = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
    "שני": 0, "שלישי": 1, "רביעי": 2, "חמישי": 3,
    "שישי": 4, "שבת": 5, "ראשון": 6,
}

# Replies meaning "only this occurrence" to a recurring-scope question
INSTANCE_TOKENS = {
    "single", "just this one", "this one", "only this one", "just this instance",
    "רק המופע הזה", "רק את זה", "הזה", "רק זה",
}

SCOPE_QUESTIONS = {
    "en": "\"{summary}\" repeats every {pattern}. Change all occurrences or just this one?\n\n1. All occurrences\n2. Just this instance ({instance})",
    "he": "\"{summary}\" הוא אירוע חוזר כל {pattern}. לשנות את כל המופעים או רק את המופע הזה?\n\n1. כל המופעים\n2. רק המופע הזה ({instance})",
}
WEEKDAYS = {
    "en": ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
    "he": ("שני", "שלישי", "רביעי", "חמישי", "שישי", "שבת", "ראשון"),
}


def user_zone(context: ResolverContext) -> ZoneInfo:
    try:
        return ZoneInfo(context.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _day_bounds(day: datetime) -> Tuple[datetime, datetime]:
    start = datetime.combine(day.date(), time.min, tzinfo=day.tzinfo)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def relative_window(phrase: Optional[str], now: datetime) -> Optional[Tuple[datetime, datetime]]:
    """Window for a relative day phrase inside ``phrase`` (English or Hebrew)."""
    text = normalize_text(phrase)
    if not text:
        return None
    day_offsets = (
        (("day after tomorrow", "מחרתיים"), 2),
        (("tomorrow", "מחר"), 1),
        (("yesterday", "אתמול"), -1),
        (("today", "tonight", "היום", "הערב"), 0),
    )
    for words, offset in day_offsets:
        if any(w in text for w in words):
            return _day_bounds(now + timedelta(days=offset))

    # Weeks run Sunday to Saturday
    week_start = _day_bounds(now - timedelta(days=(now.weekday() + 1) % 7))[0]
    if any(w in text for w in ("next week", "שבוע הבא", "בשבוע הבא")):
        start = week_start + timedelta(days=7)
        return start, start + timedelta(days=7) - timedelta(microseconds=1)
    if any(w in text for w in ("this week", "השבוע")):
        return week_start, week_start + timedelta(days=7) - timedelta(microseconds=1)
    return None


def _parse_hhmm(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        hours, minutes = value.strip().split(":")[:2]
        return int(hours) * 60 + int(minutes)
    except ValueError:
        return None


class CalendarResolver(DomainResolver):
    capability = "calendar"
    resolved_actions = (
        "get",
        "update",
        "delete",
        "delete_by_window",
        "update_by_window",
        "get_recurring_instances",
        "truncate_recurring",
    )
    nouns = {"en": "event", "he": "אירוע"}

    def _resolve(self, action: str, arguments: CalendarArguments, context: ResolverContext) -> ResolutionOutcome:
        if arguments.event_id:
            return Resolved(arguments, (arguments.event_id,))
        if arguments.event_ids:
            return Resolved(arguments, tuple(arguments.event_ids))
        if action in WINDOW_ACTIONS:
            return self._resolve_window(action, arguments, context)
        return self._resolve_single(action, arguments, context)

    # Time windows

    def derive_window(
        self, arguments: CalendarArguments, phrase: Optional[str], context: ResolverContext
    ) -> Optional[Tuple[datetime, datetime]]:
        """
        Explicit window, else the day of an ISO start/end carrying a time,
        else a relative phrase in the reference. None when nothing applies.
        """
        zone = user_zone(context)
        raw_min, raw_max = arguments.window
        if raw_min and raw_max:
            time_min, time_max = parse_timestamp(raw_min), parse_timestamp(raw_max)
            if time_min and time_max:
                return time_min, time_max

        for value in (arguments.start, arguments.end):
            if isinstance(value, str) and "T" in value:
                moment = parse_timestamp(value)
                if moment:
                    return _day_bounds(moment.astimezone(zone))

        return relative_window(phrase, context.now.astimezone(zone))

    def default_window(self, context: ResolverContext) -> Tuple[datetime, datetime]:
        return (
            context.now - timedelta(days=self.config.calendar_days_back),
            context.now + timedelta(days=self.config.calendar_days_forward),
        )

    def _events(self, context: ResolverContext, window: Tuple[datetime, datetime]) -> List[dict]:
        service = self.services.calendar
        return self.lookup(service.list_events if service else None, context.user_id, window[0], window[1])

    # Single-event actions

    def _resolve_single(self, action: str, arguments: CalendarArguments, context: ResolverContext) -> ResolutionOutcome:
        summary = arguments.search_summary
        if not summary:
            return self.clarify("No event description provided", "Provide the event summary or title")

        window = self.derive_window(arguments, summary, context) or self.default_window(context)
        events = self._events(context, window)

        matches = match(summary, events, MATCH_KEYS, self.config.fuzzy_match_min, exact_first=False)
        candidates = [self.candidate(m.entity, m.score, context) for m in matches]
        candidates = self._filter_time_of_day(candidates, arguments, context)
        candidates = self._filter_day_of_week(candidates, arguments, context)

        if not candidates:
            near = suggestions(
                summary, events, MATCH_KEYS,
                low=self.config.low_confidence_min,
                high=self.config.fuzzy_match_min,
                limit=self.config.max_suggestions,
                label=lambda e: e.get("summary") or "Untitled Event",
            )
            return self.not_found(summary, context, near)

        if self.same_series(candidates):
            chosen = self.nearest_upcoming(candidates, context.now)
        else:
            decision = decide(candidates, self.config.disambiguation_gap, self.config.max_candidates)
            if not decision.is_confident:
                return self.disambiguation(decision.options, False, context)
            chosen = decision.chosen

        if action in SCOPED_ACTIONS and chosen.metadata.get("recurring_event_id"):
            return self._recurring_scope(chosen, arguments, context)
        return self.bind(arguments, [chosen])

    def _filter_time_of_day(
        self, candidates: List[ResolutionCandidate], arguments: CalendarArguments, context: ResolverContext
    ) -> List[ResolutionCandidate]:
        search = arguments.search
        if search is None or not (search.start_time or search.end_time):
            return candidates
        window_start = _parse_hhmm(search.start_time)
        window_end = _parse_hhmm(search.end_time)
        window_start = 0 if window_start is None else window_start
        window_end = 24 * 60 if window_end is None else window_end

        zone = user_zone(context)
        kept = []
        for c in candidates:
            start = parse_timestamp(c.entity.get("start"))
            if start is None:
                continue
            end = parse_timestamp(c.entity.get("end")) or start
            start, end = start.astimezone(zone), end.astimezone(zone)
            start_minutes = start.hour * 60 + start.minute
            end_minutes = end.hour * 60 + end.minute
            if start_minutes <= window_end and end_minutes >= window_start:
                kept.append(c)
        return kept

    def _filter_day_of_week(
        self, candidates: List[ResolutionCandidate], arguments: CalendarArguments, context: ResolverContext
    ) -> List[ResolutionCandidate]:
        search = arguments.search
        if search is None or not search.day_of_week:
            return candidates
        name = normalize_text(search.day_of_week)
        if name.startswith("יום "):
            name = name[len("יום "):]
        target = DAY_NAMES.get(name)
        if target is None:
            return candidates

        zone = user_zone(context)
        kept = []
        for c in candidates:
            start = parse_timestamp(c.entity.get("start"))
            if start is not None and start.astimezone(zone).weekday() == target:
                kept.append(c)
        return kept

    @staticmethod
    def same_series(candidates: Sequence[ResolutionCandidate]) -> bool:
        if len(candidates) < 2:
            return False
        first = candidates[0].metadata.get("recurring_event_id")
        return bool(first) and all(c.metadata.get("recurring_event_id") == first for c in candidates)

    @staticmethod
    def nearest_upcoming(candidates: Sequence[ResolutionCandidate], now: datetime) -> ResolutionCandidate:
        def key(c: ResolutionCandidate):
            start = parse_timestamp(c.entity.get("start"))
            if start is None:
                return (2, float("inf"))
            distance = abs((start - now).total_seconds())
            return (0 if start >= now else 1, distance)

        return sorted(candidates, key=key)[0]

    # Recurring scope

    def _recurring_scope(
        self, chosen: ResolutionCandidate, arguments: CalendarArguments, context: ResolverContext
    ) -> ResolutionOutcome:
        series_id = chosen.metadata["recurring_event_id"]
        if arguments.recurring_series_intent:
            return Resolved(arguments.evolve(event_id=series_id, is_recurring_series=True), (series_id,))

        language = "he" if context.language == "he" else "en"
        instance = chosen.display_text
        options = (
            ResolutionCandidate(
                id=SERIES_OPTION,
                display_text="כל המופעים" if language == "he" else "All occurrences",
                entity=chosen.entity,
                score=1.0,
                metadata={"scope": "series", "recurring_event_id": series_id},
            ),
            ResolutionCandidate(
                id=INSTANCE_OPTION,
                display_text=(f"רק המופע הזה ({instance})" if language == "he" else f"Just this instance ({instance})"),
                entity=chosen.entity,
                score=1.0,
                metadata={"scope": "instance", "event_id": chosen.id, "recurring_event_id": series_id},
            ),
        )
        question = SCOPE_QUESTIONS[language].format(
            summary=chosen.entity.get("summary") or "",
            pattern=self._recurrence_pattern(chosen, context, language),
            instance=instance,
        )
        return Disambiguation(
            candidates=options,
            allow_multiple=False,
            question=question,
            kind=DisambiguationKind.RECURRING_SCOPE,
        )

    def _recurrence_pattern(self, chosen: ResolutionCandidate, context: ResolverContext, language: str) -> str:
        start = parse_timestamp(chosen.entity.get("start"))
        if start is None:
            return "באופן קבוע" if language == "he" else "week"
        local = start.astimezone(user_zone(context))
        day = WEEKDAYS[language][local.weekday()]
        if language == "he":
            return f"יום {day} ב-{local:%H:%M}"
        return f"{day} at {local:%H:%M}"

    def apply_selection(
        self,
        selection: Selection,
        candidates: Sequence[ResolutionCandidate],
        original_arguments: CalendarArguments,
        allow_multiple: bool = False,
        kind: DisambiguationKind = DisambiguationKind.PICK_ONE,
        question: str = "",
        context: Optional[ResolverContext] = None,
    ) -> ResolutionOutcome:
        if kind == DisambiguationKind.RECURRING_SCOPE:
            by_scope = {c.metadata.get("scope"): c for c in candidates}
            if selection.select_all and "series" in by_scope:
                return self.bind(original_arguments, [by_scope["series"]])
            if selection.text in INSTANCE_TOKENS and "instance" in by_scope:
                return self.bind(original_arguments, [by_scope["instance"]])
        return super().apply_selection(
            selection, candidates, original_arguments, allow_multiple, kind, question, context
        )

    # Window bulk actions

    def _resolve_window(self, action: str, arguments: CalendarArguments, context: ResolverContext) -> ResolutionOutcome:
        summary = arguments.search_summary
        window = self.derive_window(arguments, summary, context)
        if window is None:
            return NotFound(
                searched_for=summary or "",
                error=f"A time window (time_min/time_max) is required for {action}",
            )

        events = self._events(context, window)
        if arguments.exclude_summaries:
            excluded = [normalize_text(t) for t in arguments.exclude_summaries if normalize_text(t)]
            events = [
                e for e in events
                if not any(term in normalize_text(e.get("summary")) for term in excluded)
            ]
        if summary:
            threshold = (
                self.config.calendar_delete_threshold
                if action == "delete_by_window"
                else self.config.fuzzy_match_min
            )
            events = [m.entity for m in match(summary, events, MATCH_KEYS, threshold, exact_first=False)]

        if not events:
            label = summary or f"events between {window[0]:%Y-%m-%d} and {window[1]:%Y-%m-%d}"
            return self.not_found(label, context)

        if action == "delete_by_window":
            ids = _unique(e.get("recurring_event_id") or e.get("id") for e in events)
        else:
            ids = _unique(e.get("id") for e in events)

        resolved = arguments.evolve(
            event_ids=ids,
            time_min=window[0].isoformat(),
            time_max=window[1].isoformat(),
        )
        return Resolved(resolved, ids)

    # Candidates and binding

    def candidate(self, event: dict, score: float, context: ResolverContext) -> ResolutionCandidate:
        return ResolutionCandidate(
            id=event.get("id", ""),
            display_text=self.display(event, context),
            entity=event,
            score=score,
            metadata={
                "is_recurring": bool(event.get("recurring_event_id")),
                "recurring_event_id": event.get("recurring_event_id"),
                "start": event.get("start"),
                "end": event.get("end"),
            },
        )

    @staticmethod
    def display(event: dict, context: ResolverContext) -> str:
        summary = event.get("summary") or "Untitled Event"
        start = parse_timestamp(event.get("start"))
        if start is None:
            return summary
        return f"{summary} ({start.astimezone(user_zone(context)):%a %d %b %H:%M})"

    def bind(self, arguments: CalendarArguments, chosen: Sequence[ResolutionCandidate]) -> Resolved:
        first = chosen[0]
        scope = first.metadata.get("scope")
        if scope == "series":
            series_id = first.metadata["recurring_event_id"]
            return Resolved(arguments.evolve(event_id=series_id, is_recurring_series=True), (series_id,))
        if scope == "instance":
            event_id = first.metadata["event_id"]
            return Resolved(
                arguments.evolve(
                    event_id=event_id,
                    is_recurring_series=False,
                    recurring_event_id=first.metadata.get("recurring_event_id"),
                    is_recurring=True,
                ),
                (event_id,),
            )

        ids = tuple(c.id for c in chosen)
        changes = {
            "event_id": first.id,
            "recurring_event_id": first.metadata.get("recurring_event_id"),
            "is_recurring": first.metadata.get("is_recurring"),
        }
        if len(ids) > 1:
            changes["event_ids"] = ids
        return Resolved(arguments.evolve(**changes), ids)


def _unique(values) -> Tuple[str, ...]:
    seen: List[str] = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return tuple(seen)
