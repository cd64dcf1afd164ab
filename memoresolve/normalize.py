import re
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from bs4 import BeautifulSoup

# Common words carrying no identifying signal (Hebrew and English)
STOP_WORDS = {
    "את", "ה", "של", "ל", "ב", "מ", "על", "אל", "כל", "זה", "זאת",
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
}
MIN_KEYWORD_LENGTH = 2

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_PUNCTUATION = re.compile(r"[^\w\s@.\-']", re.UNICODE)
_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def normalize_text(s: Optional[str]) -> str:
    if not s:
        return ""
    return " ".join(s.strip().lower().split())


def normalize_subject(subject: Optional[str]) -> str:
    """Normalize a kv subject for overlap checks ("Haircuts!" -> "haircuts")."""
    return normalize_text(_PUNCTUATION.sub(" ", subject or ""))


def subjects_overlap(a: Optional[str], b: Optional[str]) -> bool:
    left, right = normalize_subject(a), normalize_subject(b)
    if not left or not right:
        return False
    return left in right or right in left


def extract_keywords(text: Optional[str]) -> List[str]:
    return [
        word
        for word in normalize_text(text).split()
        if len(word) > MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    ]


def to_snake_case(name: str) -> str:
    """deleteByWindow -> delete_by_window; already-snake names pass through."""
    return _CAMEL_BOUNDARY.sub("_", name.strip()).replace("-", "_").lower()


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID.match(value.strip()))


def strip_html(markup: Optional[str]) -> str:
    """Reduce an HTML fragment to whitespace-normalized text."""
    if not markup:
        return ""
    if "<" not in markup:
        return " ".join(markup.split())
    text = BeautifulSoup(markup, "html.parser").get_text(" ")
    return " ".join(text.split())


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO string, a datetime or a calendar time block
    ({"dateTime": ...} / {"date": ...}) into an aware datetime.
    Naive values are taken as UTC. Returns None when nothing parses.
    """
    if isinstance(value, Mapping):
        value = value.get("dateTime") or value.get("date_time") or value.get("date")
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment
