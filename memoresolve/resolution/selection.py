"""
Selection parser.

Turns the human's reply to a disambiguation question into a Selection.
Accepted forms: an integer, a list of integers, or text such as "2",
"1 and 3", "1,3" or one of the select-all tokens ("both", "כולם").
Positions are 1-based. Parsing never raises; anything unusable comes
back with ``valid=False``.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable, Tuple

from ..config import DEFAULT_SELECT_ALL_TOKENS
from ..normalize import normalize_text

_NUMBER = re.compile(r"-?\d+")
_EDGE_PUNCTUATION = " .!?,;:\"'"


@dataclass(frozen=True)
class Selection:
    indices: Tuple[int, ...] = ()
    select_all: bool = False
    valid: bool = False
    raw: Any = None

    @property
    def is_multiple(self) -> bool:
        return self.select_all or len(self.indices) > 1

    @property
    def text(self) -> str:
        return normalize_text(self.raw).strip(_EDGE_PUNCTUATION) if isinstance(self.raw, str) else ""


def _is_position(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _dedupe(values: Iterable[int]) -> Tuple[int, ...]:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return tuple(seen)


def parse_selection(value: Any, select_all_tokens: Iterable[str] = DEFAULT_SELECT_ALL_TOKENS) -> Selection:
    invalid = Selection(raw=value)

    if isinstance(value, bool):
        return invalid

    if isinstance(value, int):
        return Selection((value,), valid=True, raw=value) if _is_position(value) else invalid

    if isinstance(value, (list, tuple)):
        if value and all(_is_position(v) for v in value):
            return Selection(_dedupe(value), valid=True, raw=value)
        return invalid

    if isinstance(value, str):
        text = normalize_text(value).strip(_EDGE_PUNCTUATION)
        if not text:
            return invalid
        tokens = {normalize_text(t) for t in select_all_tokens}
        if text in tokens:
            return Selection(select_all=True, valid=True, raw=value)
        numbers = [int(n) for n in _NUMBER.findall(text)]
        if not numbers or any(n < 1 for n in numbers):
            return invalid
        return Selection(_dedupe(numbers), valid=True, raw=value)

    return invalid
