"""
Runtime configuration for entity resolution.

All thresholds are tunable through MEMORESOLVE_* environment variables
(optionally loaded from .env). The defaults reproduce the values the
assistant has been running with.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigError

ENV_PREFIX = "MEMORESOLVE_"

DEFAULT_SELECT_ALL_TOKENS: Tuple[str, ...] = (
    "both",
    "all",
    "all of them",
    "שניהם",
    "כולם",
    "את כולם",
)


@dataclass(frozen=True)
class ResolutionConfig:
    """Thresholds, limits and locations used across the engine."""

    # Minimum gap between the top two scores required to auto-resolve
    disambiguation_gap: float = 0.15
    # Vector similarity floor for a memory conflict to count as strong
    strong_match_floor: float = 0.85
    # Minimum keyword overlap for contact conflicts
    keyword_score_min: float = 0.01
    # Minimum fuzzy score for a candidate to be considered at all
    fuzzy_match_min: float = 0.6
    # Scores between this and fuzzy_match_min become "did you mean" suggestions
    low_confidence_min: float = 0.1
    calendar_delete_threshold: float = 0.6
    memory_search_similarity_min: float = 0.5
    memory_search_limit: int = 10
    hybrid_vector_weight: float = 0.7
    max_candidates: int = 5
    max_suggestions: int = 3
    clarification_ttl_seconds: int = 300
    calendar_days_back: int = 1
    calendar_days_forward: int = 90
    select_all_tokens: Tuple[str, ...] = DEFAULT_SELECT_ALL_TOKENS
    default_language: str = "en"
    timezone: str = "UTC"
    db_path: Path = Path("data/memoresolve.db")
    store_path: Path = Path("data/store.json")
    embeddings_url: Optional[str] = None
    embeddings_model: str = "text-embedding-3-small"
    embeddings_api_key: Optional[str] = field(default=None, repr=False)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ResolutionConfig":
        """
        Build a config from MEMORESOLVE_* variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            ResolutionConfig with defaults for every unset variable

        Raises:
            ConfigError: If a variable is set but cannot be parsed
        """
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            parser = _PARSERS.get(f.name, _parser_for_default(getattr(cls, f.name, None)))
            try:
                overrides[f.name] = parser(raw.strip())
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{ENV_PREFIX}{f.name.upper()}={raw!r}: {e}") from e
        config = cls(**overrides)
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values outside their meaningful ranges."""
        for name in (
            "disambiguation_gap",
            "strong_match_floor",
            "keyword_score_min",
            "fuzzy_match_min",
            "low_confidence_min",
            "calendar_delete_threshold",
            "memory_search_similarity_min",
            "hybrid_vector_weight",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be within [0, 1], got {value}")
        if self.max_candidates < 2:
            raise ConfigError("max_candidates must be at least 2")
        if self.clarification_ttl_seconds <= 0:
            raise ConfigError("clarification_ttl_seconds must be positive")
        if self.default_language not in ("he", "en", "other"):
            raise ConfigError(f"Unsupported default_language: {self.default_language}")

    def with_overrides(self, **kwargs: Any) -> "ResolutionConfig":
        config = replace(self, **kwargs)
        config.validate()
        return config


def _parse_tokens(raw: str) -> Tuple[str, ...]:
    tokens = tuple(t.strip().lower() for t in raw.split(",") if t.strip())
    if not tokens:
        raise ValueError("expected a comma-separated list of tokens")
    return tokens


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError("expected a boolean")


def _parser_for_default(default: Any) -> Callable[[str], Any]:
    if isinstance(default, bool):
        return _parse_bool
    if isinstance(default, int):
        return int
    if isinstance(default, float):
        return float
    if isinstance(default, Path):
        return Path
    return str


_PARSERS: Dict[str, Callable[[str], Any]] = {
    "select_all_tokens": _parse_tokens,
    "embeddings_url": str,
    "embeddings_api_key": str,
}
