"""
Tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from memoresolve.config import ResolutionConfig
from memoresolve.env import load_env
from memoresolve.errors import ConfigError


class TestFromEnv:

    def test_defaults(self):
        config = ResolutionConfig.from_env({})

        assert config.disambiguation_gap == 0.15
        assert config.strong_match_floor == 0.85
        assert config.max_candidates == 5
        assert config.clarification_ttl_seconds == 300
        assert "both" in config.select_all_tokens

    def test_overrides(self):
        config = ResolutionConfig.from_env({
            "MEMORESOLVE_DISAMBIGUATION_GAP": "0.2",
            "MEMORESOLVE_MAX_CANDIDATES": "3",
            "MEMORESOLVE_DB_PATH": "/tmp/ledger.db",
            "MEMORESOLVE_SELECT_ALL_TOKENS": "both, ALL ,tout",
            "MEMORESOLVE_EMBEDDINGS_URL": "https://embeddings.example.com/v1/embeddings",
        })

        assert config.disambiguation_gap == 0.2
        assert config.max_candidates == 3
        assert config.db_path == Path("/tmp/ledger.db")
        assert config.select_all_tokens == ("both", "all", "tout")
        assert config.embeddings_url == "https://embeddings.example.com/v1/embeddings"

    def test_blank_values_are_ignored(self):
        assert ResolutionConfig.from_env({"MEMORESOLVE_MAX_CANDIDATES": "  "}).max_candidates == 5

    def test_unknown_variables_are_ignored(self):
        config = ResolutionConfig.from_env({"MEMORESOLVE_EXACT_MATCH": "2.0"})

        assert not hasattr(config, "exact_match")

    def test_unparseable_value(self):
        with pytest.raises(ConfigError, match="MEMORESOLVE_MAX_CANDIDATES"):
            ResolutionConfig.from_env({"MEMORESOLVE_MAX_CANDIDATES": "five"})

    def test_out_of_range_value(self):
        with pytest.raises(ConfigError, match="disambiguation_gap"):
            ResolutionConfig.from_env({"MEMORESOLVE_DISAMBIGUATION_GAP": "1.5"})

    def test_unsupported_language(self):
        with pytest.raises(ConfigError):
            ResolutionConfig.from_env({"MEMORESOLVE_DEFAULT_LANGUAGE": "fr"})

    def test_with_overrides_validates(self):
        config = ResolutionConfig()

        assert config.with_overrides(default_language="he").default_language == "he"
        with pytest.raises(ConfigError):
            config.with_overrides(max_candidates=1)

    def test_api_key_not_in_repr(self):
        assert "secret" not in repr(ResolutionConfig(embeddings_api_key="secret"))


class TestLoadEnv:

    def test_missing_file(self, tmp_path):
        assert load_env(tmp_path / ".env") is False

    def test_existing_environment_wins(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("MEMORESOLVE_TIMEZONE=Asia/Jerusalem\nMEMORESOLVE_LOG_LEVEL=DEBUG\n")
        monkeypatch.setenv("MEMORESOLVE_TIMEZONE", "UTC")
        monkeypatch.delenv("MEMORESOLVE_LOG_LEVEL", raising=False)

        assert load_env(env_file) is True
        config = ResolutionConfig.from_env()

        assert config.timezone == "UTC"
        assert config.log_level == "DEBUG"
