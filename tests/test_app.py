"""
Tests for the command-line interface.
"""

import json
import sys

import pytest

from memoresolve import __version__
from memoresolve.app import main
from memoresolve.locks import UserTurnLock


def run_cli(monkeypatch, capsys, *argv):
    monkeypatch.setattr(sys, "argv", ["memoresolve", *argv])
    main()
    return capsys.readouterr().out


@pytest.fixture
def plan_file(tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({
        "steps": [{"id": "s1", "capability": "database", "action": "delete", "args": {"text": "dentist"}}]
    }))
    return path


@pytest.fixture
def locations(tmp_path, store_file):
    return ["--db", str(tmp_path / "ledger.db"), "--store", str(store_file)]


class TestCli:

    def test_version(self, monkeypatch, capsys):
        assert run_cli(monkeypatch, capsys, "--version").strip() == __version__

    def test_resolve_then_reply(self, monkeypatch, capsys, plan_file, locations):
        asked = json.loads(run_cli(monkeypatch, capsys, "resolve", "--user", "user-1", "--plan", str(plan_file), *locations))

        assert asked["status"] == "needs_clarification"
        assert [c["id"] for c in asked["clarification"]["candidates"]] == ["task-dentist-1", "task-dentist-2"]

        answered = json.loads(run_cli(monkeypatch, capsys, "reply", "--user", "user-1", "--selection", "2", *locations))

        assert answered["status"] == "completed"
        assert answered["is_resume"] is True
        assert answered["resolved_arguments"]["s1"]["task_id"] == "task-dentist-2"

    def test_pending_and_cancel(self, monkeypatch, capsys, plan_file, locations):
        run_cli(monkeypatch, capsys, "resolve", "--user", "user-1", "--plan", str(plan_file), *locations)
        db = locations[:2]

        pending = json.loads(run_cli(monkeypatch, capsys, "pending", "--user", "user-1", *db))
        assert pending["pending"]["origin_step_id"] == "s1"
        assert pending["pending"]["attempts"] == 0

        cancelled = json.loads(run_cli(monkeypatch, capsys, "cancel", "--user", "user-1", *db))
        assert cancelled["cancelled"] is True

        empty = json.loads(run_cli(monkeypatch, capsys, "pending", "--user", "user-1", *db))
        assert empty["pending"] is None

    def test_cancel_takes_the_turn_lock(self, monkeypatch, capsys, plan_file, locations):
        run_cli(monkeypatch, capsys, "resolve", "--user", "user-1", "--plan", str(plan_file), *locations)
        held = []
        original = UserTurnLock.hold

        def recording_hold(self, user_id):
            held.append(user_id)
            return original(self, user_id)

        monkeypatch.setattr(UserTurnLock, "hold", recording_hold)

        cancelled = json.loads(run_cli(monkeypatch, capsys, "cancel", "--user", "user-1", *locations[:2]))

        assert cancelled["cancelled"] is True
        assert held == ["user-1"]

    def test_validate(self, monkeypatch, capsys, plan_file):
        result = json.loads(run_cli(monkeypatch, capsys, "validate", "--plan", str(plan_file)))

        assert result["valid"] is True
        assert result["steps"][0]["capability"] == "task-list"

    def test_validate_rejects_bad_plan(self, monkeypatch, capsys, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps([{"id": "s1", "capability": "calendar"}]))

        with pytest.raises(SystemExit) as exc_info:
            run_cli(monkeypatch, capsys, "validate", "--plan", str(bad))

        assert exc_info.value.code == 2
        assert json.loads(capsys.readouterr().out)["valid"] is False

    def test_cleanup(self, monkeypatch, capsys, tmp_path):
        result = json.loads(run_cli(monkeypatch, capsys, "cleanup", "--db", str(tmp_path / "ledger.db")))

        assert result == {"before": 0, "after": 0, "removed": 0}

    def test_missing_plan_file(self, monkeypatch, capsys, tmp_path, locations):
        with pytest.raises(SystemExit, match="Input file not found"):
            run_cli(monkeypatch, capsys, "resolve", "--user", "u", "--plan", str(tmp_path / "nope.json"), *locations)
