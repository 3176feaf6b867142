"""Tests for hook registration and the hook handler."""

import io
import json

import pytest

from worktree_lens.constants import HOOK_COMMAND_MARKER, HOOK_EVENTS
from worktree_lens.exceptions import CorruptError, HooksConfigError
from worktree_lens.services.hook_handler import handle_hook_event
from worktree_lens.services.hooks_manager import HooksManager, SettingsStore
from worktree_lens.services.session_store import StatusRecordStore

FOREIGN_GROUP = {"matcher": "Bash", "hooks": [{"type": "command", "command": "other-tool check"}]}


@pytest.fixture
def settings_path(temp_dir):
    return temp_dir / "claude" / "settings.json"


@pytest.fixture
def status_dir(temp_dir):
    return str(temp_dir / "status")


@pytest.fixture
def manager(settings_path, status_dir):
    return HooksManager(SettingsStore(str(settings_path)), status_dir)


def write_settings(path, document):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2) + "\n")


class TestSettingsStore:
    def test_missing_and_empty_read_as_empty(self, settings_path):
        store = SettingsStore(str(settings_path))
        assert store.read() == {}
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text("  \n")
        assert store.read() == {}

    @pytest.mark.parametrize("content", ["{not json", "[]"])
    def test_corrupt(self, settings_path, content):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text(content)
        with pytest.raises(CorruptError):
            SettingsStore(str(settings_path)).read()

    def test_write_is_pretty_printed(self, settings_path):
        SettingsStore(str(settings_path)).write({"a": 1})
        assert settings_path.read_text() == '{\n  "a": 1\n}\n'


class TestHooksManager:
    """Applying and removing our registrations."""

    def test_apply_registers_every_event(self, manager, settings_path, status_dir):
        manager.apply()

        document = json.loads(settings_path.read_text())
        assert set(document["hooks"]) == {event for event, _ in HOOK_EVENTS}
        for event, matcher in HOOK_EVENTS:
            group = document["hooks"][event][0]
            assert group.get("matcher") == matcher
            assert HOOK_COMMAND_MARKER in group["hooks"][0]["command"]
            assert status_dir in group["hooks"][0]["command"]
        assert "matcher" not in document["hooks"]["Stop"][0]
        assert manager.state().configured is True
        assert manager.state().status_dir_exists is True

    @pytest.mark.parametrize("initial", [
        None,
        {"hooks": {}, "model": "x"},
        {"hooks": {"Stop": [], "UserPromptSubmit": [FOREIGN_GROUP]}, "model": "x"},
        {"model": "x", "hooks": {"PreToolUse": [FOREIGN_GROUP]}, "theme": "dark"},
    ])
    def test_apply_twice_is_byte_identical(self, manager, settings_path, initial):
        if initial is not None:
            write_settings(settings_path, initial)
        manager.apply()
        first = settings_path.read_bytes()
        manager.apply()
        assert settings_path.read_bytes() == first

    def test_apply_keeps_key_order(self, manager, settings_path):
        write_settings(settings_path, {"hooks": {"UserPromptSubmit": [FOREIGN_GROUP]}, "model": "x"})

        manager.apply()

        document = json.loads(settings_path.read_text())
        assert list(document) == ["hooks", "model"]
        assert list(document["hooks"])[0] == "UserPromptSubmit"

    def test_apply_replaces_our_group_in_place(self, manager, settings_path):
        stale = {"hooks": [{"type": "command", "command": f"old/{HOOK_COMMAND_MARKER} --status-dir /old"}]}
        write_settings(settings_path, {"hooks": {"PreToolUse": [stale, FOREIGN_GROUP]}})

        manager.apply()

        groups = json.loads(settings_path.read_text())["hooks"]["PreToolUse"]
        assert groups[1] == FOREIGN_GROUP
        assert groups[0]["hooks"][0]["command"] == manager.hook_command
        assert len(groups) == 2

    def test_apply_preserves_foreign_content(self, manager, settings_path):
        write_settings(settings_path, {"model": "x", "hooks": {"PreToolUse": [FOREIGN_GROUP]}})

        manager.apply()

        document = json.loads(settings_path.read_text())
        assert document["model"] == "x"
        assert document["hooks"]["PreToolUse"][0] == FOREIGN_GROUP
        assert len(document["hooks"]["PreToolUse"]) == 2

    def test_remove_restores_original(self, manager, settings_path):
        original = {"model": "x", "hooks": {"PreToolUse": [FOREIGN_GROUP]}}
        write_settings(settings_path, original)
        manager.apply()

        assert manager.remove() is True

        assert json.loads(settings_path.read_text()) == original
        assert manager.state().configured is False

    def test_remove_backs_up_previous_hooks(self, manager, settings_path):
        write_settings(settings_path, {"hooks": {"PreToolUse": [FOREIGN_GROUP]}})
        manager.apply()
        applied = json.loads(settings_path.read_text())["hooks"]

        manager.remove()

        assert json.loads(manager.backup_path.read_text()) == applied

    def test_remove_prunes_empty_hooks(self, manager, settings_path):
        manager.apply()
        manager.remove()
        assert json.loads(settings_path.read_text()) == {}

    def test_remove_without_file_is_noop(self, manager, settings_path):
        assert manager.remove() is False
        assert not settings_path.exists()

    def test_remove_without_our_hooks_does_not_write(self, manager, settings_path):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text('{"hooks": {}}')
        assert manager.remove() is False
        assert settings_path.read_text() == '{"hooks": {}}'

    def test_apply_on_corrupt_settings(self, manager, settings_path):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text("{broken")
        with pytest.raises(HooksConfigError):
            manager.apply()
        assert settings_path.read_text() == "{broken"

    def test_state_on_corrupt_settings(self, manager, settings_path):
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text("{broken")
        assert manager.state().configured is False

    def test_hook_command_quotes_status_dir(self, temp_dir):
        manager = HooksManager(SettingsStore(str(temp_dir / "s.json")), "/path with space/status")
        assert manager.hook_command == "worktree-lens hook-handler --status-dir '/path with space/status'"


class TestHookHandler:
    """Hook events written to the status directory."""

    @pytest.fixture(autouse=True)
    def no_project_env(self, monkeypatch):
        monkeypatch.delenv("CLAUDE_PROJECT_DIR", raising=False)

    def run(self, status_dir, payload, now=1000):
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return handle_hook_event(io.StringIO(text), status_dir, now=now)

    def records(self, status_dir):
        return {r.session_id: r for r in StatusRecordStore(status_dir).list_records()}

    def test_pre_tool_use(self, status_dir):
        result = self.run(status_dir, {
            "hook_event_name": "PreToolUse", "session_id": "s1", "cwd": "/wt", "tool_name": "Bash",
        })
        assert result == "working"
        record = self.records(status_dir)["s1"]
        assert record.project_path == "/wt"
        assert record.last_tool == "Bash"
        assert record.timestamp == 1000

    def test_permission_request(self, status_dir):
        self.run(status_dir, {
            "hook_event_name": "PermissionRequest", "session_id": "s1", "cwd": "/wt", "tool_name": "Edit",
        })
        record = self.records(status_dir)["s1"]
        assert record.state == "waiting_for_approval"
        assert record.waiting_reason == "Edit"

    def test_notification(self, status_dir):
        self.run(status_dir, {
            "hook_event_name": "Notification", "session_id": "s1", "cwd": "/wt", "message": "Need input",
        })
        record = self.records(status_dir)["s1"]
        assert record.state == "waiting_for_input"
        assert record.waiting_reason == "Need input"
        assert record.last_tool is None

    def test_stop_is_idle(self, status_dir):
        assert self.run(status_dir, {"hook_event_name": "Stop", "session_id": "s1", "cwd": "/wt"}) == "idle"

    def test_session_end_deletes(self, status_dir):
        self.run(status_dir, {"hook_event_name": "SessionStart", "session_id": "s1", "cwd": "/wt"})
        assert self.run(status_dir, {"hook_event_name": "SessionEnd", "session_id": "s1"}) == "deleted"
        assert self.records(status_dir) == {}

    def test_project_dir_env_wins(self, status_dir, monkeypatch):
        monkeypatch.setenv("CLAUDE_PROJECT_DIR", "/project")
        self.run(status_dir, {"hook_event_name": "Stop", "session_id": "s1", "cwd": "/project/sub"})
        assert self.records(status_dir)["s1"].project_path == "/project"

    @pytest.mark.parametrize("payload", [
        "",
        "   ",
        "not json",
        "[]",
        json.dumps({"hook_event_name": "Unknown", "session_id": "s1", "cwd": "/wt"}),
        json.dumps({"hook_event_name": "Stop", "cwd": "/wt"}),
        json.dumps({"hook_event_name": "Stop", "session_id": "s1"}),
        json.dumps({"hook_event_name": "Stop", "session_id": "../x", "cwd": "/wt"}),
    ])
    def test_bad_input_is_ignored(self, status_dir, payload):
        assert self.run(status_dir, payload) is None
        assert self.records(status_dir) == {}
