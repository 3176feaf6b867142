"""Tests for the command-line interface."""

import json

import pytest

from worktree_lens.cli import main, parse_args
from worktree_lens.cli.main import resolve_worktree
from worktree_lens.exceptions import NotFoundError
from worktree_lens.models.worktree import HeadInfo, Worktree


def make_worktree(path, is_main=False):
    head = HeadInfo(branch="main", commit_sha="a" * 40, commit_message="msg")
    return Worktree(path=path, name=path.rsplit("/", 1)[-1], is_main=is_main, head=head)


@pytest.fixture
def config_file(temp_dir, mock_config):
    path = temp_dir / "config.json"
    path.write_text(json.dumps(mock_config))
    return path


class TestParseArgs:
    def test_default_command(self):
        assert parse_args([]).command == "worktrees"

    def test_log_options(self):
        args = parse_args(["log", "feature", "--limit", "10", "--offset", "20"])
        assert (args.worktree, args.limit, args.offset) == ("feature", 10, 20)

    def test_diff_options(self):
        args = parse_args(["diff", "--commit", "abc", "--stat", "-U", "5"])
        assert args.commit == "abc"
        assert args.stat is True
        assert args.context == 5

    def test_hooks_action_required(self):
        with pytest.raises(SystemExit):
            parse_args(["hooks", "explode"])

    def test_add(self):
        args = parse_args(["add", "../wt", "-b", "topic"])
        assert args.path == "../wt"
        assert args.new_branch == "topic"


class TestResolveWorktree:
    """Picking the worktree a command applies to."""

    @pytest.fixture
    def worktrees(self):
        return [make_worktree("/repo", is_main=True), make_worktree("/repo/nested"), make_worktree("/other")]

    def test_by_name(self, worktrees):
        assert resolve_worktree(worktrees, "other").path == "/other"

    def test_by_path(self, worktrees):
        assert resolve_worktree(worktrees, "/repo/nested").path == "/repo/nested"

    def test_unknown(self, worktrees):
        with pytest.raises(NotFoundError):
            resolve_worktree(worktrees, "missing")

    def test_innermost_containing_cwd(self, worktrees):
        assert resolve_worktree(worktrees, None, cwd="/repo/nested/src").path == "/repo/nested"
        assert resolve_worktree(worktrees, None, cwd="/repo/src").path == "/repo"

    def test_falls_back_to_main(self, worktrees):
        assert resolve_worktree(worktrees, None, cwd="/elsewhere").path == "/repo"

    def test_empty_list(self):
        with pytest.raises(NotFoundError):
            resolve_worktree([], None, cwd="/repo")


class TestMain:
    """End-to-end command runs."""

    def test_worktrees(self, git_repo, config_file, capsys):
        code = main(["--config", str(config_file), "--repo", git_repo.working_dir, "worktrees"])
        assert code == 0
        assert "main" in capsys.readouterr().out

    def test_log(self, git_repo, config_file, capsys):
        code = main(["--config", str(config_file), "--repo", git_repo.working_dir, "log", git_repo.working_dir])
        assert code == 0
        assert "Initial commit" in capsys.readouterr().out

    def test_hooks_apply_and_remove(self, config_file, mock_config):
        assert main(["--config", str(config_file), "hooks", "apply"]) == 0
        with open(mock_config["settings_path"]) as f:
            assert "hooks" in json.load(f)

        assert main(["--config", str(config_file), "hooks", "remove"]) == 0
        with open(mock_config["settings_path"]) as f:
            assert json.load(f) == {}

    def test_not_a_repository(self, temp_dir, config_file, capsys):
        code = main(["--config", str(config_file), "--repo", str(temp_dir), "worktrees"])
        assert code == 1
        assert "Error" in capsys.readouterr().out

    def test_bad_config(self, temp_dir, capsys):
        path = temp_dir / "bad.json"
        path.write_text("{broken")
        assert main(["--config", str(path), "sessions"]) == 1

    def test_hook_handler_never_fails(self, config_file, monkeypatch):
        import io
        monkeypatch.setattr("sys.stdin", io.StringIO("garbage"))
        assert main(["--config", str(config_file), "hook-handler"]) == 0
