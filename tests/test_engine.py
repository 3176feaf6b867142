"""Tests for the engine: selection tokens, background loads and change signals."""

import threading
import time
from unittest.mock import Mock

import pytest

from conftest import commit_file

from worktree_lens.core import WorktreeEngine
from worktree_lens.exceptions import NotFoundError
from worktree_lens.models.diff import WorkingDiff
from worktree_lens.models.worktree import HeadInfo, Worktree
from worktree_lens.services.events import (
    CLAUDE_STATUS_CHANGED,
    COMMIT_DIFF_LOADED,
    DIFF_LOADED,
    HISTORY_LOADED,
    REQUEST_FAILED,
    STATUS_FAILED,
    STATUS_UPDATED,
    WORKTREE_CHANGED,
    WORKTREES_CHANGED,
)
from worktree_lens.services.git.repository import GitRepository
from worktree_lens.services.watcher import FileWatcher

TIMEOUT = 10


def make_worktree(path, is_main=False):
    head = HeadInfo(branch="main", commit_sha="a" * 40, commit_message="msg")
    return Worktree(path=path, name=path.rsplit("/", 1)[-1], is_main=is_main, head=head)


class Collector:
    """Subscriber that records payloads and signals after ``expected`` of them."""

    def __init__(self, expected=1):
        self.payloads = []
        self.expected = expected
        self.done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, payload):
        with self._lock:
            self.payloads.append(payload)
            if len(self.payloads) >= self.expected:
                self.done.set()

    def wait(self):
        assert self.done.wait(TIMEOUT), f"only got {len(self.payloads)} of {self.expected} events"
        return self.payloads


@pytest.fixture
def engine_factory(config, scheduler):
    engines = []

    def make(repo_path, **kwargs):
        kwargs.setdefault("scheduler", scheduler)
        engine = WorktreeEngine(str(repo_path), config, **kwargs)
        engines.append(engine)
        return engine

    yield make
    for engine in engines:
        engine.stop()


class TestSelection:
    """Results for superseded selections are never published."""

    def test_current_selection_result_published(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        received = Collector()
        engine.bus.subscribe(DIFF_LOADED, received)

        token = engine.select(git_repo.working_dir)
        engine.request_working_diff(token).result(timeout=TIMEOUT)

        payload = received.wait()[0]
        assert payload.token == token
        assert isinstance(payload.value, WorkingDiff)

    def test_stale_token_result_discarded(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        received = []
        engine.bus.subscribe(DIFF_LOADED, received.append)

        old = engine.select(git_repo.working_dir)
        new = engine.select(git_repo.working_dir)
        engine.request_working_diff(old).result(timeout=TIMEOUT)

        assert received == []
        assert not engine.is_current(old)
        assert engine.selection == new

    def test_selection_change_during_load(self, temp_dir, engine_factory):
        gate = threading.Event()
        repository = Mock(spec=GitRepository)

        def slow_diff(path):
            gate.wait(TIMEOUT)
            return WorkingDiff.build([], [])

        repository.read_working_tree_diff.side_effect = slow_diff
        engine = engine_factory(temp_dir, repository=repository)
        received = []
        engine.bus.subscribe(DIFF_LOADED, received.append)

        future = engine.request_working_diff(engine.select("/a"))
        engine.select("/b")
        gate.set()
        future.result(timeout=TIMEOUT)

        assert received == []

    def test_failure_published_for_current_selection(self, temp_dir, engine_factory):
        repository = Mock(spec=GitRepository)
        repository.read_working_tree_diff.side_effect = NotFoundError("worktree", "/gone")
        engine = engine_factory(temp_dir, repository=repository)
        failures = []
        engine.bus.subscribe(REQUEST_FAILED, failures.append)

        token = engine.select("/gone")
        engine.request_working_diff(token).result(timeout=TIMEOUT)

        assert len(failures) == 1
        assert failures[0].token == token
        assert failures[0].request == "working_diff"
        assert "not found" in failures[0].error

    def test_cached_diff_reused(self, temp_dir, engine_factory):
        repository = Mock(spec=GitRepository)
        repository.read_working_tree_diff.return_value = WorkingDiff.build([], [])
        engine = engine_factory(temp_dir, repository=repository)

        token = engine.select("/a")
        engine.request_working_diff(token).result(timeout=TIMEOUT)
        engine.request_working_diff(token).result(timeout=TIMEOUT)
        assert repository.read_working_tree_diff.call_count == 1

        engine.request_working_diff(token, force=True).result(timeout=TIMEOUT)
        assert repository.read_working_tree_diff.call_count == 2

    def test_history_page(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        received = []
        engine.bus.subscribe(HISTORY_LOADED, received.append)

        engine.request_history(engine.select(git_repo.working_dir), limit=5).result(timeout=TIMEOUT)

        assert [c.summary for c in received[0].value] == ["Initial commit"]

    def test_commit_diff(self, git_repo, engine_factory):
        commit = commit_file(git_repo, "notes.txt", "one\ntwo\n", "Add notes")
        engine = engine_factory(git_repo.working_dir)
        received = []
        engine.bus.subscribe(COMMIT_DIFF_LOADED, received.append)

        engine.request_commit_diff(engine.select(git_repo.working_dir), commit.hexsha).result(timeout=TIMEOUT)

        commit_diff = received[0].value
        assert commit_diff.commit.summary == "Add notes"
        assert [f.path for f in commit_diff.files] == ["notes.txt"]

    def test_unknown_commit_publishes_failure(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        failures = []
        engine.bus.subscribe(REQUEST_FAILED, failures.append)

        engine.request_commit_diff(engine.select(git_repo.working_dir), "deadbeef" * 5).result(timeout=TIMEOUT)

        assert failures[0].request == "commit_diff"


class TestWorktreeLoading:
    def test_load_publishes_list_then_statuses(self, git_repo_with_worktrees, engine_factory):
        git_repo, _ = git_repo_with_worktrees
        engine = engine_factory(git_repo.working_dir)
        lists = []
        statuses = Collector(expected=2)
        engine.bus.subscribe(WORKTREES_CHANGED, lists.append)
        engine.bus.subscribe(STATUS_UPDATED, statuses)

        worktrees = engine.load_worktrees()

        assert len(lists) == 1 and len(lists[0]) == 2
        updated = statuses.wait()
        assert all(w.status is not None and w.status.is_clean for w in updated)
        assert {w.path for w in updated} == {w.path for w in worktrees}
        assert all(w.status is not None for w in engine.worktrees)

    def test_status_failure_is_isolated(self, temp_dir, engine_factory):
        repository = Mock(spec=GitRepository)
        repository.list_worktrees.return_value = [make_worktree("/good", True), make_worktree("/bad")]

        def read(path):
            if path == "/bad":
                raise NotFoundError("worktree", path)
            return "?? new.txt\0"

        repository.read_index_status.side_effect = read
        engine = engine_factory(temp_dir, repository=repository)
        updated = Collector()
        failed = Collector()
        engine.bus.subscribe(STATUS_UPDATED, updated)
        engine.bus.subscribe(STATUS_FAILED, failed)

        engine.load_worktrees()

        assert updated.wait()[0].path == "/good"
        assert failed.wait()[0].path == "/bad"
        assert engine.get_worktree("/good").status.untracked == 1
        assert engine.get_worktree("/bad").status_error is not None

    def test_late_older_status_load_is_dropped(self, temp_dir, engine_factory):
        repository = Mock(spec=GitRepository)
        repository.list_worktrees.return_value = [make_worktree("/a", True)]
        first_started = threading.Event()
        release_first = threading.Event()
        calls = []

        def read(path):
            calls.append(path)
            if len(calls) == 1:
                first_started.set()
                release_first.wait(TIMEOUT)
                return " M a\0 M b\0"
            return ""

        repository.read_index_status.side_effect = read
        engine = engine_factory(temp_dir, repository=repository)
        engine.collect_worktrees(with_status=False)
        published = []
        engine.bus.subscribe(STATUS_UPDATED, published.append)

        older = engine.refresh_status("/a")
        assert first_started.wait(TIMEOUT)
        engine.refresh_status("/a").result(timeout=TIMEOUT)
        release_first.set()
        older.result(timeout=TIMEOUT)

        assert [w.status.is_clean for w in published] == [True]
        assert engine.get_worktree("/a").status.is_clean

    def test_collect_worktrees(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        worktrees = engine.collect_worktrees()
        assert len(worktrees) == 1
        assert worktrees[0].status.is_clean


class TestChangeSignals:
    """Debounced worktree_changed emission."""

    def test_burst_emits_one_change(self, git_repo, engine_factory, scheduler):
        engine = engine_factory(git_repo.working_dir)
        path = engine.collect_worktrees(with_status=False)[0].path
        engine.cache.get_or_compute(path, lambda p: WorkingDiff.build([], []))
        changes = []
        engine.bus.subscribe(WORKTREE_CHANGED, changes.append)

        for _ in range(5):
            engine.notify_change(path)
            scheduler.advance(0.1)
        assert changes == []

        scheduler.advance(1)

        assert changes == [path]
        assert engine.cache.get(path) is None

    def test_change_for_unknown_worktree_ignored(self, git_repo, engine_factory, scheduler):
        engine = engine_factory(git_repo.working_dir)
        changes = []
        engine.bus.subscribe(WORKTREE_CHANGED, changes.append)

        engine.notify_change("/not/a/worktree")
        scheduler.advance(1)

        assert changes == []

    def test_desired_roots_include_linked_git_dir(self, git_repo_with_worktrees, engine_factory):
        git_repo, worktree_path = git_repo_with_worktrees
        engine = engine_factory(git_repo.working_dir)
        worktrees = engine.collect_worktrees(with_status=False)
        linked = [w for w in worktrees if not w.is_main][0]

        roots = engine._desired_roots()

        targets = [target for root, target in roots.items() if root != linked.path]
        assert linked.path in roots
        assert targets.count(linked.path) == 1  # Its external git dir
        assert str(engine.record_store.status_dir) in roots

    def test_start_watching_watches_worktrees_and_status_dir(self, git_repo, engine_factory, scheduler):
        observer = Mock()
        watcher = FileWatcher(window=0.05, scheduler=scheduler, observer=observer)
        engine = engine_factory(git_repo.working_dir, watcher=watcher)
        path = engine.collect_worktrees(with_status=False)[0].path

        engine.start_watching()
        engine.start_watching()

        watched = watcher.watched()
        assert path in watched
        assert str(engine.record_store.status_dir) in watched
        assert len(watched) == len(set(watched))
        observer.start.assert_called_once()


class TestSessions:
    def test_status_change_published_once(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        path = engine.collect_worktrees(with_status=False)[0].path
        published = []
        engine.bus.subscribe(CLAUDE_STATUS_CHANGED, published.append)

        engine.record_store.write_record("s1", path, "waiting_for_input", int(time.time()))
        engine.refresh_sessions()
        engine.refresh_sessions()

        assert len(published) == 1
        assert engine.claude_status(path).has_pending_input is True

    def test_hooks_round_trip(self, git_repo, engine_factory):
        engine = engine_factory(git_repo.working_dir)
        assert engine.hooks_state().configured is False
        engine.apply_hooks()
        assert engine.hooks_state().configured is True
        assert engine.debug_info().hooks_configured is True
        assert engine.remove_hooks() is True
