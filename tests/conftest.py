"""Pytest fixtures for worktree-lens tests"""
import tempfile
from pathlib import Path
import pytest
import git

from worktree_lens.config import Config
from worktree_lens.services.debouncer import Scheduler, TimerHandle


class ManualTimer(TimerHandle):
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler driven by the test: time only moves on ``advance``."""

    def __init__(self, start=0.0):
        self.time = start
        self.timers = []

    def now(self):
        return self.time

    def call_later(self, delay, callback):
        timer = ManualTimer(self.time + delay, callback)
        self.timers.append(timer)
        return timer

    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds):
        """Move time forward, firing due timers in order."""
        target = self.time + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.time = timer.when
            timer.callback()
        self.timers = [t for t in self.timers if not t.cancelled]
        self.time = target


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def mock_config(temp_dir):
    """Create a configuration dictionary pointing at temporary locations."""
    return {
        'verbose': False,
        'debug': False,
        'status_dir': str(temp_dir / "status"),
        'settings_path': str(temp_dir / "claude" / "settings.json"),
        'claude_projects_dir': str(temp_dir / "claude" / "projects"),
        'transcript_fallback': False,
        'workers': 2,
        'busy_retries': 0,
    }


@pytest.fixture
def config(mock_config):
    return Config.from_dict(mock_config)


def commit_file(repo, name, content, message=None):
    """Write ``name`` in the repo's working tree and commit it."""
    path = Path(repo.working_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    return repo.index.commit(message or f"Update {name}")


@pytest.fixture
def git_repo(temp_dir):
    """Create a real Git repository for testing."""
    repo_path = temp_dir / "test_repo"
    repo_path.mkdir()

    # Initialize repository
    repo = git.Repo.init(repo_path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    # Create initial commit on main branch
    test_file = repo_path / "README.md"
    test_file.write_text("# Test Repository\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")

    # Rename master to main if needed
    try:
        repo.git.branch('-M', 'main')
    except git.exc.GitCommandError:
        pass

    yield repo

    # Cleanup
    repo.close()


@pytest.fixture
def git_repo_with_worktrees(git_repo, temp_dir):
    """Repository with one linked worktree on branch ``feature``."""
    worktree_path = temp_dir / "feature-wt"
    git_repo.git.worktree("add", "-b", "feature", str(worktree_path))

    feature_repo = git.Repo(worktree_path)
    commit_file(feature_repo, "feature.txt", "Feature content\n", "Add feature")
    feature_repo.close()

    yield git_repo, worktree_path
