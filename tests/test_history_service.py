"""Tests for paginated commit history."""

import pytest

from conftest import commit_file
from worktree_lens.exceptions import InvalidRequestError
from worktree_lens.services.git.repository import GitRepository
from worktree_lens.services.history_service import HistoryService


@pytest.fixture
def history_repo(git_repo):
    for i in range(1, 7):
        commit_file(git_repo, f"file{i}.txt", f"content {i}\n", f"Commit {i}")
    return git_repo


@pytest.fixture
def history():
    return HistoryService(GitRepository())


class TestHistoryService:
    """Paging through commits."""

    def test_newest_first(self, history_repo, history):
        page = history.get_page(history_repo.working_dir, 3)
        assert [c.summary for c in page] == ["Commit 6", "Commit 5", "Commit 4"]

    def test_pages_concatenate_to_one_request(self, history_repo, history):
        path = history_repo.working_dir
        combined = history.get_page(path, 2, 0) + history.get_page(path, 2, 2) + history.get_page(path, 3, 4)
        assert [c.hash for c in combined] == [c.hash for c in history.get_page(path, 7, 0)]
        assert len(combined) == 7

    def test_offset_past_end(self, history_repo, history):
        assert history.get_page(history_repo.working_dir, 5, 100) == []

    def test_iter_pages(self, history_repo, history):
        pages = list(history.iter_pages(history_repo.working_dir, 3))
        assert [len(p) for p in pages] == [3, 3, 1]

    @pytest.mark.parametrize("limit,offset", [(0, 0), (-1, 0), (5, -1)])
    def test_invalid_arguments(self, history_repo, history, limit, offset):
        with pytest.raises(InvalidRequestError):
            history.get_page(history_repo.working_dir, limit, offset)

    def test_commit_info_fields(self, history_repo, history):
        commit = history.get_page(history_repo.working_dir, 1)[0]
        assert commit.short_hash == commit.hash[:7]
        assert commit.author_name == "Test User"
        assert commit.author_email == "test@example.com"
        assert commit.timestamp > 0

    def test_commit_diff(self, history_repo, history):
        head = history.get_page(history_repo.working_dir, 1)[0]
        commit_diff = history.get_commit_diff(history_repo.working_dir, head.hash)
        assert [f.path for f in commit_diff.files] == ["file6.txt"]
