"""Paginated commit history"""

from typing import Iterator, List

from worktree_lens.exceptions import InvalidRequestError
from worktree_lens.models.diff import CommitDiff, CommitInfo
from worktree_lens.services.git.repository import GitRepository
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)


class HistoryService:
    """Pages through a worktree's commit log.

    Order is git's own (``--date-order``) and is never rearranged here, so
    consecutive pages over an unchanged HEAD concatenate to the same
    sequence as one larger request. A commit landing mid-pagination can
    shift offsets; callers re-read from offset 0 after a change signal.
    """

    def __init__(self, repository: GitRepository):
        self.repository = repository

    def get_page(self, worktree_path: str, limit: int, offset: int = 0) -> List[CommitInfo]:
        """Get up to ``limit`` commits starting ``offset`` commits below HEAD."""
        if limit <= 0:
            raise InvalidRequestError(f"Page size must be positive, got {limit}")
        if offset < 0:
            raise InvalidRequestError(f"Page offset must not be negative, got {offset}")

        commits = self.repository.walk_history(worktree_path, offset=offset, limit=limit)
        logger.debug(f"History page for {worktree_path}: offset={offset} limit={limit} -> {len(commits)}")
        return commits

    def iter_pages(self, worktree_path: str, page_size: int) -> Iterator[List[CommitInfo]]:
        """Yield pages until history is exhausted."""
        offset = 0
        while True:
            page = self.get_page(worktree_path, page_size, offset)
            if page:
                yield page
            if len(page) < page_size:
                return
            offset += len(page)

    def get_commit_diff(self, worktree_path: str, sha: str) -> CommitDiff:
        """Changes introduced by one commit."""
        return self.repository.read_commit_diff(worktree_path, sha)
