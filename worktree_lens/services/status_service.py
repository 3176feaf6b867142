"""Service for computing clean/dirty counts of worktrees"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union, TYPE_CHECKING

from worktree_lens.constants import CONFLICT_CODES
from worktree_lens.exceptions import BusyError, WorktreeLensError
from worktree_lens.models.worktree import WorktreeStatus
from worktree_lens.services.git.repository import GitRepository
from worktree_lens.utils.threading import get_optimal_worker_count
from worktree_lens.logging_config import get_logger

if TYPE_CHECKING:
    from worktree_lens.config import Config

logger = get_logger(__name__)

BUSY_RETRY_DELAY = 0.1


def parse_porcelain_status(output: str) -> WorktreeStatus:
    """Count entries of `git status --porcelain=v1 -z` output.

    Each entry is ``XY path``; X is the index status (staged changes),
    Y the working tree status (unstaged changes). A partially staged path
    counts once as staged and once as modified. Unmerged entries count
    only as conflicted.
    """
    modified = staged = untracked = conflicted = 0

    fields = output.split("\0")
    i = 0
    while i < len(fields):
        entry = fields[i]
        i += 1
        if len(entry) < 3:
            continue

        code = entry[:2]
        index_status = code[0]
        worktree_status = code[1]

        if code == "??":
            untracked += 1
            continue
        if code == "!!":
            continue

        # Renames and copies carry the source path as an extra field
        if index_status in "RC":
            i += 1

        if code in CONFLICT_CODES:
            conflicted += 1
            continue

        if index_status not in " ?":
            staged += 1
        if worktree_status not in " ?":
            modified += 1

    return WorktreeStatus.from_counts(
        modified=modified, staged=staged, untracked=untracked, conflicted=conflicted
    )


@dataclass(frozen=True)
class StatusResult:
    """Outcome of one worktree's status load."""
    path: str
    status: Optional[WorktreeStatus] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not None


class StatusService:
    """Service for determining worktree status."""

    def __init__(self, repository: GitRepository, config: Union["Config", dict, None] = None):
        """Initialize the service."""
        config = config or {}
        self.repository = repository
        self.busy_retries = config.get("busy_retries", 2)
        self.workers = config.get("workers", None)

    def get_status(self, worktree_path: str) -> WorktreeStatus:
        """Compute the status of one worktree.

        Retries a few times when the repository is locked by another git
        process; other errors propagate.
        """
        attempt = 0
        while True:
            try:
                output = self.repository.read_index_status(worktree_path)
                return parse_porcelain_status(output)
            except BusyError:
                if attempt >= self.busy_retries:
                    raise
                attempt += 1
                logger.debug(f"Repository busy for {worktree_path}, retry {attempt}/{self.busy_retries}")
                time.sleep(BUSY_RETRY_DELAY * attempt)

    def get_statuses(self, worktree_paths: Iterable[str]) -> Dict[str, StatusResult]:
        """Compute statuses for many worktrees in parallel.

        A failure for one worktree is reported in its StatusResult and does
        not affect the others.
        """
        paths = list(worktree_paths)
        results: Dict[str, StatusResult] = {}
        if not paths:
            return results

        max_workers = get_optimal_worker_count(self.workers, jobs=len(paths))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(self.get_status, path): path for path in paths}
            for future in as_completed(futures):
                path = futures[future]
                results[path] = self._result_of(path, future)
        return results

    def _result_of(self, path: str, future) -> StatusResult:
        try:
            return StatusResult(path=path, status=future.result())
        except WorktreeLensError as e:
            logger.warning(f"Could not load status for {path}: {e}")
            return StatusResult(path=path, error=str(e))
        except Exception as e:
            logger.warning(f"Unexpected error loading status for {path}: {e}")
            return StatusResult(path=path, error=f"Unexpected error: {e}")
