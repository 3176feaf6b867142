"""Worktree data models."""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class UpstreamInfo:
    """Upstream tracking branch with ahead/behind counts."""

    remote_branch: str
    ahead: int
    behind: int


@dataclass(frozen=True)
class HeadInfo:
    """What a worktree's HEAD points at."""

    branch: Optional[str]  # None = detached HEAD
    commit_sha: str
    commit_message: str
    upstream: Optional[UpstreamInfo] = None

    @property
    def is_detached(self) -> bool:
        return self.branch is None


@dataclass(frozen=True)
class WorktreeStatus:
    """Clean/dirty counts for one worktree.

    Use ``from_counts`` so that ``is_clean`` always agrees with the counts.
    """

    is_clean: bool
    modified: int
    staged: int
    untracked: int
    conflicted: int

    @classmethod
    def from_counts(
        cls, modified: int = 0, staged: int = 0, untracked: int = 0, conflicted: int = 0
    ) -> "WorktreeStatus":
        total = modified + staged + untracked + conflicted
        return cls(
            is_clean=total == 0,
            modified=modified,
            staged=staged,
            untracked=untracked,
            conflicted=conflicted,
        )

    @property
    def total(self) -> int:
        return self.modified + self.staged + self.untracked + self.conflicted


@dataclass(frozen=True)
class Worktree:
    """A working copy of the repository, identified by its absolute path."""

    path: str
    name: str
    is_main: bool
    head: HeadInfo
    status: Optional[WorktreeStatus] = None  # Filled in by background loads
    last_commit_timestamp: int = 0
    is_orphaned: bool = False  # Directory missing?
    status_error: Optional[str] = None  # Set when the status load failed

    def with_status(self, status: WorktreeStatus) -> "Worktree":
        """Copy of this worktree carrying a freshly loaded status."""
        return replace(self, status=status, status_error=None)

    def with_status_error(self, error: str) -> "Worktree":
        """Copy of this worktree marked as failed to load."""
        return replace(self, status=None, status_error=error)

    def __str__(self) -> str:
        branch = self.head.branch or f"(detached {self.head.commit_sha[:7]})"
        main_marker = " (main)" if self.is_main else ""
        state = "orphaned" if self.is_orphaned else "active"
        return f"{branch} @ {self.path}{main_marker} [{state}]"


@dataclass(frozen=True)
class BranchInfo:
    """A branch that can be checked out into a new worktree."""

    name: str
    is_remote: bool
    is_checked_out: bool


@dataclass
class PruneResult:
    """Outcome of pruning stale worktree metadata."""

    pruned_count: int
    messages: list
