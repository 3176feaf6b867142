"""Git-related services for worktree-lens."""

from .repository import GitRepository, open_repo, translate_git_error
from .worktrees import WorktreeService, WorktreeEntry, parse_worktree_porcelain

__all__ = [
    "GitRepository",
    "open_repo",
    "translate_git_error",
    "WorktreeService",
    "WorktreeEntry",
    "parse_worktree_porcelain",
]
