"""Data models for worktree-lens."""

from .worktree import BranchInfo, HeadInfo, PruneResult, UpstreamInfo, Worktree, WorktreeStatus
from .diff import (
    CommitDiff,
    CommitInfo,
    DiffHunk,
    DiffLine,
    DiffLineKind,
    DiffStats,
    FileDiff,
    FileStatus,
    WorkingDiff,
)
from .session import (
    ClaudeSession,
    DebugInfo,
    HooksConfig,
    SessionSnapshot,
    SessionState,
    StatusFileInfo,
    StatusRecord,
    WorktreeClaudeStatus,
)

__all__ = [
    "BranchInfo",
    "HeadInfo",
    "PruneResult",
    "UpstreamInfo",
    "Worktree",
    "WorktreeStatus",
    "CommitDiff",
    "CommitInfo",
    "DiffHunk",
    "DiffLine",
    "DiffLineKind",
    "DiffStats",
    "FileDiff",
    "FileStatus",
    "WorkingDiff",
    "ClaudeSession",
    "DebugInfo",
    "HooksConfig",
    "SessionSnapshot",
    "SessionState",
    "StatusFileInfo",
    "StatusRecord",
    "WorktreeClaudeStatus",
]
