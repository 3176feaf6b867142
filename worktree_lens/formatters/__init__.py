"""Formatting utilities for worktree-lens.

This package provides the formatting functions shared by the CLI and the
terminal viewer, organized into logical modules:
- date: Date and age formatting
- worktree: Worktree name, branch, sync and changes formatting
- session: Agent session formatting
- diff: Diff and file rendering
"""

# Date formatters
from .date import format_timestamp, format_age

# Worktree formatters
from .worktree import (
    format_worktree_name,
    format_branch,
    format_sync,
    format_changes,
    get_changes_style,
)

# Session formatters
from .session import format_session_state, format_claude_status

# Diff formatters
from .diff import (
    format_file_header,
    render_file_diff,
    render_file_diffs,
    format_diff_stats,
)

__all__ = [
    # Date
    "format_timestamp",
    "format_age",
    # Worktree
    "format_worktree_name",
    "format_branch",
    "format_sync",
    "format_changes",
    "get_changes_style",
    # Session
    "format_session_state",
    "format_claude_status",
    # Diff
    "format_file_header",
    "render_file_diff",
    "render_file_diffs",
    "format_diff_stats",
]
