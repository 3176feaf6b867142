"""Worktree row formatting utilities."""

from typing import Optional

from worktree_lens.constants import SYMBOL_CLEAN, SYMBOL_MAIN_WORKTREE
from worktree_lens.models.worktree import HeadInfo, UpstreamInfo, Worktree, WorktreeStatus


def format_worktree_name(worktree: Worktree) -> str:
    """
    Format the worktree name with a marker for the main worktree.

    Args:
        worktree: Worktree to format

    Returns:
        Name prefixed with the main-worktree symbol, or indented to align
    """
    prefix = f"{SYMBOL_MAIN_WORKTREE} " if worktree.is_main else "  "
    return f"{prefix}{worktree.name}"


def format_branch(head: HeadInfo) -> str:
    """Branch name, or the short commit for a detached HEAD."""
    if head.branch is not None:
        return head.branch
    if head.commit_sha:
        return f"(detached {head.commit_sha[:7]})"
    return "(detached)"


def format_sync(upstream: Optional[UpstreamInfo]) -> str:
    """
    Format ahead/behind counts against the upstream branch.

    Returns:
        "↑2 ↓1", "synced", or "-" when there is no upstream
    """
    if upstream is None:
        return "-"
    parts = []
    if upstream.ahead:
        parts.append(f"↑{upstream.ahead}")
    if upstream.behind:
        parts.append(f"↓{upstream.behind}")
    return " ".join(parts) if parts else "synced"


def format_changes(status: Optional[WorktreeStatus], error: Optional[str] = None) -> str:
    """
    Format dirty counts as compact letters.

    Args:
        status: Loaded status, or None while still loading
        error: Load failure message, if any

    Returns:
        e.g. "M2 S1 U3", the clean symbol, "failed" or "..."
    """
    if error:
        return "failed"
    if status is None:
        return "..."
    if status.is_clean:
        return SYMBOL_CLEAN
    parts = []
    for letter, count in (
        ("M", status.modified),
        ("S", status.staged),
        ("U", status.untracked),
        ("C", status.conflicted),
    ):
        if count:
            parts.append(f"{letter}{count}")
    return " ".join(parts)


def get_changes_style(status: Optional[WorktreeStatus], error: Optional[str] = None) -> str:
    """Rich style for the changes column."""
    if error:
        return "red"
    if status is None:
        return "dim"
    if status.conflicted:
        return "bold red"
    return "green" if status.is_clean else "yellow"
