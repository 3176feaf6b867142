"""Core orchestration for worktree-lens."""

from .engine import WorktreeEngine

__all__ = ["WorktreeEngine"]
