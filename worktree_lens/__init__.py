"""
worktree-lens - Worktree state, diff and agent session tracking for git repositories
"""

from .__version__ import __version__
from .core import WorktreeEngine
from .cli.main import main

__all__ = ["WorktreeEngine", "main", "__version__"]
