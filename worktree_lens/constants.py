"""Shared constants for worktree-lens."""

from dataclasses import dataclass
from typing import List


@dataclass
class ColumnDefinition:
    """Definition of a table column."""

    key: str
    label: str
    width: int = 0  # 0 means auto-width


# Unified column definitions for both CLI and TUI
COLUMNS: List[ColumnDefinition] = [
    ColumnDefinition("name", "Worktree", 24),
    ColumnDefinition("branch", "Branch", 24),
    ColumnDefinition("head", "Head", 9),
    ColumnDefinition("sync", "Sync", 10),
    ColumnDefinition("changes", "Changes", 14),
    ColumnDefinition("claude", "Claude", 12),
    ColumnDefinition("path", "Path", 0),
]


# Directory (under the home directory) where hook-written status records live
STATUS_DIR_NAME = ".worktree-lens-status"

# Marker identifying our entries in the agent's settings document
HOOK_COMMAND_MARKER = "worktree-lens hook-handler"
HOOKS_BACKUP_FILE_NAME = "hooks_backup.json"

# Hook events we register, with their matcher (None = no matcher)
HOOK_EVENTS = [
    ("SessionStart", None),
    ("PreToolUse", "*"),
    ("PostToolUse", "*"),
    ("PermissionRequest", None),
    ("Notification", None),
    ("Stop", None),
    ("SessionEnd", None),
]


# Staleness thresholds (seconds)
WAITING_STATE_STALE_THRESHOLD = 600
DEFAULT_TOOL_STALE_THRESHOLD = 60

TOOL_STALE_THRESHOLDS = {
    # Quick operations
    "TodoWrite": 10,
    "ExitPlanMode": 10,
    "EnterPlanMode": 10,
    # File I/O
    "Read": 30,
    "Write": 30,
    "Edit": 30,
    "Glob": 30,
    "Grep": 30,
    "NotebookEdit": 30,
    # System commands
    "Bash": 30,
    "KillShell": 30,
    # Network
    "WebFetch": 120,
    "WebSearch": 120,
    # Sub-agents
    "Task": 180,
    "TaskOutput": 180,
}

# Substring rules checked after exact tool names, in order
TOOL_STALE_SUBSTRINGS = [
    (("Playwright", "Browser"), 180),
    (("mcp", "MCP"), 120),
]


# Diff
DEFAULT_CONTEXT_LINES = 3
BINARY_SNIFF_BYTES = 8000

# Unmerged XY pairs in `git status --porcelain`
CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


# Status symbols
SYMBOL_CLEAN = "✓"
SYMBOL_MAIN_WORKTREE = "●"
SYMBOL_PENDING_INPUT = "⏳"
SYMBOL_WORKING = "⚙"


# Colors per session state (Rich/Textual color names)
SESSION_STATE_COLORS = {
    "working": "green",
    "waiting_for_approval": "yellow",
    "waiting_for_input": "yellow",
    "idle": "cyan",
    "unknown": "dim",
}


LEGEND_TEXT = """
Legend:
● = Main worktree         ✓ = Clean
M = Modified files        S = Staged files
U = Untracked files       C = Conflicted files
⚙ = Claude working        ⏳ = Claude waiting for you
"""
