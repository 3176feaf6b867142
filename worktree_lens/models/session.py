"""Agent session models."""
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


class SessionState(Enum):
    """State declared by a session status record."""
    WORKING = "working"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    WAITING_FOR_INPUT = "waiting_for_input"
    IDLE = "idle"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "SessionState":
        """Map a declared state string to a state; anything else, including other casings, is UNKNOWN."""
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.UNKNOWN

    @property
    def is_waiting(self) -> bool:
        """True when the session is blocked on the user."""
        return self in (SessionState.WAITING_FOR_APPROVAL, SessionState.WAITING_FOR_INPUT)


@dataclass(frozen=True)
class StatusRecord:
    """A session status record as written by the hook handler."""
    session_id: str
    project_path: str
    state: str
    timestamp: int
    waiting_reason: Optional[str] = None
    last_tool: Optional[str] = None
    raw: str = ""
    filename: str = ""


@dataclass(frozen=True)
class ClaudeSession:
    """A classified agent session."""
    session_id: str
    project_path: str
    state: SessionState
    timestamp: int
    waiting_reason: Optional[str] = None
    last_tool: Optional[str] = None
    raw: str = ""  # Source payload, verbatim
    is_stale: bool = False
    stale_threshold: int = 0


@dataclass(frozen=True)
class WorktreeClaudeStatus:
    """Sessions attributed to one worktree."""
    active_sessions: Tuple[ClaudeSession, ...] = ()
    has_pending_input: bool = False

    @classmethod
    def empty(cls) -> "WorktreeClaudeStatus":
        return cls()

    @classmethod
    def from_sessions(cls, sessions: List[ClaudeSession]) -> "WorktreeClaudeStatus":
        """Aggregate, dropping stale sessions."""
        active = tuple(s for s in sessions if not s.is_stale)
        return cls(
            active_sessions=active,
            has_pending_input=any(s.state.is_waiting for s in active),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable result of one reconciliation pass."""
    sessions: Tuple[ClaudeSession, ...] = ()
    by_worktree: Dict[str, WorktreeClaudeStatus] = field(default_factory=dict)
    taken_at: int = 0
    generation: int = 0

    def status_for(self, worktree_path: str) -> WorktreeClaudeStatus:
        return self.by_worktree.get(worktree_path, WorktreeClaudeStatus.empty())

    @property
    def active_sessions(self) -> List[ClaudeSession]:
        return [s for s in self.sessions if not s.is_stale]


@dataclass(frozen=True)
class HooksConfig:
    """Whether our hooks are registered and the status directory exists."""
    configured: bool
    status_dir_exists: bool


@dataclass(frozen=True)
class StatusFileInfo:
    """One status record as seen by the debug view."""
    filename: str
    project_path: str
    state: str
    last_tool: Optional[str]
    timestamp: int
    age_seconds: int
    stale_threshold: int
    is_stale: bool


@dataclass(frozen=True)
class DebugInfo:
    """Snapshot of the status directory for troubleshooting hooks."""
    status_dir: str
    status_files: List[StatusFileInfo]
    hooks_configured: bool
    current_timestamp: int
