"""Synchronous publish/subscribe between the engine and its front-ends."""

from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List

from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

# Topics
WORKTREES_CHANGED = "worktrees_changed"
STATUS_UPDATED = "status_updated"
STATUS_FAILED = "status_failed"
DIFF_LOADED = "diff_loaded"
HISTORY_LOADED = "history_loaded"
COMMIT_DIFF_LOADED = "commit_diff_loaded"
REQUEST_FAILED = "request_failed"
WORKTREE_CHANGED = "worktree_changed"
CLAUDE_STATUS_CHANGED = "claude_status_changed"

TOPICS = (
    WORKTREES_CHANGED,
    STATUS_UPDATED,
    STATUS_FAILED,
    DIFF_LOADED,
    HISTORY_LOADED,
    COMMIT_DIFF_LOADED,
    REQUEST_FAILED,
    WORKTREE_CHANGED,
    CLAUDE_STATUS_CHANGED,
)

Handler = Callable[[Any], None]


@dataclass(frozen=True)
class SelectionToken:
    """Identifies one selection; a newer selection makes older tokens stale."""
    sequence: int
    path: str


@dataclass(frozen=True)
class RequestResult:
    """Payload of diff_loaded, history_loaded and commit_diff_loaded."""
    token: SelectionToken
    value: Any


@dataclass(frozen=True)
class RequestFailure:
    """Payload of request_failed."""
    token: SelectionToken
    request: str
    error: str


@dataclass(frozen=True)
class StatusFailure:
    """Payload of status_failed."""
    path: str
    error: str


class EventBus:
    """Calls subscribers on the publishing thread.

    A failing subscriber is logged and does not stop delivery to the others.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``topic``. Returns an unsubscribe function."""
        if topic not in TOPICS:
            raise ValueError(f"Unknown topic: {topic}")
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe():
            with self._lock:
                handlers = self._handlers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers.get(topic, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Subscriber for {topic} failed: {e}")
