"""Per-root debouncing of file-system change notifications.

Each watched root moves Idle -> PendingEmit on its first event and back
to Idle when its timer fires, emitting one coalesced signal. Further
events while pending re-arm the timer (debounce, not throttle), bounded
by an optional maximum wait measured from the first event of the burst.
"""

import threading
import time
from enum import Enum
from threading import Lock
from typing import Callable, Dict, List, Optional

from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)


class DebounceState(Enum):
    IDLE = "idle"
    PENDING_EMIT = "pending_emit"


class TimerHandle:
    """Cancellable handle returned by a scheduler."""

    def cancel(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class Scheduler:
    """Source of time and delayed callbacks."""

    def now(self) -> float:  # pragma: no cover - interface
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:  # pragma: no cover
        raise NotImplementedError


class _ThreadingTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """Scheduler backed by ``threading.Timer`` and the monotonic clock."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay), callback)
        timer.daemon = True
        timer.name = "debounce-timer"
        timer.start()
        return _ThreadingTimerHandle(timer)


class _Pending:
    __slots__ = ("first_event", "handle", "sequence", "events")

    def __init__(self, first_event: float):
        self.first_event = first_event
        self.handle: Optional[TimerHandle] = None
        self.sequence = 0
        self.events = 0


class ChangeDebouncer:
    """Coalesces bursts of events per root into one callback per burst."""

    def __init__(
        self,
        window: float,
        callback: Callable[[str], None],
        scheduler: Optional[Scheduler] = None,
        max_wait: Optional[float] = None,
        name: str = "debouncer",
    ):
        """Initialize the debouncer.

        Args:
            window: Quiet period (seconds) required before emitting
            callback: Called with the root once per burst
            scheduler: Timer source; defaults to ThreadingScheduler
            max_wait: Upper bound (seconds) from first event to emission
            name: Label used in log messages
        """
        if window <= 0:
            raise ValueError(f"window must be positive, got {window}")
        if max_wait is not None and max_wait < window:
            raise ValueError(f"max_wait ({max_wait}) must be at least window ({window})")

        self.window = window
        self.max_wait = max_wait
        self.callback = callback
        self.scheduler = scheduler or ThreadingScheduler()
        self.name = name
        self._pending: Dict[str, _Pending] = {}
        self._lock = Lock()
        self._closed = False

    def notify(self, root: str) -> None:
        """Record a raw event for ``root``."""
        with self._lock:
            if self._closed:
                return
            now = self.scheduler.now()
            pending = self._pending.get(root)
            if pending is None:
                pending = _Pending(first_event=now)
                self._pending[root] = pending
            elif pending.handle is not None:
                pending.handle.cancel()

            delay = self.window
            if self.max_wait is not None:
                delay = min(delay, max(0.0, pending.first_event + self.max_wait - now))

            pending.sequence += 1
            pending.events += 1
            sequence = pending.sequence
            pending.handle = self.scheduler.call_later(delay, lambda: self._fire(root, sequence))

    def _fire(self, root: str, sequence: int) -> None:
        with self._lock:
            pending = self._pending.get(root)
            # A cancelled timer may still run if it raced with notify/discard
            if pending is None or pending.sequence != sequence:
                return
            del self._pending[root]
            events = pending.events

        logger.debug(f"[{self.name}] {root}: {events} event(s) coalesced")
        try:
            self.callback(root)
        except Exception as e:
            logger.error(f"[{self.name}] change callback failed for {root}: {e}")

    def discard(self, root: str) -> bool:
        """Cancel a pending emission for ``root``.

        Returns:
            True if an emission was pending and is now cancelled
        """
        with self._lock:
            pending = self._pending.pop(root, None)
        if pending is None:
            return False
        if pending.handle is not None:
            pending.handle.cancel()
        logger.debug(f"[{self.name}] cancelled pending signal for {root}")
        return True

    def state(self, root: str) -> DebounceState:
        with self._lock:
            return DebounceState.PENDING_EMIT if root in self._pending else DebounceState.IDLE

    def pending_roots(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def close(self) -> None:
        """Cancel every pending emission and ignore later events."""
        with self._lock:
            self._closed = True
            pending = list(self._pending.values())
            self._pending.clear()
        for entry in pending:
            if entry.handle is not None:
                entry.handle.cancel()
