"""Session status reconciliation.

Rebuilds the per-worktree session model from the status directory on a
timer and on demand. Every pass builds a complete new SessionSnapshot and
swaps it in; readers always see either the old or the new snapshot, never
a partially built one.
"""

import os
import threading
import time
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Set, Union, TYPE_CHECKING

from worktree_lens.constants import (
    DEFAULT_TOOL_STALE_THRESHOLD,
    TOOL_STALE_SUBSTRINGS,
    TOOL_STALE_THRESHOLDS,
    WAITING_STATE_STALE_THRESHOLD,
)
from worktree_lens.exceptions import WorktreeLensError
from worktree_lens.models.session import (
    ClaudeSession,
    DebugInfo,
    SessionSnapshot,
    SessionState,
    StatusFileInfo,
    StatusRecord,
    WorktreeClaudeStatus,
)
from worktree_lens.services.session_store import StatusRecordStore
from worktree_lens.services.transcript_fallback import TranscriptFallback
from worktree_lens.utils.threading import start_daemon_thread
from worktree_lens.logging_config import get_logger

if TYPE_CHECKING:
    from worktree_lens.config import Config

logger = get_logger(__name__)

SnapshotListener = Callable[[SessionSnapshot], None]


def normalize_path(path: str) -> str:
    """Canonical form used to match session project paths against worktrees."""
    if not path:
        return ""
    resolved = os.path.realpath(os.path.expanduser(path))
    return resolved.rstrip(os.sep) or os.sep


def stale_threshold_for_tool(tool: Optional[str]) -> int:
    """Seconds without updates after which a working session is presumed dead.

    Long-running tools (sub-agents, browsers, network) legitimately go quiet
    for longer than quick file edits.
    """
    if not tool:
        return DEFAULT_TOOL_STALE_THRESHOLD
    if tool in TOOL_STALE_THRESHOLDS:
        return TOOL_STALE_THRESHOLDS[tool]
    for needles, threshold in TOOL_STALE_SUBSTRINGS:
        if any(needle in tool for needle in needles):
            return threshold
    return DEFAULT_TOOL_STALE_THRESHOLD


def stale_threshold_for(
    state: SessionState,
    tool: Optional[str] = None,
    waiting_threshold: int = WAITING_STATE_STALE_THRESHOLD,
    override: Optional[int] = None,
) -> int:
    """Staleness threshold for a session in ``state`` whose last tool was ``tool``."""
    if override is not None:
        return override
    if state in (SessionState.WAITING_FOR_APPROVAL, SessionState.WAITING_FOR_INPUT, SessionState.IDLE):
        return waiting_threshold
    return stale_threshold_for_tool(tool)


def is_stale(timestamp: int, now: int, threshold: int) -> bool:
    """A record is stale once it is strictly older than the threshold.

    Records without a timestamp are never considered stale.
    """
    return timestamp > 0 and (now - timestamp) > threshold


class SessionReconciler:
    """Turns status records into a per-worktree session snapshot."""

    def __init__(
        self,
        store: StatusRecordStore,
        config: Union["Config", dict, None] = None,
        clock: Callable[[], float] = time.time,
        fallback: Optional[TranscriptFallback] = None,
        worktree_paths: Iterable[str] = (),
    ):
        """Initialize the reconciler.

        Args:
            store: Where status records are read from
            config: Config object or dict (thresholds, poll interval)
            clock: Wall clock in seconds, matching record timestamps
            fallback: Transcript scanner used for worktrees without records
            worktree_paths: Initial set of known worktree paths
        """
        config = config or {}
        self.store = store
        self.clock = clock
        self.fallback = fallback
        self.poll_interval = config.get("poll_interval", 1.0)
        self.waiting_threshold = config.get("waiting_stale_threshold", WAITING_STATE_STALE_THRESHOLD)
        self.threshold_override = config.get("stale_threshold_override", None)

        self._worktree_paths: tuple = tuple(worktree_paths)
        self._snapshot = SessionSnapshot()
        self._listeners: List[SnapshotListener] = []
        self._listeners_lock = Lock()
        self._reconcile_lock = Lock()  # One pass at a time; readers never take it
        self._warned_nested: Set[str] = set()

        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- inputs ---------------------------------------------------------------

    def set_worktree_paths(self, paths: Iterable[str]) -> None:
        """Replace the set of worktrees sessions are matched against."""
        self._worktree_paths = tuple(paths)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # -- classification -----------------------------------------------------

    def threshold(self, state: SessionState, tool: Optional[str]) -> int:
        return stale_threshold_for(
            state, tool, waiting_threshold=self.waiting_threshold, override=self.threshold_override
        )

    def classify(self, record: StatusRecord, now: int) -> ClaudeSession:
        """Build a ClaudeSession from one record, flagging staleness."""
        state = SessionState.parse(record.state)
        threshold = self.threshold(state, record.last_tool)
        return ClaudeSession(
            session_id=record.session_id,
            project_path=record.project_path,
            state=state,
            timestamp=record.timestamp,
            waiting_reason=record.waiting_reason,
            last_tool=record.last_tool,
            raw=record.raw,
            is_stale=is_stale(record.timestamp, now, threshold),
            stale_threshold=threshold,
        )

    # -- reconciliation -----------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        """The latest complete snapshot."""
        return self._snapshot

    def status_for(self, worktree_path: str) -> WorktreeClaudeStatus:
        return self._snapshot.status_for(worktree_path)

    def all_statuses(self) -> Dict[str, WorktreeClaudeStatus]:
        return dict(self._snapshot.by_worktree)

    def reconcile(self, now: Optional[float] = None) -> SessionSnapshot:
        """Re-read every record and swap in a new snapshot."""
        with self._reconcile_lock:
            now_ts = int(now if now is not None else self.clock())
            records = self.store.list_records()
            sessions = [self.classify(record, now_ts) for record in records]

            grouped: Dict[str, List[ClaudeSession]] = {}
            for session in sessions:
                grouped.setdefault(normalize_path(session.project_path), []).append(session)

            worktree_paths = self._worktree_paths
            normalized = {path: normalize_path(path) for path in worktree_paths}
            self._warn_nested(grouped, set(normalized.values()))

            by_worktree: Dict[str, WorktreeClaudeStatus] = {}
            fallback_groups = None
            for path in worktree_paths:
                matched = grouped.get(normalized[path], [])
                if not matched and self.fallback is not None:
                    if fallback_groups is None:
                        fallback_groups = self._fallback_sessions(now_ts)
                    matched = fallback_groups.get(normalized[path], [])
                    sessions.extend(matched)
                by_worktree[path] = WorktreeClaudeStatus.from_sessions(matched)

            snapshot = SessionSnapshot(
                sessions=tuple(sorted(sessions, key=lambda s: s.timestamp, reverse=True)),
                by_worktree=by_worktree,
                taken_at=now_ts,
                generation=self._snapshot.generation + 1,
            )
            self._snapshot = snapshot

        logger.debug(
            f"Reconciled {len(sessions)} session(s) across {len(worktree_paths)} worktree(s), "
            f"generation {snapshot.generation}"
        )
        self._publish(snapshot)
        return snapshot

    def _fallback_sessions(self, now: int) -> Dict[str, List[ClaudeSession]]:
        groups: Dict[str, List[ClaudeSession]] = {}
        try:
            scanned = self.fallback.scan()
        except OSError as e:
            logger.warning(f"Transcript fallback failed: {e}")
            return groups

        for cwd, entries in scanned.items():
            key = normalize_path(cwd)
            for session_id, found in entries:
                threshold = self.threshold(found.state, found.last_tool)
                groups.setdefault(key, []).append(
                    ClaudeSession(
                        session_id=session_id,
                        project_path=cwd,
                        state=found.state,
                        timestamp=found.timestamp,
                        last_tool=found.last_tool,
                        is_stale=is_stale(found.timestamp, now, threshold),
                        stale_threshold=threshold,
                    )
                )
        return groups

    def _warn_nested(self, grouped: Dict[str, List[ClaudeSession]], worktrees: Set[str]) -> None:
        """Flag sessions running inside, but not at the root of, a worktree."""
        for session_path in grouped:
            if session_path in worktrees or session_path in self._warned_nested:
                continue
            owners = [wt for wt in worktrees if session_path.startswith(wt.rstrip(os.sep) + os.sep)]
            if owners:
                self._warned_nested.add(session_path)
                logger.warning(
                    f"Session path {session_path} is nested inside worktree(s) {sorted(owners)}; "
                    f"not attributing it (only exact matches are)"
                )

    def _publish(self, snapshot: SessionSnapshot) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Session snapshot listener failed: {e}")

    # -- user actions -------------------------------------------------------

    def delete_session(self, session_id: str) -> bool:
        """Delete a session's record (explicit user action) and reconcile."""
        removed = self.store.delete_record(session_id)
        self.reconcile()
        return removed

    def debug_info(self, hooks_configured: bool = False, now: Optional[float] = None) -> DebugInfo:
        """Every record with its age, threshold and staleness."""
        now_ts = int(now if now is not None else self.clock())
        files = []
        for record in self.store.list_records():
            session = self.classify(record, now_ts)
            files.append(
                StatusFileInfo(
                    filename=record.filename,
                    project_path=record.project_path,
                    state=record.state,
                    last_tool=record.last_tool,
                    timestamp=record.timestamp,
                    age_seconds=now_ts - record.timestamp if record.timestamp > 0 else 0,
                    stale_threshold=session.stale_threshold,
                    is_stale=session.is_stale,
                )
            )
        files.sort(key=lambda f: f.timestamp, reverse=True)
        return DebugInfo(
            status_dir=str(self.store.status_dir),
            status_files=files,
            hooks_configured=hooks_configured,
            current_timestamp=now_ts,
        )

    # -- background loop ----------------------------------------------------

    def start(self, interval: Optional[float] = None) -> None:
        """Start the periodic poll thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        if interval is not None:
            self.poll_interval = interval
        self._stop.clear()
        self._thread = start_daemon_thread(self._run, name="session-reconciler")
        logger.info(f"Session reconciler polling every {self.poll_interval}s")

    def request_refresh(self) -> None:
        """Wake the poll loop for an immediate pass."""
        self._wake.set()

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.reconcile()
            except (WorktreeLensError, OSError) as e:
                logger.warning(f"Reconciliation pass failed: {e}")
            except Exception as e:
                logger.error(f"Unexpected error in reconciliation pass: {e}")
            self._wake.wait(self.poll_interval)
            self._wake.clear()
