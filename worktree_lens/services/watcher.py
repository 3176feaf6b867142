"""File-system watching for worktrees and the session status directory."""

import os
import queue
from threading import Lock
from typing import Dict, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from worktree_lens.services.debouncer import ChangeDebouncer, Scheduler
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

# Churn inside the object store and reflogs never changes what we show
IGNORED_DIR_PARTS = (
    os.sep + ".git" + os.sep + "objects" + os.sep,
    os.sep + ".git" + os.sep + "logs" + os.sep,
)


def is_relevant_path(path: str) -> bool:
    """Filter out raw events that cannot change status or diffs."""
    if not path:
        return False
    if path.endswith(".lock"):
        return False
    normalized = path if path.endswith(os.sep) else path + os.sep
    return not any(part in normalized for part in IGNORED_DIR_PARTS)


class _RootHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events for one root to the watcher."""

    def __init__(self, watcher: "FileWatcher", root: str):
        super().__init__()
        self.watcher = watcher
        self.root = root

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write"):
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(is_relevant_path(os.fsdecode(p)) for p in paths if p):
            self.watcher.raw_event(self.root)


class FileWatcher:
    """Watches roots recursively and publishes coalesced change events.

    Raw watchdog events pass through a short-window debouncer; each
    coalesced burst puts the root path on ``events`` (a ``queue.Queue``).
    """

    def __init__(
        self,
        window: float = 0.05,
        scheduler: Optional[Scheduler] = None,
        recursive: bool = True,
        observer=None,
    ):
        self.recursive = recursive
        self.events: "queue.Queue[str]" = queue.Queue()
        self._debouncer = ChangeDebouncer(window, self.events.put, scheduler=scheduler, name="watcher")
        self._observer = observer if observer is not None else Observer()
        self._watches: Dict[str, object] = {}
        self._lock = Lock()
        self._started = False

    def start(self) -> None:
        with self._lock:
            if not self._started:
                self._observer.start()
                self._started = True

    def watch(self, paths: Iterable[str]) -> List[str]:
        """Start watching ``paths``; missing directories are skipped.

        Returns:
            The roots actually watched by this call
        """
        self.start()
        added = []
        for path in paths:
            with self._lock:
                if path in self._watches:
                    continue
            if not os.path.isdir(path):
                logger.warning(f"Not watching {path}: not a directory")
                continue
            try:
                watch = self._observer.schedule(_RootHandler(self, path), path, recursive=self.recursive)
            except OSError as e:
                logger.warning(f"Failed to watch {path}: {e}")
                continue
            with self._lock:
                self._watches[path] = watch
            added.append(path)
            logger.debug(f"Watching {path}")
        return added

    def unwatch(self, paths: Iterable[str]) -> None:
        """Stop watching ``paths`` and drop any pending signal for them."""
        for path in paths:
            with self._lock:
                watch = self._watches.pop(path, None)
            self._debouncer.discard(path)
            if watch is None:
                continue
            try:
                self._observer.unschedule(watch)
            except (KeyError, ValueError) as e:
                logger.debug(f"Unschedule of {path} failed: {e}")
            logger.debug(f"Stopped watching {path}")

    def watched(self) -> List[str]:
        with self._lock:
            return list(self._watches)

    def raw_event(self, root: str) -> None:
        """Feed one raw event for ``root`` (called from the observer thread)."""
        with self._lock:
            if root not in self._watches:
                return
        self._debouncer.notify(root)

    def stop(self) -> None:
        self._debouncer.close()
        with self._lock:
            started = self._started
            self._started = False
            self._watches.clear()
        if started:
            self._observer.stop()
            self._observer.join(timeout=2)
