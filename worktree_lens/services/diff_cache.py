"""In-memory cache of working-directory diffs, keyed by worktree path."""

from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

from worktree_lens.models.diff import WorkingDiff
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Entry:
    diff: WorkingDiff
    generation: int


class WorkingDiffCache:
    """Last computed WorkingDiff per worktree.

    Entries are only ever replaced whole. Each path has a generation
    counter: a computation takes a token with ``begin`` and its result is
    stored only if no invalidation happened in between, so a slow result
    can never overwrite a fresher one.
    """

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}
        self._generations: Dict[str, int] = {}
        self._lock = Lock()  # Held only for dict access, never during computation

    def get(self, path: str) -> Optional[WorkingDiff]:
        """Cached diff for ``path``, or None when absent or invalidated."""
        with self._lock:
            entry = self._entries.get(path)
        return entry.diff if entry else None

    def begin(self, path: str) -> int:
        """Reserve a token for a computation about to start."""
        with self._lock:
            return self._generations.get(path, 0)

    def store(self, path: str, token: int, diff: WorkingDiff) -> bool:
        """Store a computed diff if ``token`` is still current.

        Returns:
            True if stored, False if the result was superseded
        """
        with self._lock:
            if self._generations.get(path, 0) != token:
                logger.debug(f"Discarding superseded working diff for {path}")
                return False
            # Bump so a second computation from the same token cannot replace this one
            self._generations[path] = token + 1
            self._entries[path] = _Entry(diff=diff, generation=token + 1)
        return True

    def invalidate(self, path: str) -> None:
        """Drop the entry and supersede in-flight computations for ``path``."""
        with self._lock:
            self._generations[path] = self._generations.get(path, 0) + 1
            dropped = self._entries.pop(path, None)
        if dropped is not None:
            logger.debug(f"Invalidated working diff for {path}")

    def invalidate_all(self) -> None:
        with self._lock:
            for path in set(self._generations) | set(self._entries):
                self._generations[path] = self._generations.get(path, 0) + 1
            self._entries.clear()

    def get_or_compute(
        self, path: str, compute: Callable[[str], WorkingDiff], force: bool = False
    ) -> WorkingDiff:
        """Return the cached diff, computing (and storing) it when missing.

        Args:
            path: Worktree path
            compute: Function producing a fresh WorkingDiff for ``path``
            force: Invalidate first and recompute

        Returns:
            The cached value, or the freshly computed one. A computation that
            lost a race still returns its own result but is not stored.
        """
        if force:
            self.invalidate(path)
        else:
            cached = self.get(path)
            if cached is not None:
                return cached

        token = self.begin(path)
        diff = compute(path)
        self.store(path, token, diff)
        return diff

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
