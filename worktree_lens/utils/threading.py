"""Worker pool sizing and background threads for worktree-lens."""

import os
import sys
import threading
from typing import Any, Callable, Dict, Optional

# git subprocesses spend most of their time blocked on the filesystem
GIL_POOL_CAP = 32
FREE_THREADED_POOL_CAP = 64


def is_free_threading_enabled() -> bool:
    """Whether the interpreter runs without the GIL (3.13t and later)."""
    gil_check = getattr(sys, "_is_gil_enabled", None)
    if gil_check is None:
        return False
    return not gil_check()


def get_optimal_worker_count(user_specified: Optional[int] = None, jobs: Optional[int] = None) -> int:
    """Pool size for status, diff and history loads.

    Args:
        user_specified: ``workers`` from config or ``--workers``; wins when positive
        jobs: Number of loads about to be queued, if known; caps the pool

    Returns:
        At least 1 worker
    """
    if user_specified is not None and user_specified > 0:
        workers = user_specified
    else:
        cpus = os.cpu_count() or 1
        if is_free_threading_enabled():
            workers = min(FREE_THREADED_POOL_CAP, cpus * 2)
        else:
            workers = min(GIL_POOL_CAP, cpus + 4)
    if jobs is not None:
        workers = min(workers, max(1, jobs))
    return max(1, workers)


def start_daemon_thread(target: Callable[[], Any], name: str) -> threading.Thread:
    """Run ``target`` on a named daemon thread so it never blocks exit."""
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
    return thread


def get_threading_info() -> Dict[str, Any]:
    """Interpreter and pool details printed by ``--debug``."""
    version = sys.version_info
    return {
        "python_version": f"{version.major}.{version.minor}.{version.micro}",
        "cpu_count": os.cpu_count() or 1,
        "free_threading": is_free_threading_enabled(),
        "optimal_workers": get_optimal_worker_count(),
        "background_threads": sorted(t.name for t in threading.enumerate() if t.daemon),
    }
