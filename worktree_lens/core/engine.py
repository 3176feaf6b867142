"""Engine orchestration: worktree list, selection, background loads, watching."""

import os
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, Dict, List, Optional, Union

from worktree_lens.config import Config
from worktree_lens.exceptions import WorktreeLensError
from worktree_lens.models.session import DebugInfo, HooksConfig, SessionSnapshot, WorktreeClaudeStatus
from worktree_lens.models.worktree import BranchInfo, PruneResult, Worktree
from worktree_lens.services.debouncer import ChangeDebouncer, Scheduler, ThreadingScheduler
from worktree_lens.services.diff_cache import WorkingDiffCache
from worktree_lens.services.events import (
    CLAUDE_STATUS_CHANGED,
    COMMIT_DIFF_LOADED,
    DIFF_LOADED,
    HISTORY_LOADED,
    REQUEST_FAILED,
    STATUS_FAILED,
    STATUS_UPDATED,
    WORKTREE_CHANGED,
    WORKTREES_CHANGED,
    EventBus,
    RequestFailure,
    RequestResult,
    SelectionToken,
    StatusFailure,
)
from worktree_lens.services.git import GitRepository, WorktreeService
from worktree_lens.services.history_service import HistoryService
from worktree_lens.services.hooks_manager import HooksManager, SettingsStore
from worktree_lens.services.session_reconciler import SessionReconciler
from worktree_lens.services.session_store import StatusRecordStore
from worktree_lens.services.status_service import StatusService
from worktree_lens.services.transcript_fallback import TranscriptFallback
from worktree_lens.services.watcher import FileWatcher
from worktree_lens.utils.threading import get_optimal_worker_count, start_daemon_thread
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

# Watch-root target standing for the session status directory
STATUS_DIR_TARGET = "<status-dir>"


class WorktreeEngine:
    """Main class tying the services together for one repository.

    Front-ends subscribe to ``bus`` and call ``load_worktrees``, ``select``
    and the ``request_*`` methods. Background results are published only
    while the selection they were requested for is still current.
    """

    def __init__(
        self,
        repo_path: str,
        config: Union[Config, dict, None] = None,
        repository: Optional[GitRepository] = None,
        cache: Optional[WorkingDiffCache] = None,
        bus: Optional[EventBus] = None,
        scheduler: Optional[Scheduler] = None,
        watcher: Optional[FileWatcher] = None,
        reconciler: Optional[SessionReconciler] = None,
    ):
        """Initialize the engine.

        Args:
            repo_path: Path inside the repository (any of its worktrees)
            config: Configuration dict or Config object
            repository: Version-control collaborator
            cache: Working-diff cache shared with other consumers
            bus: Event bus results are published on
            scheduler: Timer source for the refresh debouncer
            watcher: File watcher; created on ``start_watching`` when omitted
            reconciler: Session reconciler; built from config when omitted
        """
        if config is None:
            config = Config()
        elif isinstance(config, dict):
            config = Config.from_dict(config)
        self.config = config
        self.repo_path = os.path.abspath(repo_path)

        self.repository = repository or GitRepository(context_lines=config.context_lines)
        self.cache = cache if cache is not None else WorkingDiffCache()
        self.bus = bus or EventBus()
        self.scheduler = scheduler or ThreadingScheduler()
        self.watcher = watcher

        self.status_service = StatusService(self.repository, config)
        self.history_service = HistoryService(self.repository)
        self.worktree_service = WorktreeService(self.repo_path)
        self.record_store = StatusRecordStore(config.status_dir)
        self.hooks = HooksManager(SettingsStore(config.settings_path), config.status_dir)

        if reconciler is None:
            fallback = TranscriptFallback(config.claude_projects_dir) if config.transcript_fallback else None
            reconciler = SessionReconciler(self.record_store, config, fallback=fallback)
        self.reconciler = reconciler
        self._claude_statuses: Dict[str, WorktreeClaudeStatus] = {}
        self.reconciler.subscribe(self._on_snapshot)

        self._executor = ThreadPoolExecutor(
            max_workers=get_optimal_worker_count(config.workers), thread_name_prefix="worktree-lens"
        )
        self._worktrees: List[Worktree] = []
        self._worktrees_lock = Lock()
        self._status_generations: Dict[str, int] = {}

        self._selection_lock = Lock()
        self._selection_counter = 0
        self._selection: Optional[SelectionToken] = None

        self._diff_debouncer = ChangeDebouncer(
            config.diff_debounce,
            self._on_worktree_changed,
            scheduler=self.scheduler,
            max_wait=config.debounce_max_wait,
            name="diff-refresh",
        )
        self._watch_roots: Dict[str, str] = {}
        self._watching = False
        self._stopped = threading.Event()
        self._consumer: Optional[threading.Thread] = None

    # -- worktrees ----------------------------------------------------------

    @property
    def worktrees(self) -> List[Worktree]:
        """Current worktree list (replaced wholesale on every update)."""
        return self._worktrees

    def get_worktree(self, path: str) -> Optional[Worktree]:
        for worktree in self._worktrees:
            if worktree.path == path:
                return worktree
        return None

    def load_worktrees(self) -> List[Worktree]:
        """Enumerate worktrees and start loading their statuses in the background."""
        worktrees = self.repository.list_worktrees(self.repo_path)
        with self._worktrees_lock:
            self._worktrees = list(worktrees)

        self.reconciler.set_worktree_paths([w.path for w in worktrees])
        logger.debug(f"Loaded {len(worktrees)} worktree(s) for {self.repo_path}")
        self.bus.publish(WORKTREES_CHANGED, list(worktrees))

        for worktree in worktrees:
            if not worktree.is_orphaned:
                self.refresh_status(worktree.path)
        if self._watching:
            self._sync_watches()
        return list(worktrees)

    def collect_worktrees(self, with_status: bool = True) -> List[Worktree]:
        """List worktrees and wait for their statuses (for one-shot commands).

        Args:
            with_status: Load statuses in parallel before returning

        Returns:
            Worktrees with ``status`` or ``status_error`` filled in
        """
        worktrees = self.repository.list_worktrees(self.repo_path)
        if with_status:
            results = self.status_service.get_statuses([w.path for w in worktrees if not w.is_orphaned])
            loaded = []
            for worktree in worktrees:
                result = results.get(worktree.path)
                if result is None:
                    loaded.append(worktree)
                elif result.ok:
                    loaded.append(worktree.with_status(result.status))
                else:
                    loaded.append(worktree.with_status_error(result.error))
            worktrees = loaded

        with self._worktrees_lock:
            self._worktrees = list(worktrees)
        self.reconciler.set_worktree_paths([w.path for w in worktrees])
        return list(worktrees)

    def _replace_worktree(
        self, path: str, update: Callable[[Worktree], Worktree], generation: Optional[int] = None
    ) -> Optional[Worktree]:
        """Swap in a new list with one worktree replaced.

        With ``generation``, the swap only happens while that status load is
        still the newest one submitted for ``path``.
        """
        with self._worktrees_lock:
            if generation is not None and self._status_generations.get(path) != generation:
                logger.debug(f"Dropping superseded status load {generation} for {path}")
                return None
            updated = None
            new_list = []
            for worktree in self._worktrees:
                if worktree.path == path:
                    updated = update(worktree)
                    new_list.append(updated)
                else:
                    new_list.append(worktree)
            self._worktrees = new_list
        return updated

    def _load_status(self, path: str, generation: int) -> None:
        try:
            status = self.status_service.get_status(path)
        except WorktreeLensError as e:
            self._status_failed(path, str(e), generation)
            return
        except Exception as e:
            logger.error(f"Unexpected error loading status for {path}: {e}")
            self._status_failed(path, f"Unexpected error: {e}", generation)
            return

        updated = self._replace_worktree(path, lambda w: w.with_status(status), generation)
        if updated is None:
            return
        self.bus.publish(STATUS_UPDATED, updated)

    def _status_failed(self, path: str, error: str, generation: int) -> None:
        logger.warning(f"Failed to load status for {path}: {error}")
        if self._replace_worktree(path, lambda w: w.with_status_error(error), generation) is not None:
            self.bus.publish(STATUS_FAILED, StatusFailure(path=path, error=error))

    def refresh_status(self, path: str) -> Future:
        """Reload one worktree's status in the background.

        Only the newest load for a path may publish; an older one finishing
        late is dropped.
        """
        with self._worktrees_lock:
            generation = self._status_generations.get(path, 0) + 1
            self._status_generations[path] = generation
        return self._executor.submit(self._load_status, path, generation)

    # -- selection and requests --------------------------------------------

    def select(self, path: str) -> SelectionToken:
        """Make ``path`` the selected worktree. Older tokens become stale."""
        with self._selection_lock:
            self._selection_counter += 1
            token = SelectionToken(sequence=self._selection_counter, path=path)
            self._selection = token
        logger.debug(f"Selected {path} (token {token.sequence})")
        return token

    @property
    def selection(self) -> Optional[SelectionToken]:
        return self._selection

    def is_current(self, token: SelectionToken) -> bool:
        return self._selection == token

    def _submit(self, token: SelectionToken, topic: str, request: str, work: Callable[[], object]) -> Future:
        def run():
            try:
                value = work()
            except WorktreeLensError as e:
                self._request_failed(token, request, str(e))
                return
            except Exception as e:
                logger.error(f"Unexpected error in {request} for {token.path}: {e}")
                self._request_failed(token, request, f"Unexpected error: {e}")
                return

            if not self.is_current(token):
                logger.debug(f"Discarding {request} result for stale selection {token.sequence}")
                return
            self.bus.publish(topic, RequestResult(token=token, value=value))

        return self._executor.submit(run)

    def _request_failed(self, token: SelectionToken, request: str, error: str) -> None:
        if not self.is_current(token):
            logger.debug(f"Discarding {request} failure for stale selection {token.sequence}: {error}")
            return
        logger.warning(f"{request} failed for {token.path}: {error}")
        self.bus.publish(REQUEST_FAILED, RequestFailure(token=token, request=request, error=error))

    def request_working_diff(self, token: SelectionToken, force: bool = False) -> Future:
        """Load the selection's working diff, from the cache when fresh."""
        return self._submit(
            token,
            DIFF_LOADED,
            "working_diff",
            lambda: self.cache.get_or_compute(token.path, self.repository.read_working_tree_diff, force=force),
        )

    def request_history(self, token: SelectionToken, limit: Optional[int] = None, offset: int = 0) -> Future:
        """Load one page of the selection's history."""
        if limit is None:
            limit = self.config.page_size
        return self._submit(
            token, HISTORY_LOADED, "history", lambda: self.history_service.get_page(token.path, limit, offset)
        )

    def request_commit_diff(self, token: SelectionToken, sha: str) -> Future:
        """Load the diff of one commit in the selection's history."""
        return self._submit(
            token, COMMIT_DIFF_LOADED, "commit_diff", lambda: self.history_service.get_commit_diff(token.path, sha)
        )

    # -- change notification ------------------------------------------------

    def start_watching(self) -> None:
        """Watch every worktree and the status directory; poll sessions."""
        if self._watching:
            return
        if self.watcher is None:
            self.watcher = FileWatcher(window=self.config.watcher_debounce)
        self.watcher.start()
        try:
            self.record_store.ensure_dir()
        except OSError as e:
            logger.warning(f"Cannot create status directory {self.record_store.status_dir}: {e}")

        self._watching = True
        self._stopped.clear()
        self._sync_watches()
        self._consumer = start_daemon_thread(self._consume_changes, name="change-consumer")
        self.reconciler.start(self.config.poll_interval)
        logger.info(f"Watching {len(self._watch_roots)} root(s)")

    def _desired_roots(self) -> Dict[str, str]:
        roots = {}
        for worktree in self._worktrees:
            if worktree.is_orphaned:
                continue
            roots[worktree.path] = worktree.path
            # A linked worktree's index and HEAD live outside its directory
            try:
                git_dir = self.repository.git_dir(worktree.path)
            except WorktreeLensError as e:
                logger.debug(f"No git dir for {worktree.path}: {e}")
                continue
            if not git_dir.startswith(worktree.path.rstrip(os.sep) + os.sep):
                roots[git_dir] = worktree.path
        roots[str(self.record_store.status_dir)] = STATUS_DIR_TARGET
        return roots

    def _sync_watches(self) -> None:
        desired = self._desired_roots()
        removed = [root for root in self._watch_roots if root not in desired]
        if removed:
            self.watcher.unwatch(removed)
            for root in removed:
                target = self._watch_roots.get(root)
                if target and target != STATUS_DIR_TARGET and target not in desired.values():
                    self._diff_debouncer.discard(target)
                    self.cache.invalidate(target)
        self._watch_roots = desired
        self.watcher.watch([root for root in desired if root not in self.watcher.watched()])

    def _consume_changes(self) -> None:
        while not self._stopped.is_set():
            try:
                root = self.watcher.events.get(timeout=0.2)
            except queue.Empty:
                continue
            target = self._watch_roots.get(root)
            if target is None:
                continue
            if target == STATUS_DIR_TARGET:
                self.reconciler.request_refresh()
            else:
                self._diff_debouncer.notify(target)

    def notify_change(self, worktree_path: str) -> None:
        """Feed a change for ``worktree_path`` into the refresh debouncer."""
        self._diff_debouncer.notify(worktree_path)

    def _on_worktree_changed(self, path: str) -> None:
        if self._stopped.is_set() or self.get_worktree(path) is None:
            return
        self.cache.invalidate(path)
        self.bus.publish(WORKTREE_CHANGED, path)
        try:
            self.refresh_status(path)
        except RuntimeError:
            logger.debug(f"Executor shut down; skipping status refresh for {path}")

    # -- agent sessions -----------------------------------------------------

    def _on_snapshot(self, snapshot: SessionSnapshot) -> None:
        if snapshot.by_worktree == self._claude_statuses:
            return
        self._claude_statuses = dict(snapshot.by_worktree)
        self.bus.publish(CLAUDE_STATUS_CHANGED, snapshot)

    def claude_status(self, path: str) -> WorktreeClaudeStatus:
        return self.reconciler.status_for(path)

    def refresh_sessions(self) -> SessionSnapshot:
        return self.reconciler.reconcile()

    def delete_session(self, session_id: str) -> bool:
        return self.reconciler.delete_session(session_id)

    def debug_info(self) -> DebugInfo:
        return self.reconciler.debug_info(hooks_configured=self.hooks.state().configured)

    def hooks_state(self) -> HooksConfig:
        return self.hooks.state()

    def apply_hooks(self) -> None:
        self.hooks.apply()

    def remove_hooks(self) -> bool:
        return self.hooks.remove()

    # -- worktree management ------------------------------------------------

    def create_worktree(
        self,
        path: str,
        new_branch: Optional[str] = None,
        commit_ish: Optional[str] = None,
        detach: bool = False,
    ) -> List[Worktree]:
        self.worktree_service.create_worktree(path, new_branch=new_branch, commit_ish=commit_ish, detach=detach)
        return self.load_worktrees()

    def remove_worktree(self, path: str, force: bool = False) -> List[Worktree]:
        self.worktree_service.remove_worktree(path, force=force)
        self.cache.invalidate(path)
        return self.load_worktrees()

    def prune_worktrees(self) -> PruneResult:
        result = self.worktree_service.prune_worktrees()
        self.load_worktrees()
        return result

    def list_branches(self) -> List[BranchInfo]:
        return self.worktree_service.list_branches()

    # -- lifecycle ----------------------------------------------------------

    def stop(self) -> None:
        """Stop watching and background work."""
        self._stopped.set()
        self.reconciler.stop()
        self._diff_debouncer.close()
        if self.watcher is not None and self._watching:
            self.watcher.stop()
        self._watching = False
        self._watch_roots = {}
        if self._consumer is not None:
            self._consumer.join(timeout=1)
            self._consumer = None
        self._executor.shutdown(wait=False, cancel_futures=True)
