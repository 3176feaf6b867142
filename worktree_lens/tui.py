"""Interactive TUI for worktree-lens using Textual."""

import threading
from typing import Dict, List, Optional

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import ScrollableContainer
from textual.widgets import DataTable, Footer, Static

from .__version__ import __version__
from .constants import COLUMNS, LEGEND_TEXT
from .exceptions import WorktreeLensError
from .formatters import (
    format_age,
    format_branch,
    format_changes,
    format_claude_status,
    format_diff_stats,
    format_session_state,
    format_sync,
    format_timestamp,
    format_worktree_name,
    get_changes_style,
    render_file_diffs,
)
from .models.diff import CommitDiff, CommitInfo, WorkingDiff
from .models.session import SessionSnapshot, WorktreeClaudeStatus
from .models.worktree import Worktree
from .services.events import (
    CLAUDE_STATUS_CHANGED,
    COMMIT_DIFF_LOADED,
    DIFF_LOADED,
    HISTORY_LOADED,
    REQUEST_FAILED,
    STATUS_FAILED,
    STATUS_UPDATED,
    WORKTREE_CHANGED,
    WORKTREES_CHANGED,
    RequestFailure,
    RequestResult,
    StatusFailure,
)
from .ui.screens import DetailScreen
from .ui.widgets import NonExpandingHeader, StatusBar
from .logging_config import get_logger

logger = get_logger(__name__)


class WorktreeLensApp(App):
    """Interactive TUI for worktree-lens."""

    TITLE = "Worktree Lens"
    SUB_TITLE = f"v{__version__}"

    CSS = """
    Screen {
        background: $surface;
    }

    #worktree-table {
        height: 2fr;
    }

    #detail {
        height: 3fr;
        border-top: solid $primary;
    }

    #history-table {
        height: 3fr;
        border-top: solid $primary;
        display: none;
    }

    #status-bar {
        dock: bottom;
        height: auto;
        background: $panel;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("d", "show_diff", "Diff"),
        Binding("h", "show_history", "History"),
        Binding("n", "next_page", "More History"),
        Binding("s", "show_sessions", "Sessions"),
        Binding("l", "show_legend", "Legend"),
        Binding("r", "refresh", "Refresh"),
    ]

    def __init__(self, engine):
        super().__init__()
        self.engine = engine
        self.worktrees: List[Worktree] = []
        self.claude_statuses: Dict[str, WorktreeClaudeStatus] = {}
        self.mode = "diff"
        self.token = None
        self.history: List[CommitInfo] = []
        self._ui_thread: Optional[int] = None
        self._unsubscribes = []

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield NonExpandingHeader(show_clock=False, icon="")
        yield DataTable(id="worktree-table", cursor_type="row", zebra_stripes=True)
        with ScrollableContainer(id="detail"):
            yield Static(id="detail-content")
        yield DataTable(id="history-table", cursor_type="row", zebra_stripes=True)
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Set up tables, subscribe to engine events and start loading."""
        self._ui_thread = threading.get_ident()

        table = self.query_one("#worktree-table", DataTable)
        for col in COLUMNS:
            table.add_column(col.label, width=None, key=col.key)

        history = self.query_one("#history-table", DataTable)
        history.add_column("Commit", key="commit")
        history.add_column("Date", key="date")
        history.add_column("Author", key="author")
        history.add_column("Summary", key="summary")

        bus = self.engine.bus
        handlers = {
            WORKTREES_CHANGED: self._on_worktrees,
            STATUS_UPDATED: self._on_status,
            STATUS_FAILED: self._on_status_failed,
            DIFF_LOADED: self._on_diff,
            HISTORY_LOADED: self._on_history,
            COMMIT_DIFF_LOADED: self._on_commit_diff,
            REQUEST_FAILED: self._on_request_failed,
            WORKTREE_CHANGED: self._on_worktree_changed,
            CLAUDE_STATUS_CHANGED: self._on_sessions,
        }
        for topic, handler in handlers.items():
            self._unsubscribes.append(bus.subscribe(topic, self._dispatcher(handler)))

        table.loading = True
        self.load_worktrees()

    def _dispatcher(self, handler):
        """Wrap a handler so engine threads hand their payload to the UI thread."""

        def dispatch(payload):
            if threading.get_ident() == self._ui_thread:
                handler(payload)
                return
            try:
                self.call_from_thread(handler, payload)
            except RuntimeError as e:
                # App already shut down
                logger.debug(f"Dropping event after shutdown: {e}")

        return dispatch

    @work(exclusive=True, thread=True)
    def load_worktrees(self) -> None:
        """Enumerate worktrees and start watching (worker thread)."""
        try:
            self.engine.load_worktrees()
            self.engine.start_watching()
        except WorktreeLensError as e:
            self.call_from_thread(self.notify, f"Failed to load worktrees: {e}", severity="error")

    # -- engine events ------------------------------------------------------

    def _on_worktrees(self, worktrees: List[Worktree]) -> None:
        self.worktrees = list(worktrees)
        table = self.query_one("#worktree-table", DataTable)
        table.loading = False
        self._populate_table()
        if self.token is None and self.worktrees:
            self._select(self.worktrees[0].path)

    def _on_status(self, worktree: Worktree) -> None:
        self._replace(worktree)

    def _on_status_failed(self, failure: StatusFailure) -> None:
        worktree = self.engine.get_worktree(failure.path)
        if worktree is not None:
            self._replace(worktree)

    def _on_diff(self, result: RequestResult) -> None:
        if result.token != self.token or self.mode != "diff":
            return
        diff: WorkingDiff = result.value
        if diff.is_empty:
            content = Text("Working tree clean", style="green")
        else:
            content = Text()
            if diff.staged_files:
                content.append(f"Staged changes ({len(diff.staged_files)})\n", style="bold")
                content.append_text(render_file_diffs(diff.staged_files))
            if diff.unstaged_files:
                content.append(f"\nUnstaged changes ({len(diff.unstaged_files)})\n", style="bold")
                content.append_text(render_file_diffs(diff.unstaged_files))
            content.append(f"\n{format_diff_stats(diff.stats)}", style="dim")
        self.query_one("#detail-content", Static).update(content)

    def _on_history(self, result: RequestResult) -> None:
        if result.token != self.token:
            return
        commits: List[CommitInfo] = result.value
        history = self.query_one("#history-table", DataTable)
        for commit in commits:
            history.add_row(
                Text(commit.short_hash, style="yellow"),
                format_timestamp(commit.timestamp),
                commit.author_name,
                commit.summary,
                key=commit.hash,
            )
        self.history.extend(commits)
        self._update_status(f"{len(self.history)} commit(s) loaded")

    def _on_commit_diff(self, result: RequestResult) -> None:
        if result.token != self.token:
            return
        commit_diff: CommitDiff = result.value
        commit = commit_diff.commit
        content = Text()
        content.append(f"commit {commit.hash}\n", style="yellow")
        content.append(f"Author: {commit.author_name} <{commit.author_email}>\n")
        content.append(f"Date:   {format_timestamp(commit.timestamp)}\n\n")
        content.append(commit.message.rstrip() + "\n\n")
        content.append_text(render_file_diffs(commit_diff.files))
        content.append(f"\n{format_diff_stats(commit_diff.stats)}", style="dim")
        self.push_screen(DetailScreen(f"Commit {commit.short_hash}", content))

    def _on_request_failed(self, failure: RequestFailure) -> None:
        if failure.token == self.token:
            self.notify(f"{failure.request} failed: {failure.error}", severity="error")

    def _on_worktree_changed(self, path: str) -> None:
        if self.token is not None and self.token.path == path and self.mode == "diff":
            self.engine.request_working_diff(self.token)

    def _on_sessions(self, snapshot: SessionSnapshot) -> None:
        self.claude_statuses = dict(snapshot.by_worktree)
        self._populate_table()

    # -- table --------------------------------------------------------------

    def _replace(self, worktree: Worktree) -> None:
        self.worktrees = [worktree if w.path == worktree.path else w for w in self.worktrees]
        self._populate_table()

    def _populate_table(self) -> None:
        """Add worktree data to the table, keeping the cursor on the same row."""
        table = self.query_one("#worktree-table", DataTable)
        cursor_row = table.cursor_row
        table.clear()

        for worktree in self.worktrees:
            claude = self.claude_statuses.get(worktree.path, WorktreeClaudeStatus.empty())
            changes = format_changes(worktree.status, worktree.status_error)
            path_text = Text(worktree.path, style="red" if worktree.is_orphaned else "dim")
            # Match COLUMNS order: Worktree, Branch, Head, Sync, Changes, Claude, Path
            table.add_row(
                Text(format_worktree_name(worktree), style="bold" if worktree.is_main else ""),
                format_branch(worktree.head),
                worktree.head.commit_sha[:7] or "-",
                format_sync(worktree.head.upstream),
                Text(changes, style=get_changes_style(worktree.status, worktree.status_error)),
                format_claude_status(claude),
                path_text,
                key=worktree.path,
            )

        if self.worktrees:
            table.move_cursor(row=min(cursor_row, len(self.worktrees) - 1))
        self._update_status()

    def _update_status(self, message: str = "") -> None:
        waiting = sum(1 for s in self.claude_statuses.values() if s.has_pending_input)
        self.query_one("#status-bar", StatusBar).show(
            len(self.worktrees),
            waiting=waiting,
            selected=self.token.path if self.token is not None else None,
            message=message,
        )

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id != "worktree-table" or event.row_key is None:
            return
        path = event.row_key.value
        if self.token is None or self.token.path != path:
            self._select(path)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.data_table.id == "history-table" and self.token is not None and event.row_key is not None:
            self.engine.request_commit_diff(self.token, event.row_key.value)

    def _select(self, path: str) -> None:
        self.token = self.engine.select(path)
        self.history = []
        self.query_one("#history-table", DataTable).clear()
        self.query_one("#detail-content", Static).update(Text("Loading...", style="dim"))
        if self.mode == "diff":
            self.engine.request_working_diff(self.token)
        else:
            self.engine.request_history(self.token, offset=0)
        self._update_status()

    # -- actions ------------------------------------------------------------

    def _set_mode(self, mode: str) -> None:
        self.mode = mode
        self.query_one("#detail").display = mode == "diff"
        self.query_one("#history-table").display = mode == "history"

    def action_show_diff(self) -> None:
        self._set_mode("diff")
        if self.token is not None:
            self.engine.request_working_diff(self.token)

    def action_show_history(self) -> None:
        self._set_mode("history")
        if self.token is not None and not self.history:
            self.engine.request_history(self.token, offset=0)

    def action_next_page(self) -> None:
        if self.mode == "history" and self.token is not None:
            self.engine.request_history(self.token, offset=len(self.history))

    def action_show_sessions(self) -> None:
        snapshot = self.engine.reconciler.snapshot
        content = Text()
        if not snapshot.sessions:
            content.append("No agent sessions", style="dim")
        for session in snapshot.sessions:
            content.append(f"{session.session_id[:12]}  ")
            content.append_text(format_session_state(session.state))
            if session.is_stale:
                content.append(" (stale)", style="dim")
            detail = session.waiting_reason or session.last_tool or ""
            age = format_age(snapshot.taken_at - session.timestamp) if session.timestamp > 0 else "-"
            content.append(f"  {detail}  {age}  {session.project_path}\n")
        self.push_screen(DetailScreen("Agent sessions", content))

    def action_show_legend(self) -> None:
        self.push_screen(DetailScreen("Legend", LEGEND_TEXT))

    def action_refresh(self) -> None:
        if self.token is not None:
            self.engine.cache.invalidate(self.token.path)
            self.history = []
            self.query_one("#history-table", DataTable).clear()
        self.token = None
        self.load_worktrees()

    async def action_quit(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self.engine.stop()
        self.exit()
