"""Display service: rich tables and diffs for the CLI"""
from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from worktree_lens.constants import COLUMNS, LEGEND_TEXT
from worktree_lens.formatters import (
    format_age,
    format_branch,
    format_changes,
    format_claude_status,
    format_diff_stats,
    format_file_header,
    format_session_state,
    format_sync,
    format_timestamp,
    format_worktree_name,
    get_changes_style,
    render_file_diff,
)
from worktree_lens.models.diff import CommitDiff, CommitInfo, FileDiff, WorkingDiff
from worktree_lens.models.session import ClaudeSession, DebugInfo, HooksConfig, WorktreeClaudeStatus
from worktree_lens.models.worktree import BranchInfo, Worktree
from worktree_lens.logging_config import get_logger

console = Console()
logger = get_logger(__name__)


class DisplayService:
    def __init__(self, verbose: bool = False, debug: bool = False, out: Optional[Console] = None):
        self.verbose = verbose
        self.debug_mode = debug
        self.console = out or console

    def display_worktree_table(
        self,
        worktrees: List[Worktree],
        claude_statuses: Dict[str, WorktreeClaudeStatus],
        show_legend: bool = False,
    ) -> None:
        """Display a table of worktrees."""
        table = Table()

        # Add columns using shared constants
        for col in COLUMNS:
            table.add_column(col.label, width=col.width or None, no_wrap=col.key != "path")

        for worktree in worktrees:
            claude = claude_statuses.get(worktree.path, WorktreeClaudeStatus.empty())
            changes = format_changes(worktree.status, worktree.status_error)
            # Match COLUMNS order: Worktree, Branch, Head, Sync, Changes, Claude, Path
            table.add_row(
                escape(format_worktree_name(worktree)),
                escape(format_branch(worktree.head)),
                worktree.head.commit_sha[:7] or "-",
                format_sync(worktree.head.upstream),
                f"[{get_changes_style(worktree.status, worktree.status_error)}]{changes}[/]",
                format_claude_status(claude),
                escape(worktree.path) + (" [red](missing)[/red]" if worktree.is_orphaned else ""),
            )

        self.console.print(table)

        if show_legend:
            self.console.print(LEGEND_TEXT)

        errors = [w for w in worktrees if w.status_error]
        for worktree in errors:
            self.console.print(f"[red]Failed to load status for {worktree.name}: {worktree.status_error}[/red]")

    def display_working_diff(self, worktree: Worktree, diff: WorkingDiff, stat_only: bool = False) -> None:
        """Display staged and unstaged changes of one worktree."""
        self.console.print(f"[bold]{worktree.name}[/bold] [dim]{worktree.path}[/dim]")
        if diff.is_empty:
            self.console.print("[green]Working tree clean[/green]")
            return

        for title, files in (("Staged changes", diff.staged_files), ("Unstaged changes", diff.unstaged_files)):
            if not files:
                continue
            self.console.print(f"\n[bold]{title}[/bold] ({len(files)})")
            self._display_files(files, stat_only)

        self.console.print(f"\n{format_diff_stats(diff.stats)}")

    def display_commit_diff(self, commit_diff: CommitDiff, stat_only: bool = False) -> None:
        commit = commit_diff.commit
        self.console.print(f"[yellow]commit {commit.hash}[/yellow]")
        self.console.print(f"Author: {commit.author_name} <{commit.author_email}>")
        self.console.print(f"Date:   {format_timestamp(commit.timestamp)}\n")
        for line in commit.message.rstrip().splitlines():
            self.console.print(f"    {line}", markup=False)
        self.console.print()
        self._display_files(commit_diff.files, stat_only)
        self.console.print(f"\n{format_diff_stats(commit_diff.stats)}")

    def _display_files(self, files: List[FileDiff], stat_only: bool) -> None:
        for file_diff in files:
            if stat_only:
                self.console.print(format_file_header(file_diff))
            else:
                self.console.print(render_file_diff(file_diff))

    def display_history(self, worktree: Worktree, commits: List[CommitInfo], offset: int) -> None:
        """Display one page of commits."""
        table = Table(title=f"{worktree.name} history")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Commit", style="yellow")
        table.add_column("Date")
        table.add_column("Author")
        table.add_column("Summary")
        for index, commit in enumerate(commits, start=offset + 1):
            table.add_row(
                str(index),
                commit.short_hash,
                format_timestamp(commit.timestamp),
                escape(commit.author_name),
                escape(commit.summary),
            )
        self.console.print(table)
        if not commits:
            self.console.print("[dim]No commits[/dim]")

    def display_sessions(self, sessions: List[ClaudeSession], now: int) -> None:
        """Display agent sessions, newest first."""
        if not sessions:
            self.console.print("[dim]No agent sessions[/dim]")
            return

        table = Table()
        table.add_column("Session")
        table.add_column("State")
        table.add_column("Tool / Reason")
        table.add_column("Updated", justify="right")
        table.add_column("Project")
        for session in sessions:
            state = format_session_state(session.state)
            if session.is_stale:
                state.append(" (stale)", style="dim")
            table.add_row(
                session.session_id[:12],
                state,
                escape(session.waiting_reason or session.last_tool or ""),
                format_age(now - session.timestamp) if session.timestamp > 0 else "-",
                escape(session.project_path),
            )
        self.console.print(table)

    def display_debug_info(self, info: DebugInfo) -> None:
        """Display every status record with its staleness."""
        hooks = "[green]yes[/green]" if info.hooks_configured else "[red]no[/red]"
        self.console.print(f"Status directory: {info.status_dir}")
        self.console.print(f"Hooks configured: {hooks}")
        self.console.print(f"Current time:     {format_timestamp(info.current_timestamp)}\n")

        if not info.status_files:
            self.console.print("[dim]No status records[/dim]")
            return

        table = Table()
        table.add_column("File")
        table.add_column("State")
        table.add_column("Tool")
        table.add_column("Age", justify="right")
        table.add_column("Threshold", justify="right")
        table.add_column("Stale")
        table.add_column("Project")
        for record in info.status_files:
            table.add_row(
                record.filename,
                record.state,
                record.last_tool or "",
                format_age(record.age_seconds),
                f"{record.stale_threshold}s",
                "[red]yes[/red]" if record.is_stale else "no",
                escape(record.project_path),
            )
        self.console.print(table)

    def display_hooks_state(self, state: HooksConfig, settings_path: str, status_dir: str) -> None:
        configured = "[green]✓ configured[/green]" if state.configured else "[yellow]not configured[/yellow]"
        exists = "[green]exists[/green]" if state.status_dir_exists else "[yellow]missing[/yellow]"
        self.console.print(f"Hooks:            {configured}  [dim]{settings_path}[/dim]")
        self.console.print(f"Status directory: {exists}  [dim]{status_dir}[/dim]")

    def display_branches(self, branches: List[BranchInfo]) -> None:
        table = Table()
        table.add_column("Branch")
        table.add_column("Location")
        table.add_column("Checked out")
        for branch in branches:
            table.add_row(
                branch.name,
                "remote" if branch.is_remote else "local",
                "✓" if branch.is_checked_out else "",
            )
        self.console.print(table)
