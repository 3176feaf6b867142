"""Command-line interface for worktree-lens"""

import os
import sys
import threading
import time
from typing import List, Optional

from rich.console import Console

from worktree_lens.cli.args import parse_args
from worktree_lens.config import Config
from worktree_lens.core import WorktreeEngine
from worktree_lens.exceptions import ConfigError, NotFoundError, WorktreeLensError
from worktree_lens.formatters import format_changes, format_claude_status
from worktree_lens.logging_config import setup_hook_logging, setup_logging
from worktree_lens.models.worktree import Worktree
from worktree_lens.services.display_service import DisplayService
from worktree_lens.services.events import CLAUDE_STATUS_CHANGED, STATUS_FAILED, STATUS_UPDATED, WORKTREE_CHANGED
from worktree_lens.services.hook_handler import handle_hook_event
from worktree_lens.services.hooks_manager import HooksManager, SettingsStore
from worktree_lens.services.session_reconciler import SessionReconciler
from worktree_lens.services.session_store import StatusRecordStore

console = Console()


def resolve_worktree(worktrees: List[Worktree], selector: Optional[str], cwd: Optional[str] = None) -> Worktree:
    """Pick a worktree by name or path, defaulting to the one containing ``cwd``.

    Raises:
        NotFoundError: nothing matches ``selector``
    """
    if not worktrees:
        raise NotFoundError("worktree", selector or cwd)

    if selector:
        target = os.path.realpath(selector)
        for worktree in worktrees:
            if worktree.name == selector or os.path.realpath(worktree.path) == target:
                return worktree
        raise NotFoundError("worktree", selector)

    cwd = os.path.realpath(cwd or os.getcwd())
    containing = [
        w for w in worktrees
        if cwd == os.path.realpath(w.path) or cwd.startswith(os.path.realpath(w.path) + os.sep)
    ]
    if containing:
        # Innermost wins when worktrees are nested
        return max(containing, key=lambda w: len(w.path))
    return next((w for w in worktrees if w.is_main), worktrees[0])


def _load_config(parsed_args) -> Config:
    config = Config.load(parsed_args.config)
    config.verbose = parsed_args.verbose
    config.debug = parsed_args.debug
    if parsed_args.workers is not None:
        config.workers = parsed_args.workers
    if getattr(parsed_args, "context", None) is not None:
        if parsed_args.context < 0:
            raise ConfigError(f"context must not be negative, got {parsed_args.context}")
        config.context_lines = parsed_args.context
    return config


def _standalone_reconciler(config: Config) -> SessionReconciler:
    return SessionReconciler(StatusRecordStore(config.status_dir), config)


def _hooks_manager(config: Config) -> HooksManager:
    return HooksManager(SettingsStore(config.settings_path), config.status_dir)


def cmd_worktrees(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    worktrees = engine.collect_worktrees()
    snapshot = engine.refresh_sessions()
    display.display_worktree_table(worktrees, snapshot.by_worktree, show_legend=parsed_args.verbose)
    return 0


def cmd_status(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    worktree = resolve_worktree(engine.collect_worktrees(), parsed_args.worktree)
    diff = engine.cache.get_or_compute(worktree.path, engine.repository.read_working_tree_diff)
    display.display_worktree_table([worktree], engine.refresh_sessions().by_worktree)
    display.display_working_diff(worktree, diff, stat_only=True)
    return 0


def cmd_log(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    worktree = resolve_worktree(engine.collect_worktrees(with_status=False), parsed_args.worktree)
    limit = parsed_args.limit if parsed_args.limit is not None else engine.config.page_size
    commits = engine.history_service.get_page(worktree.path, limit, parsed_args.offset)
    display.display_history(worktree, commits, parsed_args.offset)
    return 0


def cmd_diff(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    worktree = resolve_worktree(engine.collect_worktrees(with_status=False), parsed_args.worktree)
    if parsed_args.commit:
        commit_diff = engine.history_service.get_commit_diff(worktree.path, parsed_args.commit)
        display.display_commit_diff(commit_diff, stat_only=parsed_args.stat)
    else:
        diff = engine.cache.get_or_compute(worktree.path, engine.repository.read_working_tree_diff)
        display.display_working_diff(worktree, diff, stat_only=parsed_args.stat)
    return 0


def cmd_sessions(config: Config, parsed_args, display: DisplayService) -> int:
    snapshot = _standalone_reconciler(config).reconcile()
    sessions = list(snapshot.sessions) if parsed_args.all else snapshot.active_sessions
    display.display_sessions(sessions, snapshot.taken_at)
    return 0


def cmd_debug_sessions(config: Config, parsed_args, display: DisplayService) -> int:
    configured = _hooks_manager(config).state().configured
    display.display_debug_info(_standalone_reconciler(config).debug_info(hooks_configured=configured))
    return 0


def cmd_delete_session(config: Config, parsed_args, display: DisplayService) -> int:
    try:
        removed = _standalone_reconciler(config).delete_session(parsed_args.session_id)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    if removed:
        console.print(f"[green]Deleted session {parsed_args.session_id}[/green]")
    else:
        console.print(f"[yellow]No status record for session {parsed_args.session_id}[/yellow]")
    return 0


def cmd_hooks(config: Config, parsed_args, display: DisplayService) -> int:
    manager = _hooks_manager(config)
    if parsed_args.action == "apply":
        manager.apply()
        console.print(f"[green]✓[/green] Hooks applied to {config.settings_path}")
        console.print(f"  Status records go to {config.status_dir}")
    elif parsed_args.action == "remove":
        if manager.remove():
            console.print(f"[green]✓[/green] Hooks removed from {config.settings_path}")
        else:
            console.print("[dim]No worktree-lens hooks installed[/dim]")
    else:
        display.display_hooks_state(manager.state(), config.settings_path, config.status_dir)
    return 0


def cmd_watch(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    def on_changed(path):
        console.print(f"[dim]{time.strftime('%H:%M:%S')}[/dim] [cyan]changed[/cyan] {path}")

    def on_status(worktree):
        changes = format_changes(worktree.status, worktree.status_error)
        console.print(f"[dim]{time.strftime('%H:%M:%S')}[/dim] [green]status[/green]  {worktree.name}: {changes}")

    def on_status_failed(failure):
        console.print(f"[dim]{time.strftime('%H:%M:%S')}[/dim] [red]failed[/red]  {failure.path}: {failure.error}")

    def on_sessions(snapshot):
        for path, status in snapshot.by_worktree.items():
            summary = format_claude_status(status)
            if summary.plain:
                line = f"[dim]{time.strftime('%H:%M:%S')}[/dim] [yellow]claude[/yellow]  {os.path.basename(path)}: "
                console.print(line, summary, sep="")

    engine.bus.subscribe(WORKTREE_CHANGED, on_changed)
    engine.bus.subscribe(STATUS_UPDATED, on_status)
    engine.bus.subscribe(STATUS_FAILED, on_status_failed)
    engine.bus.subscribe(CLAUDE_STATUS_CHANGED, on_sessions)

    engine.load_worktrees()
    engine.start_watching()
    console.print(f"Watching {len(engine.worktrees)} worktree(s). Press Ctrl+C to stop.")
    threading.Event().wait()
    return 0


def cmd_tui(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    from worktree_lens.tui import WorktreeLensApp
    WorktreeLensApp(engine).run()
    return 0


def cmd_add(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    engine.create_worktree(
        parsed_args.path,
        new_branch=parsed_args.new_branch,
        commit_ish=parsed_args.commit_ish,
        detach=parsed_args.detach,
    )
    console.print(f"[green]✓[/green] Created worktree at {os.path.abspath(parsed_args.path)}")
    return 0


def cmd_remove(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    engine.remove_worktree(parsed_args.path, force=parsed_args.force)
    console.print(f"[green]✓[/green] Removed worktree at {parsed_args.path}")
    return 0


def cmd_prune(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    result = engine.prune_worktrees()
    for message in result.messages:
        console.print(f"  {message}")
    console.print(f"Pruned {result.pruned_count} worktree record(s)")
    return 0


def cmd_branches(engine: WorktreeEngine, parsed_args, display: DisplayService) -> int:
    display.display_branches(engine.list_branches())
    return 0


# Commands that work without a repository
STANDALONE_COMMANDS = {
    "sessions": cmd_sessions,
    "debug-sessions": cmd_debug_sessions,
    "delete-session": cmd_delete_session,
    "hooks": cmd_hooks,
}

ENGINE_COMMANDS = {
    "worktrees": cmd_worktrees,
    "status": cmd_status,
    "log": cmd_log,
    "diff": cmd_diff,
    "watch": cmd_watch,
    "tui": cmd_tui,
    "add": cmd_add,
    "remove": cmd_remove,
    "prune": cmd_prune,
    "branches": cmd_branches,
}


def run_hook_handler(parsed_args) -> int:
    """Record one hook event. Always succeeds so the agent is never blocked."""
    setup_hook_logging()
    status_dir = parsed_args.status_dir
    if not status_dir:
        try:
            status_dir = Config.load(parsed_args.config).status_dir
        except ConfigError:
            status_dir = Config().status_dir
    handle_hook_event(sys.stdin, status_dir)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    parsed_args = parse_args(argv)

    if parsed_args.command == "hook-handler":
        return run_hook_handler(parsed_args)

    debug = parsed_args.debug
    engine = None
    try:
        # The viewer owns the terminal, so its logs go to a file
        setup_logging(verbose=parsed_args.verbose, debug=debug, tui_mode=parsed_args.command == "tui")
        config = _load_config(parsed_args)

        if debug:
            console.print("[yellow]Debug mode enabled[/yellow]")

            # Show threading information
            from worktree_lens.utils.threading import get_threading_info
            threading_info = get_threading_info()
            console.print("[yellow]Threading Information:[/yellow]")
            console.print(f"  Python version: {threading_info['python_version']}")
            console.print(f"  CPU count: {threading_info['cpu_count']}")
            console.print(f"  Optimal workers: {threading_info['optimal_workers']}")
            console.print(f"  Free-threading enabled: {threading_info['free_threading']}")
            console.print(f"  Background threads: {', '.join(threading_info['background_threads']) or 'none'}")

            console.print("[yellow]Configuration:[/yellow]")
            for key, value in config.to_dict().items():
                console.print(f"  {key}: {value}")

        display = DisplayService(verbose=parsed_args.verbose, debug=debug)

        if parsed_args.command in STANDALONE_COMMANDS:
            return STANDALONE_COMMANDS[parsed_args.command](config, parsed_args, display)

        engine = WorktreeEngine(os.path.abspath(parsed_args.repo), config)
        return ENGINE_COMMANDS[parsed_args.command](engine, parsed_args, display)
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        return 1
    except WorktreeLensError as e:
        console.print(f"[red]Error: {e}[/red]")
        if debug:
            console.print_exception()
        return 1
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if debug:
            console.print_exception()
        return 1
    finally:
        if engine is not None:
            engine.stop()


if __name__ == "__main__":
    sys.exit(main())
