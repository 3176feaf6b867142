"""Command-line argument parsing for worktree-lens."""

import argparse
from typing import List, Optional

from worktree_lens.__version__ import __version__


def _add_worktree_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "worktree",
        nargs="?",
        help="Worktree name or path (default: the worktree containing the current directory)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all sub-commands."""
    parser = argparse.ArgumentParser(
        prog="worktree-lens",
        description="Worktree status, diffs, history and agent sessions for a git repository",
    )
    parser.add_argument("--version", action="version", version=f"worktree-lens {__version__}")
    parser.add_argument("--repo", default=".", metavar="PATH", help="Path inside the repository (default: .)")
    parser.add_argument("--config", metavar="FILE", help="Config file (default: ~/.config/worktree-lens/config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information for troubleshooting"
    )
    parser.add_argument(
        "--workers",
        type=int,
        metavar="N",
        help="Number of parallel workers for status loads (default: auto-detect)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    subparsers.add_parser("worktrees", help="List worktrees with status and agent sessions")

    status = subparsers.add_parser("status", help="Show the working changes of one worktree")
    _add_worktree_arg(status)

    log = subparsers.add_parser("log", help="Show one page of commit history")
    _add_worktree_arg(log)
    log.add_argument("--limit", type=int, metavar="N", help="Commits per page (default: config page_size)")
    log.add_argument("--offset", type=int, default=0, metavar="N", help="Commits to skip from HEAD")

    diff = subparsers.add_parser("diff", help="Show the working diff, or one commit's diff")
    _add_worktree_arg(diff)
    diff.add_argument("--commit", metavar="SHA", help="Show this commit against its first parent")
    diff.add_argument("--stat", action="store_true", help="Only list changed files")
    diff.add_argument("-U", "--context", type=int, metavar="N", help="Context lines around changes")

    sessions = subparsers.add_parser("sessions", help="Show agent sessions per worktree")
    sessions.add_argument("--all", action="store_true", help="Include stale sessions")

    subparsers.add_parser("debug-sessions", help="Show every status record with its age and staleness")

    delete_session = subparsers.add_parser("delete-session", help="Delete a session's status record")
    delete_session.add_argument("session_id", metavar="ID")

    hooks = subparsers.add_parser("hooks", help="Manage the agent hooks that report session status")
    hooks.add_argument("action", choices=["status", "apply", "remove"])

    hook_handler = subparsers.add_parser("hook-handler", help="Record a hook event read from stdin")
    hook_handler.add_argument("--status-dir", metavar="DIR", help="Status directory (default: config status_dir)")

    subparsers.add_parser("watch", help="Print change signals and session updates until interrupted")
    subparsers.add_parser("tui", help="Launch the interactive terminal viewer")

    add = subparsers.add_parser("add", help="Create a worktree")
    add.add_argument("path")
    add.add_argument("commit_ish", nargs="?", help="Branch or commit to check out")
    add.add_argument("-b", "--branch", dest="new_branch", metavar="BRANCH", help="Create a new branch")
    add.add_argument("--detach", action="store_true", help="Check out a detached HEAD")

    remove = subparsers.add_parser("remove", help="Remove a worktree")
    remove.add_argument("path")
    remove.add_argument("--force", action="store_true", help="Remove even if dirty or locked")

    subparsers.add_parser("prune", help="Prune metadata of worktrees whose directories are gone")
    subparsers.add_parser("branches", help="List branches available for new worktrees")

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    args = build_parser().parse_args(argv)
    if args.command is None:
        args.command = "worktrees"
    return args
