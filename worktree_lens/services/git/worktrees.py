"""Worktree operations service for worktree-lens."""

import git
import os
from typing import Optional, Dict, Any, List
from threading import Lock

from worktree_lens.exceptions import GitOperationError
from worktree_lens.models.worktree import BranchInfo, PruneResult
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)


class WorktreeEntry:
    """One record of `git worktree list --porcelain`."""

    __slots__ = ("path", "branch_name", "commit_sha", "is_main", "is_orphaned", "is_bare", "locked")

    def __init__(self, path: str, branch_name: Optional[str], commit_sha: str, is_main: bool,
                 is_orphaned: bool, is_bare: bool = False, locked: bool = False):
        self.path = path
        self.branch_name = branch_name  # None = detached HEAD
        self.commit_sha = commit_sha
        self.is_main = is_main
        self.is_orphaned = is_orphaned
        self.is_bare = is_bare
        self.locked = locked

    def __repr__(self) -> str:
        branch = self.branch_name or "(detached)"
        main_marker = " (main)" if self.is_main else ""
        status = "orphaned" if self.is_orphaned else "active"
        return f"<WorktreeEntry {branch} @ {self.path}{main_marker} [{status}]>"


def _git_error_message(e: git.exc.GitCommandError, what: str) -> str:
    """Build a readable message from a GitCommandError."""
    stderr = (e.stderr if hasattr(e, "stderr") and e.stderr else str(e)).strip()
    status = e.status if hasattr(e, "status") else "unknown"
    if stderr:
        return f"{what} failed (exit {status}): {stderr}"
    return f"{what} failed with exit code {status}"


def parse_worktree_porcelain(output: str) -> List[WorktreeEntry]:
    """Parse `git worktree list --porcelain` output.

    Format:
        worktree /path/to/worktree
        HEAD commit_sha
        branch refs/heads/branch-name   (or: detached)
        (blank line between worktrees)

    The first record is always the main worktree.
    """
    entries: List[WorktreeEntry] = []
    current: Dict[str, Any] = {}

    def flush():
        path = current.get("path", "")
        if path:
            entries.append(
                WorktreeEntry(
                    path=path,
                    branch_name=current.get("branch"),
                    commit_sha=current.get("HEAD", ""),
                    is_main=not entries,
                    is_orphaned=not os.path.exists(path),
                    is_bare=current.get("bare", False),
                    locked=current.get("locked", False),
                )
            )

    for line in output.split("\n"):
        line = line.strip()

        if not line:
            if current:
                flush()
                current = {}
            continue

        if line.startswith("worktree "):
            current["path"] = line.split(" ", 1)[1]
        elif line.startswith("HEAD "):
            current["HEAD"] = line.split(" ", 1)[1]
        elif line.startswith("branch "):
            branch_ref = line.split(" ", 1)[1]
            if branch_ref.startswith("refs/heads/"):
                current["branch"] = branch_ref[len("refs/heads/"):]
            else:
                current["branch"] = branch_ref
        elif line == "detached":
            current["branch"] = None
        elif line == "bare":
            current["bare"] = True
        elif line.startswith("locked"):
            current["locked"] = True

    # Last entry if no trailing blank line
    if current:
        flush()

    return entries


class WorktreeService:
    """Service for listing and managing git worktrees."""

    def __init__(self, repo_path: str):
        """Initialize the worktree service.

        Args:
            repo_path: Path to the git repository (any of its worktrees)
        """
        self.repo_path = repo_path
        self._entries: Optional[List[WorktreeEntry]] = None  # Cache for worktree listing
        self._cache_lock = Lock()  # Thread safety for cache access

    def _get_repo(self):
        """Get a thread-safe git.Repo instance.

        Creates a new repo instance for each call to ensure thread safety.

        Returns:
            git.Repo: A fresh repository instance
        """
        return git.Repo(self.repo_path)

    def clear_cache(self):
        """Clear the worktree listing cache."""
        with self._cache_lock:
            self._entries = None

    def list_entries(self, refresh: bool = False) -> List[WorktreeEntry]:
        """Get the porcelain records of all worktrees.

        Args:
            refresh: Bypass the cached listing

        Returns:
            List of WorktreeEntry objects, main worktree first
        """
        with self._cache_lock:
            if self._entries is not None and not refresh:
                return list(self._entries)

        try:
            repo = self._get_repo()
            output = repo.git.worktree("list", "--porcelain")
        except git.exc.GitCommandError as e:
            error_msg = _git_error_message(e, "git worktree list")
            logger.error(error_msg)
            raise GitOperationError("list_worktrees", self.repo_path, error_msg) from e

        entries = parse_worktree_porcelain(output)
        logger.debug(f"Found {len(entries)} worktrees")
        for entry in entries:
            logger.debug(f"  {entry}")

        with self._cache_lock:
            self._entries = entries
        return list(entries)

    def create_worktree(
        self,
        path: str,
        new_branch: Optional[str] = None,
        commit_ish: Optional[str] = None,
        detach: bool = False,
    ) -> str:
        """Create a worktree.

        Args:
            path: Directory for the new worktree
            new_branch: Create this branch for the worktree (-b)
            commit_ish: Branch or commit to check out
            detach: Check out detached HEAD

        Returns:
            Absolute path of the new worktree
        """
        args = ["add"]
        if new_branch:
            args.extend(["-b", new_branch])
        if detach:
            args.append("--detach")
        args.append(path)
        if commit_ish:
            args.append(commit_ish)

        try:
            repo = self._get_repo()
            repo.git.worktree(*args)
        except git.exc.GitCommandError as e:
            error_msg = _git_error_message(e, "git worktree add")
            logger.error(f"Failed to create worktree at {path}: {error_msg}")
            raise GitOperationError("create_worktree", path, error_msg) from e

        logger.info(f"Created worktree at {path}")
        self.clear_cache()
        return os.path.abspath(path)

    def remove_worktree(self, path: str, force: bool = False) -> None:
        """Remove a worktree at the specified path.

        Args:
            path: Path to the worktree directory
            force: Force removal even if working tree is dirty or locked
        """
        args = ["remove", path]
        if force:
            args.append("--force")

        try:
            repo = self._get_repo()
            repo.git.worktree(*args)
        except git.exc.GitCommandError as e:
            error_msg = _git_error_message(e, "git worktree remove")
            logger.error(f"Failed to remove worktree at {path}: {error_msg}")
            raise GitOperationError("remove_worktree", path, error_msg) from e

        logger.info(f"Removed worktree at {path}")
        self.clear_cache()

    def prune_worktrees(self) -> PruneResult:
        """Prune metadata of worktrees whose directories are gone."""
        try:
            repo = self._get_repo()
            # Prune reports on stderr
            _, stdout, stderr = repo.git.worktree("prune", "--verbose", with_extended_output=True)
            output = "\n".join(part for part in (stdout, stderr) if part)
        except git.exc.GitCommandError as e:
            error_msg = _git_error_message(e, "git worktree prune")
            logger.error(f"Failed to prune worktrees: {error_msg}")
            raise GitOperationError("prune_worktrees", self.repo_path, error_msg) from e

        messages = [line.strip() for line in output.splitlines() if line.strip()]
        logger.info(f"Pruned {len(messages)} worktree record(s)")
        self.clear_cache()
        return PruneResult(pruned_count=len(messages), messages=messages)

    def list_branches(self) -> List[BranchInfo]:
        """List local and remote branches, flagging ones checked out in a worktree."""
        checked_out = {e.branch_name for e in self.list_entries() if e.branch_name}
        repo = self._get_repo()

        branches = [
            BranchInfo(name=head.name, is_remote=False, is_checked_out=head.name in checked_out)
            for head in repo.heads
        ]
        for remote in repo.remotes:
            for ref in remote.refs:
                if ref.remote_head == "HEAD":
                    continue
                branches.append(BranchInfo(name=ref.name, is_remote=True, is_checked_out=False))
        return branches
