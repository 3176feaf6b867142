"""GitPython-backed access to worktrees, heads, trees and the working directory."""

import os
from typing import List, Optional, Tuple

import git

from worktree_lens.constants import DEFAULT_CONTEXT_LINES
from worktree_lens.exceptions import (
    BusyError,
    GitOperationError,
    NotFoundError,
    ReadError,
)
from worktree_lens.models.diff import CommitDiff, CommitInfo, DiffStats, FileDiff, FileStatus, WorkingDiff
from worktree_lens.models.worktree import HeadInfo, UpstreamInfo, Worktree
from worktree_lens.services.diff_builder import build_file_diff
from worktree_lens.services.git.worktrees import WorktreeService
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

LOCK_MARKERS = ("index.lock", "Unable to create", "another git process")


def translate_git_error(e: git.exc.GitCommandError, operation: str, path: str) -> GitOperationError:
    """Map a failed git command onto the error taxonomy."""
    stderr = (e.stderr if hasattr(e, "stderr") and e.stderr else str(e)).strip()
    if any(marker in stderr for marker in LOCK_MARKERS):
        return BusyError(path, stderr)
    if "unknown revision" in stderr or "bad revision" in stderr or "does not exist" in stderr:
        return NotFoundError("revision", path)
    return GitOperationError(operation, path, stderr)


def open_repo(path: str) -> git.Repo:
    """Open a fresh git.Repo for ``path``.

    Creates a new repo instance for each call to ensure thread safety.
    GitPython repos are lightweight - they don't clone, just open the existing repo.
    """
    try:
        return git.Repo(path)
    except git.exc.NoSuchPathError as e:
        raise NotFoundError("path", path) from e
    except git.exc.InvalidGitRepositoryError as e:
        raise NotFoundError("repository", path) from e
    except PermissionError as e:
        raise ReadError(path, str(e)) from e


def _blob_bytes(blob) -> Optional[bytes]:
    if blob is None:
        return None
    return blob.data_stream.read()


def _read_disk(worktree_path: str, rel_path: str) -> Optional[bytes]:
    """Read a working tree file; None when it does not exist."""
    full_path = os.path.join(worktree_path, rel_path)
    try:
        with open(full_path, "rb") as f:
            return f.read()
    except (FileNotFoundError, NotADirectoryError):
        return None
    except IsADirectoryError:
        # Submodules and nested repositories show up as directories
        return None
    except OSError as e:
        raise ReadError(full_path, str(e)) from e


def _status_for(diff) -> Tuple[FileStatus, str, Optional[str]]:
    """Map a GitPython Diff onto (status, path, old_path)."""
    if diff.new_file or diff.change_type == "A":
        return FileStatus.ADDED, diff.b_path, None
    if diff.deleted_file or diff.change_type == "D":
        return FileStatus.DELETED, diff.a_path, None
    if diff.renamed_file or diff.change_type == "R":
        return FileStatus.RENAMED, diff.b_path, diff.a_path
    if diff.change_type == "C":
        return FileStatus.ADDED, diff.b_path, None
    return FileStatus.MODIFIED, diff.b_path or diff.a_path, None


class GitRepository:
    """Version-control collaborator used by the engine.

    Every method opens its own ``git.Repo`` so calls for different
    worktrees can run concurrently.
    """

    def __init__(self, context_lines: int = DEFAULT_CONTEXT_LINES):
        self.context_lines = context_lines

    # -- worktrees and heads -------------------------------------------------

    def list_worktrees(self, repo_path: str) -> List[Worktree]:
        """Enumerate every worktree of the repository containing ``repo_path``."""
        open_repo(repo_path)  # Raises NotFoundError early for a bad path
        service = WorktreeService(repo_path)
        worktrees = []
        for entry in service.list_entries(refresh=True):
            if entry.is_bare:
                continue
            if entry.is_orphaned:
                head = HeadInfo(branch=entry.branch_name, commit_sha=entry.commit_sha, commit_message="")
                timestamp = 0
            else:
                head, timestamp = self._head_and_timestamp(entry.path)
            worktrees.append(
                Worktree(
                    path=entry.path,
                    name=os.path.basename(entry.path.rstrip(os.sep)) or entry.path,
                    is_main=entry.is_main,
                    head=head,
                    status=None,
                    last_commit_timestamp=timestamp,
                    is_orphaned=entry.is_orphaned,
                )
            )
        return worktrees

    def resolve_head(self, worktree_path: str) -> HeadInfo:
        """Branch, commit and upstream of a worktree's HEAD."""
        return self._head_and_timestamp(worktree_path)[0]

    def _head_and_timestamp(self, worktree_path: str) -> Tuple[HeadInfo, int]:
        repo = open_repo(worktree_path)
        branch = None if repo.head.is_detached else repo.head.ref.name

        try:
            commit = repo.head.commit
        except ValueError:
            # Unborn branch: no commits yet
            return HeadInfo(branch=branch, commit_sha="", commit_message=""), 0

        message = commit.message if isinstance(commit.message, str) else commit.message.decode("utf-8", "replace")
        upstream = None
        if branch is not None:
            upstream = self._upstream(repo, branch)

        head = HeadInfo(
            branch=branch,
            commit_sha=commit.hexsha,
            commit_message=message.split("\n", 1)[0].strip(),
            upstream=upstream,
        )
        return head, int(commit.committed_date)

    def _upstream(self, repo: git.Repo, branch: str) -> Optional[UpstreamInfo]:
        try:
            tracking = repo.heads[branch].tracking_branch()
        except (IndexError, ValueError):
            return None
        if tracking is None or not tracking.is_valid():
            return None

        try:
            counts = repo.git.rev_list("--left-right", "--count", f"{branch}...{tracking.name}")
            ahead, behind = (int(n) for n in counts.split())
        except (git.exc.GitCommandError, ValueError) as e:
            logger.debug(f"Could not compute ahead/behind for {branch}: {e}")
            return UpstreamInfo(remote_branch=tracking.name, ahead=0, behind=0)
        return UpstreamInfo(remote_branch=tracking.name, ahead=ahead, behind=behind)

    # -- commits ------------------------------------------------------------

    def resolve_commit(self, repo: git.Repo, ref: str, worktree_path: str):
        try:
            return repo.commit(ref)
        except (git.exc.BadName, git.exc.BadObject, ValueError, IndexError) as e:
            raise NotFoundError(f"revision '{ref}'", worktree_path) from e

    def walk_history(self, worktree_path: str, offset: int, limit: int) -> List[CommitInfo]:
        """Commits reachable from HEAD in git's native --date-order."""
        repo = open_repo(worktree_path)
        try:
            repo.head.commit
        except ValueError:
            return []

        try:
            commits = repo.iter_commits("HEAD", max_count=limit, skip=offset, date_order=True)
            return [CommitInfo.from_commit(c) for c in commits]
        except git.exc.GitCommandError as e:
            raise translate_git_error(e, "walk_history", worktree_path) from e

    # -- diffs --------------------------------------------------------------

    def _map_diffs(self, diffs, worktree_path: str, new_from_disk: bool = False) -> List[FileDiff]:
        files = []
        for diff in diffs:
            status, path, old_path = _status_for(diff)
            old_data = None if status is FileStatus.ADDED else _blob_bytes(diff.a_blob)
            if status is FileStatus.DELETED:
                new_data = None
            elif new_from_disk:
                new_data = _read_disk(worktree_path, path)
                if new_data is None:
                    status = FileStatus.DELETED
            else:
                new_data = _blob_bytes(diff.b_blob)

            file_diff = build_file_diff(
                path, old_data, new_data, status=status, old_path=old_path, context=self.context_lines
            )
            if file_diff is not None:
                files.append(file_diff)
        files.sort(key=lambda f: f.path)
        return files

    def read_tree_diff(self, worktree_path: str, old_ref: str, new_ref: str) -> List[FileDiff]:
        """Diff between two revisions."""
        repo = open_repo(worktree_path)
        old_commit = self.resolve_commit(repo, old_ref, worktree_path)
        new_commit = self.resolve_commit(repo, new_ref, worktree_path)
        try:
            diffs = old_commit.diff(new_commit, find_renames=True)
        except git.exc.GitCommandError as e:
            raise translate_git_error(e, "read_tree_diff", worktree_path) from e
        return self._map_diffs(diffs, worktree_path)

    def read_commit_diff(self, worktree_path: str, sha: str) -> CommitDiff:
        """Diff of one commit against its first parent."""
        repo = open_repo(worktree_path)
        commit = self.resolve_commit(repo, sha, worktree_path)

        if commit.parents:
            try:
                diffs = commit.parents[0].diff(commit, find_renames=True)
            except git.exc.GitCommandError as e:
                raise translate_git_error(e, "read_commit_diff", worktree_path) from e
            files = self._map_diffs(diffs, worktree_path)
        else:
            # Root commit: everything is added
            files = []
            for item in commit.tree.traverse():
                if item.type != "blob":
                    continue
                file_diff = build_file_diff(
                    item.path, None, _blob_bytes(item), status=FileStatus.ADDED, context=self.context_lines
                )
                files.append(file_diff)
            files.sort(key=lambda f: f.path)

        return CommitDiff(commit=CommitInfo.from_commit(commit), files=files, stats=DiffStats.from_files(files))

    def read_working_tree_diff(self, worktree_path: str) -> WorkingDiff:
        """Staged (HEAD vs index) and unstaged (index vs disk, plus untracked) changes."""
        repo = open_repo(worktree_path)
        try:
            staged = self._staged_files(repo, worktree_path)
            unstaged = self._map_diffs(repo.index.diff(None), worktree_path, new_from_disk=True)
            for rel_path in repo.untracked_files:
                new_data = _read_disk(worktree_path, rel_path)
                if new_data is None:
                    continue
                unstaged.append(
                    build_file_diff(rel_path, None, new_data, status=FileStatus.ADDED, context=self.context_lines)
                )
        except git.exc.GitCommandError as e:
            raise translate_git_error(e, "read_working_tree_diff", worktree_path) from e

        unstaged.sort(key=lambda f: f.path)
        return WorkingDiff.build(staged, unstaged)

    def _staged_files(self, repo: git.Repo, worktree_path: str) -> List[FileDiff]:
        try:
            head_commit = repo.head.commit
        except ValueError:
            head_commit = None

        if head_commit is not None:
            # HEAD on the a side, index on the b side
            return self._map_diffs(head_commit.diff(find_renames=True), worktree_path)

        # Unborn HEAD: every index entry is a staged addition
        files = []
        for (path, _stage), entry in repo.index.entries.items():
            data = repo.odb.stream(entry.binsha).read()
            files.append(build_file_diff(path, None, data, status=FileStatus.ADDED, context=self.context_lines))
        files.sort(key=lambda f: f.path)
        return files

    def read_file_diff(
        self, worktree_path: str, path: str, old_ref: str = "HEAD", new_ref: Optional[str] = None
    ) -> Optional[FileDiff]:
        """Diff one file between a revision and another revision or the working tree.

        Args:
            worktree_path: Worktree to read from
            path: Path relative to the worktree root
            old_ref: Revision of the old side
            new_ref: Revision of the new side; None means the file on disk

        Returns:
            The FileDiff, or None when unchanged
        """
        repo = open_repo(worktree_path)
        old_data = self._blob_at(repo, old_ref, path, worktree_path)
        if new_ref is None:
            new_data = _read_disk(worktree_path, path)
        else:
            new_data = self._blob_at(repo, new_ref, path, worktree_path)

        if old_data is None and new_data is None:
            raise NotFoundError(f"file '{path}'", worktree_path)
        return build_file_diff(path, old_data, new_data, context=self.context_lines)

    def _blob_at(self, repo: git.Repo, ref: str, path: str, worktree_path: str) -> Optional[bytes]:
        try:
            commit = self.resolve_commit(repo, ref, worktree_path)
        except NotFoundError:
            if ref == "HEAD":
                return None  # Unborn HEAD has no files
            raise
        try:
            return _blob_bytes(commit.tree / path)
        except KeyError:
            return None

    # -- status -------------------------------------------------------------

    def status_porcelain(self, worktree_path: str) -> str:
        """Raw `git status --porcelain=v1 -z` output for one worktree."""
        if not os.path.exists(worktree_path):
            raise NotFoundError("worktree", worktree_path)
        repo = open_repo(worktree_path)
        try:
            return repo.git.status("--porcelain=v1", "-z", "--untracked-files=all")
        except git.exc.GitCommandError as e:
            raise translate_git_error(e, "status", worktree_path) from e

    def read_index_status(self, worktree_path: str) -> str:
        """Index and working-tree state of one worktree (porcelain form)."""
        return self.status_porcelain(worktree_path)

    def git_dir(self, worktree_path: str) -> str:
        """Administrative directory of a worktree.

        For linked worktrees this lives under the main repository's
        ``.git/worktrees/``, outside the worktree itself.
        """
        return os.path.abspath(open_repo(worktree_path).git_dir)
