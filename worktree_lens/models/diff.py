"""Diff and commit history models."""
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional


class DiffLineKind(Enum):
    """Kind of a line inside a hunk."""
    CONTEXT = "context"
    ADDITION = "addition"
    DELETION = "deletion"


class FileStatus(Enum):
    """How a file changed between the two sides of a diff."""
    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"
    RENAMED = "Renamed"


@dataclass(frozen=True)
class DiffLine:
    kind: DiffLineKind
    content: str


@dataclass
class DiffHunk:
    """Contiguous block of changed lines plus surrounding context."""
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    header: str
    lines: List[DiffLine] = field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if line.kind is DiffLineKind.ADDITION)

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.kind is DiffLineKind.DELETION)


@dataclass
class FileDiff:
    """Diff of a single file. Binary files carry no hunks."""
    path: str
    status: FileStatus
    old_path: Optional[str] = None  # Only set for renames
    hunks: List[DiffHunk] = field(default_factory=list)
    binary: bool = False

    @property
    def insertions(self) -> int:
        return sum(h.additions for h in self.hunks)

    @property
    def deletions(self) -> int:
        return sum(h.deletions for h in self.hunks)


@dataclass(frozen=True)
class DiffStats:
    files_changed: int
    insertions: int
    deletions: int

    @classmethod
    def from_files(cls, *file_lists: List[FileDiff]) -> "DiffStats":
        """Aggregate stats over one or more lists of file diffs.

        A path appearing in several lists (e.g. staged and unstaged) is
        counted once in ``files_changed``.
        """
        paths = set()
        insertions = 0
        deletions = 0
        for files in file_lists:
            for file_diff in files:
                paths.add(file_diff.path)
                insertions += file_diff.insertions
                deletions += file_diff.deletions
        return cls(files_changed=len(paths), insertions=insertions, deletions=deletions)


@dataclass
class WorkingDiff:
    """Uncommitted changes of a worktree."""
    staged_files: List[FileDiff]
    unstaged_files: List[FileDiff]
    stats: DiffStats

    @classmethod
    def build(cls, staged_files: List[FileDiff], unstaged_files: List[FileDiff]) -> "WorkingDiff":
        return cls(
            staged_files=staged_files,
            unstaged_files=unstaged_files,
            stats=DiffStats.from_files(staged_files, unstaged_files),
        )

    @property
    def is_empty(self) -> bool:
        return not self.staged_files and not self.unstaged_files


@dataclass(frozen=True)
class CommitInfo:
    """One entry of the commit log."""
    hash: str
    short_hash: str
    author_name: str
    author_email: str
    timestamp: int
    message: str
    summary: str

    @classmethod
    def from_commit(cls, commit) -> "CommitInfo":
        """Build from a GitPython commit object."""
        message = commit.message
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        summary = message.split("\n", 1)[0].strip()
        return cls(
            hash=commit.hexsha,
            short_hash=commit.hexsha[:7],
            author_name=commit.author.name or "",
            author_email=commit.author.email or "",
            timestamp=int(commit.committed_date),
            message=message,
            summary=summary,
        )


@dataclass
class CommitDiff:
    """A commit together with its changes against the first parent."""
    commit: CommitInfo
    files: List[FileDiff]
    stats: DiffStats
