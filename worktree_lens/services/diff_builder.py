"""Line-level diffs and hunk grouping.

The edit script is a Myers O(ND) minimal diff. Changed runs are grouped
into hunks with a fixed number of context lines on each side; two runs
share a hunk when the unchanged gap between them is shorter than twice
the context window.

Everything here is a pure function of its inputs, so concurrent callers
never share state.
"""

from typing import List, Optional, Sequence, Tuple

from worktree_lens.constants import BINARY_SNIFF_BYTES, DEFAULT_CONTEXT_LINES
from worktree_lens.models.diff import DiffHunk, DiffLine, DiffLineKind, FileDiff, FileStatus
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

EQUAL = "="
DELETE = "-"
INSERT = "+"

# (op, old_index, new_index); the index of the side an op does not touch is None
Edit = Tuple[str, Optional[int], Optional[int]]


def is_binary(data: Optional[bytes]) -> bool:
    """Git's heuristic: a NUL byte near the start means binary."""
    if not data:
        return False
    return b"\0" in data[:BINARY_SNIFF_BYTES]


def split_lines(data: Optional[bytes]) -> List[str]:
    """Decode file content and split it into lines, keeping line terminators."""
    if not data:
        return []
    return data.decode("utf-8", errors="replace").splitlines(keepends=True)


def _strip_eol(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n") or line.endswith("\r"):
        return line[:-1]
    return line


def _myers(a: Sequence[str], b: Sequence[str]) -> List[Edit]:
    """Minimal edit script between two sequences with no common prefix/suffix trimming."""
    n, m = len(a), len(b)
    max_d = n + m
    offset = max_d + 1
    v = [0] * (2 * max_d + 3)
    # trace[d] holds v[-d-1 .. d+1] as it was before round d
    trace: List[List[int]] = []

    for d in range(max_d + 1):
        trace.append(v[offset - d - 1: offset + d + 2])
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and v[offset + k - 1] < v[offset + k + 1]):
                x = v[offset + k + 1]
            else:
                x = v[offset + k - 1] + 1
            y = x - k
            while x < n and y < m and a[x] == b[y]:
                x += 1
                y += 1
            v[offset + k] = x
            if x >= n and y >= m:
                return _backtrack(trace, n, m)

    return _backtrack(trace, n, m)  # pragma: no cover - loop always returns


def _backtrack(trace: List[List[int]], n: int, m: int) -> List[Edit]:
    edits: List[Edit] = []
    x, y = n, m
    for d in range(len(trace) - 1, -1, -1):
        snapshot = trace[d]
        base = d + 1

        k = x - y
        if k == -d or (k != d and snapshot[base + k - 1] < snapshot[base + k + 1]):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = snapshot[base + prev_k]
        prev_y = prev_x - prev_k

        while x > prev_x and y > prev_y:
            x -= 1
            y -= 1
            edits.append((EQUAL, x, y))

        if d > 0:
            if x == prev_x:
                edits.append((INSERT, None, prev_y))
            else:
                edits.append((DELETE, prev_x, None))
        x, y = prev_x, prev_y

    edits.reverse()
    return edits


def compute_edit_script(old_lines: Sequence[str], new_lines: Sequence[str]) -> List[Edit]:
    """Compute a minimal edit script turning ``old_lines`` into ``new_lines``.

    Within each run of changes, deletions are listed before insertions so
    the result is deterministic for identical inputs.
    """
    n, m = len(old_lines), len(new_lines)

    prefix = 0
    while prefix < n and prefix < m and old_lines[prefix] == new_lines[prefix]:
        prefix += 1
    suffix = 0
    while (
        suffix < n - prefix
        and suffix < m - prefix
        and old_lines[n - 1 - suffix] == new_lines[m - 1 - suffix]
    ):
        suffix += 1

    middle = _myers(old_lines[prefix:n - suffix], new_lines[prefix:m - suffix])

    script: List[Edit] = [(EQUAL, i, i) for i in range(prefix)]
    deletes: List[Edit] = []
    inserts: List[Edit] = []
    for op, i, j in middle:
        if op == EQUAL:
            script.extend(deletes)
            script.extend(inserts)
            deletes, inserts = [], []
            script.append((EQUAL, i + prefix, j + prefix))
        elif op == DELETE:
            deletes.append((DELETE, i + prefix, None))
        else:
            inserts.append((INSERT, None, j + prefix))
    script.extend(deletes)
    script.extend(inserts)
    script.extend((EQUAL, n - suffix + t, m - suffix + t) for t in range(suffix))
    return script


def _format_range(start: int, count: int) -> str:
    if count == 1:
        return str(start)
    return f"{start},{count}"


def _make_hunk(
    script: List[Edit], first: int, last: int, old_lines: Sequence[str], new_lines: Sequence[str]
) -> DiffHunk:
    """Build a hunk from script[first:last + 1]."""
    lines: List[DiffLine] = []
    old_first = None
    new_first = None
    old_count = 0
    new_count = 0
    old_cursor = 0
    new_cursor = 0

    # Positions of the hunk start on both sides, even when one side is empty
    for op, i, j in script[: first]:
        if op != INSERT:
            old_cursor = i + 1
        if op != DELETE:
            new_cursor = j + 1

    for op, i, j in script[first: last + 1]:
        if op == EQUAL:
            lines.append(DiffLine(DiffLineKind.CONTEXT, _strip_eol(old_lines[i])))
            old_count += 1
            new_count += 1
            old_first = i if old_first is None else old_first
            new_first = j if new_first is None else new_first
        elif op == DELETE:
            lines.append(DiffLine(DiffLineKind.DELETION, _strip_eol(old_lines[i])))
            old_count += 1
            old_first = i if old_first is None else old_first
        else:
            lines.append(DiffLine(DiffLineKind.ADDITION, _strip_eol(new_lines[j])))
            new_count += 1
            new_first = j if new_first is None else new_first

    # Unified diff convention: an empty side starts at the line before it
    old_start = old_first + 1 if old_count else old_cursor
    new_start = new_first + 1 if new_count else new_cursor
    header = f"@@ -{_format_range(old_start, old_count)} +{_format_range(new_start, new_count)} @@"
    return DiffHunk(
        old_start=old_start,
        old_lines=old_count,
        new_start=new_start,
        new_lines=new_count,
        header=header,
        lines=lines,
    )


def build_hunks(
    old_lines: Sequence[str], new_lines: Sequence[str], context: int = DEFAULT_CONTEXT_LINES
) -> List[DiffHunk]:
    """Group the edit script between two line sequences into hunks.

    Args:
        old_lines: Lines of the old side (terminators may be kept)
        new_lines: Lines of the new side
        context: Unchanged lines shown around every changed run

    Returns:
        Hunks ordered by ``old_start``; empty when the sides are equal
    """
    if context < 0:
        raise ValueError(f"context must not be negative, got {context}")

    script = compute_edit_script(old_lines, new_lines)
    changed = [idx for idx, (op, _, _) in enumerate(script) if op != EQUAL]
    if not changed:
        return []

    hunks: List[DiffHunk] = []
    start = max(0, changed[0] - context)
    prev = changed[0]
    for idx in changed[1:]:
        gap = idx - prev - 1
        if gap >= 2 * context and gap > 0:
            hunks.append(_make_hunk(script, start, prev + context, old_lines, new_lines))
            start = idx - context
        prev = idx
    hunks.append(_make_hunk(script, start, min(len(script) - 1, prev + context), old_lines, new_lines))
    return hunks


def apply_hunks(old_lines: Sequence[str], hunks: Sequence[DiffHunk]) -> List[str]:
    """Replay hunks over the old lines (without terminators) to get the new lines."""
    result: List[str] = []
    pos = 0
    for hunk in hunks:
        start = hunk.old_start - 1 if hunk.old_lines else hunk.old_start
        result.extend(old_lines[pos:start])
        pos = start
        for line in hunk.lines:
            if line.kind is DiffLineKind.CONTEXT:
                result.append(line.content)
                pos += 1
            elif line.kind is DiffLineKind.DELETION:
                pos += 1
            else:
                result.append(line.content)
    result.extend(old_lines[pos:])
    return result


def build_file_diff(
    path: str,
    old_data: Optional[bytes],
    new_data: Optional[bytes],
    status: Optional[FileStatus] = None,
    old_path: Optional[str] = None,
    context: int = DEFAULT_CONTEXT_LINES,
) -> Optional[FileDiff]:
    """Build the diff of one file from the raw content of both sides.

    Args:
        path: Path of the file on the new side
        old_data: Old content, or None when the file did not exist
        new_data: New content, or None when the file was deleted
        status: Change status reported by the version-control layer
        old_path: Previous path, for renames
        context: Context lines per hunk

    Returns:
        The FileDiff, or None when the file is unchanged
    """
    if status is None:
        if old_data is None:
            status = FileStatus.ADDED
        elif new_data is None:
            status = FileStatus.DELETED
        else:
            status = FileStatus.MODIFIED

    if status is not FileStatus.RENAMED:
        old_path = None

    old_bytes = old_data or b""
    new_bytes = new_data or b""

    if old_bytes == new_bytes and status is FileStatus.MODIFIED:
        return None

    if is_binary(old_bytes) or is_binary(new_bytes):
        logger.debug(f"Skipping hunks for binary file {path}")
        return FileDiff(path=path, status=status, old_path=old_path, hunks=[], binary=True)

    hunks = build_hunks(split_lines(old_bytes), split_lines(new_bytes), context=context)
    return FileDiff(path=path, status=status, old_path=old_path, hunks=hunks, binary=False)


def diff_texts(old_text: str, new_text: str, context: int = DEFAULT_CONTEXT_LINES) -> List[DiffHunk]:
    """Convenience wrapper over ``build_hunks`` for two strings."""
    return build_hunks(
        old_text.splitlines(keepends=True), new_text.splitlines(keepends=True), context=context
    )
