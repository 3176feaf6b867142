"""Diff rendering utilities."""

from typing import List

from rich.text import Text

from worktree_lens.models.diff import DiffLineKind, DiffStats, FileDiff, FileStatus

LINE_PREFIX = {
    DiffLineKind.CONTEXT: " ",
    DiffLineKind.ADDITION: "+",
    DiffLineKind.DELETION: "-",
}

LINE_STYLE = {
    DiffLineKind.CONTEXT: "",
    DiffLineKind.ADDITION: "green",
    DiffLineKind.DELETION: "red",
}

STATUS_STYLE = {
    FileStatus.ADDED: "green",
    FileStatus.MODIFIED: "yellow",
    FileStatus.DELETED: "red",
    FileStatus.RENAMED: "cyan",
}


def format_file_header(file_diff: FileDiff) -> Text:
    """One-line summary of a changed file."""
    if file_diff.status is FileStatus.RENAMED and file_diff.old_path:
        name = f"{file_diff.old_path} → {file_diff.path}"
    else:
        name = file_diff.path
    text = Text()
    text.append(f"{file_diff.status.value:<8} ", style=STATUS_STYLE[file_diff.status])
    text.append(name, style="bold")
    if file_diff.binary:
        text.append("  (binary)", style="dim")
    else:
        text.append(f"  +{file_diff.insertions} -{file_diff.deletions}", style="dim")
    return text


def render_file_diff(file_diff: FileDiff) -> Text:
    """
    Render a file's hunks in unified format.

    Args:
        file_diff: File to render

    Returns:
        Rich Text with headers in cyan, additions green, deletions red
    """
    text = format_file_header(file_diff)
    text.append("\n")
    if file_diff.binary:
        text.append("Binary files differ\n", style="dim")
        return text
    for hunk in file_diff.hunks:
        text.append(hunk.header + "\n", style="cyan")
        for line in hunk.lines:
            text.append(LINE_PREFIX[line.kind] + line.content + "\n", style=LINE_STYLE[line.kind])
    return text


def render_file_diffs(files: List[FileDiff]) -> Text:
    text = Text()
    for file_diff in files:
        text.append_text(render_file_diff(file_diff))
    return text


def format_diff_stats(stats: DiffStats) -> str:
    """e.g. "3 files changed, 10 insertions(+), 2 deletions(-)"."""
    files = "file" if stats.files_changed == 1 else "files"
    return (
        f"{stats.files_changed} {files} changed, "
        f"{stats.insertions} insertions(+), {stats.deletions} deletions(-)"
    )
