"""Tests for line diffs and hunk grouping."""

import pytest

from worktree_lens.models.diff import DiffLineKind, FileStatus
from worktree_lens.services.diff_builder import (
    DELETE,
    EQUAL,
    INSERT,
    apply_hunks,
    build_file_diff,
    build_hunks,
    compute_edit_script,
    diff_texts,
    is_binary,
    split_lines,
)


def numbered(count, prefix="line"):
    return [f"{prefix} {i}\n" for i in range(1, count + 1)]


def stripped(lines):
    return [line.rstrip("\n") for line in lines]


class TestEditScript:
    """Minimal edit scripts."""

    def test_identical_sequences_are_all_equal(self):
        lines = numbered(5)
        script = compute_edit_script(lines, lines)
        assert all(op == EQUAL for op, _, _ in script)
        assert len(script) == 5

    def test_deletions_come_before_insertions_in_a_run(self):
        script = compute_edit_script(["a\n", "b\n", "c\n"], ["a\n", "x\n", "y\n", "c\n"])
        ops = [op for op, _, _ in script]
        assert ops == [EQUAL, DELETE, INSERT, INSERT, EQUAL]

    def test_script_is_minimal(self):
        old = ["a", "b", "c", "a", "b", "b", "a"]
        new = ["c", "b", "a", "b", "a", "c"]
        script = compute_edit_script(old, new)
        changes = sum(1 for op, _, _ in script if op != EQUAL)
        # Classic Myers example: D = 5
        assert changes == 5

    def test_empty_sides(self):
        assert [op for op, _, _ in compute_edit_script([], ["a"])] == [INSERT]
        assert [op for op, _, _ in compute_edit_script(["a"], [])] == [DELETE]
        assert compute_edit_script([], []) == []

    def test_script_is_deterministic(self):
        old = numbered(20)
        new = old[:3] + ["new\n"] + old[5:15] + old[16:]
        assert compute_edit_script(old, new) == compute_edit_script(old, new)


class TestBuildHunks:
    """Hunk grouping and headers."""

    def test_single_change_in_middle(self):
        """Changing line 5 of 10 gives one hunk covering lines 2-8."""
        old = numbered(10)
        new = list(old)
        new[4] = "changed\n"

        hunks = build_hunks(old, new, context=3)

        assert len(hunks) == 1
        hunk = hunks[0]
        assert hunk.header == "@@ -2,7 +2,7 @@"
        assert (hunk.old_start, hunk.old_lines, hunk.new_start, hunk.new_lines) == (2, 7, 2, 7)
        kinds = [line.kind for line in hunk.lines]
        assert kinds.count(DiffLineKind.DELETION) == 1
        assert kinds.count(DiffLineKind.ADDITION) == 1
        assert [l.content for l in hunk.lines if l.kind is DiffLineKind.DELETION] == ["line 5"]
        assert [l.content for l in hunk.lines if l.kind is DiffLineKind.ADDITION] == ["changed"]

    def test_identical_inputs_produce_no_hunks(self):
        assert build_hunks(numbered(10), numbered(10)) == []

    def test_gap_shorter_than_twice_context_merges(self):
        old = numbered(20)
        new = list(old)
        new[4] = "x\n"
        new[10] = "y\n"  # 5 unchanged lines between the changes
        hunks = build_hunks(old, new, context=3)
        assert len(hunks) == 1

    def test_gap_of_exactly_twice_context_splits(self):
        old = numbered(20)
        new = list(old)
        new[4] = "x\n"
        new[11] = "y\n"  # 6 unchanged lines between the changes
        hunks = build_hunks(old, new, context=3)
        assert len(hunks) == 2
        assert hunks[0].old_start < hunks[1].old_start

    def test_no_hunk_contains_a_long_unchanged_run(self):
        old = numbered(60)
        new = list(old)
        for index in (2, 9, 30, 37, 55):
            new[index] = f"changed {index}\n"
        context = 3
        for hunk in build_hunks(old, new, context=context):
            run = 0
            for line in hunk.lines:
                if line.kind is DiffLineKind.CONTEXT:
                    run += 1
                    assert run < 2 * context
                else:
                    run = 0

    def test_context_is_clamped_at_file_edges(self):
        old = numbered(3)
        new = ["changed\n"] + old[1:]
        hunk = build_hunks(old, new, context=3)[0]
        assert hunk.old_start == 1
        assert hunk.old_lines == 3
        assert hunk.header == "@@ -1,3 +1,3 @@"

    def test_new_file_header(self):
        hunk = build_hunks([], ["a\n", "b\n"])[0]
        assert hunk.header == "@@ -0,0 +1,2 @@"

    def test_deleted_file_header(self):
        hunk = build_hunks(["a\n"], [])[0]
        assert hunk.header == "@@ -1 +0,0 @@"

    def test_pure_insertion_header_uses_previous_line(self):
        old = numbered(10)
        new = old[:5] + ["inserted\n"] + old[5:]
        hunk = build_hunks(old, new, context=0)[0]
        assert hunk.header == "@@ -5,0 +6 @@"

    def test_negative_context_rejected(self):
        with pytest.raises(ValueError):
            build_hunks(["a"], ["b"], context=-1)

    def test_hunks_are_idempotent(self):
        old = numbered(30)
        new = old[:4] + ["a\n", "b\n"] + old[8:20] + old[22:]
        assert build_hunks(old, new) == build_hunks(old, new)


class TestApplyHunks:
    """Replaying hunks reconstructs the new side."""

    @pytest.mark.parametrize("context", [0, 1, 3])
    def test_round_trip(self, context):
        old = numbered(40)
        new = ["header\n"] + old[:7] + ["mid\n"] + old[9:25] + old[27:] + ["tail\n"]
        hunks = build_hunks(old, new, context=context)
        assert apply_hunks(stripped(old), hunks) == stripped(new)

    def test_round_trip_from_empty(self):
        new = numbered(4)
        assert apply_hunks([], build_hunks([], new)) == stripped(new)


class TestBuildFileDiff:
    """File-level diffs from raw content."""

    def test_binary_detection(self):
        assert is_binary(b"abc\0def")
        assert not is_binary(b"plain text\n")
        assert not is_binary(None)

    def test_binary_file_has_no_hunks(self):
        file_diff = build_file_diff("image.png", b"\x89PNG\0\x01", b"\x89PNG\0\x02")
        assert file_diff.binary is True
        assert file_diff.hunks == []
        assert file_diff.status is FileStatus.MODIFIED

    def test_unchanged_file_returns_none(self):
        assert build_file_diff("a.txt", b"same\n", b"same\n") is None

    def test_status_defaults_from_sides(self):
        assert build_file_diff("a.txt", None, b"new\n").status is FileStatus.ADDED
        assert build_file_diff("a.txt", b"old\n", None).status is FileStatus.DELETED

    def test_old_path_only_kept_for_renames(self):
        modified = build_file_diff("b.txt", b"x\n", b"y\n", status=FileStatus.MODIFIED, old_path="a.txt")
        assert modified.old_path is None

        renamed = build_file_diff("b.txt", b"x\n", b"x\n", status=FileStatus.RENAMED, old_path="a.txt")
        assert renamed.old_path == "a.txt"
        assert renamed.hunks == []

    def test_counts(self):
        file_diff = build_file_diff("a.txt", b"1\n2\n3\n", b"1\nTWO\n3\nfour\n")
        assert file_diff.insertions == 2
        assert file_diff.deletions == 1

    def test_crlf_terminators_stripped_from_content(self):
        file_diff = build_file_diff("a.txt", b"a\r\nb\r\n", b"a\r\nc\r\n")
        contents = [line.content for line in file_diff.hunks[0].lines]
        assert contents == ["a", "b", "c"]

    def test_invalid_utf8_is_replaced(self):
        assert split_lines(b"ok\n\xff\n") == ["ok\n", "\ufffd\n"]

    def test_diff_texts(self):
        hunks = diff_texts("a\nb\n", "a\nc\n")
        assert len(hunks) == 1
