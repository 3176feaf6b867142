"""Tests for status record storage."""

import json

import pytest

from worktree_lens.exceptions import CorruptError
from worktree_lens.services.session_store import StatusRecordStore, parse_record


@pytest.fixture
def store(temp_dir):
    return StatusRecordStore(str(temp_dir / "status"))


class TestParseRecord:
    def test_valid_record(self):
        raw = json.dumps({"project_path": "/wt", "state": "working", "timestamp": 123, "last_tool": "Bash"})
        record = parse_record(raw, "abc.json")
        assert record.session_id == "abc"
        assert record.state == "working"
        assert record.timestamp == 123
        assert record.last_tool == "Bash"
        assert record.raw == raw

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        json.dumps({"state": "working"}),
        json.dumps({"project_path": "  "}),
        json.dumps({"project_path": "/wt", "timestamp": "soon"}),
        '{"project_path": "/wt", "timestamp": 1e400}',
        json.dumps({"project_path": "/wt\u0000x", "timestamp": 1}),
    ])
    def test_corrupt(self, raw):
        with pytest.raises(CorruptError):
            parse_record(raw, "bad.json")

    def test_missing_timestamp_is_zero(self):
        assert parse_record(json.dumps({"project_path": "/wt"}), "a.json").timestamp == 0


class TestStatusRecordStore:
    def test_missing_directory_lists_nothing(self, store):
        assert store.list_records() == []
        assert not store.exists()

    def test_write_and_list(self, store):
        store.write_record("s1", "/wt", "waiting_for_approval", 100, waiting_reason="Bash", last_tool="Bash")
        records = store.list_records()
        assert len(records) == 1
        assert records[0].session_id == "s1"
        assert records[0].waiting_reason == "Bash"

    def test_write_leaves_no_temp_files(self, store):
        store.write_record("s1", "/wt", "working", 100)
        store.write_record("s1", "/wt", "idle", 101)
        assert [p.name for p in store.status_dir.iterdir()] == ["s1.json"]
        assert store.list_records()[0].state == "idle"

    def test_corrupt_files_skipped(self, store, caplog):
        store.write_record("good", "/wt", "working", 100)
        (store.status_dir / "bad.json").write_text("{broken")
        (store.status_dir / "notes.txt").write_text("ignored")

        records = store.list_records()

        assert [r.session_id for r in records] == ["good"]
        assert "bad.json" in caplog.text

    def test_delete(self, store):
        store.write_record("s1", "/wt", "working", 100)
        assert store.delete_record("s1") is True
        assert store.delete_record("s1") is False
        assert store.list_records() == []

    @pytest.mark.parametrize("session_id", ["", ".", "..", "a/b"])
    def test_unsafe_ids_rejected(self, store, session_id):
        with pytest.raises(ValueError):
            store.record_path(session_id)
