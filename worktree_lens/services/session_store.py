"""Storage of hook-written session status records.

One JSON file per session id in the status directory::

    {"session_id": "...", "project_path": "/path", "state": "working",
     "timestamp": 1700000000, "last_tool": "Bash", "waiting_reason": null}
"""

import json
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from worktree_lens.exceptions import AccessDeniedError, CorruptError
from worktree_lens.models.session import StatusRecord
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

RECORD_SUFFIX = ".json"


def _safe_session_id(session_id: str) -> str:
    """Session ids become file names; refuse anything that could escape the directory."""
    if not session_id or os.sep in session_id or (os.altsep and os.altsep in session_id) or session_id in (".", ".."):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return session_id


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_record(raw: str, filename: str) -> StatusRecord:
    """Parse one status record.

    Raises:
        CorruptError: content is not a JSON object or lacks a project path
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptError(filename, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise CorruptError(filename, "record is not a JSON object")

    project_path = data.get("project_path")
    if not isinstance(project_path, str) or not project_path.strip():
        raise CorruptError(filename, "missing project_path")
    if "\0" in project_path:
        raise CorruptError(filename, "project_path contains a NUL byte")

    try:
        timestamp = int(data.get("timestamp") or 0)
    except (TypeError, ValueError, OverflowError) as e:
        raise CorruptError(filename, f"bad timestamp: {data.get('timestamp')!r}") from e

    stem = Path(filename).stem
    session_id = stem or _optional_str(data.get("session_id")) or ""

    return StatusRecord(
        session_id=session_id,
        project_path=project_path,
        state=str(data.get("state", "")),
        timestamp=timestamp,
        waiting_reason=_optional_str(data.get("waiting_reason")),
        last_tool=_optional_str(data.get("last_tool")),
        raw=raw,
        filename=filename,
    )


class StatusRecordStore:
    """Reads, writes and deletes session status records in one directory."""

    def __init__(self, status_dir: str):
        self.status_dir = Path(status_dir)

    def exists(self) -> bool:
        return self.status_dir.is_dir()

    def ensure_dir(self) -> None:
        self.status_dir.mkdir(parents=True, exist_ok=True)

    def record_path(self, session_id: str) -> Path:
        return self.status_dir / f"{_safe_session_id(session_id)}{RECORD_SUFFIX}"

    def list_records(self) -> List[StatusRecord]:
        """Read every record; unreadable or corrupt files are logged and skipped."""
        if not self.status_dir.is_dir():
            return []

        try:
            entries = sorted(self.status_dir.iterdir())
        except PermissionError as e:
            raise AccessDeniedError(str(self.status_dir), str(e)) from e

        records = []
        for path in entries:
            if path.suffix != RECORD_SUFFIX or not path.is_file():
                continue
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue  # Deleted between listing and reading
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable status record {path.name}: {e}")
                continue
            try:
                records.append(parse_record(raw, path.name))
            except CorruptError as e:
                logger.warning(f"Skipping status record: {e}")
        return records

    def write_record(
        self,
        session_id: str,
        project_path: str,
        state: str,
        timestamp: int,
        waiting_reason: Optional[str] = None,
        last_tool: Optional[str] = None,
    ) -> Path:
        """Write a record atomically (temp file + rename)."""
        self.ensure_dir()
        target = self.record_path(session_id)
        payload = {
            "session_id": session_id,
            "project_path": project_path,
            "state": state,
            "timestamp": int(timestamp),
        }
        if waiting_reason:
            payload["waiting_reason"] = waiting_reason
        if last_tool:
            payload["last_tool"] = last_tool

        fd, temp_name = tempfile.mkstemp(dir=self.status_dir, prefix=".tmp-", suffix=".part")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(temp_name, target)
        finally:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
        return target

    def delete_record(self, session_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a file was removed, False if it did not exist
        """
        path = self.record_path(session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except PermissionError as e:
            raise AccessDeniedError(str(path), str(e)) from e
        logger.info(f"Deleted status record {path.name}")
        return True
