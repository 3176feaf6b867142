"""Fallback session detection from the agent's JSONL transcripts.

When no hook record exists for a worktree (hooks not installed, or a
session started before they were), the tail of the agent's transcript
files under ``~/.claude/projects`` tells us roughly what it is doing.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from worktree_lens.models.session import SessionState
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

TAIL_ENTRIES = 10
MAX_SCAN_DEPTH = 4
TAIL_BYTES = 64 * 1024


class TranscriptState:
    """Result of reading one transcript's tail."""

    __slots__ = ("ended", "state", "last_tool", "timestamp")

    def __init__(self, ended: bool = False, state: SessionState = SessionState.UNKNOWN,
                 last_tool: Optional[str] = None, timestamp: int = 0):
        self.ended = ended
        self.state = state
        self.last_tool = last_tool
        self.timestamp = timestamp

    @property
    def is_active(self) -> bool:
        return not self.ended and self.state is not SessionState.UNKNOWN and self.timestamp > 0


def _parse_timestamp(value) -> int:
    if not isinstance(value, str):
        return 0
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return 0


def parse_transcript_tail(lines: List[str]) -> TranscriptState:
    """Derive a session state from the last entries of a transcript.

    - a ``summary`` entry means the session ended
    - a user message means the agent is working on a reply
    - an assistant message stopping for ``tool_use`` waits for approval
    - an assistant message with ``end_turn`` waits for input
    - anything else from the assistant is still streaming (working)
    """
    result = TranscriptState()
    for line in lines[-TAIL_ENTRIES:]:
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(entry, dict):
            continue

        if entry.get("type") == "summary":
            return TranscriptState(ended=True)

        timestamp = _parse_timestamp(entry.get("timestamp"))
        if timestamp:
            result.timestamp = timestamp

        message = entry.get("message")
        if not isinstance(message, dict):
            continue

        role = message.get("role")
        if role == "user":
            result.state = SessionState.WORKING
        elif role == "assistant":
            stop_reason = message.get("stop_reason")
            if stop_reason == "tool_use":
                result.state = SessionState.WAITING_FOR_APPROVAL
                for content in message.get("content") or []:
                    if isinstance(content, dict) and content.get("type") == "tool_use":
                        result.last_tool = content.get("name")
            elif stop_reason == "end_turn":
                result.state = SessionState.WAITING_FOR_INPUT
            else:
                result.state = SessionState.WORKING
    return result


def _read_first_line(path: Path) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.readline()
    except OSError:
        return None


def _read_tail_lines(path: Path) -> List[str]:
    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            f.seek(max(0, size - TAIL_BYTES))
            data = f.read()
    except OSError:
        return []
    lines = data.decode("utf-8", errors="replace").splitlines()
    if size > TAIL_BYTES and lines:
        lines = lines[1:]  # First line is probably cut
    return lines


def transcript_cwd(path: Path) -> Optional[str]:
    """Working directory recorded in a transcript's first entry."""
    first = _read_first_line(path)
    if not first:
        return None
    try:
        entry = json.loads(first)
    except json.JSONDecodeError:
        return None
    cwd = entry.get("cwd") if isinstance(entry, dict) else None
    if not isinstance(cwd, str) or not cwd or "\0" in cwd:
        return None
    return cwd


class TranscriptFallback:
    """Scans transcript files and reports the sessions they describe."""

    def __init__(self, projects_dir: str):
        self.projects_dir = Path(projects_dir)

    def _transcripts(self) -> List[Path]:
        if not self.projects_dir.is_dir():
            return []
        found = []
        base_depth = len(self.projects_dir.parts)
        for dirpath, dirnames, filenames in os.walk(self.projects_dir):
            if len(Path(dirpath).parts) - base_depth >= MAX_SCAN_DEPTH:
                dirnames[:] = []
            for filename in filenames:
                if filename.endswith(".jsonl"):
                    found.append(Path(dirpath) / filename)
        return found

    def scan(self) -> Dict[str, List[Tuple[str, TranscriptState]]]:
        """Map each transcript's cwd to ``[(session_id, state)]`` for live transcripts."""
        sessions: Dict[str, List[Tuple[str, TranscriptState]]] = {}
        for path in self._transcripts():
            cwd = transcript_cwd(path)
            if cwd is None:
                continue
            state = parse_transcript_tail(_read_tail_lines(path))
            if not state.is_active:
                continue
            sessions.setdefault(cwd, []).append((path.stem, state))
        logger.debug(f"Transcript fallback found sessions for {len(sessions)} project(s)")
        return sessions
