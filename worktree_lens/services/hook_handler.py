"""Hook handler invoked by the agent for every registered hook event.

A single command (``worktree-lens hook-handler``) handles all events. It
reads the event JSON on stdin and writes, or deletes, the session's status
record. It exits silently on empty or invalid input so a broken payload
never interrupts the agent.
"""

import json
import os
import time
from typing import Optional, TextIO

from worktree_lens.exceptions import WorktreeLensError
from worktree_lens.services.session_store import StatusRecordStore
from worktree_lens.logging_config import get_logger

logger = get_logger(__name__)

# Event -> declared state; None means the record is deleted
EVENT_STATES = {
    "SessionStart": "idle",
    "PreToolUse": "working",
    "PostToolUse": "working",
    "PermissionRequest": "waiting_for_approval",
    "Notification": "waiting_for_input",
    "Stop": "idle",
    "SessionEnd": None,
}


def handle_hook_event(stdin: TextIO, status_dir: str, now: Optional[float] = None) -> Optional[str]:
    """Apply one hook event to the status directory.

    Args:
        stdin: Stream carrying the hook payload
        status_dir: Directory holding the status records
        now: Timestamp to record; defaults to the current time

    Returns:
        The state written, ``"deleted"``, or None if the event was ignored
    """
    try:
        raw = stdin.read()
    except (OSError, ValueError):
        return None
    if not raw or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    event = data.get("hook_event_name")
    session_id = data.get("session_id")
    if event not in EVENT_STATES or not isinstance(session_id, str) or not session_id:
        return None

    store = StatusRecordStore(status_dir)
    try:
        if EVENT_STATES[event] is None:
            store.delete_record(session_id)
            return "deleted"

        project_path = os.environ.get("CLAUDE_PROJECT_DIR") or data.get("cwd")
        if not project_path:
            return None

        state = EVENT_STATES[event]
        tool_name = data.get("tool_name") if isinstance(data.get("tool_name"), str) else None
        waiting_reason = None
        if event == "PermissionRequest":
            waiting_reason = tool_name
        elif event == "Notification":
            message = data.get("message")
            waiting_reason = message if isinstance(message, str) else None

        store.write_record(
            session_id,
            project_path,
            state,
            int(now if now is not None else time.time()),
            waiting_reason=waiting_reason,
            last_tool=tool_name if event in ("PreToolUse", "PostToolUse", "PermissionRequest") else None,
        )
    except ValueError as e:
        logger.debug(f"Ignoring hook event: {e}")
        return None
    except (OSError, WorktreeLensError) as e:
        logger.warning(f"Failed to record hook event {event}: {e}")
        return None
    return state
