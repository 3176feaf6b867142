"""Agent session formatting utilities."""

from rich.text import Text

from worktree_lens.constants import SESSION_STATE_COLORS, SYMBOL_PENDING_INPUT, SYMBOL_WORKING
from worktree_lens.models.session import SessionState, WorktreeClaudeStatus

STATE_LABELS = {
    SessionState.WORKING: "working",
    SessionState.WAITING_FOR_APPROVAL: "needs approval",
    SessionState.WAITING_FOR_INPUT: "needs input",
    SessionState.IDLE: "idle",
    SessionState.UNKNOWN: "unknown",
}


def format_session_state(state: SessionState) -> Text:
    """Colored label for one session state."""
    return Text(STATE_LABELS[state], style=SESSION_STATE_COLORS.get(state.value, ""))


def format_claude_status(status: WorktreeClaudeStatus) -> Text:
    """
    Summarise the sessions attributed to a worktree.

    Pending input wins over working, so a worktree that needs the user
    always stands out.

    Args:
        status: Aggregated sessions for one worktree

    Returns:
        Rich Text such as "⏳ 1/2", "⚙ 2" or an empty Text
    """
    sessions = status.active_sessions
    if not sessions:
        return Text("")
    if status.has_pending_input:
        waiting = sum(1 for s in sessions if s.state.is_waiting)
        return Text(f"{SYMBOL_PENDING_INPUT} {waiting}/{len(sessions)}", style="bold yellow")
    if any(s.state is SessionState.WORKING for s in sessions):
        return Text(f"{SYMBOL_WORKING} {len(sessions)}", style="green")
    return Text(f"{len(sessions)} idle", style="cyan")
