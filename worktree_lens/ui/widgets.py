"""Custom widgets for the worktree-lens TUI."""

from typing import Optional

from rich.text import Text
from textual.events import Click
from textual.widgets import Header, Static

from worktree_lens.constants import SYMBOL_PENDING_INPUT


class NonExpandingHeader(Header):
    """Header that ignores clicks instead of toggling its tall mode."""

    def on_click(self, event: Click) -> None:
        event.stop()


class StatusBar(Static):
    """Bottom line: worktree count, sessions waiting on the user, selection."""

    def show(
        self,
        worktree_count: int,
        waiting: int = 0,
        selected: Optional[str] = None,
        message: str = "",
    ) -> None:
        line = Text(f"{worktree_count} worktree(s)")
        if waiting:
            line.append("  |  ")
            line.append(f"{SYMBOL_PENDING_INPUT} {waiting} waiting for you", style="bold yellow")
        if selected:
            line.append("  |  ")
            line.append(selected, style="dim")
        if message:
            line.append(f"  |  {message}")
        self.update(line)
