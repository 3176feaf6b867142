"""Modal screens for the worktree-lens TUI."""

from typing import Union

from rich.text import Text
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, ScrollableContainer, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Static


class DetailScreen(ModalScreen):
    """Full-height overlay for long content: commit diffs, sessions, legend."""

    DEFAULT_CSS = """
    DetailScreen {
        align: center middle;
    }

    #detail-dialog {
        width: 95%;
        height: 90%;
        border: thick $background 80%;
        background: $surface;
        padding: 0 1;
    }

    #detail-title {
        height: 1;
        text-style: bold;
        color: $accent;
    }

    #detail-scroll {
        height: 1fr;
    }

    #detail-buttons {
        height: auto;
        align: right middle;
    }
    """

    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("q", "close", "Close", show=False),
        Binding("j", "scroll(1)", "Down", show=False),
        Binding("k", "scroll(-1)", "Up", show=False),
        Binding("space", "scroll(20)", "Page down", show=False),
    ]

    def __init__(self, title: str, content: Union[str, Text]):
        super().__init__()
        self.title_text = title
        self.content = content

    def compose(self) -> ComposeResult:
        with Vertical(id="detail-dialog"):
            yield Static(self.title_text, id="detail-title")
            with ScrollableContainer(id="detail-scroll"):
                yield Static(self.content)
            with Horizontal(id="detail-buttons"):
                yield Button("Close", variant="primary", id="close")

    def action_scroll(self, lines: int) -> None:
        scroll = self.query_one("#detail-scroll", ScrollableContainer)
        scroll.scroll_relative(y=lines, animate=False)

    def action_close(self) -> None:
        self.dismiss()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss()
