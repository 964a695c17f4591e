"""Title prompt modal for adding tasks from the tree.

This module provides a small modal dialog with:
- Title input (required)
- Context line naming the parent task
- Keyboard shortcuts (Enter to save, Escape to cancel)
"""

from typing import Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.message import Message
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Static

from tasktree.logging_config import get_logger
from tasktree.models import Task
from tasktree.ui.theme import BACKGROUND, BORDER, FOREGROUND, LEVEL_0_COLOR, LEVEL_1_COLOR, MODAL_OVERLAY_BG, ORANGE

logger = get_logger(__name__)


class TaskPrompt(ModalScreen):
    """Modal screen asking for the title of a new task.

    Messages:
        TitleEntered: Emitted with the title and the intended parent
    """

    DEFAULT_CSS = f"""
    TaskPrompt {{
        align: center middle;
        background: {MODAL_OVERLAY_BG};
    }}

    TaskPrompt > Container {{
        width: 60;
        height: auto;
        background: {BACKGROUND};
        border: thick {LEVEL_0_COLOR};
        padding: 1 2;
    }}

    TaskPrompt .context-info {{
        width: 100%;
        color: {LEVEL_1_COLOR};
        margin-bottom: 1;
    }}

    TaskPrompt .error-message {{
        width: 100%;
        color: {ORANGE};
        text-style: bold;
    }}

    TaskPrompt Input {{
        width: 100%;
        background: {BORDER};
        color: {FOREGROUND};
    }}
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", priority=True),
    ]

    def __init__(self, parent_task: Optional[Task] = None, **kwargs) -> None:
        """Initialize the prompt.

        Args:
            parent_task: Task the new task goes under (None for a root task)
            **kwargs: Additional keyword arguments for ModalScreen
        """
        super().__init__(**kwargs)
        self.parent_task = parent_task

    def compose(self) -> ComposeResult:
        """Compose the modal layout."""
        with Container():
            if self.parent_task is not None:
                yield Static(f"Subtask of: {self.parent_task.title}", classes="context-info")
            else:
                yield Static("New root task", classes="context-info")
            yield Static("", classes="error-message", id="error-message")
            yield Label("Title:")
            yield Input(placeholder="Enter task title...", id="title-input")

    def on_mount(self) -> None:
        parent_id = self.parent_task.id if self.parent_task else None
        logger.debug(f"TaskPrompt: Opened, parent_id={parent_id}")
        self.query_one("#title-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle Enter key in the title field."""
        title = event.value.strip()
        if not title:
            self.query_one("#error-message", Static).update("⚠ Title cannot be empty")
            return

        self.app.post_message(self.TitleEntered(title=title, parent_task=self.parent_task))
        self.dismiss()

    def action_cancel(self) -> None:
        """Cancel and dismiss the modal."""
        logger.debug("TaskPrompt: Cancelled")
        self.dismiss()

    class TitleEntered(Message):
        """Message emitted when a title is submitted."""

        def __init__(self, title: str, parent_task: Optional[Task] = None) -> None:
            """Initialize the TitleEntered message.

            Args:
                title: Entered task title
                parent_task: Intended parent (None for a root task)
            """
            super().__init__()
            self.title = title
            self.parent_task = parent_task
