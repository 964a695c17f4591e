"""tasktree UI components - Reusable widgets and renderers."""

from tasktree.ui.components.task_label import render_task_label
from tasktree.ui.components.task_prompt import TaskPrompt

__all__ = ["render_task_label", "TaskPrompt"]
