"""Rich labels for task tree nodes.

A label shows:
- Completion checkbox
- Title, struck through once completed
- Favorite star
- Child progress badge (done/total)
- Optional detail line fields (priority, due date, estimate)
"""

from typing import Optional

from rich.text import Text

from tasktree.models import Task, TaskStatus
from tasktree.ui.theme import (
    COMMENT,
    COMPLETE_COLOR,
    FOREGROUND,
    ORANGE,
    RED,
    YELLOW,
    get_level_color,
)
from tasktree.utils.datetime_utils import format_relative_day


def render_task_label(
    task: Task,
    show_details: bool = False,
    loading: bool = False,
    error: Optional[BaseException] = None,
) -> Text:
    """Render a task as a single tree label.

    Args:
        task: Task to render
        show_details: Append priority, due date and estimate
        loading: Children are being fetched
        error: Last child fetch failure, if any

    Returns:
        Rich Text label
    """
    text = Text()

    if task.is_completed:
        text.append("[✓] ", style=COMPLETE_COLOR)
        text.append(task.title, style=f"strike {COMPLETE_COLOR}")
    else:
        text.append("[ ] ", style=FOREGROUND)
        text.append(task.title, style=get_level_color(task.depth))

    if task.is_favorite:
        text.append(" ★", style=YELLOW)

    if task.has_children:
        text.append(f" ({task.progress_string})", style=f"{FOREGROUND} dim")

    if show_details:
        text.append(_detail_suffix(task), style=ORANGE if task.is_overdue else COMMENT)

    if loading:
        text.append(" …", style=COMMENT)
    elif error is not None:
        text.append(" ⚠ failed to load", style=RED)

    return text


def _detail_suffix(task: Task) -> str:
    parts = [task.priority.value]
    if task.status not in (TaskStatus.NOT_STARTED, TaskStatus.COMPLETED):
        parts.append(task.status.value)
    if task.due_date is not None:
        parts.append(f"due {format_relative_day(task.due_date)}")
    if task.estimated_time:
        parts.append(f"{task.estimated_time}m")
    return "  | " + " | ".join(parts)
