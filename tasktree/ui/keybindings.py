"""Keybindings for the tasktree application.

The tree widget keeps its own navigation keys (arrows, Enter to expand or
collapse); the bindings here act on the node under the cursor.
"""

from textual.binding import Binding

# Task action keybindings
TASK_ACTION_BINDINGS = [
    Binding("n,N", "new_root_task", "New Task", show=True),
    Binding("a,A", "add_subtask", "Add Subtask", show=True),
    Binding("c,C", "toggle_completion", "Toggle Complete", show=True),
    Binding("f,F", "toggle_favorite", "Favorite", show=True),
    Binding("i,I", "toggle_details", "Details", show=True),
    Binding("delete,backspace", "delete_task", "Delete Subtree", show=True),
]

# Tree keybindings
TREE_BINDINGS = [
    Binding("r,R", "refresh_node", "Refresh", show=True),
]

# Application control keybindings
APP_CONTROL_BINDINGS = [
    Binding("q,Q", "quit", "Quit", priority=True, show=True),
]


def get_all_bindings() -> list[Binding]:
    """Get all application keybindings.

    Returns:
        List of all Binding objects
    """
    return (
        TASK_ACTION_BINDINGS +
        TREE_BINDINGS +
        APP_CONTROL_BINDINGS
    )
