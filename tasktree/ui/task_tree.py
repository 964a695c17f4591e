"""Task tree widget.

TaskTreeView is a Textual Tree whose nodes carry ExpandableNode models.
Expanding a tree node loads that node's direct children only; the widget
re-renders whichever node its model reports as changed.
"""

from typing import Dict, Optional

from rich.text import Text
from textual.widgets import Tree
from textual.widgets.tree import TreeNode

from tasktree.logging_config import get_logger
from tasktree.models import Task
from tasktree.ui.components.task_label import render_task_label
from tasktree.ui.expandable import ExpandableNode

logger = get_logger(__name__)

TaskNode = ExpandableNode[Task]


class TaskTreeView(Tree):
    """Lazily loaded tree of tasks for one workspace."""

    DEFAULT_CSS = """
    TaskTreeView {
        height: 1fr;
        padding: 0 1;
    }
    """

    def __init__(self, model: TaskNode, label: str = "Tasks", **kwargs) -> None:
        """Initialize the tree view.

        Args:
            model: Root model whose children are the workspace's root tasks
            label: Label of the (hidden) root node
            **kwargs: Additional keyword arguments for Tree
        """
        super().__init__(label, data=model, **kwargs)
        self.model = model
        self._tree_nodes: Dict[int, TreeNode] = {id(model): self.root}
        model.add_listener(self._on_model_changed)

    def on_mount(self) -> None:
        self.show_root = False
        self.load_root()

    def load_root(self) -> None:
        """Fetch the root tasks."""
        self.root.expand()
        self.run_worker(self.model.expand(), group="fetch")

    # ==============================================================================
    # SELECTION HELPERS
    # ==============================================================================

    def cursor_model(self) -> Optional[TaskNode]:
        """Model under the cursor, None when the cursor is on nothing."""
        node = self.cursor_node
        if node is None or node.data is None or node.data is self.model:
            return None
        return node.data

    def tree_node_for(self, model: TaskNode) -> Optional[TreeNode]:
        """Tree node currently rendering a model."""
        return self._tree_nodes.get(id(model))

    # ==============================================================================
    # EVENT HANDLERS
    # ==============================================================================

    def on_tree_node_expanded(self, event: Tree.NodeExpanded) -> None:
        """Load the expanded node's direct children."""
        model = event.node.data
        if model is None or model.expanded and (model.loaded or model.loading):
            return
        logger.debug(f"Expanding node {model.key}")
        self.run_worker(model.expand(), group="fetch")

    def on_tree_node_collapsed(self, event: Tree.NodeCollapsed) -> None:
        """Mark the model collapsed so a late response is discarded."""
        model = event.node.data
        if model is None or not model.expanded or model is self.model:
            return
        model.collapse()

    # ==============================================================================
    # RENDERING
    # ==============================================================================

    def _label_for(self, model: TaskNode) -> Text:
        return render_task_label(
            model.item,
            show_details=model.show_details,
            loading=model.loading,
            error=model.error,
        )

    def _on_model_changed(self, model: TaskNode) -> None:
        tree_node = self._tree_nodes.get(id(model))
        if tree_node is None:
            return

        if model.item is not None:
            tree_node.set_label(self._label_for(model))
            tree_node.allow_expand = model.item.has_children or bool(model.children)

        if model.loaded and model.expanded:
            self._render_children(tree_node, model)

    def _render_children(self, tree_node: TreeNode, model: TaskNode) -> None:
        """Rebuild a tree node's children from its model, keeping the cursor on the same task."""
        cursor = self.cursor_node
        cursor_key = cursor.data.key if cursor is not None and cursor.data is not None else None

        for child in tree_node.children:
            self._forget(child)
        tree_node.remove_children()

        restore: Optional[TreeNode] = None
        for child_model in model.children:
            child_node = self._add_model(tree_node, child_model)
            if cursor_key is not None and child_model.key == cursor_key:
                restore = child_node

        if restore is not None:
            self.move_cursor(restore)

    def _add_model(self, parent: TreeNode, model: TaskNode) -> TreeNode:
        child_node = parent.add(
            self._label_for(model),
            data=model,
            allow_expand=model.item.has_children or bool(model.children),
        )
        self._tree_nodes[id(model)] = child_node
        model.add_listener(self._on_model_changed)

        if model.expanded:
            if model.loaded:
                for grandchild in model.children:
                    self._add_model(child_node, grandchild)
            child_node.expand()
        return child_node

    def _forget(self, tree_node: TreeNode) -> None:
        for child in tree_node.children:
            self._forget(child)
        if tree_node.data is not None:
            self._tree_nodes.pop(id(tree_node.data), None)
