"""Main Textual application for tasktree.

Shows one workspace as a lazily loaded tree: each expanded task fetches its
own direct children, and after a mutation only the affected branch is
reloaded.
"""

from contextlib import asynccontextmanager
from typing import List, Optional, Sequence
from uuid import UUID

from textual.app import App, ComposeResult
from textual.css.query import NoMatches
from textual.widgets import Footer, Header

from tasktree.config import Config, HierarchySettings, PresenterSettings
from tasktree.database import DatabaseManager, get_database_manager
from tasktree.logging_config import get_logger
from tasktree.models import Task
from tasktree.services.errors import TaskServiceError
from tasktree.services.task_service import TaskService
from tasktree.services.workspace_service import WorkspaceService
from tasktree.ui.components.task_prompt import TaskPrompt
from tasktree.ui.constants import (
    MAX_TITLE_LENGTH_IN_NOTIFICATION,
    NOTIFICATION_TIMEOUT_MEDIUM,
    NOTIFICATION_TIMEOUT_SHORT,
    TREE_ID,
)
from tasktree.ui.expandable import ExpandableNode
from tasktree.ui.keybindings import get_all_bindings
from tasktree.ui.task_tree import TaskNode, TaskTreeView
from tasktree.ui.theme import BACKGROUND, SELECTION

# Initialize logger for this module
logger = get_logger(__name__)


def _task_key(task: Task) -> UUID:
    return task.id


class TaskTreeApp(App):
    """Task tree browser for a single workspace."""

    CSS = f"""
    Screen {{
        background: {BACKGROUND};
        layout: vertical;
    }}

    Footer {{
        background: {SELECTION};
    }}
    """

    BINDINGS = get_all_bindings()

    # ==============================================================================
    # LIFECYCLE METHODS
    # ==============================================================================

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        config: Optional[Config] = None,
        user_id: Optional[UUID] = None,
        workspace_name: Optional[str] = None,
        **kwargs
    ) -> None:
        """Initialize the application.

        Args:
            db_manager: Database manager (defaults to the global one for the configured URL)
            config: Configuration (defaults to config/settings.ini)
            user_id: Acting user (defaults to [session] user_id)
            workspace_name: Workspace to open (defaults to [session] workspace_name)
            **kwargs: Additional keyword arguments for App
        """
        super().__init__(**kwargs)
        self.config = config or Config()
        session_config = self.config.get_session_config()

        self.user_id = user_id or UUID(session_config['user_id'])
        self.workspace_name = workspace_name or session_config['workspace_name']
        self.hierarchy_settings: HierarchySettings = self.config.get_hierarchy_settings()
        self.presenter_settings: PresenterSettings = self.config.get_presenter_settings()

        self._db_manager = db_manager
        self._workspace_id: Optional[UUID] = None

        self.title = "tasktree"
        self.sub_title = self.workspace_name

        self.tree_model: TaskNode = ExpandableNode(
            None,
            self._load_children,
            _task_key,
            settings=self.presenter_settings,
        )

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Header()
        yield Footer()

    async def on_mount(self) -> None:
        """Open the database, make sure the workspace exists, then show the tree."""
        logger.info("tasktree application mounted, initializing...")

        if self._db_manager is None:
            self._db_manager = get_database_manager(self.config.get_database_config()['url'])
        if self._db_manager.session_maker is None:
            await self._db_manager.initialize()

        await self._ensure_workspace()

        await self.mount(TaskTreeView(self.tree_model, label=self.workspace_name, id=TREE_ID))
        self.query_one(TaskTreeView).focus()
        logger.info(f"tasktree ready: workspace={self._workspace_id}, user={self.user_id}")

    async def on_unmount(self) -> None:
        logger.info("tasktree application shutting down")

    # ==============================================================================
    # PRIVATE HELPERS
    # ==============================================================================

    @asynccontextmanager
    async def _with_task_service(self):
        """Context manager for TaskService with database session.

        Yields:
            TaskService acting as the session user
        """
        async with self._db_manager.get_session() as session:
            yield TaskService(session, self.user_id, settings=self.hierarchy_settings)

    async def _ensure_workspace(self) -> None:
        """Find the configured workspace for the session user, creating it if needed."""
        async with self._db_manager.get_session() as session:
            workspaces = WorkspaceService(session)
            workspace = await workspaces.get_workspace_by_name(self.user_id, self.workspace_name)
            if workspace is None:
                workspace = await workspaces.create_workspace(self.workspace_name, self.user_id)
                logger.info(f"Created default workspace '{self.workspace_name}'")
        self._workspace_id = workspace.id

    async def _load_children(self, task: Optional[Task]) -> Sequence[Task]:
        """Children loader for the tree: all root tasks for None, otherwise direct children.

        Root tasks are fetched page_size at a time until every page is in.
        """
        async with self._with_task_service() as task_service:
            if task is None:
                roots: List[Task] = []
                page_number = 1
                while True:
                    page = await task_service.list_tasks(
                        self._workspace_id,
                        page=page_number,
                        limit=self.presenter_settings.page_size,
                    )
                    roots.extend(page.tasks)
                    if page_number >= page.pages:
                        break
                    page_number += 1
                if page_number > 1:
                    logger.debug(f"Loaded {len(roots)} root tasks over {page_number} pages")
                return roots
            return await task_service.list_children(task.id)

    def _tree(self) -> TaskTreeView:
        return self.query_one(f"#{TREE_ID}", TaskTreeView)

    def _selected(self) -> Optional[TaskNode]:
        try:
            return self._tree().cursor_model()
        except NoMatches:
            logger.debug("Task tree not mounted yet")
            return None

    def _notify_task_success(self, action: str, title: str) -> None:
        truncated = title[:MAX_TITLE_LENGTH_IN_NOTIFICATION]
        self.notify(f"✓ Task {action}: {truncated}", severity="information", timeout=NOTIFICATION_TIMEOUT_SHORT)

    def _notify_task_error(self, action: str, error: Exception) -> None:
        message = str(error) if isinstance(error, TaskServiceError) else f"Failed to {action}"
        self.notify(message, severity="error", timeout=NOTIFICATION_TIMEOUT_MEDIUM)

    async def _refresh_around(self, node: TaskNode) -> None:
        """Reload the branch holding a node's own record."""
        parent = node.parent or self.tree_model
        await parent.notify_changed()

    # ==============================================================================
    # EVENT HANDLERS
    # ==============================================================================

    async def on_task_prompt_title_entered(self, message: TaskPrompt.TitleEntered) -> None:
        """Create the task named in the prompt and reload its parent's branch."""
        parent = message.parent_task
        try:
            async with self._with_task_service() as task_service:
                task = await task_service.create_task(
                    message.title,
                    self._workspace_id,
                    parent_id=parent.id if parent else None,
                )
            self._notify_task_success("created", task.title)
        except Exception as e:
            logger.error("Error creating task", exc_info=True)
            self._notify_task_error("create task", e)
            return

        target = self._find_model(parent.id) if parent else self.tree_model
        if target is None:
            await self.tree_model.refresh()
            return
        if target.expanded:
            await target.notify_changed()
            return
        await target.expand()
        if target.parent is not None:
            await target.parent.refresh()

    def _find_model(self, task_id: UUID) -> Optional[TaskNode]:
        stack: List[TaskNode] = list(self.tree_model.children)
        while stack:
            node = stack.pop()
            if node.key == task_id:
                return node
            stack.extend(node.children)
        return None

    # ==============================================================================
    # ACTION HANDLERS
    # ==============================================================================

    def action_new_root_task(self) -> None:
        """Prompt for a new root task."""
        self.push_screen(TaskPrompt())

    def action_add_subtask(self) -> None:
        """Prompt for a subtask of the selected task."""
        node = self._selected()
        if node is None:
            logger.debug("No task selected for add subtask")
            return
        self.push_screen(TaskPrompt(parent_task=node.item))

    async def action_toggle_completion(self) -> None:
        """Complete or reopen the selected task."""
        node = self._selected()
        if node is None:
            return

        try:
            async with self._with_task_service() as task_service:
                updated = await task_service.toggle_completion(node.item.id)
        except Exception as e:
            logger.error("Error toggling task completion", exc_info=True)
            self._notify_task_error("toggle completion", e)
            return

        self._notify_task_success("completed" if updated.is_completed else "reopened", updated.title)
        await self._refresh_around(node)

    async def action_toggle_favorite(self) -> None:
        """Flip the selected task's favorite flag."""
        node = self._selected()
        if node is None:
            return

        try:
            async with self._with_task_service() as task_service:
                updated = await task_service.toggle_favorite(node.item.id)
        except Exception as e:
            logger.error("Error toggling favorite", exc_info=True)
            self._notify_task_error("toggle favorite", e)
            return

        node.item = updated
        node.rederive()

    async def action_delete_task(self) -> None:
        """Delete the selected task and its whole subtree."""
        node = self._selected()
        if node is None:
            return

        title = node.item.title
        try:
            async with self._with_task_service() as task_service:
                await task_service.delete_task(node.item.id)
        except Exception as e:
            logger.error("Error deleting task", exc_info=True)
            self._notify_task_error("delete task", e)
            return

        self._notify_task_success("deleted", title)
        await self._refresh_around(node)

    def action_toggle_details(self) -> None:
        node = self._selected()
        if node is not None:
            node.toggle_details()

    async def action_refresh_node(self) -> None:
        """Refetch the selected node's children, or the root tasks."""
        node = self._selected() or self.tree_model
        await node.refresh()
