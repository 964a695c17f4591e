"""
Task service for tasktree.

Implements the mutation and read API of the task tree: creation with derived
path/depth/position, partial updates that never touch the tree, moves that
rebase the whole subtree, and recursive subtree deletion with one activity
entry per removed node.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktree.config import HierarchySettings
from tasktree.database import TaskORM
from tasktree.logging_config import get_logger
from tasktree.models import (
    STORED_ROW,
    ActivityAction,
    Task,
    TaskDetail,
    TaskPage,
    TaskPriority,
    TaskStatus,
    TaskSummary,
)
from tasktree.services.activity_log import ActivityLogger
from tasktree.services.conversion import orm_to_task, task_to_orm
from tasktree.services.errors import (
    AuthorizationError,
    ParentNotFoundError,
    PartialFailureError,
    PathInconsistencyError,
    TaskNotFoundError,
    TaskServiceError,
    TaskValidationError,
)
from tasktree.services.hierarchy_service import HierarchyService
from tasktree.services.move_validator import MoveContext, MoveRequest, TreeState, plan_move
from tasktree.services.notifications import LoggingNotifier, Notifier
from tasktree.services.path_maintainer import decode_path, derive_path, encode_path, rebase_path, subtree_prefix
from tasktree.services.position_allocator import next_position
from tasktree.services.workspace_service import MembershipChecker, WorkspaceService
from tasktree.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class _Unchanged:
    """Marker for "parent not given" in move_task."""

    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()

# Fields only the move operation may write
TREE_FIELDS = frozenset({"id", "parent_id", "path", "depth", "position", "workspace_id", "owner_id"})

# Fields a partial update may write
UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "status",
    "priority",
    "assignee_id",
    "due_date",
    "start_date",
    "category_id",
    "is_favorite",
    "estimated_time",
    "actual_time",
})


# Sortable listing fields
SORT_FIELDS = {
    "position": TaskORM.position,
    "created_at": TaskORM.created_at,
    "updated_at": TaskORM.updated_at,
    "due_date": TaskORM.due_date,
    "priority": TaskORM.priority,
    "status": TaskORM.status,
    "title": TaskORM.title,
}

DUE_WINDOWS = ("today", "overdue", "upcoming")


def _order_by(sort: str, order: str) -> List[Any]:
    if sort not in SORT_FIELDS:
        raise TaskValidationError(f"Cannot sort by {sort!r}; choose one of {', '.join(sorted(SORT_FIELDS))}")
    if order not in ("asc", "desc"):
        raise TaskValidationError(f"Sort order must be 'asc' or 'desc', not {order!r}")
    column = SORT_FIELDS[sort]
    return [column.asc() if order == "asc" else column.desc(), TaskORM.created_at]


def _due_date_conditions(due: str, now: Optional[datetime] = None) -> List[Any]:
    """
    WHERE clauses for a due date window, measured in whole UTC days.

    "today" is due before tomorrow's midnight, "overdue" is due before
    today's midnight and not completed, "upcoming" is due after today's
    midnight and within the next seven days.
    """
    if due not in DUE_WINDOWS:
        raise TaskValidationError(f"Unknown due date filter {due!r}; choose one of {', '.join(DUE_WINDOWS)}")
    today = (now or utc_now()).replace(hour=0, minute=0, second=0, microsecond=0)
    if due == "today":
        return [TaskORM.due_date >= today, TaskORM.due_date < today + timedelta(days=1)]
    if due == "overdue":
        return [TaskORM.due_date < today, TaskORM.status != TaskStatus.COMPLETED.value]
    return [TaskORM.due_date > today, TaskORM.due_date <= today + timedelta(days=7)]


def _validation_message(error: ValidationError) -> str:
    return ", ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'task'}: {err['msg']}" for err in error.errors()
    )


class TaskService:
    """
    Service layer for task tree operations.

    Every operation checks the acting user's access to the affected
    workspace first, then performs an ordered sequence of flushes on the
    session it was given. Committing is the caller's concern.
    """

    def __init__(
        self,
        session: AsyncSession,
        actor_id: UUID,
        membership: Optional[MembershipChecker] = None,
        activity: Optional[ActivityLogger] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[HierarchySettings] = None,
    ) -> None:
        """
        Initialize task service with database session.

        Args:
            session: Active async database session
            actor_id: User performing the operations
            membership: Authorization collaborator (defaults to WorkspaceService)
            activity: Activity logger (defaults to one writing for actor_id)
            notifier: Assignee notifier (defaults to LoggingNotifier)
            settings: Position allocation and delete strategy settings
        """
        self.session = session
        self.actor_id = actor_id
        self.membership = membership or WorkspaceService(session)
        self.activity = activity or ActivityLogger(session, actor_id)
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or HierarchySettings()
        self.hierarchy = HierarchyService(session)

    # ==============================================================================
    # VALIDATION HELPERS
    # ==============================================================================

    async def _can_access(self, workspace_id: Union[UUID, str]) -> bool:
        return await self.membership.is_workspace_member(self.actor_id, UUID(str(workspace_id)))

    async def _authorize(self, workspace_id: Union[UUID, str]) -> None:
        """
        Verify the actor may act on a workspace.

        Raises:
            AuthorizationError: If access is denied or the workspace does not exist
        """
        if not await self._can_access(workspace_id):
            logger.warning(f"Access denied: user={self.actor_id}, workspace={workspace_id}")
            raise AuthorizationError(f"Workspace {workspace_id} not found or access denied")

    async def _get_task_or_raise(self, task_id: UUID) -> TaskORM:
        """
        Get a task by ID or raise an exception.

        Raises:
            TaskNotFoundError: If task does not exist
        """
        task_orm = await self.hierarchy.get_task_orm(task_id)
        if not task_orm:
            raise TaskNotFoundError(f"Task with id {task_id} not found")
        return task_orm

    async def _get_parent_or_raise(self, parent_id: UUID) -> TaskORM:
        """
        Get a prospective parent task or raise an exception.

        Raises:
            ParentNotFoundError: If the parent does not exist
        """
        parent_orm = await self.hierarchy.get_task_orm(parent_id)
        if not parent_orm:
            raise ParentNotFoundError(f"Parent task with id {parent_id} not found")
        return parent_orm

    async def _fetch_task_with_counts(self, task_orm: TaskORM) -> Task:
        """Convert ORM task to Pydantic with child counts populated."""
        task = orm_to_task(task_orm)
        await self.hierarchy.populate_counts([task])
        return task

    # ==============================================================================
    # CREATE OPERATIONS
    # ==============================================================================

    async def create_task(
        self,
        title: str,
        workspace_id: UUID,
        parent_id: Optional[UUID] = None,
        position: Optional[float] = None,
        description: Optional[str] = None,
        status: Union[TaskStatus, str] = TaskStatus.NOT_STARTED,
        priority: Union[TaskPriority, str] = TaskPriority.MEDIUM,
        assignee_id: Optional[UUID] = None,
        due_date: Optional[datetime] = None,
        start_date: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
        is_favorite: bool = False,
        estimated_time: Optional[int] = None,
        task_id: Optional[UUID] = None,
    ) -> Task:
        """
        Create a new task (root or subtask).

        path and depth are derived from the parent; position is appended
        after the last sibling unless given. A subtask without its own
        category inherits the parent's.

        Args:
            title: Task title
            workspace_id: Owning workspace
            parent_id: Optional parent task (None for a root task)
            position: Optional explicit sibling position, stored verbatim
            description: Optional free text
            status: Initial status
            priority: Initial priority
            assignee_id: Assignee (defaults to the creator)
            due_date: Optional due date
            start_date: Optional start date
            category_id: Optional category
            is_favorite: Initial favorite flag
            estimated_time: Optional estimate in minutes
            task_id: Optional explicit id

        Returns:
            Created Task instance

        Raises:
            TaskValidationError: If input is malformed or the parent is in another workspace
            AuthorizationError: If the actor may not act on the workspace
            ParentNotFoundError: If the parent does not exist
        """
        title = (title or "").strip()
        if not title:
            raise TaskValidationError("Please provide a task title")

        try:
            logger.debug(f"Creating task: title='{title}', workspace_id={workspace_id}, parent_id={parent_id}")

            await self._authorize(workspace_id)

            parent_task: Optional[Task] = None
            if parent_id is not None:
                parent_task = orm_to_task(await self._get_parent_or_raise(parent_id))
                if parent_task.workspace_id != workspace_id:
                    raise TaskValidationError("Parent task must be in the same workspace")
                if category_id is None:
                    category_id = parent_task.category_id

            path, depth = derive_path(parent_task)

            if position is None:
                position = await next_position(
                    self.session,
                    workspace_id,
                    parent_id,
                    base=self.settings.position_base,
                    step=self.settings.position_step,
                )

            task_data: Dict[str, Any] = {
                'title': title,
                'description': description,
                'status': status,
                'priority': priority,
                'parent_id': parent_id,
                'path': path,
                'depth': depth,
                'position': position,
                'workspace_id': workspace_id,
                'owner_id': self.actor_id,
                'assignee_id': assignee_id or self.actor_id,
                'due_date': due_date,
                'start_date': start_date,
                'category_id': category_id,
                'is_favorite': is_favorite,
                'estimated_time': estimated_time,
            }
            if task_id is not None:
                task_data['id'] = task_id

            try:
                task = Task.model_validate(task_data)
            except ValidationError as e:
                raise TaskValidationError(_validation_message(e)) from e

            if task.status == TaskStatus.COMPLETED:
                task.completed_at = task.created_at

            self.session.add(task_to_orm(task))
            await self.session.flush()

            await self.activity.log(task.id, ActivityAction.CREATE, {"title": task.title})

            logger.info(f"Created task: id={task.id}, title='{title}', depth={depth}, position={position}")
            return task
        except TaskServiceError as e:
            logger.error(f"Failed to create task: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to create task: {e}", exc_info=True)
            raise

    # ==============================================================================
    # READ OPERATIONS
    # ==============================================================================

    async def get_task(self, task_id: UUID) -> TaskDetail:
        """
        Get a task with its direct children and a summary of its parent.

        Args:
            task_id: UUID of the task

        Returns:
            TaskDetail with children ordered by position

        Raises:
            TaskNotFoundError: If task does not exist
            AuthorizationError: If the actor may not act on the task's workspace
        """
        task_orm = await self._get_task_or_raise(task_id)
        await self._authorize(task_orm.workspace_id)

        task = await self._fetch_task_with_counts(task_orm)
        children = await self.hierarchy.children(task.id)

        parent: Optional[TaskSummary] = None
        if task.parent_id is not None:
            parent_orm = await self.hierarchy.get_task_orm(task.parent_id)
            if parent_orm is not None:
                parent = TaskSummary(id=UUID(parent_orm.id), title=parent_orm.title)
            else:
                logger.warning(f"Task {task_id} references missing parent {task.parent_id}")

        return TaskDetail(task=task, children=children, parent=parent)

    async def get_task_by_id(self, task_id: UUID) -> Optional[Task]:
        """
        Get a task by its ID without the authorization check.

        Args:
            task_id: UUID of the task

        Returns:
            Task instance or None if not found
        """
        task_orm = await self.hierarchy.get_task_orm(task_id)
        if not task_orm:
            return None
        return await self._fetch_task_with_counts(task_orm)

    async def list_children(self, parent_id: UUID) -> List[Task]:
        """
        Get the direct children of a task, single level, ordered by position.

        Args:
            parent_id: UUID of the parent task

        Returns:
            List of Task instances with their own child counts

        Raises:
            TaskNotFoundError: If the parent task does not exist
            AuthorizationError: If the actor may not act on the parent's workspace
        """
        parent_orm = await self._get_task_or_raise(parent_id)
        await self._authorize(parent_orm.workspace_id)
        return await self.hierarchy.children(parent_id)

    def _filter_conditions(
        self,
        status: Optional[Union[TaskStatus, str]],
        priority: Optional[Union[TaskPriority, str]],
        category_id: Optional[UUID],
        favorites_only: bool,
        search: Optional[str],
        due: Optional[str],
    ) -> List[Any]:
        """
        Build the WHERE clauses shared by the task listings.

        Raises:
            TaskValidationError: If a filter value is not recognised
        """
        conditions: List[Any] = []
        try:
            if status is not None:
                conditions.append(TaskORM.status == TaskStatus(status).value)
            if priority is not None:
                conditions.append(TaskORM.priority == TaskPriority(priority).value)
        except ValueError as e:
            raise TaskValidationError(str(e)) from e
        if category_id is not None:
            conditions.append(TaskORM.category_id == str(category_id))
        if favorites_only:
            conditions.append(TaskORM.is_favorite.is_(True))
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(TaskORM.title.ilike(pattern), TaskORM.description.ilike(pattern)))
        if due is not None:
            conditions.extend(_due_date_conditions(due))
        return conditions

    async def _page(
        self,
        conditions: List[Any],
        order_by: List[Any],
        page: int,
        limit: int,
    ) -> TaskPage:
        """Count, fetch one page and populate child counts."""
        total = (await self.session.execute(
            select(func.count(TaskORM.id)).where(*conditions)
        )).scalar_one()

        result = await self.session.execute(
            select(TaskORM)
            .where(*conditions)
            .order_by(*order_by)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        tasks = [orm_to_task(row) for row in result.scalars().all()]
        await self.hierarchy.populate_counts(tasks)

        return TaskPage(tasks=tasks, total=total, page=page, limit=limit)

    async def list_tasks(
        self,
        workspace_id: UUID,
        parent_id: Optional[UUID] = None,
        status: Optional[Union[TaskStatus, str]] = None,
        priority: Optional[Union[TaskPriority, str]] = None,
        category_id: Optional[UUID] = None,
        favorites_only: bool = False,
        search: Optional[str] = None,
        due: Optional[str] = None,
        sort: str = "position",
        order: str = "asc",
        page: int = 1,
        limit: int = 50,
    ) -> TaskPage:
        """
        List one sibling group of a workspace with filters and pagination.

        Args:
            workspace_id: Workspace to list
            parent_id: Sibling group (None lists root tasks)
            status: Optional status filter
            priority: Optional priority filter
            category_id: Optional category filter
            favorites_only: Only favorite tasks
            search: Case-insensitive match on title or description
            due: Optional due date window ("today", "overdue" or "upcoming")
            sort: Field to order by (see SORT_FIELDS)
            order: "asc" or "desc"
            page: 1-based page number
            limit: Page size

        Returns:
            TaskPage ordered by the chosen field, position by default

        Raises:
            AuthorizationError: If the actor may not act on the workspace
            TaskValidationError: If page, limit, sort or a filter value is out of range
        """
        if page < 1 or limit < 1:
            raise TaskValidationError("page and limit must be positive")
        order_by = _order_by(sort, order)

        await self._authorize(workspace_id)

        conditions = [TaskORM.workspace_id == str(workspace_id)]
        if parent_id is None:
            conditions.append(TaskORM.parent_id.is_(None))
        else:
            conditions.append(TaskORM.parent_id == str(parent_id))
        conditions.extend(self._filter_conditions(status, priority, category_id, favorites_only, search, due))

        return await self._page(conditions, order_by, page, limit)

    async def list_my_tasks(
        self,
        workspace_id: Optional[UUID] = None,
        status: Optional[Union[TaskStatus, str]] = None,
        priority: Optional[Union[TaskPriority, str]] = None,
        search: Optional[str] = None,
        due: Optional[str] = None,
        sort: str = "updated_at",
        order: str = "desc",
        page: int = 1,
        limit: int = 50,
    ) -> TaskPage:
        """
        List the actor's tasks across every workspace, at any depth.

        A task is the actor's when they own it or it is assigned to them.
        This feeds the "due soon" and "recent" views.

        Args:
            workspace_id: Optional workspace to narrow the listing to
            status: Optional status filter
            priority: Optional priority filter
            search: Case-insensitive match on title or description
            due: Optional due date window ("today", "overdue" or "upcoming")
            sort: Field to order by (see SORT_FIELDS)
            order: "asc" or "desc"
            page: 1-based page number
            limit: Page size

        Returns:
            TaskPage, most recently updated first by default

        Raises:
            AuthorizationError: If a workspace is given and the actor may not act on it
            TaskValidationError: If page, limit, sort or a filter value is out of range
        """
        if page < 1 or limit < 1:
            raise TaskValidationError("page and limit must be positive")
        order_by = _order_by(sort, order)

        actor = str(self.actor_id)
        conditions: List[Any] = [or_(TaskORM.owner_id == actor, TaskORM.assignee_id == actor)]
        if workspace_id is not None:
            await self._authorize(workspace_id)
            conditions.append(TaskORM.workspace_id == str(workspace_id))
        conditions.extend(self._filter_conditions(status, priority, None, False, search, due))

        page_result = await self._page(conditions, order_by, page, limit)
        logger.debug(f"Listed tasks for user {self.actor_id}: total={page_result.total}, due={due}")
        return page_result

    async def get_path(self, task_id: UUID) -> List[TaskSummary]:
        """
        Get the breadcrumb of a task, root first, ending with the task.

        Built from the cached path, so it is as fresh as the last path
        derivation for this task. A path that has drifted from the parent_id
        chain is returned as stored.

        Args:
            task_id: UUID of the task

        Returns:
            Ordered list of TaskSummary

        Raises:
            TaskNotFoundError: If task does not exist
            AuthorizationError: If the actor may not act on the task's workspace
        """
        task_orm = await self._get_task_or_raise(task_id)
        await self._authorize(task_orm.workspace_id)
        return await self.hierarchy.breadcrumb(orm_to_task(task_orm))

    # ==============================================================================
    # UPDATE OPERATIONS
    # ==============================================================================

    async def update_task(self, task_id: UUID, **changes: Any) -> Task:
        """
        Update a task's non-structural properties.

        Tree fields (parent_id, workspace_id, path, depth, position) are
        refused; they change only through move_task, which keeps the cached
        paths of the whole subtree in step.

        Args:
            task_id: UUID of the task to update
            **changes: Fields to set (see UPDATABLE_FIELDS)

        Returns:
            Updated Task instance

        Raises:
            TaskValidationError: If no fields, unknown fields, tree fields or invalid values are given
            TaskNotFoundError: If task does not exist
            AuthorizationError: If the actor may not act on the task's workspace
        """
        if not changes:
            raise TaskValidationError("At least one field must be provided")

        tree_fields = sorted(set(changes) & TREE_FIELDS)
        if tree_fields:
            raise TaskValidationError(
                f"Cannot change {', '.join(tree_fields)} through an update; use move_task"
            )

        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise TaskValidationError(f"Unknown task fields: {', '.join(unknown)}")

        if "title" in changes and isinstance(changes["title"], str):
            changes["title"] = changes["title"].strip()

        try:
            logger.debug(f"Updating task {task_id}: fields={sorted(changes)}")

            task_orm = await self._get_task_or_raise(task_id)
            await self._authorize(task_orm.workspace_id)

            current = orm_to_task(task_orm)
            try:
                updated = Task.model_validate({**current.model_dump(), **changes}, context=STORED_ROW)
            except ValidationError as e:
                raise TaskValidationError(_validation_message(e)) from e

            if updated.status == TaskStatus.COMPLETED and current.status != TaskStatus.COMPLETED:
                updated.completed_at = utc_now()
            elif updated.status != TaskStatus.COMPLETED and current.status == TaskStatus.COMPLETED:
                updated.completed_at = None

            refreshed = task_to_orm(updated)
            for field in UPDATABLE_FIELDS | {"completed_at"}:
                setattr(task_orm, field, getattr(refreshed, field))
            task_orm.updated_at = utc_now()

            await self.session.flush()

            await self.activity.log(
                task_id,
                ActivityAction.UPDATE,
                {"title": current.title, "changes": changes},
            )

            if updated.assignee_id is not None and updated.assignee_id != current.assignee_id:
                await self.activity.log(task_id, ActivityAction.ASSIGN, {"assignee_id": updated.assignee_id})
                await self.notifier.notify_assignee(updated, updated.assignee_id, self.actor_id)

            logger.info(f"Updated task: id={task_id}, fields={sorted(changes)}")
            return await self._fetch_task_with_counts(task_orm)
        except TaskServiceError as e:
            logger.error(f"Failed to update task {task_id}: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to update task {task_id}: {e}", exc_info=True)
            raise

    async def toggle_completion(self, task_id: UUID, completed: Optional[bool] = None) -> Task:
        """
        Complete or reopen a task.

        Read-then-write: two concurrent toggles race and the last write wins.

        Args:
            task_id: UUID of the task
            completed: Target state; None flips the current state

        Returns:
            Updated Task instance

        Raises:
            TaskNotFoundError: If task does not exist
            AuthorizationError: If the actor may not act on the task's workspace
        """
        task_orm = await self._get_task_or_raise(task_id)
        await self._authorize(task_orm.workspace_id)

        if completed is None:
            completed = task_orm.status != TaskStatus.COMPLETED.value

        if completed:
            task_orm.status = TaskStatus.COMPLETED.value
            task_orm.completed_at = utc_now()
        else:
            task_orm.status = TaskStatus.IN_PROGRESS.value
            task_orm.completed_at = None
        task_orm.updated_at = utc_now()

        try:
            await self.session.flush()
        except Exception:
            logger.error(f"Database update failed for task completion toggle: task_id={task_id}", exc_info=True)
            raise

        await self.activity.log(
            task_id,
            ActivityAction.COMPLETE if completed else ActivityAction.REOPEN,
            {"title": task_orm.title},
        )

        logger.info(
            f"Task completion toggled: task_id={task_id}, "
            f"new_state={'completed' if completed else 'reopened'}"
        )
        return await self._fetch_task_with_counts(task_orm)

    async def toggle_favorite(self, task_id: UUID) -> Task:
        """
        Flip a task's favorite flag.

        Args:
            task_id: UUID of the task

        Returns:
            Updated Task instance

        Raises:
            TaskNotFoundError: If task does not exist
            AuthorizationError: If the actor may not act on the task's workspace
        """
        task_orm = await self._get_task_or_raise(task_id)
        await self._authorize(task_orm.workspace_id)

        task_orm.is_favorite = not task_orm.is_favorite
        task_orm.updated_at = utc_now()
        await self.session.flush()

        await self.activity.log(
            task_id,
            ActivityAction.FAVORITE if task_orm.is_favorite else ActivityAction.UNFAVORITE,
            {"title": task_orm.title},
        )

        logger.info(f"Task favorite toggled: task_id={task_id}, is_favorite={task_orm.is_favorite}")
        return await self._fetch_task_with_counts(task_orm)

    # ==============================================================================
    # HIERARCHY OPERATIONS
    # ==============================================================================

    async def move_task(
        self,
        task_id: UUID,
        parent_id: Union[Optional[UUID], _Unchanged] = UNCHANGED,
        workspace_id: Optional[UUID] = None,
        position: Optional[float] = None,
    ) -> Task:
        """
        Move a task to a new parent, workspace and/or position.

        The task and every descendant get their cached path and depth
        rebased onto the new parent; a workspace change is propagated to the
        whole subtree. An explicit position is stored verbatim; without one
        the task is appended to its new sibling group when the group changes.

        Args:
            task_id: UUID of the task to move
            parent_id: New parent id, None to make it a root task, or UNCHANGED
            workspace_id: Target workspace for a cross-workspace transfer
            position: New sibling position

        Returns:
            Updated Task instance

        Raises:
            TaskNotFoundError: If the task does not exist
            AuthorizationError: If the actor lacks access to the source or target workspace
            SelfParentError: If the task would become its own parent
            ParentNotFoundError: If the new parent does not exist
            CycleError: If the new parent is one of the task's descendants
            TaskValidationError: If the new parent lives in another workspace
            PathInconsistencyError: If a descendant's cached path does not carry the task's
                (run HierarchyService.repair_paths first); nothing is written
            PartialFailureError: If rebasing the subtree stopped part way
        """
        task_orm = await self.hierarchy.get_task_orm(task_id)
        task = orm_to_task(task_orm) if task_orm else None

        change_parent = not isinstance(parent_id, _Unchanged)
        request = MoveRequest(
            change_parent=change_parent,
            parent_id=parent_id if change_parent else None,
            workspace_id=workspace_id,
            position=position,
        )

        new_parent: Optional[TreeState] = None
        if change_parent and parent_id is not None and parent_id != task_id:
            parent_orm = await self.hierarchy.get_task_orm(parent_id)
            if parent_orm is not None:
                new_parent = TreeState.from_task(orm_to_task(parent_orm))

        source_authorized = task is not None and await self._can_access(task.workspace_id)
        target_authorized = True
        if task is not None and workspace_id is not None and workspace_id != task.workspace_id:
            target_authorized = await self._can_access(workspace_id)

        context = MoveContext(
            task=TreeState.from_task(task) if task else None,
            source_authorized=source_authorized,
            new_parent=new_parent,
            target_authorized=target_authorized,
        )

        try:
            plan = plan_move(context, request)
        except TaskServiceError as e:
            logger.error(f"Rejected move of task {task_id}: {e}")
            raise

        state = plan.state
        logger.debug(
            f"Moving task {task_id}: parent {plan.previous.parent_id} -> {state.parent_id}, "
            f"workspace {plan.previous.workspace_id} -> {state.workspace_id}"
        )

        new_position = state.position
        if plan.reallocate_position:
            new_position = await next_position(
                self.session,
                state.workspace_id,
                state.parent_id,
                base=self.settings.position_base,
                step=self.settings.position_step,
            )

        descendants: List[TaskORM] = []
        if plan.path_changed or plan.workspace_changed:
            descendants = await self.hierarchy.descendant_orms(task_id, plan.previous.path)

        old_prefix = plan.previous.path + [task_id]
        new_prefix = state.path + [task_id]
        try:
            new_paths = [
                rebase_path(decode_path(descendant.path), old_prefix, new_prefix)
                for descendant in descendants
            ]
        except PathInconsistencyError as e:
            logger.error(f"Rejected move of task {task_id}: {e}")
            raise

        now = utc_now()
        task_orm.parent_id = str(state.parent_id) if state.parent_id else None
        task_orm.path = encode_path(state.path)
        task_orm.depth = state.depth
        task_orm.position = new_position
        task_orm.workspace_id = str(state.workspace_id)
        task_orm.updated_at = now

        rebased: List[UUID] = [task_id]
        try:
            for descendant, new_path in zip(descendants, new_paths):
                descendant.path = encode_path(new_path)
                descendant.depth = len(new_path)
                if plan.workspace_changed:
                    descendant.workspace_id = str(state.workspace_id)
                descendant.updated_at = now
                rebased.append(UUID(descendant.id))

            await self.session.flush()
        except Exception as e:
            logger.error(
                f"Move of task {task_id} stopped after rebasing {len(rebased)} node(s): "
                f"{', '.join(str(r) for r in rebased)}",
                exc_info=True,
            )
            raise PartialFailureError("move", task_id, rebased, e) from e

        await self.activity.log(
            task_id,
            ActivityAction.MOVE,
            {
                "title": task_orm.title,
                "previous_parent_id": plan.previous.parent_id,
                "new_parent_id": state.parent_id,
                "previous_workspace_id": plan.previous.workspace_id,
                "new_workspace_id": state.workspace_id,
                "position": new_position,
                "descendants": len(descendants),
            },
        )

        logger.info(
            f"Moved task: id={task_id}, parent={state.parent_id}, depth={state.depth}, "
            f"workspace={state.workspace_id}, descendants_rebased={len(descendants)}"
        )
        return await self._fetch_task_with_counts(task_orm)

    # ==============================================================================
    # DELETE OPERATIONS
    # ==============================================================================

    async def delete_task(self, task_id: UUID) -> bool:
        """
        Delete a task and every descendant, regardless of depth.

        Deleting a task that no longer exists is a no-op, so a caller can
        re-issue a delete that failed part way.

        Args:
            task_id: UUID of the task to delete

        Returns:
            True if anything was deleted, False if the task was already gone

        Raises:
            AuthorizationError: If the actor may not act on the task's workspace
            PartialFailureError: If the deletion stopped part way through the subtree
        """
        task_orm = await self.hierarchy.get_task_orm(task_id)
        if task_orm is None:
            logger.debug(f"Delete of task {task_id} skipped: already gone")
            return False

        await self._authorize(task_orm.workspace_id)
        title = task_orm.title

        if self.settings.delete_strategy == "bulk":
            count = await self._delete_subtree_bulk(task_orm)
        else:
            count = await self._delete_subtree_recursive(task_orm)

        logger.info(
            f"Deleted task: id={task_id}, title='{title}', "
            f"nodes={count}, strategy={self.settings.delete_strategy}"
        )
        return True

    async def _delete_subtree_recursive(self, root_orm: TaskORM) -> int:
        """
        Walk the subtree by parent_id and delete children before their parent.

        Rows whose cached path still places them under the root but that
        the parent_id walk cannot reach (their parent went missing in an
        earlier, interrupted delete) are swept up deepest first before the
        root itself goes. Each removal is its own flush followed by its own
        activity entry.

        Returns:
            Number of deleted nodes
        """
        root_id = UUID(root_orm.id)
        root_path = decode_path(root_orm.path)
        deleted: List[UUID] = []
        visiting: Set[str] = set()

        async def delete_node(node: TaskORM) -> None:
            if node.id in visiting:
                return
            visiting.add(node.id)

            for child in await self.hierarchy.child_orms(UUID(node.id)):
                await delete_node(child)

            node_id = UUID(node.id)
            title = node.title
            await self.session.delete(node)
            await self.session.flush()
            deleted.append(node_id)

            await self.activity.log(
                node_id,
                ActivityAction.DELETE,
                {"title": title, "root_id": root_id},
            )

        try:
            visiting.add(root_orm.id)
            for child in await self.hierarchy.child_orms(root_id):
                await delete_node(child)

            strays = [
                row for row in await self.hierarchy.descendant_orms(root_id, root_path)
                if row.id not in visiting
            ]
            if strays:
                logger.warning(
                    f"Delete of task {root_id} found {len(strays)} node(s) detached from the "
                    f"parent chain: {', '.join(row.id for row in strays)}"
                )
            for stray in sorted(strays, key=lambda row: row.depth, reverse=True):
                await delete_node(stray)

            visiting.discard(root_orm.id)
            await delete_node(root_orm)
        except Exception as e:
            logger.error(
                f"Delete of task {root_id} stopped after {len(deleted)} node(s): "
                f"{', '.join(str(d) for d in deleted)}",
                exc_info=True,
            )
            raise PartialFailureError("delete", root_id, deleted, e) from e

        return len(deleted)

    async def _delete_subtree_bulk(self, root_orm: TaskORM) -> int:
        """
        Delete the subtree with one statement selected by path prefix.

        Activity entries are still one per node, written as one batch.

        Returns:
            Number of deleted nodes
        """
        root_id = UUID(root_orm.id)
        root_path = decode_path(root_orm.path)
        descendants = await self.hierarchy.descendant_orms(root_id, root_path)
        entries = [(root_id, ActivityAction.DELETE, {"title": root_orm.title, "root_id": root_id})]
        entries.extend(
            (UUID(row.id), ActivityAction.DELETE, {"title": row.title, "root_id": root_id})
            for row in descendants
        )
        ids = [str(entity_id) for entity_id, _, _ in entries]

        try:
            prefix = subtree_prefix(root_id, root_path)
            await self.session.execute(
                delete(TaskORM)
                .where(or_(TaskORM.id == str(root_id), TaskORM.path.startswith(prefix, autoescape=True)))
                .execution_options(synchronize_session=False)
            )
            for row in [root_orm, *descendants]:
                self.session.expunge(row)
            await self.session.flush()
        except Exception as e:
            logger.error(f"Bulk delete of task {root_id} failed: {e}", exc_info=True)
            raise PartialFailureError("delete", root_id, [], e) from e

        await self.activity.log_many(entries)
        logger.debug(f"Bulk deleted ids: {', '.join(ids)}")
        return len(entries)
