"""
Move planning for the task tree.

A task's place in the tree is fully described by its TreeState tuple
(parent_id, path, depth, position, workspace_id). plan_move() is a pure
function from (current facts, requested move) to the new tuple: it runs the
whole precondition chain without touching the database, so the service only
has to resolve the facts into a MoveContext and apply the resulting plan.
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tasktree.logging_config import get_logger
from tasktree.models import Task
from tasktree.services.errors import (
    AuthorizationError,
    CycleError,
    ParentNotFoundError,
    SelfParentError,
    TaskNotFoundError,
    TaskValidationError,
)
from tasktree.services.path_maintainer import derive_path

logger = get_logger(__name__)


class TreeState(BaseModel):
    """Snapshot of the tree-shaped fields of one task."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    parent_id: Optional[UUID] = None
    path: List[UUID] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0)
    position: float = 0.0
    workspace_id: UUID

    @classmethod
    def from_task(cls, task: Task) -> "TreeState":
        """Take the tree-shaped fields of a task."""
        return cls(
            id=task.id,
            parent_id=task.parent_id,
            path=list(task.path),
            depth=task.depth,
            position=task.position,
            workspace_id=task.workspace_id,
        )


class MoveRequest(BaseModel):
    """
    A requested move.

    change_parent distinguishes "leave the parent alone" (False) from
    "set the parent to parent_id" (True, where None means "make root").
    """

    model_config = ConfigDict(frozen=True)

    change_parent: bool = False
    parent_id: Optional[UUID] = None
    workspace_id: Optional[UUID] = None
    position: Optional[float] = None


class MoveContext(BaseModel):
    """Facts resolved by the caller before planning a move."""

    model_config = ConfigDict(frozen=True)

    task: Optional[TreeState] = None
    source_authorized: bool = False
    new_parent: Optional[TreeState] = None
    target_authorized: bool = False


class MovePlan(BaseModel):
    """Result of a successful plan: the old and new tuple plus what changed."""

    model_config = ConfigDict(frozen=True)

    previous: TreeState
    state: TreeState
    parent_changed: bool
    workspace_changed: bool
    reallocate_position: bool

    @property
    def path_changed(self) -> bool:
        return self.previous.path != self.state.path


def plan_move(context: MoveContext, request: MoveRequest) -> MovePlan:
    """
    Validate a move and compute the task's new tree state.

    Preconditions are checked in order, each a hard failure:
    1. the task exists
    2. the caller may act on the source workspace
    3. a new parent is not the task itself
    4. a new parent exists
    5. on a workspace change, the caller may act on the target workspace
    6. a new parent is not a descendant of the task
    7. a new parent lives in the target workspace

    A workspace change without a parent in the request detaches the task to
    the root of the target workspace.

    Args:
        context: Resolved facts (task snapshot, parent snapshot, authorization)
        request: The requested move

    Returns:
        MovePlan describing the transition

    Raises:
        TaskNotFoundError: If the task does not exist
        AuthorizationError: If the caller lacks access to the source or target workspace
        SelfParentError: If the task would become its own parent
        ParentNotFoundError: If the requested parent does not exist
        CycleError: If the requested parent is one of the task's descendants
        TaskValidationError: If the parent lives in a different workspace
    """
    task = context.task
    if task is None:
        raise TaskNotFoundError("Task to move not found")

    if not context.source_authorized:
        raise AuthorizationError(f"Access denied to workspace {task.workspace_id}")

    target_workspace_id = request.workspace_id or task.workspace_id
    workspace_changed = target_workspace_id != task.workspace_id

    if request.change_parent:
        new_parent_id = request.parent_id
    elif workspace_changed:
        new_parent_id = None
    else:
        new_parent_id = task.parent_id
    parent_changed = new_parent_id != task.parent_id

    new_parent: Optional[TreeState] = None
    if request.change_parent and new_parent_id is not None:
        if new_parent_id == task.id:
            raise SelfParentError("A task cannot be its own parent")

        new_parent = context.new_parent
        if new_parent is None or new_parent.id != new_parent_id:
            raise ParentNotFoundError(f"Parent task {new_parent_id} not found")

    if workspace_changed and not context.target_authorized:
        raise AuthorizationError(f"Target workspace {target_workspace_id} not found or access denied")

    if new_parent is not None:
        if task.id in new_parent.path:
            logger.warning(
                f"Rejected move creating a cycle: task={task.id}, new_parent={new_parent.id}"
            )
            raise CycleError(
                f"Cannot move task {task.id} under its own descendant {new_parent.id}"
            )

        if new_parent.workspace_id != target_workspace_id:
            raise TaskValidationError("Parent task is in a different workspace")

    if parent_changed or request.change_parent:
        path, depth = derive_path(new_parent)
    else:
        path, depth = list(task.path), task.depth

    reallocate = request.position is None and (parent_changed or workspace_changed)
    position = request.position if request.position is not None else task.position

    state = TreeState(
        id=task.id,
        parent_id=new_parent_id,
        path=path,
        depth=depth,
        position=position,
        workspace_id=target_workspace_id,
    )

    return MovePlan(
        previous=task,
        state=state,
        parent_changed=parent_changed,
        workspace_changed=workspace_changed,
        reallocate_position=reallocate,
    )
