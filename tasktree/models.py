"""
Pydantic models for tasktree.

Defines the core data structures for hierarchical tasks, workspaces and
activity entries with validation, computed properties, and proper typing.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, PrivateAttr, ValidationInfo, computed_field, model_validator

from tasktree.utils.datetime_utils import utc_now


class TaskStatus(str, Enum):
    """Lifecycle states of a task."""

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskPriority(str, Enum):
    """Priority levels of a task."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


class ActivityAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMPLETE = "complete"
    REOPEN = "reopen"
    MOVE = "move"
    ASSIGN = "assign"
    FAVORITE = "favorite"
    UNFAVORITE = "unfavorite"
    JOIN = "join"
    LEAVE = "leave"


class Workspace(BaseModel):
    """
    Represents a workspace, the tenant boundary every task lives in.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the workspace")
    name: str = Field(..., min_length=1, max_length=100, description="Workspace name")
    owner_id: UUID = Field(..., description="User who owns the workspace")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")


# Validation context for rows loaded from storage: their cached path is taken
# as stored, drift included, and left to HierarchyService to detect and repair.
STORED_ROW = {"stored": True}


class Task(BaseModel):
    """
    Represents a single task in a workspace's task tree.

    The authoritative hierarchy is the parent_id chain. The path list is a
    cached copy of that chain (ancestor ids, root first, excluding the task
    itself) and depth is its length.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the task")
    title: str = Field(..., min_length=1, max_length=500, description="Task title")
    description: Optional[str] = Field(default=None, max_length=10000, description="Free text description")

    status: TaskStatus = Field(default=TaskStatus.NOT_STARTED)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)

    # Hierarchy
    parent_id: Optional[UUID] = Field(default=None, description="Parent task ID, None for root tasks")
    path: List[UUID] = Field(default_factory=list, description="Ancestor IDs, root first")
    depth: int = Field(default=0, ge=0, description="Number of ancestors")
    position: float = Field(default=0.0, description="Sort key among siblings")

    # Ownership
    workspace_id: UUID = Field(..., description="Owning workspace")
    owner_id: UUID = Field(..., description="User who created the task")
    assignee_id: Optional[UUID] = Field(default=None)

    # Decoration
    is_favorite: bool = Field(default=False)
    category_id: Optional[UUID] = Field(default=None)

    # Scheduling
    due_date: Optional[datetime] = Field(default=None)
    start_date: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    estimated_time: Optional[int] = Field(default=None, ge=0, description="Estimate in minutes")
    actual_time: Optional[int] = Field(default=None, ge=0, description="Time spent in minutes")

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last modification timestamp")

    # Private attributes for computed properties
    _child_count: int = PrivateAttr(default=0)
    _completed_child_count: int = PrivateAttr(default=0)

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174002",
                "title": "Write release notes",
                "status": "in-progress",
                "priority": "high",
                "parent_id": "123e4567-e89b-12d3-a456-426614174001",
                "path": ["123e4567-e89b-12d3-a456-426614174001"],
                "depth": 1,
                "position": 2000.0,
                "workspace_id": "123e4567-e89b-12d3-a456-426614174000",
                "owner_id": "123e4567-e89b-12d3-a456-4266141740aa",
            }
        }

    @model_validator(mode='after')
    def validate_path_consistency(self, info: ValidationInfo) -> 'Task':
        """
        Validate the cached path against depth and parent_id.

        Skipped for rows validated with the STORED_ROW context.

        Returns:
            The validated task instance

        Raises:
            ValueError: If path, depth and parent_id disagree, or the task
                appears among its own ancestors
        """
        if info.context and info.context.get("stored"):
            return self

        if self.depth != len(self.path):
            raise ValueError(
                f"Task depth ({self.depth}) must equal path length ({len(self.path)})"
            )

        if self.id in self.path:
            raise ValueError("A task cannot appear in its own path")

        if self.parent_id is None and self.path:
            raise ValueError("Root tasks must have an empty path")

        if self.parent_id is not None and (not self.path or self.path[-1] != self.parent_id):
            raise ValueError("The last path entry must be the parent_id")

        return self

    @computed_field
    @property
    def is_completed(self) -> bool:
        """Whether the task is in the completed state."""
        return self.status == TaskStatus.COMPLETED

    @computed_field
    @property
    def is_overdue(self) -> bool:
        """
        Check whether the due date has passed on an unfinished task.

        Returns:
            True if a due date is set, lies in the past and the task is not completed
        """
        return (
            self.due_date is not None
            and self.due_date < utc_now()
            and self.status != TaskStatus.COMPLETED
        )

    @computed_field
    @property
    def progress_string(self) -> str:
        """
        Generate progress string for tasks with children (e.g., "2/5").

        Returns:
            Progress string showing completed/total children, or empty string if no children
        """
        if self._child_count == 0:
            return ""
        return f"{self._completed_child_count}/{self._child_count}"

    @computed_field
    @property
    def has_children(self) -> bool:
        """Check if this task has any children."""
        return self._child_count > 0

    def update_child_counts(self, child_count: int, completed_child_count: int) -> None:
        """
        Update the child counts for computed properties.

        Args:
            child_count: Number of direct children
            completed_child_count: Number of completed direct children
        """
        self._child_count = child_count
        self._completed_child_count = completed_child_count


class TaskSummary(BaseModel):
    """Id and title of a task, as shown in breadcrumbs and parent links."""

    id: UUID
    title: str


class TaskDetail(BaseModel):
    """A task with its direct children and a summary of its parent."""

    task: Task
    children: List[Task] = Field(default_factory=list)
    parent: Optional[TaskSummary] = None


class TaskPage(BaseModel):
    """One page of a filtered task listing."""

    tasks: List[Task] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1)

    @computed_field
    @property
    def pages(self) -> int:
        """Number of pages for the current total and limit."""
        return (self.total + self.limit - 1) // self.limit


class ActivityEntry(BaseModel):
    """A single audit record written by a mutation."""

    id: UUID = Field(default_factory=uuid4)
    entity_id: UUID
    entity_type: str = Field(default="task")
    user_id: UUID
    action: ActivityAction
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
