"""
Exception hierarchy for the task hierarchy engine.

Every error raised by the services derives from TaskServiceError so callers
can map the whole family to a rejected request in one place.
"""

from typing import Iterable, List, Optional
from uuid import UUID


class TaskServiceError(Exception):
    """Base exception for task service errors."""
    pass


class TaskValidationError(TaskServiceError):
    """Raised when input is malformed or violates a structural rule."""
    pass


class NotFoundError(TaskServiceError):
    """Raised when a referenced record does not exist."""
    pass


class TaskNotFoundError(NotFoundError):
    """Raised when a task is not found."""
    pass


class ParentNotFoundError(NotFoundError):
    """Raised when the requested parent task is not found."""
    pass


class WorkspaceNotFoundError(NotFoundError):
    """Raised when a workspace is not found."""
    pass


class AuthorizationError(TaskServiceError):
    """Raised when the caller may not act on a workspace."""
    pass


class SelfParentError(TaskValidationError):
    """Raised when a task would become its own parent."""
    pass


class CycleError(TaskValidationError):
    """Raised when a move would place a task under one of its descendants."""
    pass


class PathInconsistencyError(TaskServiceError):
    """Raised when a cached path disagrees with the prefix it should carry."""
    pass


class PartialFailureError(TaskServiceError):
    """
    Raised when a cascading operation stopped part way through a subtree.

    Attributes:
        operation: Name of the cascading operation ("delete" or "move")
        root_id: Task the operation was issued for
        affected_ids: Tasks already processed before the failure
    """

    def __init__(
        self,
        operation: str,
        root_id: UUID,
        affected_ids: Iterable[UUID],
        cause: Optional[BaseException] = None
    ) -> None:
        self.operation = operation
        self.root_id = root_id
        self.affected_ids: List[UUID] = list(affected_ids)
        self.cause = cause
        super().__init__(
            f"{operation} of task {root_id} stopped after {len(self.affected_ids)} node(s): {cause}"
        )
