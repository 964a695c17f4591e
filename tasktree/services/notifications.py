"""Assignee notification collaborator."""

from typing import List, Protocol, Tuple
from uuid import UUID

from tasktree.logging_config import get_logger
from tasktree.models import Task

logger = get_logger(__name__)


class Notifier(Protocol):
    """Tells a user that a task was assigned to them."""

    async def notify_assignee(self, task: Task, assignee_id: UUID, actor_id: UUID) -> None:
        ...


class LoggingNotifier:
    """
    Default notifier: records assignment notices in the application log
    and keeps them in memory for inspection.
    """

    def __init__(self) -> None:
        self.sent: List[Tuple[UUID, UUID]] = []

    async def notify_assignee(self, task: Task, assignee_id: UUID, actor_id: UUID) -> None:
        self.sent.append((task.id, assignee_id))
        logger.info(
            f"Assignment notice: task={task.id}, title='{task.title}', "
            f"assignee={assignee_id}, by={actor_id}"
        )
