"""
Activity (audit) log for tasktree.

Every mutation of the task tree records who did what to which entity.
Cascading operations write one entry per affected node.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktree.database import ActivityLogORM
from tasktree.logging_config import get_logger
from tasktree.models import ActivityAction, ActivityEntry
from tasktree.utils.datetime_utils import utc_now

logger = get_logger(__name__)


def _jsonable(details: Dict[str, Any]) -> Dict[str, Any]:
    """Stringify UUIDs, datetimes and enums so details fit a JSON column."""
    def convert(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: convert(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(item) for item in value]
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    return convert(details)


class ActivityLogger:
    """
    Writes and reads activity entries for one acting user.
    """

    def __init__(self, session: AsyncSession, user_id: UUID) -> None:
        """
        Initialize the activity logger.

        Args:
            session: Active async database session
            user_id: User recorded as the author of every entry
        """
        self.session = session
        self.user_id = user_id

    def _build(
        self,
        entity_id: UUID,
        action: ActivityAction,
        details: Optional[Dict[str, Any]] = None,
        entity_type: str = "task",
    ) -> ActivityLogORM:
        return ActivityLogORM(
            id=str(uuid4()),
            entity_id=str(entity_id),
            entity_type=entity_type,
            user_id=str(self.user_id),
            action=ActivityAction(action).value,
            details=_jsonable(details or {}),
            created_at=utc_now(),
        )

    async def log(
        self,
        entity_id: UUID,
        action: ActivityAction,
        details: Optional[Dict[str, Any]] = None,
        entity_type: str = "task",
    ) -> None:
        """
        Record a single activity entry.

        Args:
            entity_id: The task or workspace acted upon
            action: What happened
            details: Free-form context (title, change set, old/new parent...)
            entity_type: "task" or "workspace"
        """
        self.session.add(self._build(entity_id, action, details, entity_type))
        await self.session.flush()
        logger.debug(f"Activity logged: entity={entity_id}, action={ActivityAction(action).value}")

    async def log_many(
        self,
        entries: Iterable[Tuple[UUID, ActivityAction, Dict[str, Any]]],
        entity_type: str = "task",
    ) -> int:
        """
        Record a batch of activity entries with a single flush.

        Args:
            entries: (entity_id, action, details) tuples
            entity_type: Entity type shared by the batch

        Returns:
            Number of entries written
        """
        rows = [self._build(entity_id, action, details, entity_type) for entity_id, action, details in entries]
        if not rows:
            return 0
        self.session.add_all(rows)
        await self.session.flush()
        logger.debug(f"Activity logged in batch: count={len(rows)}")
        return len(rows)

    async def list_for(self, entity_id: UUID) -> List[ActivityEntry]:
        """
        Get the activity history of one entity, oldest first.

        Args:
            entity_id: The task or workspace

        Returns:
            List of ActivityEntry models
        """
        result = await self.session.execute(
            select(ActivityLogORM)
            .where(ActivityLogORM.entity_id == str(entity_id))
            .order_by(ActivityLogORM.created_at)
        )
        return [self._orm_to_pydantic(row) for row in result.scalars().all()]

    async def list_recent(self, limit: int = 20) -> List[ActivityEntry]:
        """
        Get the most recent entries written by this user.

        Args:
            limit: Maximum number of entries

        Returns:
            List of ActivityEntry models, newest first
        """
        result = await self.session.execute(
            select(ActivityLogORM)
            .where(ActivityLogORM.user_id == str(self.user_id))
            .order_by(ActivityLogORM.created_at.desc())
            .limit(limit)
        )
        return [self._orm_to_pydantic(row) for row in result.scalars().all()]

    @staticmethod
    def _orm_to_pydantic(row: ActivityLogORM) -> ActivityEntry:
        return ActivityEntry(
            id=UUID(row.id),
            entity_id=UUID(row.entity_id),
            entity_type=row.entity_type,
            user_id=UUID(row.user_id),
            action=ActivityAction(row.action),
            details=row.details or {},
            created_at=row.created_at,
        )
