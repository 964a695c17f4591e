"""
Gap-based sibling position allocation.

New siblings are appended one step after the current last sibling, leaving
room to insert between two neighbours later without renumbering anyone.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktree.database import TaskORM
from tasktree.logging_config import get_logger

logger = get_logger(__name__)

POSITION_BASE = 1000.0
POSITION_STEP = 1000.0


async def next_position(
    session: AsyncSession,
    workspace_id: UUID,
    parent_id: Optional[UUID] = None,
    base: float = POSITION_BASE,
    step: float = POSITION_STEP,
) -> float:
    """
    Get the position that appends a new task to its sibling group.

    Args:
        session: Active async database session
        workspace_id: Workspace of the sibling group
        parent_id: Parent of the sibling group (None for root tasks)
        base: Position given to the first sibling
        step: Gap added after the current last sibling

    Returns:
        Position value for the new sibling
    """
    query = (
        select(TaskORM.position)
        .where(TaskORM.workspace_id == str(workspace_id))
        .order_by(TaskORM.position.desc())
        .limit(1)
    )

    if parent_id is not None:
        query = query.where(TaskORM.parent_id == str(parent_id))
    else:
        query = query.where(TaskORM.parent_id.is_(None))

    result = await session.execute(query)
    last_position = result.scalar_one_or_none()

    if last_position is None:
        return base

    return last_position + step


def position_between(
    before: Optional[float],
    after: Optional[float],
    base: float = POSITION_BASE,
    step: float = POSITION_STEP,
) -> float:
    """
    Get a position that sorts between two neighbouring siblings.

    Args:
        before: Position of the sibling that should come first (None if inserting at the start)
        after: Position of the sibling that should come next (None if inserting at the end)
        base: Position given when there are no neighbours at all
        step: Gap used when one side is open

    Returns:
        Midpoint when both neighbours are given, otherwise one step past the open side

    Raises:
        ValueError: If before does not sort ahead of after
    """
    if before is None and after is None:
        return base
    if before is None:
        return after - step
    if after is None:
        return before + step
    if before >= after:
        raise ValueError(f"Neighbour positions out of order: {before} >= {after}")
    return (before + after) / 2
