"""Conversion between TaskORM rows and Task models."""

from uuid import UUID

from tasktree.database import TaskORM
from tasktree.models import STORED_ROW, Task, TaskPriority, TaskStatus
from tasktree.services.path_maintainer import decode_path, encode_path


def _uuid_or_none(value):
    return UUID(value) if value else None


def orm_to_task(task_orm: TaskORM) -> Task:
    """
    Convert TaskORM to Pydantic Task model.

    Args:
        task_orm: SQLAlchemy ORM task instance

    Returns:
        Pydantic Task instance
    """
    return Task.model_validate(
        {
            "id": UUID(task_orm.id),
            "title": task_orm.title,
            "description": task_orm.description,
            "status": TaskStatus(task_orm.status),
            "priority": TaskPriority(task_orm.priority),
            "parent_id": _uuid_or_none(task_orm.parent_id),
            "path": decode_path(task_orm.path),
            "depth": task_orm.depth,
            "position": task_orm.position,
            "workspace_id": UUID(task_orm.workspace_id),
            "owner_id": UUID(task_orm.owner_id),
            "assignee_id": _uuid_or_none(task_orm.assignee_id),
            "is_favorite": task_orm.is_favorite,
            "category_id": _uuid_or_none(task_orm.category_id),
            "due_date": task_orm.due_date,
            "start_date": task_orm.start_date,
            "completed_at": task_orm.completed_at,
            "estimated_time": task_orm.estimated_time,
            "actual_time": task_orm.actual_time,
            "created_at": task_orm.created_at,
            "updated_at": task_orm.updated_at,
        },
        context=STORED_ROW,
    )


def task_to_orm(task: Task) -> TaskORM:
    """
    Convert Pydantic Task to TaskORM model.

    Args:
        task: Pydantic Task instance

    Returns:
        SQLAlchemy ORM task instance
    """
    return TaskORM(
        id=str(task.id),
        title=task.title,
        description=task.description,
        status=task.status.value,
        priority=task.priority.value,
        parent_id=str(task.parent_id) if task.parent_id else None,
        path=encode_path(task.path),
        depth=task.depth,
        position=task.position,
        workspace_id=str(task.workspace_id),
        owner_id=str(task.owner_id),
        assignee_id=str(task.assignee_id) if task.assignee_id else None,
        is_favorite=task.is_favorite,
        category_id=str(task.category_id) if task.category_id else None,
        due_date=task.due_date,
        start_date=task.start_date,
        completed_at=task.completed_at,
        estimated_time=task.estimated_time,
        actual_time=task.actual_time,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )
