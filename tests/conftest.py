"""
Pytest configuration and fixtures for tasktree tests.

Provides database fixtures, workspaces for an acting user, a ready task
service, and test data factories.
"""

import pytest
import pytest_asyncio
from uuid import UUID, uuid4

from tasktree.database import DatabaseManager
from tasktree.models import Task
from tasktree.services.activity_log import ActivityLogger
from tasktree.services.notifications import LoggingNotifier
from tasktree.services.task_service import TaskService
from tasktree.services.workspace_service import WorkspaceService


@pytest_asyncio.fixture
async def db_manager():
    """
    Create an in-memory SQLite database for testing.

    Yields:
        DatabaseManager instance with in-memory database
    """
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.initialize()

    yield manager

    await manager.close()


@pytest_asyncio.fixture
async def db_session(db_manager):
    """
    Provide a database session for tests.

    Args:
        db_manager: Database manager fixture

    Yields:
        AsyncSession for database operations
    """
    async with db_manager.get_session() as session:
        yield session


@pytest.fixture
def actor_id():
    """The user performing operations in most tests."""
    return UUID("00000000-0000-0000-0000-0000000000aa")


@pytest.fixture
def stranger_id():
    """A user with no access to the actor's workspaces."""
    return UUID("00000000-0000-0000-0000-0000000000bb")


@pytest_asyncio.fixture
async def workspace(db_session, actor_id):
    """Workspace owned by the actor."""
    return await WorkspaceService(db_session).create_workspace(
        "Personal", actor_id, workspace_id=UUID("11111111-1111-1111-1111-111111111111")
    )


@pytest_asyncio.fixture
async def second_workspace(db_session, actor_id):
    """Another workspace owned by the actor, target of cross-workspace moves."""
    return await WorkspaceService(db_session).create_workspace(
        "Work", actor_id, workspace_id=UUID("22222222-2222-2222-2222-222222222222")
    )


@pytest_asyncio.fixture
async def foreign_workspace(db_session, stranger_id):
    """Workspace owned by someone else; the actor is not a member."""
    return await WorkspaceService(db_session).create_workspace(
        "Private", stranger_id, workspace_id=UUID("33333333-3333-3333-3333-333333333333")
    )


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def task_service(db_session, actor_id, notifier):
    """TaskService acting as the actor with default settings."""
    return TaskService(db_session, actor_id, notifier=notifier)


@pytest.fixture
def activity(db_session, actor_id):
    """ActivityLogger for reading back the audit trail."""
    return ActivityLogger(db_session, actor_id)


@pytest_asyncio.fixture
async def task_tree(task_service, workspace):
    """
    Create a small hierarchy through the service.

    Creates:
        - R
          - C
            - G
        - D

    Returns:
        Dictionary of Task models keyed by name
    """
    root = await task_service.create_task("R", workspace.id)
    child = await task_service.create_task("C", workspace.id, parent_id=root.id)
    grandchild = await task_service.create_task("G", workspace.id, parent_id=child.id)
    other_root = await task_service.create_task("D", workspace.id)
    return {"R": root, "C": child, "G": grandchild, "D": other_root}


@pytest.fixture
def make_task():
    """
    Factory fixture for creating Task Pydantic models.

    Returns:
        Function that creates Task instances

    Example:
        def test_something(make_task):
            task = make_task(title="Custom Task")
    """
    def _make_task(
        id: UUID = None,
        title: str = "Test Task",
        parent_id: UUID = None,
        path: list = None,
        position: float = 1000.0,
        workspace_id: UUID = None,
        owner_id: UUID = None,
        **fields
    ) -> Task:
        path = list(path or [])
        if parent_id is not None and not path:
            path = [parent_id]
        return Task(
            id=id or uuid4(),
            title=title,
            parent_id=parent_id,
            path=path,
            depth=len(path),
            position=position,
            workspace_id=workspace_id or uuid4(),
            owner_id=owner_id or uuid4(),
            **fields
        )
    return _make_task
