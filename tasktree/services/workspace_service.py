"""
Workspace service for tasktree.

Owns workspace records and membership rows, and answers the one question
the hierarchy engine asks of tenancy: may this user act on this workspace?
"""

from typing import List, Optional, Protocol
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktree.database import WorkspaceMemberORM, WorkspaceORM
from tasktree.logging_config import get_logger
from tasktree.models import ActivityAction, MemberRole, Workspace
from tasktree.services.activity_log import ActivityLogger
from tasktree.services.errors import TaskValidationError, WorkspaceNotFoundError
from tasktree.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class MembershipChecker(Protocol):
    """Authorization collaborator consulted before every tree operation."""

    async def is_workspace_member(self, user_id: UUID, workspace_id: UUID) -> bool:
        ...


class WorkspaceService:
    """
    Service layer for workspaces and their members.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the workspace service.

        Args:
            session: Active database session for operations
        """
        self.session = session

    @staticmethod
    def _orm_to_pydantic(workspace_orm: WorkspaceORM) -> Workspace:
        return Workspace(
            id=UUID(workspace_orm.id),
            name=workspace_orm.name,
            owner_id=UUID(workspace_orm.owner_id),
            created_at=workspace_orm.created_at,
        )

    async def _get_workspace_orm(self, workspace_id: UUID) -> Optional[WorkspaceORM]:
        result = await self.session.execute(
            select(WorkspaceORM).where(WorkspaceORM.id == str(workspace_id))
        )
        return result.scalar_one_or_none()

    async def _get_member_orm(self, workspace_id: UUID, user_id: UUID) -> Optional[WorkspaceMemberORM]:
        result = await self.session.execute(
            select(WorkspaceMemberORM)
            .where(WorkspaceMemberORM.workspace_id == str(workspace_id))
            .where(WorkspaceMemberORM.user_id == str(user_id))
        )
        return result.scalar_one_or_none()

    async def create_workspace(
        self,
        name: str,
        owner_id: UUID,
        workspace_id: Optional[UUID] = None,
    ) -> Workspace:
        """
        Create a workspace and register its owner as an admin member.

        Args:
            name: Workspace name
            owner_id: User creating the workspace
            workspace_id: Optional explicit id

        Returns:
            Created Workspace model
        """
        workspace = Workspace(id=workspace_id or uuid4(), name=name, owner_id=owner_id)

        self.session.add(WorkspaceORM(
            id=str(workspace.id),
            name=workspace.name,
            owner_id=str(workspace.owner_id),
            created_at=workspace.created_at,
        ))
        self.session.add(WorkspaceMemberORM(
            workspace_id=str(workspace.id),
            user_id=str(owner_id),
            role=MemberRole.ADMIN.value,
            joined_at=workspace.created_at,
        ))
        await self.session.flush()

        logger.info(f"Created workspace: id={workspace.id}, name='{name}', owner={owner_id}")
        return workspace

    async def get_workspace(self, workspace_id: UUID) -> Workspace:
        """
        Get a workspace by id.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist
        """
        workspace_orm = await self._get_workspace_orm(workspace_id)
        if workspace_orm is None:
            raise WorkspaceNotFoundError(f"Workspace with id {workspace_id} not found")
        return self._orm_to_pydantic(workspace_orm)

    async def get_workspace_by_name(self, owner_id: UUID, name: str) -> Optional[Workspace]:
        """Find a workspace owned by a user by its name."""
        result = await self.session.execute(
            select(WorkspaceORM)
            .where(WorkspaceORM.owner_id == str(owner_id))
            .where(WorkspaceORM.name == name)
        )
        workspace_orm = result.scalars().first()
        return self._orm_to_pydantic(workspace_orm) if workspace_orm else None

    async def list_workspaces_for(self, user_id: UUID) -> List[Workspace]:
        """Get every workspace the user is a member of."""
        result = await self.session.execute(
            select(WorkspaceORM)
            .join(WorkspaceMemberORM, WorkspaceMemberORM.workspace_id == WorkspaceORM.id)
            .where(WorkspaceMemberORM.user_id == str(user_id))
            .order_by(WorkspaceORM.created_at)
        )
        return [self._orm_to_pydantic(row) for row in result.scalars().all()]

    async def add_member(
        self,
        workspace_id: UUID,
        user_id: UUID,
        role: MemberRole = MemberRole.MEMBER,
        actor_id: Optional[UUID] = None,
    ) -> None:
        """
        Grant a user access to a workspace.

        Args:
            workspace_id: Workspace to join
            user_id: User being added
            role: Membership role
            actor_id: User performing the change (recorded in the activity log)

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist
            TaskValidationError: If the user is already a member
        """
        if await self._get_workspace_orm(workspace_id) is None:
            raise WorkspaceNotFoundError(f"Workspace with id {workspace_id} not found")

        if await self._get_member_orm(workspace_id, user_id) is not None:
            raise TaskValidationError(f"User {user_id} is already a member of {workspace_id}")

        self.session.add(WorkspaceMemberORM(
            workspace_id=str(workspace_id),
            user_id=str(user_id),
            role=MemberRole(role).value,
            joined_at=utc_now(),
        ))
        await self.session.flush()

        await ActivityLogger(self.session, actor_id or user_id).log(
            workspace_id, ActivityAction.JOIN, {"user_id": user_id, "role": MemberRole(role)},
            entity_type="workspace",
        )
        logger.info(f"Added member: workspace={workspace_id}, user={user_id}, role={MemberRole(role).value}")

    async def remove_member(self, workspace_id: UUID, user_id: UUID, actor_id: Optional[UUID] = None) -> bool:
        """
        Revoke a user's access to a workspace.

        Returns:
            True if a membership row was removed
        """
        member = await self._get_member_orm(workspace_id, user_id)
        if member is None:
            return False

        await self.session.delete(member)
        await self.session.flush()
        await ActivityLogger(self.session, actor_id or user_id).log(
            workspace_id, ActivityAction.LEAVE, {"user_id": user_id}, entity_type="workspace",
        )
        logger.info(f"Removed member: workspace={workspace_id}, user={user_id}")
        return True

    async def is_workspace_member(self, user_id: UUID, workspace_id: UUID) -> bool:
        """
        Check whether a user may act on a workspace.

        The workspace owner always may; anyone else needs a membership row.

        Args:
            user_id: The acting user
            workspace_id: The workspace in question

        Returns:
            True if access is granted, False if denied or the workspace is missing
        """
        workspace_orm = await self._get_workspace_orm(workspace_id)
        if workspace_orm is None:
            return False
        if workspace_orm.owner_id == str(user_id):
            return True

        return await self._get_member_orm(workspace_id, user_id) is not None
