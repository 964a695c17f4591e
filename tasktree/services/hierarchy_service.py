"""
Hierarchy queries for tasktree.

Answers tree-shaped questions about tasks: breadcrumbs from the cached
path, single-level children, whole subtrees by path prefix, completion
counts, and consistency between the cached paths and the authoritative
parent_id chain.
"""

from collections import deque
from typing import Dict, List, Literal, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasktree.database import TaskORM
from tasktree.logging_config import get_logger
from tasktree.models import Task, TaskStatus, TaskSummary
from tasktree.services.conversion import orm_to_task
from tasktree.services.path_maintainer import decode_path, encode_path, subtree_prefix
from tasktree.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class TreeIssue(BaseModel):
    """One disagreement between cached and authoritative tree structure."""

    task_id: UUID
    kind: Literal["orphan", "stale_path", "workspace_mismatch", "cycle"]
    detail: str


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class HierarchyService:
    """
    Read side of the task tree, plus repair of cached paths.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize hierarchy service with database session.

        Args:
            session: Active async database session
        """
        self.session = session

    # ==============================================================================
    # QUERY HELPERS
    # ==============================================================================

    def _query_child_tasks(self, parent_id: UUID):
        """
        Build query for direct children of a parent task.

        Args:
            parent_id: Parent task ID

        Returns:
            SQLAlchemy select statement ordered by position, then creation time
        """
        return (
            select(TaskORM)
            .where(TaskORM.parent_id == str(parent_id))
            .order_by(TaskORM.position, TaskORM.created_at)
        )

    def _query_subtree(self, task_id: UUID, path: Sequence[UUID]):
        """
        Build query for every descendant of a task using its path prefix.

        Args:
            task_id: Subtree root
            path: Subtree root's ancestor list

        Returns:
            SQLAlchemy select statement ordered top-down
        """
        prefix = _escape_like(subtree_prefix(task_id, path))
        return (
            select(TaskORM)
            .where(TaskORM.path.like(f"{prefix}%", escape="\\"))
            .order_by(TaskORM.depth, TaskORM.position)
        )

    async def get_task_orm(self, task_id: UUID) -> Optional[TaskORM]:
        """Point lookup of a task row."""
        result = await self.session.execute(
            select(TaskORM).where(TaskORM.id == str(task_id))
        )
        return result.scalar_one_or_none()

    # ==============================================================================
    # READ OPERATIONS
    # ==============================================================================

    async def breadcrumb(self, task: Task) -> List[TaskSummary]:
        """
        Resolve the root -> task list from the task's cached path.

        Ancestors that no longer exist (left behind by an interrupted delete)
        are skipped, so the task reads as attached to its nearest surviving
        ancestor.

        Args:
            task: The task whose breadcrumb to build

        Returns:
            Ordered list of TaskSummary, root first, ending with the task itself
        """
        found: Dict[UUID, TaskSummary] = {}
        if task.path:
            result = await self.session.execute(
                select(TaskORM.id, TaskORM.title)
                .where(TaskORM.id.in_([str(ancestor_id) for ancestor_id in task.path]))
            )
            found = {UUID(row.id): TaskSummary(id=UUID(row.id), title=row.title) for row in result}

        missing = [ancestor_id for ancestor_id in task.path if ancestor_id not in found]
        if missing:
            logger.warning(
                f"Breadcrumb for task {task.id} skips missing ancestors: "
                f"{', '.join(str(m) for m in missing)}"
            )

        crumbs = [found[ancestor_id] for ancestor_id in task.path if ancestor_id in found]
        crumbs.append(TaskSummary(id=task.id, title=task.title))
        return crumbs

    async def children(self, parent_id: UUID, with_counts: bool = True) -> List[Task]:
        """
        Get the direct children of a task, ordered by position ascending.

        Args:
            parent_id: UUID of the parent task
            with_counts: Populate each child's own child counts

        Returns:
            List of Task instances, single level only
        """
        result = await self.session.execute(self._query_child_tasks(parent_id))
        tasks = [orm_to_task(row) for row in result.scalars().all()]
        if with_counts:
            await self.populate_counts(tasks)
        return tasks

    async def child_orms(self, parent_id: UUID) -> List[TaskORM]:
        """Direct children rows of a task, ordered by position."""
        result = await self.session.execute(self._query_child_tasks(parent_id))
        return list(result.scalars().all())

    async def descendant_orms(self, task_id: UUID, path: Sequence[UUID]) -> List[TaskORM]:
        """
        Get every row whose cached path places it below the given task.

        Args:
            task_id: Subtree root
            path: Subtree root's ancestor list

        Returns:
            Descendant rows ordered by depth (parents before children)
        """
        result = await self.session.execute(self._query_subtree(task_id, path))
        return list(result.scalars().all())

    async def descendants(self, task: Task) -> List[Task]:
        """Get the whole subtree below a task as models, top-down."""
        return [orm_to_task(row) for row in await self.descendant_orms(task.id, task.path)]

    async def child_counts(self, parent_ids: Sequence[UUID]) -> Dict[UUID, Tuple[int, int]]:
        """
        Count direct children and completed direct children for several tasks.

        Args:
            parent_ids: Tasks to count children for

        Returns:
            Mapping of parent id to (total, completed); parents without children are absent
        """
        if not parent_ids:
            return {}

        result = await self.session.execute(
            select(
                TaskORM.parent_id,
                func.count(TaskORM.id),
                func.sum(case((TaskORM.status == TaskStatus.COMPLETED.value, 1), else_=0)),
            )
            .where(TaskORM.parent_id.in_([str(pid) for pid in parent_ids]))
            .group_by(TaskORM.parent_id)
        )
        return {UUID(parent_id): (int(total), int(completed or 0)) for parent_id, total, completed in result}

    async def populate_counts(self, tasks: Sequence[Task]) -> None:
        """Fill each task's child counts for progress badges."""
        counts = await self.child_counts([task.id for task in tasks])
        for task in tasks:
            total, completed = counts.get(task.id, (0, 0))
            task.update_child_counts(total, completed)

    # ==============================================================================
    # CONSISTENCY
    # ==============================================================================

    async def _walk_chain(
        self,
        task_orm: TaskORM,
        cache: Dict[str, Optional[TaskORM]]
    ) -> Tuple[List[UUID], Optional[str]]:
        """
        Walk parent_id references up to the root.

        Returns:
            (authoritative path, problem) where problem is "orphan" or "cycle"
            when the walk could not reach a root
        """
        chain: List[UUID] = []
        seen = {task_orm.id}
        current = task_orm
        while current.parent_id is not None:
            parent_key = current.parent_id
            if parent_key in seen:
                return list(reversed(chain)), "cycle"
            if parent_key not in cache:
                cache[parent_key] = await self.get_task_orm(UUID(parent_key))
            parent = cache[parent_key]
            if parent is None:
                return list(reversed(chain)), "orphan"
            chain.append(UUID(parent.id))
            seen.add(parent.id)
            current = parent
        return list(reversed(chain)), None

    async def find_inconsistencies(self, workspace_id: UUID) -> List[TreeIssue]:
        """
        Compare every task's cached fields in a workspace with its parent chain.

        Reports orphans (parent missing), stale paths (cached path differs
        from the walked chain), workspace splits (parent in another
        workspace) and cycles in parent_id.

        Args:
            workspace_id: Workspace to check

        Returns:
            List of TreeIssue, empty for a well-formed tree
        """
        result = await self.session.execute(
            select(TaskORM).where(TaskORM.workspace_id == str(workspace_id))
        )
        rows = list(result.scalars().all())
        cache: Dict[str, Optional[TaskORM]] = {row.id: row for row in rows}
        issues: List[TreeIssue] = []

        for row in rows:
            chain, problem = await self._walk_chain(row, cache)
            if problem == "cycle":
                issues.append(TreeIssue(task_id=UUID(row.id), kind="cycle",
                                        detail="parent_id chain loops back on itself"))
                continue
            if problem == "orphan":
                issues.append(TreeIssue(task_id=UUID(row.id), kind="orphan",
                                        detail=f"parent_id chain breaks above {encode_path(chain)}"))
                continue

            cached = decode_path(row.path)
            if cached != chain or row.depth != len(chain):
                issues.append(TreeIssue(
                    task_id=UUID(row.id), kind="stale_path",
                    detail=f"cached {encode_path(cached)} (depth {row.depth}) != actual {encode_path(chain)}",
                ))

            if row.parent_id is not None:
                parent = cache.get(row.parent_id)
                if parent is not None and parent.workspace_id != row.workspace_id:
                    issues.append(TreeIssue(
                        task_id=UUID(row.id), kind="workspace_mismatch",
                        detail=f"parent {parent.id} lives in workspace {parent.workspace_id}",
                    ))

        if issues:
            logger.warning(f"Found {len(issues)} tree inconsistencies in workspace {workspace_id}")
        return issues

    async def repair_paths(self, task_id: UUID) -> int:
        """
        Re-derive path, depth and workspace for a task and its whole subtree.

        The task's path is rebuilt from its parent_id chain (a missing
        ancestor detaches it to the root); descendants are found by
        parent_id, not by the cached path, and inherit the subtree root's
        workspace. Running it on an already consistent subtree changes
        nothing.

        Args:
            task_id: Root of the subtree to repair

        Returns:
            Number of rows whose cached fields changed
        """
        root = await self.get_task_orm(task_id)
        if root is None:
            return 0

        chain, problem = await self._walk_chain(root, {})
        if problem == "orphan":
            logger.warning(f"Detaching orphaned task {task_id}: parent {root.parent_id} missing")
            root.parent_id = None
            chain = []
        elif problem == "cycle":
            logger.warning(f"Breaking parent_id cycle at task {task_id}")
            root.parent_id = None
            chain = []

        changed = 0
        visited = set()
        queue = deque([(root, chain)])
        while queue:
            node, path = queue.popleft()
            if node.id in visited:
                continue
            visited.add(node.id)
            stored = encode_path(path)
            if node.path != stored or node.depth != len(path) or node.workspace_id != root.workspace_id:
                node.path = stored
                node.depth = len(path)
                node.workspace_id = root.workspace_id
                node.updated_at = utc_now()
                changed += 1
            for child in await self.child_orms(UUID(node.id)):
                queue.append((child, path + [UUID(node.id)]))

        await self.session.flush()
        logger.info(f"Repaired subtree of task {task_id}: changed={changed}")
        return changed
