"""
Tests for TaskService - creation, reading, updating and toggles.

Moves and deletes have their own modules (test_move.py, test_delete.py).
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from tasktree.database import TaskORM
from tasktree.models import ActivityAction, TaskStatus
from tasktree.services.errors import (
    AuthorizationError,
    ParentNotFoundError,
    TaskNotFoundError,
    TaskValidationError,
)
from tasktree.services.task_service import TaskService
from tasktree.services.workspace_service import WorkspaceService
from tasktree.utils.datetime_utils import utc_now


class TestTaskServiceCreate:
    """Tests for task creation operations."""

    @pytest.mark.asyncio
    async def test_create_root_task(self, task_service, workspace, actor_id):
        """A root task has an empty path and depth 0."""
        task = await task_service.create_task("R", workspace.id)

        assert task.title == "R"
        assert task.parent_id is None
        assert task.path == []
        assert task.depth == 0
        assert task.workspace_id == workspace.id
        assert task.owner_id == actor_id
        assert task.position == 1000.0

    @pytest.mark.asyncio
    async def test_create_child_and_grandchild(self, task_service, workspace):
        root = await task_service.create_task("R", workspace.id)
        child = await task_service.create_task("C", workspace.id, parent_id=root.id)
        grandchild = await task_service.create_task("G", workspace.id, parent_id=child.id)

        assert child.path == [root.id]
        assert child.depth == 1
        assert grandchild.path == [root.id, child.id]
        assert grandchild.depth == 2

    @pytest.mark.asyncio
    async def test_create_persists_stored_path(self, db_session, task_tree):
        result = await db_session.execute(select(TaskORM).where(TaskORM.id == str(task_tree["G"].id)))
        row = result.scalar_one()

        assert row.path == f"/{task_tree['R'].id}/{task_tree['C'].id}/"
        assert row.depth == 2

    @pytest.mark.asyncio
    async def test_sibling_positions_increase(self, task_service, workspace):
        """Three siblings without explicit positions get 1000, 2000, 3000."""
        root = await task_service.create_task("R", workspace.id)
        siblings = [
            await task_service.create_task(f"S{i}", workspace.id, parent_id=root.id)
            for i in range(3)
        ]

        assert [s.position for s in siblings] == [1000.0, 2000.0, 3000.0]

        children = await task_service.list_children(root.id)
        assert [c.id for c in children] == [s.id for s in siblings]

    @pytest.mark.asyncio
    async def test_explicit_position_stored_verbatim(self, task_service, workspace):
        task = await task_service.create_task("Pinned", workspace.id, position=12.5)

        assert task.position == 12.5

    @pytest.mark.asyncio
    async def test_children_sorted_by_position(self, task_service, workspace):
        root = await task_service.create_task("R", workspace.id)
        late = await task_service.create_task("late", workspace.id, parent_id=root.id, position=3000.0)
        early = await task_service.create_task("early", workspace.id, parent_id=root.id, position=500.0)

        children = await task_service.list_children(root.id)

        assert [c.id for c in children] == [early.id, late.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title", ["", "   ", None])
    async def test_create_requires_title(self, task_service, workspace, title):
        with pytest.raises(TaskValidationError):
            await task_service.create_task(title, workspace.id)

    @pytest.mark.asyncio
    async def test_create_title_is_stripped(self, task_service, workspace):
        task = await task_service.create_task("  Padded  ", workspace.id)

        assert task.title == "Padded"

    @pytest.mark.asyncio
    async def test_create_invalid_field_raises_validation_error(self, task_service, workspace):
        with pytest.raises(TaskValidationError):
            await task_service.create_task("Bad", workspace.id, priority="whenever")

    @pytest.mark.asyncio
    async def test_create_missing_parent(self, task_service, workspace):
        with pytest.raises(ParentNotFoundError):
            await task_service.create_task("Orphan", workspace.id, parent_id=uuid4())

    @pytest.mark.asyncio
    async def test_create_parent_in_other_workspace(self, task_service, task_tree, second_workspace):
        with pytest.raises(TaskValidationError):
            await task_service.create_task("X", second_workspace.id, parent_id=task_tree["R"].id)

    @pytest.mark.asyncio
    async def test_create_in_foreign_workspace(self, task_service, foreign_workspace):
        with pytest.raises(AuthorizationError):
            await task_service.create_task("Nope", foreign_workspace.id)

    @pytest.mark.asyncio
    async def test_create_in_missing_workspace(self, task_service):
        with pytest.raises(AuthorizationError):
            await task_service.create_task("Nowhere", uuid4())

    @pytest.mark.asyncio
    async def test_member_can_create(self, db_session, foreign_workspace, stranger_id, actor_id):
        await WorkspaceService(db_session).add_member(foreign_workspace.id, actor_id, actor_id=stranger_id)
        service = TaskService(db_session, actor_id)

        task = await service.create_task("Shared", foreign_workspace.id)

        assert task.workspace_id == foreign_workspace.id

    @pytest.mark.asyncio
    async def test_child_inherits_category(self, task_service, workspace):
        category = uuid4()
        root = await task_service.create_task("R", workspace.id, category_id=category)
        child = await task_service.create_task("C", workspace.id, parent_id=root.id)
        own = await task_service.create_task("O", workspace.id, parent_id=root.id, category_id=uuid4())

        assert child.category_id == category
        assert own.category_id != category

    @pytest.mark.asyncio
    async def test_assignee_defaults_to_creator(self, task_service, workspace, actor_id):
        task = await task_service.create_task("Mine", workspace.id)

        assert task.assignee_id == actor_id

    @pytest.mark.asyncio
    async def test_create_writes_activity(self, task_service, workspace, activity):
        task = await task_service.create_task("Logged", workspace.id)

        entries = await activity.list_for(task.id)
        assert [e.action for e in entries] == [ActivityAction.CREATE]
        assert entries[0].details["title"] == "Logged"


class TestTaskServiceRead:
    """Tests for read operations."""

    @pytest.mark.asyncio
    async def test_get_task_detail(self, task_service, task_tree):
        detail = await task_service.get_task(task_tree["C"].id)

        assert detail.task.id == task_tree["C"].id
        assert [c.id for c in detail.children] == [task_tree["G"].id]
        assert detail.parent.id == task_tree["R"].id
        assert detail.parent.title == "R"
        assert detail.task.progress_string == "0/1"

    @pytest.mark.asyncio
    async def test_get_root_task_has_no_parent(self, task_service, task_tree):
        detail = await task_service.get_task(task_tree["R"].id)

        assert detail.parent is None

    @pytest.mark.asyncio
    async def test_get_missing_task(self, task_service):
        with pytest.raises(TaskNotFoundError):
            await task_service.get_task(uuid4())

    @pytest.mark.asyncio
    async def test_get_task_requires_access(self, db_session, task_tree, stranger_id):
        service = TaskService(db_session, stranger_id)

        with pytest.raises(AuthorizationError):
            await service.get_task(task_tree["R"].id)

    @pytest.mark.asyncio
    async def test_list_children_single_level(self, task_service, task_tree):
        children = await task_service.list_children(task_tree["R"].id)

        assert [c.id for c in children] == [task_tree["C"].id]
        assert children[0].progress_string == "0/1"

    @pytest.mark.asyncio
    async def test_list_children_of_missing_parent(self, task_service):
        with pytest.raises(TaskNotFoundError):
            await task_service.list_children(uuid4())

    @pytest.mark.asyncio
    async def test_get_path(self, task_service, task_tree):
        crumbs = await task_service.get_path(task_tree["G"].id)

        assert [c.title for c in crumbs] == ["R", "C", "G"]

    @pytest.mark.asyncio
    async def test_get_path_of_root(self, task_service, task_tree):
        crumbs = await task_service.get_path(task_tree["D"].id)

        assert [c.id for c in crumbs] == [task_tree["D"].id]

    @pytest.mark.asyncio
    async def test_get_task_by_id_missing(self, task_service):
        assert await task_service.get_task_by_id(uuid4()) is None


class TestTaskServiceListTasks:
    """Tests for filtered, paginated listings."""

    @pytest.mark.asyncio
    async def test_lists_root_tasks(self, task_service, task_tree, workspace):
        page = await task_service.list_tasks(workspace.id)

        assert [t.title for t in page.tasks] == ["R", "D"]
        assert page.total == 2
        assert page.pages == 1

    @pytest.mark.asyncio
    async def test_lists_one_sibling_group(self, task_service, task_tree, workspace):
        page = await task_service.list_tasks(workspace.id, parent_id=task_tree["R"].id)

        assert [t.title for t in page.tasks] == ["C"]

    @pytest.mark.asyncio
    async def test_pagination(self, task_service, workspace):
        for i in range(5):
            await task_service.create_task(f"T{i}", workspace.id)

        page = await task_service.list_tasks(workspace.id, page=2, limit=2)

        assert [t.title for t in page.tasks] == ["T2", "T3"]
        assert page.total == 5
        assert page.pages == 3

    @pytest.mark.asyncio
    async def test_filters(self, task_service, workspace):
        await task_service.create_task("Write report", workspace.id, priority="high")
        fav = await task_service.create_task("Read mail", workspace.id, is_favorite=True)
        await task_service.create_task("Plan trip", workspace.id, description="Book the report venue")

        high = await task_service.list_tasks(workspace.id, priority="high")
        favorites = await task_service.list_tasks(workspace.id, favorites_only=True)
        searched = await task_service.list_tasks(workspace.id, search="REPORT")

        assert [t.title for t in high.tasks] == ["Write report"]
        assert [t.id for t in favorites.tasks] == [fav.id]
        assert {t.title for t in searched.tasks} == {"Write report", "Plan trip"}

    @pytest.mark.asyncio
    async def test_status_filter(self, task_service, workspace):
        done = await task_service.create_task("Done", workspace.id)
        await task_service.create_task("Open", workspace.id)
        await task_service.toggle_completion(done.id)

        page = await task_service.list_tasks(workspace.id, status=TaskStatus.COMPLETED)

        assert [t.id for t in page.tasks] == [done.id]

    @pytest.mark.asyncio
    async def test_invalid_page(self, task_service, workspace):
        with pytest.raises(TaskValidationError):
            await task_service.list_tasks(workspace.id, page=0)

    @pytest.mark.asyncio
    async def test_foreign_workspace(self, task_service, foreign_workspace):
        with pytest.raises(AuthorizationError):
            await task_service.list_tasks(foreign_workspace.id)

    @pytest.mark.asyncio
    async def test_sort_and_order(self, task_service, workspace):
        for title in ("b", "c", "a"):
            await task_service.create_task(title, workspace.id)

        page = await task_service.list_tasks(workspace.id, sort="title", order="desc")

        assert [t.title for t in page.tasks] == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_unknown_sort_rejected(self, task_service, workspace):
        with pytest.raises(TaskValidationError):
            await task_service.list_tasks(workspace.id, sort="path")
        with pytest.raises(TaskValidationError):
            await task_service.list_tasks(workspace.id, order="sideways")


class TestTaskServiceListMyTasks:
    """Tests for the cross-workspace listing of the actor's own tasks."""

    @pytest.mark.asyncio
    async def test_owned_or_assigned_across_workspaces(
        self, db_session, task_service, workspace, second_workspace, foreign_workspace, actor_id, stranger_id
    ):
        own = await task_service.create_task("Own root", workspace.id)
        nested = await task_service.create_task("Own child", workspace.id, parent_id=own.id)
        elsewhere = await task_service.create_task("Other workspace", second_workspace.id)

        stranger = TaskService(db_session, stranger_id)
        assigned = await stranger.create_task("Assigned to me", foreign_workspace.id, assignee_id=actor_id)
        await stranger.create_task("Not mine", foreign_workspace.id)

        page = await task_service.list_my_tasks()

        assert {t.id for t in page.tasks} == {own.id, nested.id, elsewhere.id, assigned.id}
        assert page.total == 4

    @pytest.mark.asyncio
    async def test_most_recently_updated_first(self, task_service, workspace):
        first = await task_service.create_task("first", workspace.id)
        await task_service.create_task("second", workspace.id)
        await task_service.update_task(first.id, description="touched")

        page = await task_service.list_my_tasks()

        assert page.tasks[0].id == first.id

    @pytest.mark.asyncio
    async def test_narrowed_to_workspace(self, task_service, workspace, second_workspace, foreign_workspace):
        await task_service.create_task("here", workspace.id)
        await task_service.create_task("there", second_workspace.id)

        page = await task_service.list_my_tasks(workspace_id=second_workspace.id)

        assert [t.title for t in page.tasks] == ["there"]
        with pytest.raises(AuthorizationError):
            await task_service.list_my_tasks(workspace_id=foreign_workspace.id)

    @pytest.mark.asyncio
    async def test_due_date_windows(self, task_service, workspace):
        today = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
        due_today = await task_service.create_task("today", workspace.id, due_date=today + timedelta(hours=12))
        late = await task_service.create_task("late", workspace.id, due_date=today - timedelta(days=2))
        await task_service.create_task(
            "late but done", workspace.id, due_date=today - timedelta(days=2), status=TaskStatus.COMPLETED
        )
        soon = await task_service.create_task("soon", workspace.id, due_date=today + timedelta(days=3))
        await task_service.create_task("far", workspace.id, due_date=today + timedelta(days=30))
        await task_service.create_task("undated", workspace.id)

        todays = await task_service.list_my_tasks(due="today")
        overdue = await task_service.list_my_tasks(due="overdue")
        upcoming = await task_service.list_my_tasks(due="upcoming", sort="due_date", order="asc")
        in_workspace = await task_service.list_tasks(workspace.id, due="overdue")

        assert [t.id for t in todays.tasks] == [due_today.id]
        assert [t.id for t in overdue.tasks] == [late.id]
        assert [t.id for t in upcoming.tasks] == [due_today.id, soon.id]
        assert [t.id for t in in_workspace.tasks] == [late.id]

    @pytest.mark.asyncio
    async def test_unknown_due_window_rejected(self, task_service):
        with pytest.raises(TaskValidationError):
            await task_service.list_my_tasks(due="someday")


class TestTaskServiceDriftedPaths:
    """Reads over rows whose cached path disagrees with parent_id."""

    async def _drift_grandchild(self, db_session, task_tree):
        row = await db_session.get(TaskORM, str(task_tree["G"].id))
        row.path = f"/{task_tree['R'].id}/"
        row.depth = 1
        await db_session.flush()

    @pytest.mark.asyncio
    async def test_get_path_returns_cached_breadcrumb(self, task_service, task_tree, db_session):
        await self._drift_grandchild(db_session, task_tree)

        crumbs = await task_service.get_path(task_tree["G"].id)

        assert [c.title for c in crumbs] == ["R", "G"]

    @pytest.mark.asyncio
    async def test_reads_tolerate_drift(self, task_service, task_tree, db_session):
        await self._drift_grandchild(db_session, task_tree)

        detail = await task_service.get_task(task_tree["G"].id)
        children = await task_service.list_children(task_tree["C"].id)
        updated = await task_service.update_task(task_tree["G"].id, title="G2")

        assert detail.task.depth == 1
        assert detail.parent.id == task_tree["C"].id
        assert [c.id for c in children] == [task_tree["G"].id]
        assert updated.title == "G2"

    @pytest.mark.asyncio
    async def test_moving_drifted_task_rederives_path(self, task_service, task_tree, db_session):
        await self._drift_grandchild(db_session, task_tree)

        moved = await task_service.move_task(task_tree["G"].id, parent_id=task_tree["D"].id)

        assert moved.parent_id == task_tree["D"].id
        assert moved.path == [task_tree["D"].id]
        assert moved.depth == 1


class TestTaskServiceUpdate:
    """Tests for partial updates."""

    @pytest.mark.asyncio
    async def test_update_fields(self, task_service, task_tree):
        due = datetime(2030, 1, 15, 9, 0)
        updated = await task_service.update_task(
            task_tree["C"].id,
            title="C renamed",
            description="notes",
            priority="urgent",
            due_date=due,
            estimated_time=45,
        )

        assert updated.title == "C renamed"
        assert updated.description == "notes"
        assert updated.priority.value == "urgent"
        assert updated.due_date == due
        assert updated.estimated_time == 45
        assert updated.path == task_tree["C"].path
        assert updated.updated_at >= task_tree["C"].updated_at

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["parent_id", "workspace_id", "path", "depth", "position"])
    async def test_update_rejects_tree_fields(self, task_service, task_tree, field):
        with pytest.raises(TaskValidationError) as exc_info:
            await task_service.update_task(task_tree["C"].id, **{field: None})

        assert "move_task" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, task_service, task_tree):
        with pytest.raises(TaskValidationError):
            await task_service.update_task(task_tree["C"].id, colour="red")

    @pytest.mark.asyncio
    async def test_update_requires_changes(self, task_service, task_tree):
        with pytest.raises(TaskValidationError):
            await task_service.update_task(task_tree["C"].id)

    @pytest.mark.asyncio
    async def test_update_invalid_value(self, task_service, task_tree):
        with pytest.raises(TaskValidationError):
            await task_service.update_task(task_tree["C"].id, title="")

    @pytest.mark.asyncio
    async def test_update_missing_task(self, task_service):
        with pytest.raises(TaskNotFoundError):
            await task_service.update_task(uuid4(), title="ghost")

    @pytest.mark.asyncio
    async def test_status_completed_sets_completed_at(self, task_service, task_tree):
        done = await task_service.update_task(task_tree["C"].id, status="completed")
        reopened = await task_service.update_task(task_tree["C"].id, status="in-progress")

        assert done.completed_at is not None
        assert reopened.completed_at is None

    @pytest.mark.asyncio
    async def test_assignee_change_notifies(self, task_service, task_tree, notifier, activity):
        assignee = uuid4()
        await task_service.update_task(task_tree["C"].id, assignee_id=assignee)

        assert notifier.sent == [(task_tree["C"].id, assignee)]
        actions = {e.action for e in await activity.list_for(task_tree["C"].id)}
        assert {ActivityAction.UPDATE, ActivityAction.ASSIGN} <= actions

    @pytest.mark.asyncio
    async def test_same_assignee_does_not_notify(self, task_service, task_tree, notifier, actor_id):
        await task_service.update_task(task_tree["C"].id, assignee_id=actor_id)

        assert notifier.sent == []


class TestTaskServiceToggles:
    """Tests for completion and favorite toggles."""

    @pytest.mark.asyncio
    async def test_toggle_completion_round_trip(self, task_service, task_tree, activity):
        task_id = task_tree["G"].id

        completed = await task_service.toggle_completion(task_id)
        reopened = await task_service.toggle_completion(task_id)

        assert completed.status == TaskStatus.COMPLETED
        assert completed.completed_at is not None
        assert reopened.status == TaskStatus.IN_PROGRESS
        assert reopened.completed_at is None

        actions = [e.action for e in await activity.list_for(task_id)]
        assert ActivityAction.COMPLETE in actions
        assert ActivityAction.REOPEN in actions

    @pytest.mark.asyncio
    async def test_toggle_completion_explicit_state(self, task_service, task_tree):
        first = await task_service.toggle_completion(task_tree["G"].id, completed=True)
        second = await task_service.toggle_completion(task_tree["G"].id, completed=True)

        assert first.is_completed and second.is_completed

    @pytest.mark.asyncio
    async def test_completion_updates_parent_badge(self, task_service, task_tree):
        await task_service.toggle_completion(task_tree["G"].id)

        detail = await task_service.get_task(task_tree["C"].id)

        assert detail.task.progress_string == "1/1"

    @pytest.mark.asyncio
    async def test_toggle_favorite(self, task_service, task_tree, activity):
        on = await task_service.toggle_favorite(task_tree["R"].id)
        off = await task_service.toggle_favorite(task_tree["R"].id)

        assert on.is_favorite is True
        assert off.is_favorite is False
        actions = [e.action for e in await activity.list_for(task_tree["R"].id)]
        assert ActivityAction.FAVORITE in actions
        assert ActivityAction.UNFAVORITE in actions

    @pytest.mark.asyncio
    async def test_toggles_do_not_touch_tree(self, task_service, task_tree):
        task = await task_service.toggle_completion(task_tree["G"].id)
        task = await task_service.toggle_favorite(task.id)

        assert task.path == task_tree["G"].path
        assert task.position == task_tree["G"].position

    @pytest.mark.asyncio
    async def test_toggle_missing_task(self, task_service):
        with pytest.raises(TaskNotFoundError):
            await task_service.toggle_favorite(uuid4())
