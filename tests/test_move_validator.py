"""
Tests for the pure move planner.

Every precondition is checked without a database: the planner takes the
resolved facts and the request and returns the new tree state or raises.
"""

from uuid import uuid4

import pytest

from tasktree.services.errors import (
    AuthorizationError,
    CycleError,
    ParentNotFoundError,
    SelfParentError,
    TaskNotFoundError,
    TaskValidationError,
)
from tasktree.services.move_validator import MoveContext, MoveRequest, TreeState, plan_move


@pytest.fixture
def workspace_id():
    return uuid4()


@pytest.fixture
def states(workspace_id):
    """
    R (root) -> C -> G, and D (root), all in one workspace.
    """
    r, c, g, d = uuid4(), uuid4(), uuid4(), uuid4()
    return {
        "R": TreeState(id=r, workspace_id=workspace_id, position=1000.0),
        "C": TreeState(id=c, parent_id=r, path=[r], depth=1, workspace_id=workspace_id, position=1000.0),
        "G": TreeState(id=g, parent_id=c, path=[r, c], depth=2, workspace_id=workspace_id, position=1000.0),
        "D": TreeState(id=d, workspace_id=workspace_id, position=2000.0),
    }


def context(task, new_parent=None, source=True, target=True):
    return MoveContext(task=task, source_authorized=source, new_parent=new_parent, target_authorized=target)


class TestPreconditionOrder:
    """Tests for the ordered precondition chain."""

    def test_missing_task(self):
        with pytest.raises(TaskNotFoundError):
            plan_move(MoveContext(), MoveRequest(change_parent=True, parent_id=uuid4()))

    def test_source_not_authorized(self, states):
        with pytest.raises(AuthorizationError):
            plan_move(context(states["C"], source=False), MoveRequest(position=5.0))

    def test_authorization_checked_before_self_parent(self, states):
        c = states["C"]
        with pytest.raises(AuthorizationError):
            plan_move(context(c, source=False), MoveRequest(change_parent=True, parent_id=c.id))

    def test_self_parent(self, states):
        c = states["C"]
        with pytest.raises(SelfParentError):
            plan_move(context(c), MoveRequest(change_parent=True, parent_id=c.id))

    def test_parent_not_found(self, states):
        with pytest.raises(ParentNotFoundError):
            plan_move(context(states["C"]), MoveRequest(change_parent=True, parent_id=uuid4()))

    def test_parent_snapshot_must_match_request(self, states):
        with pytest.raises(ParentNotFoundError):
            plan_move(
                context(states["C"], new_parent=states["D"]),
                MoveRequest(change_parent=True, parent_id=uuid4()),
            )

    def test_target_workspace_not_authorized(self, states):
        with pytest.raises(AuthorizationError):
            plan_move(context(states["C"], target=False), MoveRequest(workspace_id=uuid4()))

    def test_target_authorization_ignored_without_workspace_change(self, states, workspace_id):
        plan = plan_move(context(states["C"], target=False), MoveRequest(workspace_id=workspace_id))

        assert plan.workspace_changed is False

    def test_move_under_grandchild_is_cycle(self, states):
        with pytest.raises(CycleError):
            plan_move(context(states["R"], new_parent=states["G"]), MoveRequest(change_parent=True, parent_id=states["G"].id))

    def test_move_under_child_is_cycle(self, states):
        with pytest.raises(CycleError):
            plan_move(context(states["C"], new_parent=states["G"]), MoveRequest(change_parent=True, parent_id=states["G"].id))

    def test_cycle_is_a_validation_error(self):
        assert issubclass(CycleError, TaskValidationError)
        assert issubclass(SelfParentError, TaskValidationError)

    def test_parent_in_other_workspace(self, states):
        foreign_parent = TreeState(id=uuid4(), workspace_id=uuid4())
        with pytest.raises(TaskValidationError) as exc_info:
            plan_move(context(states["C"], new_parent=foreign_parent), MoveRequest(change_parent=True, parent_id=foreign_parent.id))

        assert "different workspace" in str(exc_info.value)

    def test_parent_must_live_in_target_workspace(self, states):
        target = uuid4()
        with pytest.raises(TaskValidationError):
            plan_move(
                context(states["C"], new_parent=states["D"]),
                MoveRequest(change_parent=True, parent_id=states["D"].id, workspace_id=target),
            )


class TestPlannedState:
    """Tests for the computed tree state."""

    def test_reparent_under_other_root(self, states):
        c, d = states["C"], states["D"]
        plan = plan_move(context(c, new_parent=d), MoveRequest(change_parent=True, parent_id=d.id))

        assert plan.state.parent_id == d.id
        assert plan.state.path == [d.id]
        assert plan.state.depth == 1
        assert plan.parent_changed
        assert plan.path_changed
        assert not plan.workspace_changed
        assert plan.reallocate_position

    def test_make_root(self, states):
        g = states["G"]
        plan = plan_move(context(g), MoveRequest(change_parent=True, parent_id=None))

        assert plan.state.parent_id is None
        assert plan.state.path == []
        assert plan.state.depth == 0

    def test_position_only(self, states):
        c = states["C"]
        plan = plan_move(context(c), MoveRequest(position=1500.0))

        assert plan.state.parent_id == c.parent_id
        assert plan.state.path == c.path
        assert plan.state.position == 1500.0
        assert not plan.parent_changed
        assert not plan.path_changed
        assert not plan.reallocate_position

    def test_explicit_position_kept_on_reparent(self, states):
        c, d = states["C"], states["D"]
        plan = plan_move(context(c, new_parent=d), MoveRequest(change_parent=True, parent_id=d.id, position=42.0))

        assert plan.state.position == 42.0
        assert not plan.reallocate_position

    def test_same_parent_is_noop(self, states):
        c, r = states["C"], states["R"]
        plan = plan_move(context(c, new_parent=r), MoveRequest(change_parent=True, parent_id=r.id))

        assert plan.state == c
        assert not plan.parent_changed
        assert not plan.reallocate_position

    def test_workspace_change_detaches_to_root(self, states):
        c = states["C"]
        target = uuid4()
        plan = plan_move(context(c), MoveRequest(workspace_id=target))

        assert plan.state.workspace_id == target
        assert plan.state.parent_id is None
        assert plan.state.path == []
        assert plan.workspace_changed
        assert plan.reallocate_position

    def test_workspace_change_with_parent_in_target(self, states):
        c = states["C"]
        target = uuid4()
        new_parent = TreeState(id=uuid4(), parent_id=None, workspace_id=target)
        plan = plan_move(
            context(c, new_parent=new_parent),
            MoveRequest(change_parent=True, parent_id=new_parent.id, workspace_id=target),
        )

        assert plan.state.workspace_id == target
        assert plan.state.path == [new_parent.id]

    def test_round_trip_restores_path(self, states):
        c, d, r = states["C"], states["D"], states["R"]
        there = plan_move(context(c, new_parent=d), MoveRequest(change_parent=True, parent_id=d.id))
        back = plan_move(context(there.state, new_parent=r), MoveRequest(change_parent=True, parent_id=r.id))

        assert back.state.path == c.path
        assert back.state.depth == c.depth

    def test_plan_is_frozen(self, states):
        plan = plan_move(context(states["C"]), MoveRequest(position=1.0))

        with pytest.raises(Exception):
            plan.state.depth = 7
