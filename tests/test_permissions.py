"""
Tests for the permission evaluator and the transition table.

Covers:
- Every (src, dst) pair outside the edge table is rejected for every actor
- Admin edges vs. assigned-worker edges
- NOT_ASSIGNED vs. INVALID_TRANSITION denial reasons
- COMPLETED is terminal
- require_assignee_to_start
- View / create / list / assignee-management predicates
"""

from __future__ import annotations

import itertools

import pytest

from fieldops.core.permissions import (
    TRANSITION_EDGES,
    TRANSITION_TABLE,
    Actor,
    DenialReason,
    TaskSnapshot,
    allowed_targets,
    can_create,
    can_list_all,
    can_manage_assignees,
    can_transition,
    can_view,
    evaluate_transition,
    is_edge,
)
from fieldops_shared.schemas.common import Role, TaskStatus

ADMIN = Actor(id="admin-1", roles=frozenset({"admin"}))
W1 = Actor(id="w1", roles=frozenset({"worker"}))
W2 = Actor(id="w2", roles=frozenset({"worker"}))
NO_ROLES = Actor(id="w1")


def snapshot(status: TaskStatus, *assignees: str) -> TaskSnapshot:
    return TaskSnapshot.of(7, status, assignees)


ALL_PAIRS = list(itertools.product(TaskStatus, TaskStatus))
NON_EDGES = [(src, dst) for src, dst in ALL_PAIRS if (src, dst) not in TRANSITION_EDGES]


# ---------------------------------------------------------------------------
# Table shape
# ---------------------------------------------------------------------------


class TestTransitionTable:
    def test_table_has_an_entry_for_every_key(self):
        assert len(TRANSITION_TABLE) == len(TaskStatus) * len(Role) * 2

    def test_unassigned_worker_has_no_targets_anywhere(self):
        for status in TaskStatus:
            assert TRANSITION_TABLE[(status, Role.WORKER, False)] == frozenset()

    def test_assigned_worker_edges(self):
        assert TRANSITION_TABLE[(TaskStatus.READY, Role.WORKER, True)] == {TaskStatus.IN_PROGRESS}
        assert TRANSITION_TABLE[(TaskStatus.IN_PROGRESS, Role.WORKER, True)] == {TaskStatus.COMPLETED}
        assert TRANSITION_TABLE[(TaskStatus.PREPARING, Role.WORKER, True)] == frozenset()
        assert TRANSITION_TABLE[(TaskStatus.ON_HOLD, Role.WORKER, True)] == frozenset()

    def test_admin_targets_ignore_assignment(self):
        for status in TaskStatus:
            assert (
                TRANSITION_TABLE[(status, Role.ADMIN, False)]
                == TRANSITION_TABLE[(status, Role.ADMIN, True)]
            )

    def test_completed_is_terminal(self):
        for role in Role:
            for assigned in (False, True):
                assert TRANSITION_TABLE[(TaskStatus.COMPLETED, role, assigned)] == frozenset()

    def test_every_target_in_table_is_an_edge(self):
        for (src, _, _), targets in TRANSITION_TABLE.items():
            for dst in targets:
                assert is_edge(src, dst)


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class TestEvaluateTransition:
    @pytest.mark.parametrize("src,dst", NON_EDGES)
    @pytest.mark.parametrize("actor", [ADMIN, W1, W2])
    def test_non_edges_rejected_for_every_actor(self, src, dst, actor):
        task = snapshot(src, "w1")
        assert not can_transition(actor, task, dst)

    @pytest.mark.parametrize("src,dst", list(TRANSITION_EDGES))
    def test_admin_may_traverse_every_edge_unassigned(self, src, dst):
        assert evaluate_transition(ADMIN, snapshot(src), dst).allowed

    @pytest.mark.parametrize(
        "src,dst,allowed",
        [
            (TaskStatus.READY, TaskStatus.IN_PROGRESS, True),
            (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, True),
            (TaskStatus.PREPARING, TaskStatus.READY, False),
            (TaskStatus.READY, TaskStatus.ON_HOLD, False),
            (TaskStatus.ON_HOLD, TaskStatus.READY, False),
            (TaskStatus.IN_PROGRESS, TaskStatus.ON_HOLD, False),
        ],
    )
    def test_assigned_worker_edges(self, src, dst, allowed):
        decision = evaluate_transition(W1, snapshot(src, "w1"), dst)
        assert decision.allowed is allowed
        if not allowed:
            assert decision.reason == DenialReason.INVALID_TRANSITION

    @pytest.mark.parametrize("src,dst", ALL_PAIRS)
    def test_unassigned_worker_is_always_not_assigned(self, src, dst):
        decision = evaluate_transition(W2, snapshot(src, "w1"), dst)
        assert not decision
        assert decision.reason == DenialReason.NOT_ASSIGNED

    def test_admin_invalid_edge_reason(self):
        decision = evaluate_transition(ADMIN, snapshot(TaskStatus.PREPARING), TaskStatus.COMPLETED)
        assert decision.reason == DenialReason.INVALID_TRANSITION

    def test_actor_without_roles_is_a_worker(self):
        assert NO_ROLES.role == Role.WORKER
        assert not evaluate_transition(NO_ROLES, snapshot(TaskStatus.PREPARING, "w1"), TaskStatus.READY)
        assert evaluate_transition(NO_ROLES, snapshot(TaskStatus.READY, "w1"), TaskStatus.IN_PROGRESS)

    def test_same_status_is_not_a_transition(self):
        for status in TaskStatus:
            assert not can_transition(ADMIN, snapshot(status), status)

    def test_allowed_targets_for_admin_on_ready(self):
        assert allowed_targets(ADMIN, snapshot(TaskStatus.READY)) == {
            TaskStatus.IN_PROGRESS,
            TaskStatus.ON_HOLD,
        }


class TestRequireAssigneeToStart:
    def test_disabled_by_default(self):
        assert evaluate_transition(ADMIN, snapshot(TaskStatus.READY), TaskStatus.IN_PROGRESS)

    def test_enabled_blocks_empty_assignee_set(self):
        decision = evaluate_transition(
            ADMIN, snapshot(TaskStatus.READY), TaskStatus.IN_PROGRESS, require_assignee_to_start=True
        )
        assert not decision
        assert decision.reason == DenialReason.INVALID_TRANSITION

    def test_enabled_allows_when_someone_is_assigned(self):
        assert evaluate_transition(
            ADMIN,
            snapshot(TaskStatus.READY, "w1"),
            TaskStatus.IN_PROGRESS,
            require_assignee_to_start=True,
        )

    def test_enabled_does_not_affect_other_targets(self):
        assert evaluate_transition(
            ADMIN, snapshot(TaskStatus.READY), TaskStatus.ON_HOLD, require_assignee_to_start=True
        )


# ---------------------------------------------------------------------------
# Other predicates
# ---------------------------------------------------------------------------


class TestPredicates:
    def test_only_admin_creates_lists_all_and_manages_assignees(self):
        assert can_create(ADMIN) and can_list_all(ADMIN) and can_manage_assignees(ADMIN)
        assert not can_create(W1)
        assert not can_list_all(W1)
        assert not can_manage_assignees(W1)

    def test_view(self):
        task = snapshot(TaskStatus.READY, "w1")
        assert can_view(ADMIN, task)
        assert can_view(W1, task)
        assert not can_view(W2, task)
