"""
Permission evaluator for task operations.

The transition graph is declared once as data (TRANSITION_EDGES) and
expanded into a lookup keyed by (current status, role, is_assigned). Every
check in the service layer goes through the functions below; nothing else
decides who may move a task.

Denials carry a reason so callers can tell "you are not on this task"
(NOT_ASSIGNED) from "this move is never allowed for you" (INVALID_TRANSITION).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Collection, Iterable, Mapping

from fieldops_shared.schemas.common import Role, TaskStatus


@dataclass(frozen=True)
class Actor:
    """Authenticated caller. Only `id` equality and the admin role are consulted."""

    id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in self.roles

    @property
    def role(self) -> Role:
        return Role.ADMIN if self.is_admin else Role.WORKER


@dataclass(frozen=True)
class TaskSnapshot:
    """The fields of a task that permission decisions depend on."""

    id: int
    status: TaskStatus
    assignee_ids: frozenset[str]

    @classmethod
    def of(cls, task_id: int, status: str | TaskStatus, assignee_ids: Iterable[str]) -> "TaskSnapshot":
        return cls(id=task_id, status=TaskStatus(status), assignee_ids=frozenset(assignee_ids))


class DenialReason(str, Enum):
    NOT_ASSIGNED = "NOT_ASSIGNED"
    INVALID_TRANSITION = "INVALID_TRANSITION"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DenialReason | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


# ---------------------------------------------------------------------------
# Transition graph
# ---------------------------------------------------------------------------

# Who may traverse an edge. "assigned_worker" means a non-admin actor listed
# in the task's assignee set; admins traverse every edge regardless of assignment.
ADMIN_ONLY: frozenset[str] = frozenset({"admin"})
ADMIN_OR_ASSIGNED: frozenset[str] = frozenset({"admin", "assigned_worker"})

TRANSITION_EDGES: Mapping[tuple[TaskStatus, TaskStatus], frozenset[str]] = {
    (TaskStatus.PREPARING, TaskStatus.READY): ADMIN_ONLY,
    (TaskStatus.READY, TaskStatus.ON_HOLD): ADMIN_ONLY,
    (TaskStatus.ON_HOLD, TaskStatus.READY): ADMIN_ONLY,
    (TaskStatus.IN_PROGRESS, TaskStatus.ON_HOLD): ADMIN_ONLY,
    (TaskStatus.READY, TaskStatus.IN_PROGRESS): ADMIN_OR_ASSIGNED,
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED): ADMIN_OR_ASSIGNED,
}


def _build_transition_table(
    edges: Mapping[tuple[TaskStatus, TaskStatus], frozenset[str]],
) -> dict[tuple[TaskStatus, Role, bool], frozenset[TaskStatus]]:
    table: dict[tuple[TaskStatus, Role, bool], set[TaskStatus]] = {}
    for status in TaskStatus:
        for role in Role:
            for is_assigned in (False, True):
                table[(status, role, is_assigned)] = set()

    for (src, dst), who in edges.items():
        for is_assigned in (False, True):
            if "admin" in who:
                table[(src, Role.ADMIN, is_assigned)].add(dst)
        if "assigned_worker" in who:
            table[(src, Role.WORKER, True)].add(dst)

    return {key: frozenset(targets) for key, targets in table.items()}


TRANSITION_TABLE = _build_transition_table(TRANSITION_EDGES)


def is_edge(src: TaskStatus, dst: TaskStatus) -> bool:
    """True if (src, dst) is in the graph for at least one kind of actor."""
    return (src, dst) in TRANSITION_EDGES


def allowed_targets(actor: Actor, task: TaskSnapshot) -> frozenset[TaskStatus]:
    return TRANSITION_TABLE[(task.status, actor.role, is_assigned(actor, task))]


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_assigned(actor: Actor, task: TaskSnapshot | Collection[str]) -> bool:
    assignees = task.assignee_ids if isinstance(task, TaskSnapshot) else task
    return actor.id in assignees


def can_create(actor: Actor) -> bool:
    return actor.is_admin


def can_list_all(actor: Actor) -> bool:
    return actor.is_admin


def can_view(actor: Actor, task: TaskSnapshot) -> bool:
    """Admin, or listed as an assignee. Also gates comments and attachments."""
    return actor.is_admin or is_assigned(actor, task)


def can_manage_assignees(actor: Actor) -> bool:
    return actor.is_admin


def can_edit(actor: Actor) -> bool:
    return actor.is_admin


def evaluate_transition(
    actor: Actor,
    task: TaskSnapshot,
    target: TaskStatus,
    *,
    require_assignee_to_start: bool = False,
) -> Decision:
    """Decide whether `actor` may move `task` to `target`.

    Non-admins who are not assigned are told NOT_ASSIGNED whatever the edge;
    everyone else gets INVALID_TRANSITION for an edge the table does not
    grant them.
    """
    if not actor.is_admin and not is_assigned(actor, task):
        return Decision(False, DenialReason.NOT_ASSIGNED)

    if target not in allowed_targets(actor, task):
        return Decision(False, DenialReason.INVALID_TRANSITION)

    if require_assignee_to_start and target == TaskStatus.IN_PROGRESS and not task.assignee_ids:
        return Decision(False, DenialReason.INVALID_TRANSITION)

    return ALLOW


def can_transition(actor: Actor, task: TaskSnapshot, target: TaskStatus) -> bool:
    return evaluate_transition(actor, task, target).allowed
