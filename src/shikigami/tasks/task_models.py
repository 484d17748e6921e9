# src/shikigami/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from ..errors import InvalidArgumentError


def parse_enum(enum_cls, raw, label: str):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise InvalidArgumentError(f"Invalid {label}: '{raw}'. Valid values are: {valid}") from None


class TaskStatus(StrEnum):
    """
    Fuda lifecycle status.

    BLOCKED -> READY -> IN_PROGRESS -> {IN_REVIEW, DONE, FAILED}
    IN_REVIEW / FAILED -> IN_PROGRESS (rework) or DONE.
    DONE is terminal.
    """

    BLOCKED = "blocked"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    FAILED = "failed"
    DONE = "done"

    @classmethod
    def parse(cls, raw: str | TaskStatus) -> TaskStatus:
        return parse_enum(cls, raw, "status")

    def can_transition_to(self, other: TaskStatus) -> bool:
        return other in _TRANSITIONS[self]


_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.BLOCKED: frozenset({TaskStatus.READY, TaskStatus.IN_PROGRESS}),
    TaskStatus.READY: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.IN_REVIEW, TaskStatus.DONE, TaskStatus.FAILED}),
    TaskStatus.IN_REVIEW: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DONE}),
    TaskStatus.FAILED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DONE}),
    TaskStatus.DONE: frozenset(),
}

CLAIMABLE_STATUSES: tuple[TaskStatus, ...] = (TaskStatus.READY, TaskStatus.BLOCKED)


class DependencyType(StrEnum):
    BLOCKS = "blocks"
    PARENT_CHILD = "parent-child"
    RELATED = "related"
    DISCOVERED_FROM = "discovered-from"

    @classmethod
    def parse(cls, raw: str | DependencyType) -> DependencyType:
        return parse_enum(cls, raw, "dependency type")

    @property
    def is_blocking(self) -> bool:
        return self in BLOCKING_TYPES


BLOCKING_TYPES: tuple[DependencyType, ...] = (DependencyType.BLOCKS, DependencyType.PARENT_CHILD)


class WorkerType(StrEnum):
    """What kind of spirit should pick up the work."""

    PRD = "prd"
    TASK = "task"
    TEST = "test"
    CODE = "code"
    REVIEW = "review"

    @classmethod
    def parse(cls, raw: str | WorkerType) -> WorkerType:
        return parse_enum(cls, raw, "worker type")


@dataclass(slots=True)
class Fuda:
    id: str
    title: str
    description: str
    status: TaskStatus
    worker_type: WorkerType

    assigned_spirit_id: str | None
    output_ref: str | None
    retry_count: int
    failure_context: str | None

    parent_task_id: str | None
    group_id: str | None
    priority: int

    created_at: float
    updated_at: float

    deleted_at: float | None = None
    deleted_by: str | None = None
    delete_reason: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(slots=True, frozen=True)
class Dependency:
    task_id: str
    depends_on_id: str
    type: DependencyType

    @property
    def is_blocking(self) -> bool:
        return self.type.is_blocking


@dataclass(slots=True)
class CreateFudaInput:
    title: str
    description: str
    worker_type: WorkerType | str = WorkerType.TASK
    priority: int = 0
    group_id: str | None = None
    parent_task_id: str | None = None


@dataclass(slots=True)
class DependencyTree:
    """
    Result of a bounded walk over outgoing edges.

    edges: visited fuda id -> its direct outgoing edges
    circular: (task_id, depends_on_id) pairs whose target was already on the path
    """

    root_id: str
    edges: dict[str, list[Dependency]] = field(default_factory=dict)
    circular: set[tuple[str, str]] = field(default_factory=set)

    def is_circular(self, task_id: str, depends_on_id: str) -> bool:
        return (task_id, depends_on_id) in self.circular
