"""Task domain models - units of agent work organized in delegation trees"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NewType, Optional
from uuid import uuid4

from ..timeutil import utcnow

TaskId = NewType("TaskId", str)


class Priority(str, Enum):
    """Task priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Lower rank = more urgent"""
        ranks = {
            Priority.URGENT: 0,
            Priority.HIGH: 1,
            Priority.MEDIUM: 2,
            Priority.LOW: 3,
        }
        return ranks[self]


class TaskStatus(str, Enum):
    """Lifecycle status of a task"""
    PENDING = "pending"          # Created, not started
    IN_PROGRESS = "in_progress"  # Being processed by an executor
    COMPLETED = "completed"      # Done, result stored
    FAILED = "failed"            # Last attempt failed
    CANCELLED = "cancelled"      # Abandoned

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


# Allowed transitions. FAILED -> IN_PROGRESS is a job retry; nothing goes back to PENDING.
_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED},
    TaskStatus.FAILED: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}


@dataclass
class Task:
    """
    A unit of work assigned to one agent within one campaign.
    Tasks are never deleted; they form the audit trail of the campaign.
    """
    id: TaskId = field(default_factory=lambda: TaskId(str(uuid4())))

    campaign_id: str = ""
    agent_id: str = ""

    title: str = ""
    description: str = ""
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING

    # Delegation tree
    parent_task_id: Optional[TaskId] = None
    assigned_by: Optional[str] = None

    context: dict[str, Any] = field(default_factory=dict)
    result: Optional[dict[str, Any]] = None

    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def can_transition(self, new_status: TaskStatus) -> bool:
        return new_status in _TRANSITIONS[self.status]

    def _transition(self, new_status: TaskStatus) -> None:
        if not self.can_transition(new_status):
            raise ValueError(
                f"Task {self.id}: invalid transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def mark_in_progress(self) -> None:
        self._transition(TaskStatus.IN_PROGRESS)
        self.started_at = utcnow()
        self.completed_at = None

    def mark_completed(self, result: dict[str, Any]) -> None:
        self._transition(TaskStatus.COMPLETED)
        self.result = result
        self.completed_at = utcnow()

    def mark_failed(self, error: str) -> None:
        self._transition(TaskStatus.FAILED)
        self.result = {"error": error}
        self.completed_at = utcnow()

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None


@dataclass
class TaskTree:
    """A coordinating task plus the execution sub-tasks created under it"""
    root: Task
    subtasks: list[Task] = field(default_factory=list)

    @property
    def tasks(self) -> list[Task]:
        return [self.root, *self.subtasks]

    def __len__(self) -> int:
        return 1 + len(self.subtasks)
