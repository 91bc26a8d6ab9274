"""Job domain model - the queueable execution request wrapping a task"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NewType, Optional
from uuid import uuid4

from ..timeutil import utcnow
from .task import Priority, Task

JobId = NewType("JobId", str)

DEFAULT_JOB_TYPE = "process_task"
DEFAULT_MAX_ATTEMPTS = 3


class JobStatus(str, Enum):
    """Status of a job"""
    PENDING = "pending"          # Waiting in the queue (first run or retry)
    PROCESSING = "processing"    # Picked up by an executor
    COMPLETED = "completed"      # Task processed
    DEAD = "dead"                # Retry budget exhausted, never retried automatically

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.DEAD)


@dataclass
class Job:
    """
    Attempt/retry bookkeeping for one task execution request.
    The row is kept after it reaches a terminal status.
    """
    id: JobId = field(default_factory=lambda: JobId(str(uuid4())))

    task_id: str = ""
    agent_id: str = ""
    campaign_id: str = ""

    job_type: str = DEFAULT_JOB_TYPE
    payload: dict[str, Any] = field(default_factory=dict)
    priority: Priority = Priority.MEDIUM

    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    status: JobStatus = JobStatus.PENDING

    error_message: Optional[str] = None
    result: Optional[dict[str, Any]] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def for_task(cls, task: Task, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> "Job":
        return cls(
            task_id=task.id,
            agent_id=task.agent_id,
            campaign_id=task.campaign_id,
            priority=task.priority,
            max_attempts=max_attempts,
            payload={"task_id": task.id},
        )

    def transport_payload(self) -> dict[str, Any]:
        """Body of the queue message that carries this job"""
        return {
            "job_id": self.id,
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "campaign_id": self.campaign_id,
            "attempts": self.attempts,
        }

    def start_attempt(self) -> None:
        if self.status.is_terminal:
            raise ValueError(f"Job {self.id} is {self.status.value}, cannot start another attempt")
        if self.attempts >= self.max_attempts:
            raise ValueError(f"Job {self.id} already used {self.attempts}/{self.max_attempts} attempts")
        self.attempts += 1
        self.status = JobStatus.PROCESSING
        self.started_at = utcnow()
        self.updated_at = self.started_at

    def complete(self, result: Optional[dict[str, Any]] = None) -> None:
        self.status = JobStatus.COMPLETED
        self.result = result
        self.error_message = None
        self.completed_at = utcnow()
        self.updated_at = self.completed_at

    def fail(self, error: str) -> bool:
        """Record a failed attempt. Returns True when the job will be retried."""
        self.error_message = error
        self.updated_at = utcnow()
        if self.attempts >= self.max_attempts:
            self.status = JobStatus.DEAD
            self.completed_at = self.updated_at
            return False
        self.status = JobStatus.PENDING
        return True

    @property
    def retries_left(self) -> int:
        return max(self.max_attempts - self.attempts, 0)
