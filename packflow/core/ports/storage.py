"""Storage Port - interface for the relational store"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from ..models import (
    AgentProfile, ExecutionLogEntry, Job, JobStatus,
    MemoryItem, Message, MessageStatus, MessageType, Task, TaskStatus,
)


class StoragePort(ABC):
    """
    Port for data persistence.

    Every method is a single-row (or single-statement) operation. No method
    spans two relations; callers keep cross-relation consistency by ordering
    their writes.
    """

    # Task operations

    @abstractmethod
    async def create_task(self, task: Task) -> Task:
        """Insert a new task row"""
        pass

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    async def update_task(self, task: Task) -> None:
        """Persist status, result and timestamps of an existing task"""
        pass

    @abstractmethod
    async def list_tasks(
        self,
        campaign_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        parent_task_id: Optional[str] = None,
    ) -> list[Task]:
        """Tasks matching all given filters, oldest first"""
        pass

    # Job operations

    @abstractmethod
    async def create_job(self, job: Job) -> Job:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def update_job(self, job: Job) -> None:
        pass

    @abstractmethod
    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        task_id: Optional[str] = None,
        updated_before: Optional[datetime] = None,
    ) -> list[Job]:
        pass

    # Message operations

    @abstractmethod
    async def create_message(self, message: Message) -> Message:
        pass

    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[Message]:
        pass

    @abstractmethod
    async def update_message_status(
        self,
        message_id: str,
        status: MessageStatus,
        from_statuses: Optional[Iterable[MessageStatus]] = None,
    ) -> bool:
        """
        Set a message status. With `from_statuses` the change only applies while
        the current status is one of them; returns whether the row changed.
        """
        pass

    @abstractmethod
    async def find_messages(
        self,
        to_agent: Optional[str] = None,
        message_type: Optional[MessageType] = None,
        statuses: Optional[Iterable[MessageStatus]] = None,
        campaign_id: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        related_task_id: Optional[str] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list[Message]:
        """Messages matching all given filters, ordered by creation time"""
        pass

    # Shared memory operations

    @abstractmethod
    async def insert_memory(self, item: MemoryItem) -> MemoryItem:
        pass

    @abstractmethod
    async def query_memory(self, campaign_id: str, now: datetime) -> list[MemoryItem]:
        """Unexpired items of a campaign, ordered by relevance descending"""
        pass

    @abstractmethod
    async def touch_memory(self, item_ids: list[str], accessed_at: datetime) -> None:
        """Record last access time"""
        pass

    # Execution log operations

    @abstractmethod
    async def insert_execution_log(self, entry: ExecutionLogEntry) -> None:
        pass

    @abstractmethod
    async def list_execution_logs(
        self,
        agent_id: Optional[str] = None,
        task_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[ExecutionLogEntry]:
        pass

    # Agent configuration

    @abstractmethod
    async def get_agent_profile(self, agent_id: str) -> Optional[AgentProfile]:
        pass

    @abstractmethod
    async def save_agent_profile(self, profile: AgentProfile) -> None:
        pass

    # Aggregates for the status view

    @abstractmethod
    async def count_by_status(self, table: str) -> dict[str, Any]:
        """Row counts grouped by status for "tasks" or "jobs" """
        pass
