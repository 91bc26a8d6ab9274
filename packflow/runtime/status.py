"""Status Aggregator - collects task, job and queue state for the dashboard"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.models import ExecutionLogEntry, Job, JobStatus, Task, TaskStatus
from ..core.ports.queue import QueuePort
from ..core.ports.storage import StoragePort
from ..core.timeutil import utcnow


@dataclass
class StatusSnapshot:
    """Complete dashboard snapshot"""
    taken_at: datetime
    task_counts: dict[str, int] = field(default_factory=dict)
    job_counts: dict[str, int] = field(default_factory=dict)
    queue_depth: int = 0

    # Need operator attention
    dead_jobs: list[Job] = field(default_factory=list)
    failed_tasks: list[Task] = field(default_factory=list)

    recent_logs: list[ExecutionLogEntry] = field(default_factory=list)

    @property
    def open_tasks(self) -> int:
        return sum(self.task_counts.get(s.value, 0)
                   for s in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS))

    @property
    def total_cost_usd(self) -> float:
        return sum(e.cost_usd or 0.0 for e in self.recent_logs)


class StatusAggregator:
    """
    Aggregates persisted state for monitoring.
    Dead jobs and failed tasks are surfaced here, never retried.
    """

    def __init__(self, storage: StoragePort, queue: QueuePort, queue_name: str):
        self.storage = storage
        self.queue = queue
        self.queue_name = queue_name

    async def snapshot(self, campaign_id: Optional[str] = None, log_limit: int = 20) -> StatusSnapshot:
        failed = await self.storage.list_tasks(campaign_id=campaign_id, status=TaskStatus.FAILED)
        dead = await self.storage.list_jobs(status=JobStatus.DEAD)
        if campaign_id:
            dead = [j for j in dead if j.campaign_id == campaign_id]
        failed.sort(key=lambda t: (t.priority.rank, t.created_at))

        return StatusSnapshot(
            taken_at=utcnow(),
            task_counts=await self.storage.count_by_status("tasks"),
            job_counts=await self.storage.count_by_status("jobs"),
            queue_depth=await self.queue.size(self.queue_name),
            dead_jobs=dead,
            failed_tasks=failed,
            recent_logs=await self.storage.list_execution_logs(limit=log_limit),
        )

    async def get_summary(self) -> str:
        """Get a concise text summary"""
        snap = await self.snapshot()
        lines = [
            f"Tasks: {snap.open_tasks} open, "
            f"{snap.task_counts.get(TaskStatus.COMPLETED.value, 0)} completed, "
            f"{snap.task_counts.get(TaskStatus.FAILED.value, 0)} failed",
            f"Jobs: {snap.job_counts.get(JobStatus.PENDING.value, 0)} pending, "
            f"{snap.job_counts.get(JobStatus.DEAD.value, 0)} dead; queue depth {snap.queue_depth}",
        ]
        for job in snap.dead_jobs[:5]:
            lines.append(f"  dead job {job.id} (task {job.task_id}): {job.error_message}")
        return "\n".join(lines)
