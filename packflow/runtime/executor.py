"""Job Queue & Executor - durable task execution with bounded retry and dead-lettering"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from ..core.errors import JobRetryExhausted, TaskAlreadyProcessed, TransportError
from ..core.models import DEFAULT_MAX_ATTEMPTS, Job, JobStatus, Task
from ..core.ports.queue import QueueMessage, QueuePort
from ..core.ports.storage import StoragePort
from ..core.timeutil import utcnow

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = "agent_jobs_queue"
DEFAULT_BATCH_SIZE = 5
DEFAULT_VISIBILITY_TIMEOUT = 300  # seconds

TaskHandler = Callable[[str], Awaitable[dict[str, Any]]]


class JobQueue:
    """Turns persisted tasks into queued jobs"""

    def __init__(
        self,
        storage: StoragePort,
        queue: QueuePort,
        queue_name: str = DEFAULT_QUEUE_NAME,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.storage = storage
        self.queue = queue
        self.queue_name = queue_name
        self.max_attempts = max_attempts

    async def enqueue(self, task: Task) -> Job:
        """
        Create the Job row, then the transport message.
        If the transport fails the job stays pending and is found by `find_stranded_jobs`.
        """
        if await self.storage.get_task(task.id) is None:
            raise LookupError(f"Task {task.id} must be persisted before it is enqueued")

        job = Job.for_task(task, max_attempts=self.max_attempts)
        await self.storage.create_job(job)

        try:
            await self.queue.enqueue(self.queue_name, job.transport_payload())
        except TransportError:
            logger.error("Job %s created but not queued for task %s", job.id, task.id)
            raise

        logger.info("Job %s queued for task %s (%s)", job.id, task.id, task.agent_id)
        return job

    async def find_stranded_jobs(self, older_than: timedelta) -> list[Job]:
        """Pending jobs untouched for longer than `older_than`, likely missing their transport message"""
        return await self.storage.list_jobs(
            status=JobStatus.PENDING,
            updated_before=utcnow() - older_than,
        )

    async def requeue(self, job: Job) -> int:
        """Send a fresh transport message for an existing pending job"""
        if job.status != JobStatus.PENDING:
            raise ValueError(f"Only pending jobs can be requeued, job {job.id} is {job.status.value}")

        message_id = await self.queue.enqueue(self.queue_name, job.transport_payload())
        job.updated_at = utcnow()
        await self.storage.update_job(job)
        logger.info("Job %s requeued as message %s", job.id, message_id)
        return message_id


@dataclass
class JobOutcome:
    """Result of handling one dequeued job"""
    job_id: Optional[str]
    task_id: Optional[str]
    success: bool
    error: Optional[str] = None
    will_retry: bool = False
    skipped: bool = False


@dataclass
class ExecutionSummary:
    """What one drain did"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    dead: int = 0
    outcomes: list[JobOutcome] = field(default_factory=list)

    def record(self, outcome: JobOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.skipped:
            self.skipped += 1
            return
        self.processed += 1
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed += 1
            if not outcome.will_retry:
                self.dead += 1


class Executor:
    """
    Drains the job queue.

    Messages in a batch are handled one after another. Safety across
    concurrent drains comes from the queue's visibility timeout, and from the
    task handler refusing tasks that are already in progress or done.
    """

    def __init__(
        self,
        storage: StoragePort,
        queue: QueuePort,
        handler: TaskHandler,
        queue_name: str = DEFAULT_QUEUE_NAME,
        retry_delay: float = 0,
    ):
        self.storage = storage
        self.queue = queue
        self.handler = handler
        self.queue_name = queue_name
        self.retry_delay = retry_delay

    async def drain(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
    ) -> ExecutionSummary:
        """Process up to `batch_size` visible jobs. TransportError propagates."""
        summary = ExecutionSummary()
        messages = await self.queue.dequeue(self.queue_name, visibility_timeout, batch_size)
        if not messages:
            return summary

        logger.info("Processing %d job(s) from %s", len(messages), self.queue_name)
        for message in messages:
            try:
                outcome = await self._handle(message)
            except TransportError:
                raise
            except Exception as e:
                # bookkeeping failed; the message reappears after the visibility timeout
                logger.error("Job bookkeeping failed for message %s: %s", message.message_id, e)
                outcome = JobOutcome(
                    job_id=message.payload.get("job_id"),
                    task_id=message.payload.get("task_id"),
                    success=False,
                    error=str(e),
                    will_retry=True,
                )
            summary.record(outcome)

        logger.info(
            "Drain finished: %d processed, %d succeeded, %d failed, %d dead, %d skipped",
            summary.processed, summary.succeeded, summary.failed, summary.dead, summary.skipped,
        )
        return summary

    async def _handle(self, message: QueueMessage) -> JobOutcome:
        job_id = message.payload.get("job_id")
        job = await self.storage.get_job(job_id) if job_id else None

        if job is None or job.status.is_terminal:
            await self.queue.delete(self.queue_name, message.message_id)
            state = job.status.value if job else "missing"
            logger.info("Dropping stale message %s for job %s (%s)", message.message_id, job_id, state)
            return JobOutcome(job_id=job_id, task_id=message.payload.get("task_id"),
                              success=True, skipped=True)

        if job.attempts >= job.max_attempts:
            # budget was used up by an attempt that never recorded its outcome
            return await self._fail(job, message, "retry budget exhausted before attempt")

        job.start_attempt()
        await self.storage.update_job(job)

        try:
            result = await self.handler(job.task_id)
        except TaskAlreadyProcessed as e:
            logger.info("Task %s already handled, completing job %s", job.task_id, job.id)
            result = {"skipped": True, "reason": str(e)}
        except Exception as e:
            return await self._fail(job, message, str(e) or type(e).__name__)

        job.complete(result)
        await self.storage.update_job(job)
        await self.queue.delete(self.queue_name, message.message_id)
        logger.info("Job %s completed (attempt %d)", job.id, job.attempts)
        return JobOutcome(job_id=job.id, task_id=job.task_id, success=True)

    async def _fail(self, job: Job, message: QueueMessage, error: str) -> JobOutcome:
        will_retry = job.fail(error)
        await self.storage.update_job(job)

        if will_retry:
            await self.queue.enqueue(self.queue_name, job.transport_payload(), delay=self.retry_delay)
            logger.warning("Job %s attempt %d/%d failed, retry scheduled (%d left): %s",
                           job.id, job.attempts, job.max_attempts, job.retries_left, error)
        else:
            logger.error("%s", JobRetryExhausted(job.id, job.attempts, error))

        await self.queue.delete(self.queue_name, message.message_id)
        return JobOutcome(job_id=job.id, task_id=job.task_id, success=False,
                          error=error, will_retry=will_retry)
