"""Orchestrator - wires the runtime components and drives scheduled drains"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Union

from ..agents.processor import TaskProcessor
from ..agents.tools import AgentToolbox
from ..config import Settings
from ..core.models import Job, Priority, TaskTree
from ..core.ports.llm import LLMPort
from ..core.ports.queue import QueuePort
from ..core.ports.sources import KnowledgePort, MarketingDataPort
from ..core.ports.storage import StoragePort
from .context import ContextBuilder
from .executor import ExecutionSummary, Executor, JobQueue
from .logger import ExecutionLogger
from .memory import SharedMemory
from .messenger import AgentMessenger
from .router import RoutingTable, TaskCategory, TaskRouter
from .status import StatusAggregator

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Facade over the orchestration core.

    - create_task_tree: route a category and queue every created task
    - drain: one bounded executor pass
    - run: drain on a timer until stop() is called
    """

    def __init__(
        self,
        storage: StoragePort,
        queue: QueuePort,
        llm: Optional[LLMPort] = None,
        knowledge: Optional[KnowledgePort] = None,
        marketing: Optional[MarketingDataPort] = None,
        routing_table: Optional[RoutingTable] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        s = self.settings

        self.storage = storage
        self.queue = queue
        self.llm = llm

        self.execution_logger = ExecutionLogger(storage)
        self.memory = SharedMemory(storage)
        self.messenger = AgentMessenger(
            storage,
            timeout_ms=s.messaging.timeout_ms,
            poll_interval_ms=s.messaging.poll_interval_ms,
        )
        self.context_builder = ContextBuilder(knowledge=knowledge, marketing=marketing)
        self.router = TaskRouter(
            storage,
            self.messenger,
            routing_table=routing_table or s.routing.routing_table(),
            default_assigned_by=s.routing.default_assigned_by,
        )
        self.job_queue = JobQueue(
            storage, queue,
            queue_name=s.queue.name,
            max_attempts=s.queue.max_attempts,
        )
        self.toolbox = AgentToolbox(
            storage, self.messenger, self.memory, self.job_queue,
            ask_timeout_ms=s.messaging.ask_timeout_ms,
            ask_poll_interval_ms=s.messaging.poll_interval_ms,
        )
        self.status = StatusAggregator(storage, queue, s.queue.name)

        self.processor: Optional[TaskProcessor] = None
        self.executor: Optional[Executor] = None
        if llm is not None:
            self.processor = TaskProcessor(
                storage, llm, self.messenger, self.memory, self.context_builder,
                self.toolbox, self.execution_logger,
                max_tool_rounds=s.llm.max_tool_rounds,
            )
            self.executor = Executor(
                storage, queue, self.processor.process,
                queue_name=s.queue.name,
                retry_delay=s.queue.retry_delay,
            )

        self._stop = asyncio.Event()

    async def create_task_tree(
        self,
        campaign_id: str,
        task_category: Union[str, TaskCategory],
        title: str,
        description: str = "",
        priority: Priority = Priority.MEDIUM,
        assigned_by: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> tuple[TaskTree, list[Job]]:
        """Route a task and queue a job for every task in the tree, coordinator first"""
        tree = await self.router.route(
            campaign_id, task_category, title,
            description=description,
            priority=priority,
            assigned_by=assigned_by,
            context=context,
        )
        jobs = [await self.job_queue.enqueue(task) for task in tree.tasks]
        logger.info("Task tree %s queued: %d task(s)", tree.root.id, len(jobs))
        return tree, jobs

    async def drain(
        self,
        batch_size: Optional[int] = None,
        visibility_timeout: Optional[float] = None,
    ) -> ExecutionSummary:
        if self.executor is None:
            raise RuntimeError("Draining needs an LLM adapter")
        return await self.executor.drain(
            batch_size=batch_size or self.settings.queue.batch_size,
            visibility_timeout=visibility_timeout or self.settings.queue.visibility_timeout,
        )

    async def run(self, interval: Optional[float] = None, max_drains: Optional[int] = None) -> int:
        """Drain repeatedly, sleeping `interval` seconds between passes. Returns the number of drains."""
        interval = self.settings.queue.drain_interval if interval is None else interval
        self._stop.clear()
        drains = 0

        while not self._stop.is_set():
            summary = await self.drain()
            drains += 1
            if max_drains is not None and drains >= max_drains:
                break
            # go again straight away while the queue is busy
            if summary.processed + summary.skipped >= self.settings.queue.batch_size:
                continue
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        await self.memory.flush()
        return drains

    def stop(self) -> None:
        self._stop.set()
