"""Runtime - orchestration components: logger, memory, messenger, context, router, executor

The Orchestrator facade lives in `packflow.runtime.loop`; it depends on the agents package.
"""

from __future__ import annotations

from .logger import ExecutionLogger, LogMetadata, calculate_cost
from .memory import SharedMemory
from .messenger import AgentMessenger
from .context import ContextBuilder, ContextOptions, ContextBundle
from .router import TaskCategory, Route, RoutingTable, TaskRouter
from .executor import JobQueue, Executor, ExecutionSummary, JobOutcome
from .status import StatusAggregator, StatusSnapshot

__all__ = [
    "ExecutionLogger",
    "LogMetadata",
    "calculate_cost",
    "SharedMemory",
    "AgentMessenger",
    "ContextBuilder",
    "ContextOptions",
    "ContextBundle",
    "TaskCategory",
    "Route",
    "RoutingTable",
    "TaskRouter",
    "JobQueue",
    "Executor",
    "ExecutionSummary",
    "JobOutcome",
    "StatusAggregator",
    "StatusSnapshot",
]
