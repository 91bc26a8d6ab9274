"""Core domain models"""

from __future__ import annotations

from .agent import AgentId, AgentLevel, AgentProfile, DEFAULT_AGENTS, default_profile
from .task import TaskId, Priority, TaskStatus, Task, TaskTree
from .job import JobId, JobStatus, Job, DEFAULT_MAX_ATTEMPTS
from .message import MessageId, MessageType, MessageStatus, Message, PENDING_STATUSES
from .memory import MemoryType, MemoryItem, MemoryFilter
from .execution import ExecutionStatus, ExecutionLogEntry

__all__ = [
    "AgentId",
    "AgentLevel",
    "AgentProfile",
    "DEFAULT_AGENTS",
    "default_profile",
    "TaskId",
    "Priority",
    "TaskStatus",
    "Task",
    "TaskTree",
    "JobId",
    "JobStatus",
    "Job",
    "DEFAULT_MAX_ATTEMPTS",
    "MessageId",
    "MessageType",
    "MessageStatus",
    "Message",
    "PENDING_STATUSES",
    "MemoryType",
    "MemoryItem",
    "MemoryFilter",
    "ExecutionStatus",
    "ExecutionLogEntry",
]
