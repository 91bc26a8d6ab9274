"""Agent tools - functions the model may call while working on a task"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..core.errors import ResponseTimeout
from ..core.models import MemoryItem, MemoryType, MessageType, Priority, Task
from ..core.timeutil import utcnow
from ..runtime.executor import JobQueue
from ..runtime.memory import SharedMemory
from ..runtime.messenger import AgentMessenger
from ..core.ports.storage import StoragePort

logger = logging.getLogger(__name__)

ASK_TIMEOUT_MS = 30_000
ASK_POLL_INTERVAL_MS = 2_000
DEFAULT_INSIGHT_RELEVANCE = 0.7


@dataclass
class ToolContext:
    """The task a tool call is made on behalf of"""
    agent_id: str
    task_id: str
    campaign_id: str


@dataclass
class ToolResult:
    success: bool
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "result": self.result}
        if self.error:
            data["error"] = self.error
        return data


def tool_definitions(agent_ids: Iterable[str]) -> list[dict[str, Any]]:
    """OpenAI-style function definitions offered to the model"""
    agents = sorted(agent_ids)
    return [
        {
            "type": "function",
            "function": {
                "name": "ask_agent",
                "description": "Ask another agent a question and wait for the answer. "
                               "Use it when you need a teammate's expertise.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "target_agent": {"type": "string", "enum": agents,
                                         "description": "Agent who should answer"},
                        "question": {"type": "string",
                                     "description": "A clear, specific question"},
                        "context": {"type": "string",
                                    "description": "Extra context for the question"},
                    },
                    "required": ["target_agent", "question"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "store_insight",
                "description": "Store an insight, decision or data point in the campaign's "
                               "shared memory so other agents can use it.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "key": {"type": "string",
                                "description": "Descriptive identifier, e.g. target_audience_analysis"},
                        "value": {"type": "object", "description": "The content to store"},
                        "type": {"type": "string",
                                 "enum": ["insight", "decision", "data", "fact"]},
                        "relevance": {"type": "number", "minimum": 0, "maximum": 1},
                        "summary": {"type": "string", "description": "One-line summary"},
                    },
                    "required": ["key", "value", "type"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "delegate_task",
                "description": "Delegate a specific sub-task to another agent.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "target_agent": {"type": "string", "enum": agents},
                        "task_title": {"type": "string"},
                        "task_description": {"type": "string"},
                        "priority": {"type": "string", "enum": [p.value for p in Priority]},
                        "context": {"type": "object"},
                    },
                    "required": ["target_agent", "task_title", "task_description", "priority"],
                },
            },
        },
    ]


class AgentToolbox:
    """
    Executes tool calls. Every failure, including an unanswered question,
    comes back as an unsuccessful ToolResult instead of an exception.
    """

    def __init__(
        self,
        storage: StoragePort,
        messenger: AgentMessenger,
        memory: SharedMemory,
        job_queue: JobQueue,
        ask_timeout_ms: int = ASK_TIMEOUT_MS,
        ask_poll_interval_ms: int = ASK_POLL_INTERVAL_MS,
    ):
        self.storage = storage
        self.messenger = messenger
        self.memory = memory
        self.job_queue = job_queue
        self.ask_timeout_ms = ask_timeout_ms
        self.ask_poll_interval_ms = ask_poll_interval_ms

    async def execute(self, name: str, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        handlers = {
            "ask_agent": self.ask_agent,
            "store_insight": self.store_insight,
            "delegate_task": self.delegate_task,
        }
        handler = handlers.get(name)
        if handler is None:
            return ToolResult(success=False, error=f"Unknown tool: {name}")

        try:
            inspect.signature(handler).bind(ctx, **args)
        except TypeError as e:
            return ToolResult(success=False, error=f"Bad arguments for {name}: {e}")

        logger.info("Agent %s calls %s", ctx.agent_id, name)
        try:
            return await handler(ctx, **args)
        except Exception as e:
            logger.warning("Tool %s failed for task %s: %s", name, ctx.task_id, e)
            return ToolResult(success=False, error=str(e))

    async def ask_agent(
        self,
        ctx: ToolContext,
        target_agent: str,
        question: str,
        context: Optional[str] = None,
    ) -> ToolResult:
        full_question = f"{question}\n\nContext: {context}" if context else question
        try:
            answer = await self.messenger.send_and_wait(
                from_agent=ctx.agent_id,
                to_agent=target_agent,
                content=full_question,
                campaign_id=ctx.campaign_id,
                related_task_id=ctx.task_id,
                metadata={"asked_at": utcnow().isoformat()},
                timeout_ms=self.ask_timeout_ms,
                poll_interval_ms=self.ask_poll_interval_ms,
            )
        except ResponseTimeout as e:
            return ToolResult(success=False, error=str(e))

        return ToolResult(success=True, result={
            "agent": target_agent,
            "question": question,
            "answer": answer,
        })

    async def store_insight(
        self,
        ctx: ToolContext,
        key: str,
        value: Any,
        type: str = MemoryType.INSIGHT.value,
        relevance: Optional[float] = None,
        summary: Optional[str] = None,
    ) -> ToolResult:
        payload = dict(value) if isinstance(value, dict) else {"content": value}
        payload.update({
            "summary": summary or "",
            "stored_by": ctx.agent_id,
            "stored_at": utcnow().isoformat(),
            "related_task": ctx.task_id,
        })

        item = MemoryItem(
            key=key,
            value=payload,
            memory_type=MemoryType(type),
            relevance_score=DEFAULT_INSIGHT_RELEVANCE if relevance is None else relevance,
        )
        stored = await self.memory.store(ctx.campaign_id, ctx.agent_id, item)
        if stored is None:
            return ToolResult(success=False, error=f"Memory {key!r} could not be stored")

        return ToolResult(success=True, result={"stored": True, "key": key, "type": type})

    async def delegate_task(
        self,
        ctx: ToolContext,
        target_agent: str,
        task_title: str,
        task_description: str,
        priority: str = Priority.MEDIUM.value,
        context: Optional[dict[str, Any]] = None,
    ) -> ToolResult:
        task = Task(
            campaign_id=ctx.campaign_id,
            agent_id=target_agent,
            title=task_title,
            description=task_description,
            priority=Priority(priority),
            parent_task_id=ctx.task_id,
            assigned_by=ctx.agent_id,
            context={
                **(context or {}),
                "delegated_by": ctx.agent_id,
                "parent_task_id": ctx.task_id,
                "delegated_at": utcnow().isoformat(),
            },
        )
        await self.storage.create_task(task)
        await self.job_queue.enqueue(task)
        await self.messenger.send(
            from_agent=ctx.agent_id,
            to_agent=target_agent,
            content=f"Nova tarefa delegada: {task_title}",
            message_type=MessageType.DELEGATION,
            campaign_id=ctx.campaign_id,
            related_task_id=task.id,
            metadata={"parent_task_id": ctx.task_id, "priority": task.priority.value},
        )

        return ToolResult(success=True, result={
            "delegated": True,
            "task_id": task.id,
            "assigned_to": target_agent,
            "title": task_title,
        })
