"""Task Processor - runs one task for its agent: answer questions, gather context, call the model"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Iterable, Optional

from ..core.errors import TaskAlreadyProcessed
from ..core.models import (
    AgentProfile, DEFAULT_AGENTS, MemoryItem, MemoryType, Task, TaskStatus, default_profile,
)
from ..core.ports.llm import LLMMessage, LLMPort, LLMResponse
from ..core.ports.storage import StoragePort
from ..core.timeutil import utcnow
from ..runtime.context import ContextBuilder, ContextOptions
from ..runtime.logger import ExecutionLogger, LogMetadata
from ..runtime.memory import SharedMemory
from ..runtime.messenger import AgentMessenger
from .prompts import ANSWER_QUESTION, TASK_INSTRUCTIONS, TASK_REQUEST, get_system_prompt
from .tools import AgentToolbox, ToolContext, tool_definitions

logger = logging.getLogger(__name__)

# Statuses that mean another attempt already owns or finished the task
SHORT_CIRCUIT_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CANCELLED)

DEFAULT_MAX_TOOL_ROUNDS = 3


def _usage(response: LLMResponse) -> tuple[int, str]:
    return response.tokens_used, response.model


class TaskProcessor:
    """
    The routine the executor invokes for each job.

    It is safe to call more than once for the same task: a task that is in
    progress, completed or cancelled raises TaskAlreadyProcessed before any
    side effect.
    """

    def __init__(
        self,
        storage: StoragePort,
        llm: LLMPort,
        messenger: AgentMessenger,
        memory: SharedMemory,
        context_builder: ContextBuilder,
        toolbox: AgentToolbox,
        execution_logger: ExecutionLogger,
        agent_ids: Optional[Iterable[str]] = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ):
        self.storage = storage
        self.llm = llm
        self.messenger = messenger
        self.memory = memory
        self.context_builder = context_builder
        self.toolbox = toolbox
        self.execution_logger = execution_logger
        self.agent_ids = list(agent_ids) if agent_ids is not None else list(DEFAULT_AGENTS)
        self.max_tool_rounds = max_tool_rounds

    async def process(self, task_id: str) -> dict[str, Any]:
        task = await self.storage.get_task(task_id)
        if task is None:
            raise LookupError(f"Task {task_id} not found")

        if task.status in SHORT_CIRCUIT_STATUSES:
            raise TaskAlreadyProcessed(task.id, task.status.value)

        task.mark_in_progress()
        await self.storage.update_task(task)
        logger.info("Processing task %s for %s", task.id, task.agent_id)

        try:
            result = await self._run(task)
        except Exception as e:
            await self._record_failure(task, e)
            raise

        task.mark_completed(result)
        await self.storage.update_task(task)
        logger.info("Task %s completed", task.id)
        return result

    async def _record_failure(self, task: Task, error: Exception) -> None:
        task.mark_failed(str(error) or type(error).__name__)
        try:
            await self.storage.update_task(task)
        except Exception as e:
            logger.error("Task %s failed (%s) and its status could not be saved: %s", task.id, error, e)
            return
        logger.warning("Task %s failed: %s", task.id, error)

    async def _profile(self, agent_id: str) -> AgentProfile:
        profile = await self.storage.get_agent_profile(agent_id)
        return profile or default_profile(agent_id)

    async def _run(self, task: Task) -> dict[str, Any]:
        profile = await self._profile(task.agent_id)
        base_prompt = get_system_prompt(profile)

        answered = await self._answer_pending_questions(task, profile, base_prompt)

        user_id = task.context.get("user_id") or await self.context_builder.owner_of(task.campaign_id)
        bundle = await self.context_builder.build(ContextOptions(
            user_id=user_id or "",
            task_type=task.context.get("task_category", "general"),
            campaign_id=task.campaign_id,
            query=f"{task.title} {task.description}".strip(),
            categories=profile.preferred_categories or None,
        ))
        memories = await self.memory.retrieve(task.campaign_id, task.agent_id)

        system_prompt = "\n\n".join(part for part in (
            base_prompt,
            bundle.full_context,
            SharedMemory.format_for_context(memories),
            TASK_INSTRUCTIONS.format(
                title=task.title,
                description=task.description,
                priority=task.priority.value,
                context=json.dumps(task.context, ensure_ascii=False, indent=2, default=str),
            ),
        ) if part)

        response, tool_calls = await self._converse(task, profile, system_prompt, [
            LLMMessage(role="user", content=TASK_REQUEST.format(
                title=task.title, description=task.description,
            )),
        ])
        if not response.content:
            raise RuntimeError("No response from model")

        await self.memory.store(task.campaign_id, task.agent_id, MemoryItem(
            key=f"task_result:{task.id}",
            value={"title": task.title, "response": response.content},
            memory_type=MemoryType.INSIGHT,
            relevance_score=0.7,
        ))

        return {
            "response": response.content,
            "context_used": {
                "knowledge": bool(bundle.knowledge),
                "metrics": bool(bundle.metrics),
                "competitors": bool(bundle.competitors),
                "social_media": bool(bundle.social_media),
                "campaign": bool(bundle.campaign),
                "memories": len(memories),
            },
            "model_used": response.model,
            "tool_calls": tool_calls,
            "questions_answered": answered,
            "processed_at": utcnow().isoformat(),
        }

    async def _generate(self, task: Task, profile: AgentProfile, system_prompt: str,
                        messages: list[LLMMessage], tools=None) -> LLMResponse:
        return await self.execution_logger.wrap(
            LogMetadata(
                agent_id=task.agent_id,
                tool_name="llm.generate",
                task_id=task.id,
                campaign_id=task.campaign_id,
                input={"messages": len(messages), "tools": bool(tools)},
            ),
            functools.partial(
                self.llm.generate,
                system_prompt=system_prompt,
                messages=messages,
                model=profile.model,
                tools=tools,
                temperature=profile.temperature,
                max_tokens=profile.max_tokens,
            ),
            usage=_usage,
        )

    async def _converse(self, task: Task, profile: AgentProfile, system_prompt: str,
                        messages: list[LLMMessage]) -> tuple[LLMResponse, int]:
        """Call the model, executing requested tools for at most `max_tool_rounds` rounds"""
        ctx = ToolContext(agent_id=task.agent_id, task_id=task.id, campaign_id=task.campaign_id)
        tools = tool_definitions(a for a in self.agent_ids if a != task.agent_id)
        calls_made = 0

        for round_no in range(self.max_tool_rounds + 1):
            offer = tools if round_no < self.max_tool_rounds else None
            response = await self._generate(task, profile, system_prompt, messages, offer)
            # calls made on the final, tool-less round are ignored
            if not response.tool_calls or offer is None:
                return response, calls_made

            messages.append(LLMMessage(role="assistant", content=response.content,
                                       tool_calls=response.tool_calls))
            for call in response.tool_calls:
                result = await self.execution_logger.wrap(
                    LogMetadata(
                        agent_id=task.agent_id,
                        tool_name=call.name,
                        task_id=task.id,
                        campaign_id=task.campaign_id,
                        input=call.arguments,
                    ),
                    functools.partial(self.toolbox.execute, call.name, call.arguments, ctx),
                )
                calls_made += 1
                messages.append(LLMMessage(
                    role="tool",
                    content=json.dumps(result.to_dict(), ensure_ascii=False, default=str),
                    tool_call_id=call.id,
                ))

        return response, calls_made

    async def _answer_pending_questions(self, task: Task, profile: AgentProfile,
                                        system_prompt: str) -> int:
        """Reply to questions waiting for this agent. One failed answer does not fail the task."""
        answered = 0
        for question in await self.messenger.get_pending(task.agent_id, task.campaign_id):
            try:
                response = await self._generate(task, profile, system_prompt, [
                    LLMMessage(role="user", content=ANSWER_QUESTION.format(
                        from_agent=question.from_agent, question=question.content,
                    )),
                ])
                await self.messenger.respond(question.id, task.agent_id, response.content,
                                             metadata={"task_id": task.id})
                answered += 1
            except Exception as e:
                logger.warning("Could not answer question %s for %s: %s",
                               question.id, task.agent_id, e)
        return answered
