"""Agent Messenger - directed messages and polling request/response between agents"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from ..core.errors import ResponseTimeout
from ..core.models import Message, MessageStatus, MessageType, PENDING_STATUSES
from ..core.ports.storage import StoragePort

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_POLL_INTERVAL_MS = 2_000


class AgentMessenger:
    """
    Message exchange over the relational store.

    `send_and_wait` emulates a synchronous call: the question id is the
    correlation id and the store is polled for a threaded response until the
    deadline.
    """

    def __init__(
        self,
        storage: StoragePort,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        self.storage = storage
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms

    async def _validate(self, message: Message) -> None:
        if not message.from_agent or not message.to_agent:
            raise ValueError("Messages need both a sender and a recipient")
        if message.message_type == MessageType.RESPONSE:
            if not message.parent_message_id:
                raise ValueError("A response must reference the question it answers")
            parent = await self.storage.get_message(message.parent_message_id)
            if parent is None or parent.message_type != MessageType.QUESTION:
                raise ValueError(
                    f"Response parent {message.parent_message_id} is not a known question"
                )

    async def send(
        self,
        from_agent: str,
        to_agent: str,
        content: str,
        message_type: MessageType = MessageType.INFO,
        campaign_id: Optional[str] = None,
        related_task_id: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        status: MessageStatus = MessageStatus.SENT,
    ) -> Message:
        """Persist one message. Storage errors propagate."""
        message = Message(
            from_agent=from_agent,
            to_agent=to_agent,
            content=content,
            message_type=message_type,
            status=status,
            campaign_id=campaign_id,
            related_task_id=related_task_id,
            parent_message_id=parent_message_id,
            metadata=metadata or {},
        )
        await self._validate(message)
        await self.storage.create_message(message)

        logger.debug("Message %s sent %s -> %s (%s)",
                     message.id, from_agent, to_agent, message_type.value)
        return message

    async def send_and_wait(
        self,
        from_agent: str,
        to_agent: str,
        content: str,
        campaign_id: Optional[str] = None,
        related_task_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        poll_interval_ms: Optional[int] = None,
    ) -> str:
        """
        Send a question and wait for its response.

        Returns the content of the newest response. On deadline the question
        is marked `timeout` and ResponseTimeout is raised.
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        poll_interval_ms = self.poll_interval_ms if poll_interval_ms is None else poll_interval_ms

        question = await self.send(
            from_agent=from_agent,
            to_agent=to_agent,
            content=content,
            message_type=MessageType.QUESTION,
            campaign_id=campaign_id,
            related_task_id=related_task_id,
            metadata=metadata,
            status=MessageStatus.WAITING,
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000

        while True:
            answer = await self._latest_response(question.id)
            if answer is not None:
                await self.storage.update_message_status(
                    question.id, MessageStatus.RESPONDED, from_statuses=PENDING_STATUSES,
                )
                return answer.content

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval_ms / 1000, remaining))

        timed_out = await self.storage.update_message_status(
            question.id, MessageStatus.TIMEOUT, from_statuses=PENDING_STATUSES,
        )
        if not timed_out:
            # answered between the last poll and the deadline
            answer = await self._latest_response(question.id)
            if answer is not None:
                return answer.content
        logger.warning("Question %s from %s to %s timed out after %dms: %s",
                       question.id, from_agent, to_agent, timeout_ms, question.summary)
        raise ResponseTimeout(question.id, timeout_ms)

    async def _latest_response(self, question_id: str) -> Optional[Message]:
        responses = await self.storage.find_messages(
            parent_message_id=question_id,
            message_type=MessageType.RESPONSE,
            newest_first=True,
            limit=1,
        )
        return responses[0] if responses else None

    async def get_pending(self, agent_id: str, campaign_id: Optional[str] = None) -> list[Message]:
        """Questions addressed to `agent_id` that still await an answer, oldest first"""
        return await self.storage.find_messages(
            to_agent=agent_id,
            message_type=MessageType.QUESTION,
            statuses=PENDING_STATUSES,
            campaign_id=campaign_id,
        )

    async def respond(
        self,
        message_id: str,
        from_agent: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        """Answer a question. Raises LookupError if it does not exist."""
        original = await self.storage.get_message(message_id)
        if original is None:
            raise LookupError(f"Message {message_id} not found")

        response = original.create_response(from_agent, content, metadata)
        await self._validate(response)
        await self.storage.create_message(response)

        # The response row is the source of truth for the waiting side.
        # A question that already timed out keeps its status.
        try:
            await self.storage.update_message_status(
                message_id, MessageStatus.RESPONDED, from_statuses=PENDING_STATUSES,
            )
        except Exception as e:
            logger.warning("Response %s stored but question %s not marked responded: %s",
                           response.id, message_id, e)

        return response

    async def get_thread(self, message_id: str) -> list[Message]:
        """A message followed by the responses threaded to it"""
        root = await self.storage.get_message(message_id)
        if root is None:
            return []
        replies = await self.storage.find_messages(parent_message_id=message_id)
        return [root, *replies]
