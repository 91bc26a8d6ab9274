"""Message domain model - directed communication between agent identities"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NewType, Optional
from uuid import uuid4

from ..timeutil import utcnow

MessageId = NewType("MessageId", str)


class MessageType(str, Enum):
    """Kind of message"""
    QUESTION = "question"        # Expects a threaded response
    RESPONSE = "response"        # Answers a question (parent_message_id required)
    INFO = "info"                # FYI, no response expected
    DELEGATION = "delegation"    # Notice of a newly created task
    ESCALATION = "escalation"    # Raised up the hierarchy
    RESULT = "result"            # Work output shared with a peer
    UPDATE = "update"            # Progress update


class MessageStatus(str, Enum):
    """Delivery status. Questions end in RESPONDED or TIMEOUT and stay there."""
    SENT = "sent"
    WAITING = "waiting"
    RESPONDED = "responded"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.RESPONDED, MessageStatus.TIMEOUT)


PENDING_STATUSES = (MessageStatus.SENT, MessageStatus.WAITING)


@dataclass
class Message:
    """A message from one agent to another"""
    id: MessageId = field(default_factory=lambda: MessageId(str(uuid4())))

    from_agent: str = ""
    to_agent: str = ""
    content: str = ""

    message_type: MessageType = MessageType.INFO
    status: MessageStatus = MessageStatus.SENT

    campaign_id: Optional[str] = None
    related_task_id: Optional[str] = None
    parent_message_id: Optional[MessageId] = None

    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_pending_question(self) -> bool:
        return self.message_type == MessageType.QUESTION and self.status in PENDING_STATUSES

    def create_response(self, sender: str, content: str,
                        metadata: Optional[dict[str, Any]] = None) -> "Message":
        """Build the response message threaded to this question"""
        return Message(
            from_agent=sender,
            to_agent=self.from_agent,
            content=content,
            message_type=MessageType.RESPONSE,
            status=MessageStatus.SENT,
            campaign_id=self.campaign_id,
            related_task_id=self.related_task_id,
            parent_message_id=self.id,
            metadata=metadata or {},
        )

    @property
    def summary(self) -> str:
        text = self.content.strip().splitlines()[0] if self.content.strip() else ""
        return text[:60]
