"""Queue Port - durable at-least-once transport with visibility timeout"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class QueueMessage:
    """A dequeued message. Invisible to other consumers until its visibility timeout elapses."""
    message_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    read_count: int = 0
    enqueued_at: Optional[datetime] = None


class QueuePort(ABC):
    """
    The three primitives the executor depends on.

    A dequeued message stays invisible for `visibility_timeout` seconds and
    then becomes deliverable again unless it was deleted. Implementations
    raise TransportError when a primitive fails.
    """

    @abstractmethod
    async def enqueue(self, queue_name: str, payload: dict[str, Any], delay: float = 0) -> int:
        """Add a message, visible after `delay` seconds. Returns the message id."""
        pass

    @abstractmethod
    async def dequeue(self, queue_name: str, visibility_timeout: float, count: int) -> list[QueueMessage]:
        """Atomically claim up to `count` visible messages"""
        pass

    @abstractmethod
    async def delete(self, queue_name: str, message_id: int) -> bool:
        """Remove a message. Returns False if it was already gone."""
        pass

    @abstractmethod
    async def size(self, queue_name: str) -> int:
        """Number of messages (visible or not) still in the queue"""
        pass
