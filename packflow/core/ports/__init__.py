"""Ports - interfaces for external dependencies (hexagonal architecture)"""

from __future__ import annotations

from .llm import LLMPort, LLMMessage, LLMResponse, ToolCall
from .storage import StoragePort
from .queue import QueuePort, QueueMessage
from .sources import KnowledgePort, KnowledgeChunk, MarketingDataPort

__all__ = [
    "LLMPort",
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "StoragePort",
    "QueuePort",
    "QueueMessage",
    "KnowledgePort",
    "KnowledgeChunk",
    "MarketingDataPort",
]
