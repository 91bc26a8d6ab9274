"""LLM Port - interface for language model interactions"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ToolCall:
    """A function call requested by the model"""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMMessage:
    """A message in a conversation with the LLM"""
    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_call_id: Optional[str] = None           # role == "tool"
    tool_calls: list[ToolCall] = field(default_factory=list)  # role == "assistant"


@dataclass
class LLMResponse:
    """Response from an LLM call"""
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)  # tokens used
    finish_reason: str = "stop"
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw_response: Optional[Any] = None

    @property
    def tokens_used(self) -> int:
        """Total tokens used in this response"""
        return self.usage.get("total_tokens", 0)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class LLMPort(ABC):
    """
    Port for LLM interactions.
    A provider error raised from here fails the task and is retried by the job policy.
    """

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            system_prompt: Role instructions, sent as the system message
            messages: Conversation after the system prompt
            model: Model to use (None = use default)
            tools: OpenAI-style function tool definitions the model may call
            temperature: Randomness (None = adapter default)
            max_tokens: Maximum tokens in response (None = adapter default)

        Returns:
            LLMResponse with generated content and any requested tool calls
        """
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Get the default model name"""
        pass
