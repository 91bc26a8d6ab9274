"""LiteLLM adapter - supports multiple LLM providers through unified interface"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from typing import Any, Optional

import litellm
from litellm import acompletion

from ..core.ports.llm import LLMPort, LLMMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class ModelProvider(str, Enum):
    """Providers the agents may be configured with"""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"

    @property
    def api_key_env(self) -> str:
        names = {
            ModelProvider.OPENAI: "OPENAI_API_KEY",
            ModelProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
            ModelProvider.GOOGLE: "GEMINI_API_KEY",
        }
        return names[self]

    @classmethod
    def for_model(cls, model: str) -> "ModelProvider":
        """Infer the provider from a model name such as "gpt-4o" or "google/gemini-2.5-flash" """
        name = model.lower()
        if "claude" in name or name.startswith("anthropic/"):
            return cls.ANTHROPIC
        if "gemini" in name or name.startswith(("google/", "vertex_ai/")):
            return cls.GOOGLE
        if "gpt" in name or name.startswith(("openai/", "o1", "o3")):
            return cls.OPENAI
        raise ValueError(
            f"Unsupported model {model!r}. Known providers: {', '.join(p.value for p in cls)}"
        )


def _to_litellm_message(msg: LLMMessage) -> dict[str, Any]:
    """Convert a port message into the OpenAI-style dict LiteLLM expects"""
    data: dict[str, Any] = {"role": msg.role, "content": msg.content}
    if msg.role == "tool":
        data["tool_call_id"] = msg.tool_call_id
    if msg.tool_calls:
        data["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in msg.tool_calls
        ]
    return data


def _parse_tool_calls(message: Any) -> list[ToolCall]:
    calls = []
    for raw in getattr(message, "tool_calls", None) or []:
        arguments = raw.function.arguments or "{}"
        try:
            parsed = json.loads(arguments) if isinstance(arguments, str) else dict(arguments)
        except json.JSONDecodeError:
            logger.warning("Tool call %s has malformed arguments: %r", raw.function.name, arguments)
            parsed = {}
        calls.append(ToolCall(id=raw.id, name=raw.function.name, arguments=parsed))
    return calls


class LiteLLMAdapter(LLMPort):
    """
    LLM adapter using LiteLLM for multi-provider support.

    Supports:
    - OpenAI: gpt-4o, gpt-4o-mini, gpt-4-turbo
    - Anthropic: claude-3-5-sonnet, claude-3-haiku
    - Google: gemini-1.5-pro, gemini-2.5-flash
    """

    def __init__(
        self,
        default_model: str = "gpt-4o-mini",
        fallback_model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ):
        self._default_model = default_model
        self._fallback_model = fallback_model
        self._default_temperature = temperature
        self._default_max_tokens = max_tokens

        # Configure LiteLLM
        litellm.set_verbose = False

        # Check for API keys
        self._validate_api_keys()

    def _validate_api_keys(self) -> None:
        """Check that required API keys are set"""
        provider = ModelProvider.for_model(self._default_model)
        if not os.environ.get(provider.api_key_env):
            raise ValueError(
                f"{provider.api_key_env} environment variable required for {provider.value} models. "
                f"Set it with: export {provider.api_key_env}='your-key'"
            )

    async def generate(
        self,
        system_prompt: str,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate a completion from the LLM"""

        model = model or self._default_model
        temperature = temperature if temperature is not None else self._default_temperature
        max_tokens = max_tokens or self._default_max_tokens

        llm_messages = [{"role": "system", "content": system_prompt}]
        llm_messages.extend(_to_litellm_message(msg) for msg in messages)

        kwargs: dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            response = await acompletion(
                model=model,
                messages=llm_messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )

            choice = response.choices[0]
            return LLMResponse(
                content=choice.message.content or "",
                model=response.model,
                usage={
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                },
                finish_reason=choice.finish_reason,
                tool_calls=_parse_tool_calls(choice.message),
                raw_response=response,
            )

        except Exception as e:
            # Try fallback model if available
            if self._fallback_model and model != self._fallback_model:
                logger.warning("Primary model %s failed, trying fallback %s: %s",
                               model, self._fallback_model, e)
                return await self.generate(
                    system_prompt=system_prompt,
                    messages=messages,
                    model=self._fallback_model,
                    tools=tools,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            raise

    @property
    def default_model(self) -> str:
        """Get the default model name"""
        return self._default_model
