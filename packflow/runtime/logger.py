"""Execution Logger - append-only audit trail of every tool and model invocation"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..core.models import ExecutionLogEntry, ExecutionStatus
from ..core.ports.storage import StoragePort

logger = logging.getLogger(__name__)

T = TypeVar("T")

# USD per 1K tokens: (input, output)
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "gpt-4": (0.03, 0.06),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-3.5-turbo": (0.0015, 0.002),
    "claude-3-opus": (0.015, 0.075),
    "claude-3-sonnet": (0.003, 0.015),
    "claude-3-haiku": (0.00025, 0.00125),
    "gemini-pro": (0.0005, 0.0015),
}
DEFAULT_PRICE_MODEL = "gpt-3.5-turbo"
INPUT_SHARE = 0.75


def calculate_cost(tokens_used: int, model: str) -> float:
    """
    Approximate USD cost of a model call.
    Token usage is split 75% input / 25% output; unknown models use gpt-3.5-turbo prices.
    """
    input_price, output_price = MODEL_PRICES.get(model, MODEL_PRICES[DEFAULT_PRICE_MODEL])
    input_tokens = tokens_used * INPUT_SHARE
    output_tokens = tokens_used * (1 - INPUT_SHARE)
    return (input_tokens / 1000) * input_price + (output_tokens / 1000) * output_price


@dataclass
class LogMetadata:
    """Who is calling what, attached to every entry written by `wrap`"""
    agent_id: str
    tool_name: str
    task_id: Optional[str] = None
    campaign_id: Optional[str] = None
    input: Any = None
    extra: dict[str, Any] = field(default_factory=dict)


# Extracts (tokens_used, model) from a wrapped call's result
UsageExtractor = Callable[[Any], tuple[int, str]]


class ExecutionLogger:
    """
    Writes ExecutionLogEntry rows. A failure to write is reported on the
    process log and never reaches the caller.
    """

    def __init__(self, storage: StoragePort):
        self.storage = storage

    async def log(self, entry: ExecutionLogEntry) -> None:
        try:
            await self.storage.insert_execution_log(entry)
        except Exception as e:
            logger.warning("Failed to write execution log for %s/%s: %s",
                           entry.agent_id, entry.tool_name, e)

    async def wrap(
        self,
        meta: LogMetadata,
        fn: Callable[[], Awaitable[T]],
        usage: Optional[UsageExtractor] = None,
    ) -> T:
        """
        Run `fn`, then log one entry with its duration and outcome.
        The original exception is re-raised after logging.
        """
        start = time.monotonic()
        try:
            result = await fn()
        except (asyncio.TimeoutError, TimeoutError) as e:
            await self.log(self._entry(meta, start, ExecutionStatus.TIMEOUT, error=e))
            raise
        except Exception as e:
            await self.log(self._entry(meta, start, ExecutionStatus.FAILED, error=e))
            raise

        tokens_used = cost = None
        model = None
        if usage is not None:
            try:
                tokens_used, model = usage(result)
                cost = calculate_cost(tokens_used, model)
            except Exception as e:
                logger.warning("Could not extract usage for %s: %s", meta.tool_name, e)

        await self.log(self._entry(
            meta, start, ExecutionStatus.SUCCESS,
            output=result, tokens_used=tokens_used, cost_usd=cost, model=model,
        ))
        return result

    def _entry(
        self,
        meta: LogMetadata,
        start: float,
        status: ExecutionStatus,
        output: Any = None,
        error: Optional[BaseException] = None,
        tokens_used: Optional[int] = None,
        cost_usd: Optional[float] = None,
        model: Optional[str] = None,
    ) -> ExecutionLogEntry:
        metadata = dict(meta.extra)
        if model:
            metadata["model"] = model
        return ExecutionLogEntry(
            agent_id=meta.agent_id,
            tool_name=meta.tool_name,
            status=status,
            task_id=meta.task_id,
            campaign_id=meta.campaign_id,
            input=meta.input,
            output=_loggable(output),
            duration_ms=int((time.monotonic() - start) * 1000),
            tokens_used=tokens_used,
            cost_usd=cost_usd,
            error_message=str(error) if error is not None else None,
            metadata=metadata,
        )


def _loggable(value: Any) -> Any:
    """Reduce a result to something the store can serialize"""
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    if callable(getattr(value, "to_dict", None)):
        return value.to_dict()
    content = getattr(value, "content", None)
    if isinstance(content, str):
        return {"content": content}
    return repr(value)
