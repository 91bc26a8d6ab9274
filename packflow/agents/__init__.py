"""Agents - per-task execution routine and the tools agents can call"""

from __future__ import annotations

from .processor import TaskProcessor
from .tools import AgentToolbox, ToolContext, ToolResult, tool_definitions

__all__ = [
    "TaskProcessor",
    "AgentToolbox",
    "ToolContext",
    "ToolResult",
    "tool_definitions",
]
