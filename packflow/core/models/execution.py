"""Execution log model - immutable audit record of a tool or model invocation"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from ..timeutil import utcnow


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ExecutionLogEntry:
    """Write-once record; never updated or deleted"""
    agent_id: str
    tool_name: str
    status: ExecutionStatus

    task_id: Optional[str] = None
    campaign_id: Optional[str] = None

    input: Any = None
    output: Any = None

    duration_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    cost_usd: Optional[float] = None

    error_message: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utcnow)
