"""Shared memory models - blackboard entries visible within a campaign"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from ..timeutil import utcnow


class MemoryType(str, Enum):
    FACT = "fact"
    DECISION = "decision"
    INSIGHT = "insight"
    DATA = "data"
    CONTEXT = "context"


@dataclass
class MemoryItem:
    """
    One blackboard entry.

    Keys are not unique: the blackboard is append-only, several entries may
    share a key. `accessible_to` of None (or empty) means every agent of the
    campaign can read the entry.
    """
    key: str = ""
    value: Any = None
    memory_type: MemoryType = MemoryType.CONTEXT

    relevance_score: float = 1.0
    accessible_to: Optional[list[str]] = None
    expires_at: Optional[datetime] = None

    # Filled in by the store
    id: str = field(default_factory=lambda: str(uuid4()))
    campaign_id: str = ""
    created_by: str = ""
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.relevance_score <= 1.0:
            raise ValueError(f"relevance_score must be within [0, 1], got {self.relevance_score}")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def is_visible_to(self, agent_id: str) -> bool:
        return not self.accessible_to or agent_id in self.accessible_to


@dataclass
class MemoryFilter:
    """Optional retrieval filters. Empty / None fields do not filter."""
    keys: Optional[list[str]] = None
    types: Optional[list[MemoryType]] = None
    min_relevance: Optional[float] = None

    def matches(self, item: MemoryItem) -> bool:
        if self.keys and item.key not in self.keys:
            return False
        if self.types and item.memory_type not in self.types:
            return False
        if self.min_relevance is not None and item.relevance_score < self.min_relevance:
            return False
        return True
