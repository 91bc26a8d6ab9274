"""Shared Memory Store - campaign-scoped blackboard agents read and append to"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from ..core.models import MemoryFilter, MemoryItem, MemoryType
from ..core.ports.storage import StoragePort
from ..core.timeutil import utcnow

logger = logging.getLogger(__name__)

_SECTION_TITLES = [
    (MemoryType.FACT, "Established facts"),
    (MemoryType.DECISION, "Decisions made"),
    (MemoryType.INSIGHT, "Key insights"),
    (MemoryType.DATA, "Relevant data"),
    (MemoryType.CONTEXT, "Context"),
]


class SharedMemory:
    """
    Append-only blackboard.

    Reads are filtered by visibility (`accessible_to`) and expiry, never by
    ownership. Storage failures degrade to None / [] and are logged.
    """

    def __init__(self, storage: StoragePort):
        self.storage = storage
        self._background: set[asyncio.Task] = set()

    async def store(self, campaign_id: str, agent_id: str, item: MemoryItem) -> Optional[MemoryItem]:
        """Insert `item` for the campaign. Returns the stored item, or None on failure."""
        item.campaign_id = campaign_id
        item.created_by = agent_id
        try:
            stored = await self.storage.insert_memory(item)
        except Exception as e:
            logger.error("Failed to store memory %r for campaign %s: %s", item.key, campaign_id, e)
            return None

        logger.info("Memory stored: %s (%s) by %s", item.key, item.memory_type.value, agent_id)
        return stored

    async def retrieve(
        self,
        campaign_id: str,
        agent_id: str,
        filter: Optional[MemoryFilter] = None,
    ) -> list[MemoryItem]:
        """Visible, unexpired items of the campaign, most relevant first"""
        now = utcnow()
        try:
            candidates = await self.storage.query_memory(campaign_id, now)
        except Exception as e:
            logger.error("Failed to retrieve memory for campaign %s: %s", campaign_id, e)
            return []

        items = [
            item for item in candidates
            if item.campaign_id == campaign_id
            and item.is_visible_to(agent_id)
            and not item.is_expired(now)
            and (filter is None or filter.matches(item))
        ]
        items.sort(key=lambda i: i.relevance_score, reverse=True)

        if items:
            self._touch_later([i.id for i in items])
        return items

    def _touch_later(self, item_ids: list[str]) -> None:
        """Record last access without delaying the caller"""
        task = asyncio.create_task(self._touch(item_ids))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _touch(self, item_ids: list[str]) -> None:
        try:
            await self.storage.touch_memory(item_ids, utcnow())
        except Exception as e:
            logger.warning("Failed to update last access for %d memory items: %s", len(item_ids), e)

    async def flush(self) -> None:
        """Wait for pending last-access updates"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @staticmethod
    def format_for_context(items: list[MemoryItem]) -> str:
        """Render memories grouped by type as a prompt section"""
        if not items:
            return ""

        lines = ["## Shared campaign memory", ""]
        for memory_type, title in _SECTION_TITLES:
            group = [i for i in items if i.memory_type == memory_type]
            if not group:
                continue
            lines.append(f"### {title}:")
            for item in group:
                value = json.dumps(item.value, ensure_ascii=False, default=str)
                if memory_type == MemoryType.DECISION:
                    lines.append(f"- **{item.key}** (by {item.created_by}): {value}")
                else:
                    lines.append(f"- **{item.key}**: {value}")
            lines.append("")

        return "\n".join(lines)
