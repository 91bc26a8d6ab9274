"""Shared fixtures: throwaway SQLite stores, a scripted LLM and in-memory data sources"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

import pytest

from packflow.adapters.queue_sqlite import SQLiteQueueAdapter
from packflow.adapters.storage_sqlite import SQLiteStorageAdapter
from packflow.core.ports.llm import LLMMessage, LLMPort, LLMResponse
from packflow.core.ports.sources import KnowledgeChunk, KnowledgePort, MarketingDataPort, Row
from packflow.runtime.memory import SharedMemory
from packflow.runtime.messenger import AgentMessenger


class FakeLLM(LLMPort):
    """
    Replays scripted responses in order. An Exception in the script is raised
    instead of returned; once the script runs out every call gets `default`.
    """

    def __init__(self, script: Optional[list[Any]] = None, default: str = "Analysis complete."):
        self.script = list(script or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        system_prompt: str,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": tools,
        })
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return LLMResponse(
            content=self.default,
            model=self.default_model,
            usage={"total_tokens": 100},
        )

    @property
    def default_model(self) -> str:
        return "gpt-4"


class FakeKnowledge(KnowledgePort):
    def __init__(self, chunks: Optional[list[KnowledgeChunk]] = None):
        self.chunks = chunks or []
        self.queries: list[str] = []

    async def search(self, query, threshold=0.7, limit=5, categories=None):
        self.queries.append(query)
        return [c for c in self.chunks if c.similarity >= threshold][:limit]


class FakeMarketing(MarketingDataPort):
    """Canned rows per source; pass `fail` to make every call raise"""

    def __init__(self, fail: bool = False, **rows: list[Row]):
        self.fail = fail
        self.rows = rows

    def _get(self, name: str) -> list[Row]:
        if self.fail:
            raise ConnectionError(f"{name} backend unreachable")
        return list(self.rows.get(name, []))

    async def google_ads_metrics(self, user_id: str, since: date, limit: int = 30) -> list[Row]:
        return self._get("google")[:limit]

    async def meta_ads_metrics(self, user_id: str, since: date, limit: int = 30) -> list[Row]:
        return self._get("meta")[:limit]

    async def competitor_data(self, user_id: str, limit: int = 10) -> list[Row]:
        return self._get("competitors")[:limit]

    async def social_media_metrics(self, user_id: str, since: date) -> list[Row]:
        return self._get("social")

    async def campaign(self, campaign_id: str) -> Optional[Row]:
        campaigns = self._get("campaigns")
        return next((c for c in campaigns if c["id"] == campaign_id), None)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "packflow-test.db")


@pytest.fixture
def storage(db_path) -> SQLiteStorageAdapter:
    return SQLiteStorageAdapter(db_path)


@pytest.fixture
def clock():
    """Controllable epoch clock for the queue: clock.now += seconds"""
    class Clock:
        now = 1_700_000_000.0

        def __call__(self) -> float:
            return self.now

    return Clock()


@pytest.fixture
def queue(db_path) -> SQLiteQueueAdapter:
    return SQLiteQueueAdapter(db_path)


@pytest.fixture
def messenger(storage) -> AgentMessenger:
    return AgentMessenger(storage, timeout_ms=1000, poll_interval_ms=50)


@pytest.fixture
def memory(storage) -> SharedMemory:
    return SharedMemory(storage)
