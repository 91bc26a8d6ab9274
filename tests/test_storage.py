"""Tests for the SQLite adapters"""
from __future__ import annotations

from datetime import date, timedelta

import pytest

from packflow.adapters.marketing_sqlite import SQLiteKnowledgeBase, SQLiteMarketingData
from packflow.adapters.queue_sqlite import SQLiteQueueAdapter
from packflow.core.models import (
    AgentLevel, AgentProfile, Job, JobStatus, MemoryItem, Message, MessageStatus,
    MessageType, Task, TaskStatus,
)
from packflow.core.timeutil import utcnow


class TestStorageAdapter:
    """Test the relational store"""

    @pytest.mark.asyncio
    async def test_task_roundtrip_and_update(self, storage):
        task = Task(campaign_id="camp-1", agent_id="ana-silva", title="Research",
                    context={"task_category": "market_research", "level": 2})
        await storage.create_task(task)

        loaded = await storage.get_task(task.id)
        assert loaded.title == "Research"
        assert loaded.context["level"] == 2
        assert loaded.status == TaskStatus.PENDING

        loaded.mark_in_progress()
        await storage.update_task(loaded)
        assert (await storage.get_task(task.id)).status == TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_update_missing_rows(self, storage):
        with pytest.raises(LookupError):
            await storage.update_task(Task(title="ghost"))
        with pytest.raises(LookupError):
            await storage.update_job(Job(task_id="ghost"))
        with pytest.raises(LookupError):
            await storage.update_message_status("ghost", MessageStatus.RESPONDED)

    @pytest.mark.asyncio
    async def test_list_tasks_filters(self, storage):
        root = Task(campaign_id="camp-1", agent_id="ana-silva", title="Root")
        sub = Task(campaign_id="camp-1", agent_id="pedro-oliveira", title="Sub", parent_task_id=root.id)
        other = Task(campaign_id="camp-2", agent_id="ana-silva", title="Other")
        for task in (root, sub, other):
            await storage.create_task(task)

        assert [t.id for t in await storage.list_tasks(campaign_id="camp-1")] == [root.id, sub.id]
        assert [t.id for t in await storage.list_tasks(parent_task_id=root.id)] == [sub.id]
        assert len(await storage.list_tasks(status=TaskStatus.PENDING)) == 3

    @pytest.mark.asyncio
    async def test_jobs_and_counts(self, storage):
        task = Task(campaign_id="camp-1", agent_id="ana-silva")
        await storage.create_task(task)
        job = Job.for_task(task)
        await storage.create_job(job)

        job.start_attempt()
        job.fail("boom")
        await storage.update_job(job)

        loaded = await storage.get_job(job.id)
        assert loaded.attempts == 1
        assert loaded.error_message == "boom"
        assert await storage.count_by_status("jobs") == {"pending": 1}
        assert await storage.count_by_status("tasks") == {"pending": 1}

        stale = await storage.list_jobs(status=JobStatus.PENDING, updated_before=utcnow() + timedelta(seconds=1))
        assert [j.id for j in stale] == [job.id]

    @pytest.mark.asyncio
    async def test_count_rejects_other_tables(self, storage):
        with pytest.raises(ValueError):
            await storage.count_by_status("agent_profiles")

    @pytest.mark.asyncio
    async def test_message_status_update(self, storage):
        message = Message(from_agent="a", to_agent="b", content="?",
                          message_type=MessageType.QUESTION, status=MessageStatus.WAITING)
        await storage.create_message(message)
        await storage.update_message_status(message.id, MessageStatus.TIMEOUT)

        loaded = await storage.get_message(message.id)
        assert loaded.status == MessageStatus.TIMEOUT
        assert await storage.find_messages(statuses=[MessageStatus.WAITING]) == []

    @pytest.mark.asyncio
    async def test_conditional_message_status_update(self, storage):
        message = Message(from_agent="a", to_agent="b", content="?",
                          message_type=MessageType.QUESTION, status=MessageStatus.WAITING)
        await storage.create_message(message)
        pending = [MessageStatus.SENT, MessageStatus.WAITING]

        assert await storage.update_message_status(message.id, MessageStatus.TIMEOUT, pending)
        assert not await storage.update_message_status(message.id, MessageStatus.RESPONDED, pending)
        assert (await storage.get_message(message.id)).status == MessageStatus.TIMEOUT

        with pytest.raises(LookupError):
            await storage.update_message_status("ghost", MessageStatus.TIMEOUT, pending)

    @pytest.mark.asyncio
    async def test_memory_query_excludes_expired(self, storage):
        live = MemoryItem(key="live", campaign_id="camp-1")
        expired = MemoryItem(key="old", campaign_id="camp-1", expires_at=utcnow() - timedelta(minutes=1))
        elsewhere = MemoryItem(key="live", campaign_id="camp-2")
        for item in (live, expired, elsewhere):
            await storage.insert_memory(item)

        items = await storage.query_memory("camp-1", utcnow())
        assert [i.key for i in items] == ["live"]

        await storage.touch_memory([live.id], utcnow())
        items = await storage.query_memory("camp-1", utcnow())
        assert items[0].last_accessed_at is not None

    @pytest.mark.asyncio
    async def test_agent_profiles(self, storage):
        assert await storage.get_agent_profile("ana-silva") is None

        await storage.save_agent_profile(AgentProfile(
            agent_id="ana-silva", name="Ana Silva", level=AgentLevel.COORDINATOR,
            system_prompt="You research markets.", preferred_categories=["Pesquisa de Mercado"],
        ))
        profile = await storage.get_agent_profile("ana-silva")
        assert profile.level == AgentLevel.COORDINATOR
        assert profile.system_prompt == "You research markets."
        assert profile.preferred_categories == ["Pesquisa de Mercado"]


class TestQueueAdapter:
    """Test the visibility-timeout queue"""

    @pytest.mark.asyncio
    async def test_visibility_timeout(self, db_path, clock):
        queue = SQLiteQueueAdapter(db_path, clock=clock)
        msg_id = await queue.enqueue("jobs", {"job_id": "j1"})

        first = await queue.dequeue("jobs", visibility_timeout=30, count=5)
        assert [m.message_id for m in first] == [msg_id]
        assert first[0].read_count == 1
        assert first[0].payload == {"job_id": "j1"}

        # hidden while claimed
        assert await queue.dequeue("jobs", visibility_timeout=30, count=5) == []

        clock.now += 31
        again = await queue.dequeue("jobs", visibility_timeout=30, count=5)
        assert again[0].message_id == msg_id
        assert again[0].read_count == 2

    @pytest.mark.asyncio
    async def test_delete(self, queue):
        msg_id = await queue.enqueue("jobs", {"job_id": "j1"})
        assert await queue.size("jobs") == 1

        assert await queue.delete("jobs", msg_id) is True
        assert await queue.delete("jobs", msg_id) is False
        assert await queue.size("jobs") == 0

    @pytest.mark.asyncio
    async def test_delayed_message(self, db_path, clock):
        queue = SQLiteQueueAdapter(db_path, clock=clock)
        await queue.enqueue("jobs", {"job_id": "j1"}, delay=10)

        assert await queue.dequeue("jobs", 30, 1) == []
        clock.now += 10
        assert len(await queue.dequeue("jobs", 30, 1)) == 1

    @pytest.mark.asyncio
    async def test_batch_and_queue_isolation(self, queue):
        for i in range(3):
            await queue.enqueue("jobs", {"n": i})
        await queue.enqueue("other", {"n": 99})

        batch = await queue.dequeue("jobs", 30, 2)
        assert [m.payload["n"] for m in batch] == [0, 1]
        assert await queue.size("other") == 1


class TestMarketingAdapters:
    """Test the marketing data and knowledge base sources"""

    @pytest.mark.asyncio
    async def test_metrics_window(self, db_path):
        data = SQLiteMarketingData(db_path)
        today = date(2024, 6, 30)
        await data.insert_rows("google_ads_metrics", [
            {"user_id": "u1", "date": "2024-06-29", "campaign_id": "c1",
             "impressions": 1000, "clicks": 50, "cost": 25.0, "conversions": 2},
            {"user_id": "u1", "date": "2024-04-01", "campaign_id": "c1",
             "impressions": 9999, "clicks": 1, "cost": 1.0, "conversions": 0},
            {"user_id": "u2", "date": "2024-06-29", "campaign_id": "c9",
             "impressions": 1, "clicks": 1, "cost": 1.0, "conversions": 0},
        ])

        rows = await data.google_ads_metrics("u1", today - timedelta(days=30))
        assert len(rows) == 1
        assert rows[0]["impressions"] == 1000

    @pytest.mark.asyncio
    async def test_campaign_json_columns(self, db_path):
        data = SQLiteMarketingData(db_path)
        await data.insert_rows("campaigns", [{
            "id": "camp-1", "user_id": "u1", "name": "Launch", "status": "active",
            "objectives": ["awareness", "leads"], "channels": ["google_ads"],
            "budget_total": 5000.0, "start_date": "2024-06-01", "end_date": "2024-07-01",
        }])

        campaign = await data.campaign("camp-1")
        assert campaign["objectives"] == ["awareness", "leads"]
        assert await data.campaign("missing") is None

    @pytest.mark.asyncio
    async def test_knowledge_search(self, db_path):
        kb = SQLiteKnowledgeBase(db_path)
        await kb.insert_rows("knowledge_chunks", [
            {"document_title": "Persona", "category": "Pesquisa de Mercado",
             "content": "Target audience persona for coffee subscription buyers"},
            {"document_title": "Brand", "category": "Diretrizes de Marca",
             "content": "Tone of voice is warm and direct"},
        ])

        chunks = await kb.search("coffee audience persona", threshold=0.6)
        assert [c.document_title for c in chunks] == ["Persona"]
        assert chunks[0].similarity == 1.0

        assert await kb.search("coffee audience persona", categories=["Diretrizes de Marca"]) == []
        assert await kb.search("a") == []
