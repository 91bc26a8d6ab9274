"""Tests for agent messaging, shared memory and the execution log"""
from __future__ import annotations

import asyncio
from datetime import timedelta, timezone

import pytest

from packflow.adapters.storage_sqlite import SQLiteStorageAdapter
from packflow.core.errors import ResponseTimeout
from packflow.core.models import (
    ExecutionStatus, MemoryFilter, MemoryItem, MemoryType, MessageStatus, MessageType,
)
from packflow.core.ports.llm import LLMResponse
from packflow.core.timeutil import utcnow
from packflow.runtime.logger import ExecutionLogger, LogMetadata, calculate_cost
from packflow.runtime.memory import SharedMemory
from packflow.runtime.messenger import AgentMessenger


class BlindPollStorage(SQLiteStorageAdapter):
    """Misses threaded responses until the waiting side gives up"""
    blind = True

    async def find_messages(self, *args, **kwargs):
        if self.blind and kwargs.get("parent_message_id"):
            return []
        return await super().find_messages(*args, **kwargs)

    async def update_message_status(self, message_id, status, from_statuses=None):
        if status == MessageStatus.TIMEOUT:
            self.blind = False
        return await super().update_message_status(message_id, status, from_statuses)


class NoStatusUpdateStorage(SQLiteStorageAdapter):
    async def update_message_status(self, message_id, status, from_statuses=None):
        raise RuntimeError("database is locked")


class TestAgentMessenger:
    """Test directed messages and request/response"""

    @pytest.mark.asyncio
    async def test_send(self, messenger, storage):
        message = await messenger.send("ana-silva", "pedro-oliveira", "FYI: brief updated",
                                       campaign_id="camp-1")
        stored = await storage.get_message(message.id)
        assert stored.message_type == MessageType.INFO
        assert stored.status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_response_needs_a_question(self, messenger):
        info = await messenger.send("ana-silva", "pedro-oliveira", "FYI")

        with pytest.raises(ValueError):
            await messenger.send("pedro-oliveira", "ana-silva", "ok",
                                 message_type=MessageType.RESPONSE)
        with pytest.raises(ValueError):
            await messenger.send("pedro-oliveira", "ana-silva", "ok",
                                 message_type=MessageType.RESPONSE, parent_message_id=info.id)

    @pytest.mark.asyncio
    async def test_send_and_wait_times_out(self, messenger, storage):
        with pytest.raises(ResponseTimeout) as exc:
            await messenger.send_and_wait("pedro-oliveira", "ana-silva", "Who is the audience?",
                                          campaign_id="camp-1", timeout_ms=300, poll_interval_ms=100)

        question = await storage.get_message(exc.value.message_id)
        assert question.status == MessageStatus.TIMEOUT
        assert exc.value.timeout_ms == 300

    @pytest.mark.asyncio
    async def test_send_and_wait_gets_answer(self, messenger, storage):
        async def answer_later():
            await asyncio.sleep(0.5)
            pending = await messenger.get_pending("ana-silva", "camp-1")
            assert len(pending) == 1
            await messenger.respond(pending[0].id, "ana-silva", "SMB owners in Brazil")

        answer, _ = await asyncio.gather(
            messenger.send_and_wait("pedro-oliveira", "ana-silva", "Who is the audience?",
                                    campaign_id="camp-1", timeout_ms=5000, poll_interval_ms=200),
            answer_later(),
        )
        assert answer == "SMB owners in Brazil"

        questions = await storage.find_messages(message_type=MessageType.QUESTION)
        assert questions[0].status == MessageStatus.RESPONDED
        assert await messenger.get_pending("ana-silva") == []

    @pytest.mark.asyncio
    async def test_late_answer_keeps_timeout(self, messenger, storage):
        with pytest.raises(ResponseTimeout) as exc:
            await messenger.send_and_wait("pedro-oliveira", "ana-silva", "Who is the audience?",
                                          campaign_id="camp-1", timeout_ms=100, poll_interval_ms=50)
        question_id = exc.value.message_id

        late = await messenger.respond(question_id, "ana-silva", "late answer")

        assert (await storage.get_message(question_id)).status == MessageStatus.TIMEOUT
        thread = await messenger.get_thread(question_id)
        assert [m.id for m in thread[1:]] == [late.id]

    @pytest.mark.asyncio
    async def test_answer_at_deadline_is_not_overwritten(self, db_path):
        storage = BlindPollStorage(db_path)
        messenger = AgentMessenger(storage)

        async def answer_early():
            await asyncio.sleep(0.1)
            [question] = await messenger.get_pending("ana-silva")
            await messenger.respond(question.id, "ana-silva", "SMB owners")

        answer, _ = await asyncio.gather(
            messenger.send_and_wait("pedro-oliveira", "ana-silva", "Who is the audience?",
                                    timeout_ms=400, poll_interval_ms=50),
            answer_early(),
        )

        assert answer == "SMB owners"
        [question] = await storage.find_messages(message_type=MessageType.QUESTION)
        assert question.status == MessageStatus.RESPONDED

    @pytest.mark.asyncio
    async def test_respond_tolerates_status_update_failure(self, db_path):
        storage = NoStatusUpdateStorage(db_path)
        messenger = AgentMessenger(storage)
        question = await messenger.send("pedro-oliveira", "ana-silva", "Budget?",
                                        message_type=MessageType.QUESTION)

        response = await messenger.respond(question.id, "ana-silva", "5k")

        stored = await storage.get_message(response.id)
        assert stored.content == "5k"
        assert stored.parent_message_id == question.id
        assert (await storage.get_message(question.id)).status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_respond_unknown_message(self, messenger):
        with pytest.raises(LookupError):
            await messenger.respond("no-such-message", "ana-silva", "hello?")

    @pytest.mark.asyncio
    async def test_get_pending_oldest_first(self, messenger):
        first = await messenger.send("a", "ana-silva", "one", message_type=MessageType.QUESTION)
        await messenger.send("b", "ana-silva", "not a question")
        second = await messenger.send("c", "ana-silva", "two", message_type=MessageType.QUESTION,
                                      status=MessageStatus.WAITING)

        pending = await messenger.get_pending("ana-silva")
        assert [m.id for m in pending] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_thread(self, messenger):
        question = await messenger.send("a", "b", "?", message_type=MessageType.QUESTION)
        await messenger.respond(question.id, "b", "first")
        await messenger.respond(question.id, "b", "second")

        thread = await messenger.get_thread(question.id)
        assert [m.content for m in thread] == ["?", "first", "second"]
        assert await messenger.get_thread("missing") == []


class TestSharedMemory:
    """Test the campaign blackboard"""

    @pytest.mark.asyncio
    async def test_store_and_retrieve(self, memory):
        await memory.store("camp-1", "ana-silva", MemoryItem(
            key="audience", value={"segment": "SMB"}, memory_type=MemoryType.INSIGHT,
            relevance_score=0.6,
        ))
        await memory.store("camp-1", "renata-lima", MemoryItem(
            key="tone", value="warm", memory_type=MemoryType.DECISION, relevance_score=0.9,
        ))

        items = await memory.retrieve("camp-1", "pedro-oliveira")
        await memory.flush()

        assert [i.key for i in items] == ["tone", "audience"]
        assert items[0].created_by == "renata-lima"
        assert await memory.retrieve("camp-2", "pedro-oliveira") == []

    @pytest.mark.asyncio
    async def test_visibility_and_expiry(self, memory):
        await memory.store("camp-1", "ana-silva", MemoryItem(key="private", accessible_to=["ana-silva"]))
        await memory.store("camp-1", "ana-silva", MemoryItem(
            key="stale", expires_at=utcnow() - timedelta(seconds=1),
        ))
        await memory.store("camp-1", "ana-silva", MemoryItem(key="public"))

        assert [i.key for i in await memory.retrieve("camp-1", "pedro-oliveira")] == ["public"]
        assert {i.key for i in await memory.retrieve("camp-1", "ana-silva")} == {"private", "public"}
        await memory.flush()

    @pytest.mark.asyncio
    async def test_expiry_with_other_offsets(self, memory):
        eastern = timezone(timedelta(hours=-5))
        tokyo = timezone(timedelta(hours=9))
        await memory.store("camp-1", "a", MemoryItem(
            key="live", expires_at=utcnow().astimezone(eastern) + timedelta(hours=5),
        ))
        await memory.store("camp-1", "a", MemoryItem(
            key="gone", expires_at=utcnow().astimezone(tokyo) - timedelta(minutes=1),
        ))

        assert [i.key for i in await memory.retrieve("camp-1", "a")] == ["live"]
        await memory.flush()

    @pytest.mark.asyncio
    async def test_retrieve_filter(self, memory):
        await memory.store("camp-1", "a", MemoryItem(key="k1", memory_type=MemoryType.FACT, relevance_score=0.9))
        await memory.store("camp-1", "a", MemoryItem(key="k2", memory_type=MemoryType.DATA, relevance_score=0.3))

        items = await memory.retrieve("camp-1", "b", MemoryFilter(min_relevance=0.5))
        assert [i.key for i in items] == ["k1"]
        items = await memory.retrieve("camp-1", "b", MemoryFilter(types=[MemoryType.DATA]))
        assert [i.key for i in items] == ["k2"]
        await memory.flush()

    @pytest.mark.asyncio
    async def test_retrieve_records_access(self, memory, storage):
        await memory.store("camp-1", "a", MemoryItem(key="k1"))
        await memory.retrieve("camp-1", "b")
        await memory.flush()

        items = await storage.query_memory("camp-1", utcnow())
        assert items[0].last_accessed_at is not None

    @pytest.mark.asyncio
    async def test_storage_failure_degrades(self, tmp_path):
        # a directory path cannot be opened as a database
        memory = SharedMemory(SQLiteStorageAdapter(str(tmp_path)))

        assert await memory.store("camp-1", "a", MemoryItem(key="k")) is None
        assert await memory.retrieve("camp-1", "a") == []

    def test_format_for_context(self):
        items = [
            MemoryItem(key="tone", value="warm", memory_type=MemoryType.DECISION, created_by="renata-lima"),
            MemoryItem(key="market_size", value={"brl": 1000000}, memory_type=MemoryType.FACT),
        ]
        text = SharedMemory.format_for_context(items)

        assert text.startswith("## Shared campaign memory")
        assert text.index("### Established facts:") < text.index("### Decisions made:")
        assert '- **tone** (by renata-lima): "warm"' in text
        assert '- **market_size**: {"brl": 1000000}' in text
        assert SharedMemory.format_for_context([]) == ""


class TestExecutionLogger:
    """Test the audit log wrapper"""

    def test_calculate_cost(self):
        assert calculate_cost(1000, "gpt-4") == pytest.approx(0.0375)
        assert calculate_cost(1000, "unknown-model") == pytest.approx(0.001625)
        assert calculate_cost(0, "gpt-4") == 0

    @pytest.mark.asyncio
    async def test_wrap_success(self, storage):
        execution_logger = ExecutionLogger(storage)
        meta = LogMetadata(agent_id="ana-silva", tool_name="llm.generate", task_id="t1", campaign_id="camp-1")

        async def call():
            return LLMResponse(content="hi", model="gpt-4", usage={"total_tokens": 1000})

        result = await execution_logger.wrap(meta, call, usage=lambda r: (r.tokens_used, r.model))
        assert result.content == "hi"

        [entry] = await storage.list_execution_logs(task_id="t1")
        assert entry.status == ExecutionStatus.SUCCESS
        assert entry.tokens_used == 1000
        assert entry.cost_usd == pytest.approx(0.0375)
        assert entry.output == {"content": "hi"}
        assert entry.metadata["model"] == "gpt-4"

    @pytest.mark.asyncio
    async def test_wrap_failure_reraises(self, storage):
        execution_logger = ExecutionLogger(storage)

        async def call():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await execution_logger.wrap(LogMetadata(agent_id="a", tool_name="llm.generate", task_id="t1"), call)

        [entry] = await storage.list_execution_logs(agent_id="a")
        assert entry.status == ExecutionStatus.FAILED
        assert entry.error_message == "provider down"

    @pytest.mark.asyncio
    async def test_wrap_timeout(self, storage):
        execution_logger = ExecutionLogger(storage)

        async def call():
            raise asyncio.TimeoutError()

        with pytest.raises(asyncio.TimeoutError):
            await execution_logger.wrap(LogMetadata(agent_id="a", tool_name="ask_agent"), call)

        [entry] = await storage.list_execution_logs(agent_id="a")
        assert entry.status == ExecutionStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_log_write_failure_is_swallowed(self, tmp_path):
        execution_logger = ExecutionLogger(SQLiteStorageAdapter(str(tmp_path)))

        async def call():
            return "done"

        assert await execution_logger.wrap(LogMetadata(agent_id="a", tool_name="x"), call) == "done"
