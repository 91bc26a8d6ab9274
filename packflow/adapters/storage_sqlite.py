"""SQLite storage adapter - simple file-based persistence"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

import aiosqlite

from ..core.models import (
    AgentId, AgentLevel, AgentProfile, ExecutionLogEntry, ExecutionStatus,
    Job, JobStatus, MemoryItem, MemoryType, Message, MessageStatus, MessageType,
    Priority, Task, TaskStatus,
)
from ..core.ports.storage import StoragePort
from ..core.timeutil import from_iso, to_iso

logger = logging.getLogger(__name__)


def _serialize(obj):
    """JSON serializer for datetime and enum values"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _dumps(value: Any) -> str:
    return json.dumps(value, default=_serialize)


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value is not None else None


class SQLiteStorageAdapter(StoragePort):
    """
    SQLite-based storage adapter.
    Indexed columns hold what the queries filter on; the full record is kept as JSON in `data`.
    """

    _COUNTABLE = ("tasks", "jobs", "messages")

    def __init__(self, db_path: str = "./packflow.db"):
        self.db_path = db_path
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Initialize database tables if needed"""
        if self._initialized:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    campaign_id TEXT,
                    agent_id TEXT,
                    parent_task_id TEXT,
                    status TEXT,
                    data JSON,
                    created_at TEXT
                );

                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    task_id TEXT,
                    status TEXT,
                    data JSON,
                    created_at TEXT,
                    updated_at TEXT
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    from_agent TEXT,
                    to_agent TEXT,
                    message_type TEXT,
                    status TEXT,
                    campaign_id TEXT,
                    related_task_id TEXT,
                    parent_message_id TEXT,
                    data JSON,
                    created_at TEXT
                );

                CREATE TABLE IF NOT EXISTS shared_memory (
                    id TEXT PRIMARY KEY,
                    campaign_id TEXT,
                    memory_key TEXT,
                    relevance_score REAL,
                    expires_at TEXT,
                    last_accessed_at TEXT,
                    data JSON,
                    created_at TEXT
                );

                CREATE TABLE IF NOT EXISTS execution_logs (
                    id TEXT PRIMARY KEY,
                    agent_id TEXT,
                    task_id TEXT,
                    status TEXT,
                    data JSON,
                    created_at TEXT
                );

                CREATE TABLE IF NOT EXISTS agent_profiles (
                    agent_id TEXT PRIMARY KEY,
                    data JSON
                );

                CREATE INDEX IF NOT EXISTS idx_task_campaign ON tasks(campaign_id);
                CREATE INDEX IF NOT EXISTS idx_task_parent ON tasks(parent_task_id);
                CREATE INDEX IF NOT EXISTS idx_job_status ON jobs(status);
                CREATE INDEX IF NOT EXISTS idx_message_inbox ON messages(to_agent, status);
                CREATE INDEX IF NOT EXISTS idx_message_parent ON messages(parent_message_id);
                CREATE INDEX IF NOT EXISTS idx_memory_campaign ON shared_memory(campaign_id);
                CREATE INDEX IF NOT EXISTS idx_log_task ON execution_logs(task_id);
            """)
            await db.commit()

        self._initialized = True

    async def _fetch_data(self, sql: str, params: Iterable[Any] = ()) -> list[dict]:
        """Run a query selecting a `data` column and decode each row"""
        await self._ensure_initialized()

        rows = []
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, tuple(params)) as cursor:
                async for row in cursor:
                    rows.append(json.loads(row["data"]))
        return rows

    async def _execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run a write statement, returning the affected row count"""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(sql, tuple(params))
            await db.commit()
            return cursor.rowcount

    # Tasks

    def _task_to_dict(self, task: Task) -> dict:
        return {
            "id": task.id,
            "campaign_id": task.campaign_id,
            "agent_id": task.agent_id,
            "title": task.title,
            "description": task.description,
            "priority": task.priority.value,
            "status": task.status.value,
            "parent_task_id": task.parent_task_id,
            "assigned_by": task.assigned_by,
            "context": task.context,
            "result": task.result,
            "created_at": to_iso(task.created_at),
            "started_at": to_iso(task.started_at),
            "completed_at": to_iso(task.completed_at),
        }

    def _dict_to_task(self, data: dict) -> Task:
        return Task(
            id=data["id"],
            campaign_id=data["campaign_id"],
            agent_id=data["agent_id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            priority=Priority(data["priority"]),
            status=TaskStatus(data["status"]),
            parent_task_id=data.get("parent_task_id"),
            assigned_by=data.get("assigned_by"),
            context=data.get("context") or {},
            result=data.get("result"),
            created_at=from_iso(data["created_at"]),
            started_at=from_iso(data.get("started_at")),
            completed_at=from_iso(data.get("completed_at")),
        )

    async def create_task(self, task: Task) -> Task:
        data = self._task_to_dict(task)
        await self._execute(
            """
            INSERT INTO tasks (id, campaign_id, agent_id, parent_task_id, status, data, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.campaign_id,
                task.agent_id,
                task.parent_task_id,
                task.status.value,
                _dumps(data),
                data["created_at"],
            ),
        )
        return task

    async def get_task(self, task_id: str) -> Optional[Task]:
        rows = await self._fetch_data("SELECT data FROM tasks WHERE id = ?", (task_id,))
        return self._dict_to_task(rows[0]) if rows else None

    async def update_task(self, task: Task) -> None:
        updated = await self._execute(
            "UPDATE tasks SET status = ?, data = ? WHERE id = ?",
            (task.status.value, _dumps(self._task_to_dict(task)), task.id),
        )
        if not updated:
            raise LookupError(f"Task {task.id} not found")

    async def list_tasks(
        self,
        campaign_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        parent_task_id: Optional[str] = None,
    ) -> list[Task]:
        clauses, params = [], []
        if campaign_id is not None:
            clauses.append("campaign_id = ?")
            params.append(campaign_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if parent_task_id is not None:
            clauses.append("parent_task_id = ?")
            params.append(parent_task_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetch_data(
            f"SELECT data FROM tasks {where} ORDER BY created_at, rowid", params
        )
        return [self._dict_to_task(r) for r in rows]

    # Jobs

    def _job_to_dict(self, job: Job) -> dict:
        return {
            "id": job.id,
            "task_id": job.task_id,
            "agent_id": job.agent_id,
            "campaign_id": job.campaign_id,
            "job_type": job.job_type,
            "payload": job.payload,
            "priority": job.priority.value,
            "attempts": job.attempts,
            "max_attempts": job.max_attempts,
            "status": job.status.value,
            "error_message": job.error_message,
            "result": job.result,
            "created_at": to_iso(job.created_at),
            "updated_at": to_iso(job.updated_at),
            "started_at": to_iso(job.started_at),
            "completed_at": to_iso(job.completed_at),
        }

    def _dict_to_job(self, data: dict) -> Job:
        return Job(
            id=data["id"],
            task_id=data["task_id"],
            agent_id=data.get("agent_id", ""),
            campaign_id=data.get("campaign_id", ""),
            job_type=data.get("job_type", "process_task"),
            payload=data.get("payload") or {},
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            attempts=data.get("attempts", 0),
            max_attempts=data.get("max_attempts", 3),
            status=JobStatus(data["status"]),
            error_message=data.get("error_message"),
            result=data.get("result"),
            created_at=from_iso(data["created_at"]),
            updated_at=from_iso(data["updated_at"]),
            started_at=from_iso(data.get("started_at")),
            completed_at=from_iso(data.get("completed_at")),
        )

    async def create_job(self, job: Job) -> Job:
        data = self._job_to_dict(job)
        await self._execute(
            """
            INSERT INTO jobs (id, task_id, status, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (job.id, job.task_id, job.status.value, _dumps(data),
             data["created_at"], data["updated_at"]),
        )
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        rows = await self._fetch_data("SELECT data FROM jobs WHERE id = ?", (job_id,))
        return self._dict_to_job(rows[0]) if rows else None

    async def update_job(self, job: Job) -> None:
        data = self._job_to_dict(job)
        updated = await self._execute(
            "UPDATE jobs SET status = ?, data = ?, updated_at = ? WHERE id = ?",
            (job.status.value, _dumps(data), data["updated_at"], job.id),
        )
        if not updated:
            raise LookupError(f"Job {job.id} not found")

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        task_id: Optional[str] = None,
        updated_before: Optional[datetime] = None,
    ) -> list[Job]:
        clauses, params = [], []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        if updated_before is not None:
            clauses.append("updated_at < ?")
            params.append(to_iso(updated_before))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetch_data(
            f"SELECT data FROM jobs {where} ORDER BY created_at, rowid", params
        )
        return [self._dict_to_job(r) for r in rows]

    # Messages

    def _message_to_dict(self, message: Message) -> dict:
        return {
            "id": message.id,
            "from_agent": message.from_agent,
            "to_agent": message.to_agent,
            "content": message.content,
            "message_type": message.message_type.value,
            "status": message.status.value,
            "campaign_id": message.campaign_id,
            "related_task_id": message.related_task_id,
            "parent_message_id": message.parent_message_id,
            "metadata": message.metadata,
            "created_at": to_iso(message.created_at),
        }

    def _dict_to_message(self, data: dict) -> Message:
        return Message(
            id=data["id"],
            from_agent=data["from_agent"],
            to_agent=data["to_agent"],
            content=data.get("content", ""),
            message_type=MessageType(data["message_type"]),
            status=MessageStatus(data["status"]),
            campaign_id=data.get("campaign_id"),
            related_task_id=data.get("related_task_id"),
            parent_message_id=data.get("parent_message_id"),
            metadata=data.get("metadata") or {},
            created_at=from_iso(data["created_at"]),
        )

    async def create_message(self, message: Message) -> Message:
        data = self._message_to_dict(message)
        await self._execute(
            """
            INSERT INTO messages (id, from_agent, to_agent, message_type, status, campaign_id,
                                  related_task_id, parent_message_id, data, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.from_agent,
                message.to_agent,
                message.message_type.value,
                message.status.value,
                message.campaign_id,
                message.related_task_id,
                message.parent_message_id,
                _dumps(data),
                data["created_at"],
            ),
        )
        return message

    async def get_message(self, message_id: str) -> Optional[Message]:
        rows = await self._fetch_data("SELECT data FROM messages WHERE id = ?", (message_id,))
        return self._dict_to_message(rows[0]) if rows else None

    async def update_message_status(
        self,
        message_id: str,
        status: MessageStatus,
        from_statuses: Optional[Iterable[MessageStatus]] = None,
    ) -> bool:
        # status lives in both the column and the JSON record
        sql = "UPDATE messages SET status = ?, data = json_set(data, '$.status', ?) WHERE id = ?"
        params: list[Any] = [status.value, status.value, message_id]
        if from_statuses is not None:
            allowed = [s.value for s in from_statuses]
            sql += f" AND status IN ({', '.join('?' for _ in allowed)})"
            params.extend(allowed)

        updated = await self._execute(sql, params)
        if updated:
            return True
        if await self.get_message(message_id) is None:
            raise LookupError(f"Message {message_id} not found")
        return False

    async def find_messages(
        self,
        to_agent: Optional[str] = None,
        message_type: Optional[MessageType] = None,
        statuses: Optional[Iterable[MessageStatus]] = None,
        campaign_id: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        related_task_id: Optional[str] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> list[Message]:
        clauses, params = [], []
        for column, value in (
            ("to_agent", to_agent),
            ("message_type", message_type.value if message_type else None),
            ("campaign_id", campaign_id),
            ("parent_message_id", parent_message_id),
            ("related_task_id", related_task_id),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        if statuses is not None:
            values = [s.value for s in statuses]
            clauses.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "DESC" if newest_first else "ASC"
        sql = f"SELECT data FROM messages {where} ORDER BY created_at {order}, rowid {order}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = await self._fetch_data(sql, params)
        return [self._dict_to_message(r) for r in rows]

    # Shared memory

    def _memory_to_dict(self, item: MemoryItem) -> dict:
        return {
            "id": item.id,
            "campaign_id": item.campaign_id,
            "key": item.key,
            "value": item.value,
            "memory_type": item.memory_type.value,
            "created_by": item.created_by,
            "accessible_to": item.accessible_to,
            "relevance_score": item.relevance_score,
            "expires_at": to_iso(item.expires_at),
            "created_at": to_iso(item.created_at),
        }

    def _dict_to_memory(self, data: dict, last_accessed_at: Optional[str] = None) -> MemoryItem:
        return MemoryItem(
            id=data["id"],
            campaign_id=data["campaign_id"],
            key=data["key"],
            value=data.get("value"),
            memory_type=MemoryType(data["memory_type"]),
            created_by=data.get("created_by", ""),
            accessible_to=data.get("accessible_to"),
            relevance_score=data.get("relevance_score", 1.0),
            expires_at=from_iso(data.get("expires_at")),
            created_at=from_iso(data["created_at"]),
            last_accessed_at=from_iso(last_accessed_at),
        )

    async def insert_memory(self, item: MemoryItem) -> MemoryItem:
        data = self._memory_to_dict(item)
        await self._execute(
            """
            INSERT INTO shared_memory (id, campaign_id, memory_key, relevance_score, expires_at,
                                       data, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.campaign_id,
                item.key,
                item.relevance_score,
                data["expires_at"],
                _dumps(data),
                data["created_at"],
            ),
        )
        return item

    async def query_memory(self, campaign_id: str, now: datetime) -> list[MemoryItem]:
        await self._ensure_initialized()

        items = []
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT data, last_accessed_at FROM shared_memory
                WHERE campaign_id = ? AND (expires_at IS NULL OR expires_at > ?)
                ORDER BY relevance_score DESC, created_at DESC
                """,
                (campaign_id, to_iso(now)),
            ) as cursor:
                async for row in cursor:
                    items.append(self._dict_to_memory(json.loads(row["data"]), row["last_accessed_at"]))
        return items

    async def touch_memory(self, item_ids: list[str], accessed_at: datetime) -> None:
        if not item_ids:
            return
        placeholders = ", ".join("?" for _ in item_ids)
        await self._execute(
            f"UPDATE shared_memory SET last_accessed_at = ? WHERE id IN ({placeholders})",
            (to_iso(accessed_at), *item_ids),
        )

    # Execution logs

    def _log_to_dict(self, entry: ExecutionLogEntry) -> dict:
        return {
            "id": entry.id,
            "agent_id": entry.agent_id,
            "task_id": entry.task_id,
            "campaign_id": entry.campaign_id,
            "tool_name": entry.tool_name,
            "input": entry.input,
            "output": entry.output,
            "duration_ms": entry.duration_ms,
            "tokens_used": entry.tokens_used,
            "cost_usd": entry.cost_usd,
            "status": entry.status.value,
            "error_message": entry.error_message,
            "metadata": entry.metadata,
            "created_at": to_iso(entry.created_at),
        }

    def _dict_to_log(self, data: dict) -> ExecutionLogEntry:
        return ExecutionLogEntry(
            id=data["id"],
            agent_id=data["agent_id"],
            task_id=data.get("task_id"),
            campaign_id=data.get("campaign_id"),
            tool_name=data["tool_name"],
            input=data.get("input"),
            output=data.get("output"),
            duration_ms=data.get("duration_ms"),
            tokens_used=data.get("tokens_used"),
            cost_usd=data.get("cost_usd"),
            status=ExecutionStatus(data["status"]),
            error_message=data.get("error_message"),
            metadata=data.get("metadata") or {},
            created_at=from_iso(data["created_at"]),
        )

    async def insert_execution_log(self, entry: ExecutionLogEntry) -> None:
        data = self._log_to_dict(entry)
        await self._execute(
            """
            INSERT INTO execution_logs (id, agent_id, task_id, status, data, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (entry.id, entry.agent_id, entry.task_id, entry.status.value,
             _dumps(data), data["created_at"]),
        )

    async def list_execution_logs(
        self,
        agent_id: Optional[str] = None,
        task_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[ExecutionLogEntry]:
        clauses, params = [], []
        if agent_id is not None:
            clauses.append("agent_id = ?")
            params.append(agent_id)
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetch_data(
            f"SELECT data FROM execution_logs {where} ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (*params, limit),
        )
        return [self._dict_to_log(r) for r in rows]

    # Agent profiles

    async def get_agent_profile(self, agent_id: str) -> Optional[AgentProfile]:
        rows = await self._fetch_data(
            "SELECT data FROM agent_profiles WHERE agent_id = ?", (agent_id,)
        )
        if not rows:
            return None

        data = rows[0]
        return AgentProfile(
            agent_id=AgentId(data["agent_id"]),
            name=data.get("name", ""),
            title=data.get("title", ""),
            level=AgentLevel(data.get("level", AgentLevel.EXECUTOR)),
            system_prompt=data.get("system_prompt", ""),
            model=data.get("model"),
            temperature=data.get("temperature", 0.7),
            max_tokens=data.get("max_tokens", 2000),
            preferred_categories=data.get("preferred_categories", []),
        )

    async def save_agent_profile(self, profile: AgentProfile) -> None:
        data = {
            "agent_id": profile.agent_id,
            "name": profile.name,
            "title": profile.title,
            "level": int(profile.level),
            "system_prompt": profile.system_prompt,
            "model": profile.model,
            "temperature": profile.temperature,
            "max_tokens": profile.max_tokens,
            "preferred_categories": profile.preferred_categories,
        }
        await self._execute(
            "INSERT OR REPLACE INTO agent_profiles (agent_id, data) VALUES (?, ?)",
            (profile.agent_id, _dumps(data)),
        )

    # Aggregates

    async def count_by_status(self, table: str) -> dict[str, Any]:
        if table not in self._COUNTABLE:
            raise ValueError(f"Cannot count table {table!r}")
        await self._ensure_initialized()

        counts: dict[str, Any] = {}
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT status, COUNT(*) FROM {table} GROUP BY status"
            ) as cursor:
                async for status, count in cursor:
                    counts[status] = count
        return counts
