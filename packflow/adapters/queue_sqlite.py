"""SQLite queue adapter - durable at-least-once transport with visibility timeout"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

import aiosqlite

from ..core.errors import TransportError
from ..core.ports.queue import QueueMessage, QueuePort

logger = logging.getLogger(__name__)


class SQLiteQueueAdapter(QueuePort):
    """
    Queue transport stored in a SQLite table.

    Visibility is a REAL epoch timestamp per message: a message is deliverable
    when `visible_at <= now`. Dequeue claims messages by pushing `visible_at`
    forward inside a BEGIN IMMEDIATE transaction, so two consumers never claim
    the same visible message.
    """

    def __init__(self, db_path: str = "./packflow.db", clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self._clock = clock
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.executescript("""
                    CREATE TABLE IF NOT EXISTS queue_messages (
                        msg_id INTEGER PRIMARY KEY AUTOINCREMENT,
                        queue_name TEXT NOT NULL,
                        payload JSON,
                        read_count INTEGER DEFAULT 0,
                        enqueued_at REAL,
                        visible_at REAL
                    );

                    CREATE INDEX IF NOT EXISTS idx_queue_visible
                        ON queue_messages(queue_name, visible_at);
                """)
                await db.commit()
        except aiosqlite.Error as e:
            raise TransportError(f"Cannot initialize queue store {self.db_path}: {e}") from e

        self._initialized = True

    async def enqueue(self, queue_name: str, payload: dict[str, Any], delay: float = 0) -> int:
        await self._ensure_initialized()
        now = self._clock()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    """
                    INSERT INTO queue_messages (queue_name, payload, read_count, enqueued_at, visible_at)
                    VALUES (?, ?, 0, ?, ?)
                    """,
                    (queue_name, json.dumps(payload), now, now + max(delay, 0)),
                )
                await db.commit()
                message_id = cursor.lastrowid
        except aiosqlite.Error as e:
            raise TransportError(f"enqueue to {queue_name} failed: {e}") from e

        logger.debug("Enqueued message %s on %s (delay %ss)", message_id, queue_name, delay)
        return message_id

    async def dequeue(self, queue_name: str, visibility_timeout: float, count: int) -> list[QueueMessage]:
        await self._ensure_initialized()
        if count <= 0:
            return []

        now = self._clock()
        messages = []
        try:
            async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("BEGIN IMMEDIATE")
                try:
                    async with db.execute(
                        """
                        SELECT msg_id, payload, read_count, enqueued_at FROM queue_messages
                        WHERE queue_name = ? AND visible_at <= ?
                        ORDER BY msg_id
                        LIMIT ?
                        """,
                        (queue_name, now, count),
                    ) as cursor:
                        rows = await cursor.fetchall()

                    for row in rows:
                        await db.execute(
                            "UPDATE queue_messages SET visible_at = ?, read_count = read_count + 1 "
                            "WHERE msg_id = ?",
                            (now + visibility_timeout, row["msg_id"]),
                        )
                        messages.append(QueueMessage(
                            message_id=row["msg_id"],
                            payload=json.loads(row["payload"]),
                            read_count=row["read_count"] + 1,
                            enqueued_at=datetime.fromtimestamp(row["enqueued_at"], tz=timezone.utc),
                        ))
                    await db.execute("COMMIT")
                except BaseException:
                    await db.execute("ROLLBACK")
                    raise
        except aiosqlite.Error as e:
            raise TransportError(f"dequeue from {queue_name} failed: {e}") from e

        return messages

    async def delete(self, queue_name: str, message_id: int) -> bool:
        await self._ensure_initialized()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "DELETE FROM queue_messages WHERE queue_name = ? AND msg_id = ?",
                    (queue_name, message_id),
                )
                await db.commit()
                return cursor.rowcount > 0
        except aiosqlite.Error as e:
            raise TransportError(f"delete of message {message_id} from {queue_name} failed: {e}") from e

    async def size(self, queue_name: str) -> int:
        await self._ensure_initialized()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    "SELECT COUNT(*) FROM queue_messages WHERE queue_name = ?", (queue_name,)
                ) as cursor:
                    row = await cursor.fetchone()
                    return row[0]
        except aiosqlite.Error as e:
            raise TransportError(f"size of {queue_name} failed: {e}") from e
