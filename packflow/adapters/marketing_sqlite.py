"""SQLite adapters for the synced marketing data and the knowledge base"""

from __future__ import annotations

import json
import re
from datetime import date
from typing import Any, Optional

import aiosqlite

from ..core.ports.sources import KnowledgeChunk, KnowledgePort, MarketingDataPort, Row

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS campaigns (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        name TEXT,
        status TEXT,
        objectives JSON,
        channels JSON,
        budget_total REAL,
        start_date TEXT,
        end_date TEXT
    );

    CREATE TABLE IF NOT EXISTS google_ads_metrics (
        user_id TEXT,
        date TEXT,
        campaign_id TEXT,
        impressions INTEGER,
        clicks INTEGER,
        cost REAL,
        conversions REAL
    );

    CREATE TABLE IF NOT EXISTS meta_ads_metrics (
        user_id TEXT,
        date TEXT,
        campaign_id TEXT,
        impressions INTEGER,
        reach INTEGER,
        clicks INTEGER,
        cost REAL,
        conversions REAL
    );

    CREATE TABLE IF NOT EXISTS competitor_data (
        user_id TEXT,
        competitor_name TEXT,
        platform TEXT,
        scraped_at TEXT
    );

    CREATE TABLE IF NOT EXISTS social_media_metrics (
        user_id TEXT,
        date TEXT,
        platform TEXT,
        followers INTEGER,
        posts_count INTEGER,
        total_likes INTEGER,
        total_comments INTEGER,
        total_shares INTEGER,
        engagement_rate REAL
    );

    CREATE TABLE IF NOT EXISTS knowledge_chunks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        document_title TEXT,
        category TEXT,
        content TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_google_user_date ON google_ads_metrics(user_id, date);
    CREATE INDEX IF NOT EXISTS idx_meta_user_date ON meta_ads_metrics(user_id, date);
    CREATE INDEX IF NOT EXISTS idx_social_user_date ON social_media_metrics(user_id, date);
"""

_JSON_COLUMNS = {"objectives", "channels"}


class _SQLiteSource:
    """Shared connection handling for the read-only sources"""

    def __init__(self, db_path: str = "./packflow.db"):
        self.db_path = db_path
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript(_SCHEMA)
            await db.commit()

        self._initialized = True

    async def _rows(self, sql: str, params: tuple = ()) -> list[Row]:
        await self._ensure_initialized()

        rows = []
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                async for row in cursor:
                    record = dict(row)
                    for column in _JSON_COLUMNS & record.keys():
                        if record[column] is not None:
                            record[column] = json.loads(record[column])
                    rows.append(record)
        return rows

    async def insert_rows(self, table: str, rows: list[dict[str, Any]]) -> None:
        """Load rows into one of the source tables (sync jobs and fixtures)"""
        if not rows:
            return
        await self._ensure_initialized()

        columns = list(rows[0].keys())
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(sql, [
                tuple(
                    json.dumps(row[c]) if c in _JSON_COLUMNS and row[c] is not None else row[c]
                    for c in columns
                )
                for row in rows
            ])
            await db.commit()


class SQLiteMarketingData(_SQLiteSource, MarketingDataPort):
    """Marketing data read from the synced metric tables"""

    async def google_ads_metrics(self, user_id: str, since: date, limit: int = 30) -> list[Row]:
        return await self._rows(
            """
            SELECT date, campaign_id, impressions, clicks, cost, conversions
            FROM google_ads_metrics WHERE user_id = ? AND date >= ?
            ORDER BY date DESC LIMIT ?
            """,
            (user_id, since.isoformat(), limit),
        )

    async def meta_ads_metrics(self, user_id: str, since: date, limit: int = 30) -> list[Row]:
        return await self._rows(
            """
            SELECT date, campaign_id, impressions, reach, clicks, cost, conversions
            FROM meta_ads_metrics WHERE user_id = ? AND date >= ?
            ORDER BY date DESC LIMIT ?
            """,
            (user_id, since.isoformat(), limit),
        )

    async def competitor_data(self, user_id: str, limit: int = 10) -> list[Row]:
        return await self._rows(
            """
            SELECT competitor_name, platform, scraped_at
            FROM competitor_data WHERE user_id = ?
            ORDER BY scraped_at DESC LIMIT ?
            """,
            (user_id, limit),
        )

    async def social_media_metrics(self, user_id: str, since: date) -> list[Row]:
        return await self._rows(
            """
            SELECT date, platform, followers, posts_count, total_likes, total_comments,
                   total_shares, engagement_rate
            FROM social_media_metrics WHERE user_id = ? AND date >= ?
            ORDER BY date DESC
            """,
            (user_id, since.isoformat()),
        )

    async def campaign(self, campaign_id: str) -> Optional[Row]:
        rows = await self._rows("SELECT * FROM campaigns WHERE id = ?", (campaign_id,))
        return rows[0] if rows else None


_WORD = re.compile(r"\w+", re.UNICODE)


def _terms(text: str) -> set[str]:
    return {w.lower() for w in _WORD.findall(text) if len(w) > 2}


class SQLiteKnowledgeBase(_SQLiteSource, KnowledgePort):
    """
    Keyword retrieval over stored knowledge chunks.
    Similarity is the share of query terms found in the chunk; a vector store
    can replace this adapter behind the same port.
    """

    async def search(
        self,
        query: str,
        threshold: float = 0.7,
        limit: int = 5,
        categories: Optional[list[str]] = None,
    ) -> list[KnowledgeChunk]:
        query_terms = _terms(query)
        if not query_terms:
            return []

        sql = "SELECT document_title, category, content FROM knowledge_chunks"
        params: tuple = ()
        if categories:
            sql += f" WHERE category IN ({', '.join('?' for _ in categories)})"
            params = tuple(categories)

        scored = []
        for row in await self._rows(sql, params):
            similarity = len(query_terms & _terms(row["content"])) / len(query_terms)
            if similarity >= threshold:
                scored.append(KnowledgeChunk(
                    content=row["content"],
                    similarity=round(similarity, 4),
                    category=row["category"],
                    document_title=row["document_title"],
                ))

        scored.sort(key=lambda c: c.similarity, reverse=True)
        return scored[:limit]
