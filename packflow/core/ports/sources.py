"""Data source ports - read-only collaborators consumed by the context builder"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional


@dataclass
class KnowledgeChunk:
    """A knowledge-base passage returned by retrieval"""
    content: str
    similarity: float
    category: Optional[str] = None
    document_title: Optional[str] = None


class KnowledgePort(ABC):
    """Knowledge retrieval over the campaign owner's document base"""

    @abstractmethod
    async def search(
        self,
        query: str,
        threshold: float = 0.7,
        limit: int = 5,
        categories: Optional[list[str]] = None,
    ) -> list[KnowledgeChunk]:
        pass


Row = dict[str, Any]


class MarketingDataPort(ABC):
    """
    Time-ranged row reads of synced marketing data.
    Rows are plain dicts keyed by column name.
    """

    @abstractmethod
    async def google_ads_metrics(self, user_id: str, since: date, limit: int = 30) -> list[Row]:
        """Rows with date, campaign_id, impressions, clicks, cost, conversions; newest first"""
        pass

    @abstractmethod
    async def meta_ads_metrics(self, user_id: str, since: date, limit: int = 30) -> list[Row]:
        """Rows with date, campaign_id, impressions, reach, clicks, cost, conversions; newest first"""
        pass

    @abstractmethod
    async def competitor_data(self, user_id: str, limit: int = 10) -> list[Row]:
        """Rows with competitor_name, platform, scraped_at; newest first"""
        pass

    @abstractmethod
    async def social_media_metrics(self, user_id: str, since: date) -> list[Row]:
        """Rows with date, platform, followers, posts_count, total_likes, total_comments,
        total_shares, engagement_rate; newest first"""
        pass

    @abstractmethod
    async def campaign(self, campaign_id: str) -> Optional[Row]:
        """Campaign row with name, status, user_id, objectives, channels, budget_total,
        start_date, end_date"""
        pass
