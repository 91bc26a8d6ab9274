"""Context Builder - assembles the prompt context an agent works from"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Optional

from ..core.errors import CollaboratorUnavailable
from ..core.ports.sources import KnowledgePort, MarketingDataPort, Row
from ..core.timeutil import from_iso, utcnow

logger = logging.getLogger(__name__)

KNOWLEDGE_THRESHOLD = 0.7
KNOWLEDGE_LIMIT = 5
METRICS_WINDOW_DAYS = 30
METRICS_ROW_LIMIT = 30
COMPETITOR_ROW_LIMIT = 10
TOP_COMPETITORS = 5


@dataclass
class ContextOptions:
    """What to gather for one task. Every source is included unless switched off."""
    user_id: str
    task_type: str
    campaign_id: Optional[str] = None
    query: Optional[str] = None
    categories: Optional[list[str]] = None
    include_knowledge: bool = True
    include_metrics: bool = True
    include_competitors: bool = True
    include_social_media: bool = True


@dataclass
class ContextBundle:
    """Per-source sections plus the combined text. Empty strings mean the source contributed nothing."""
    knowledge: str = ""
    metrics: str = ""
    competitors: str = ""
    social_media: str = ""
    campaign: str = ""
    unavailable: list[str] = field(default_factory=list)

    @property
    def sections(self) -> list[str]:
        return [s for s in (self.knowledge, self.metrics, self.competitors,
                            self.social_media, self.campaign) if s]

    @property
    def full_context(self) -> str:
        sections = self.sections
        if not sections:
            return ""
        return "# Enriched context for analysis\n\n" + "\n\n".join(sections)


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _fmt_int(value: float) -> str:
    return f"{int(value):,}"


def _fmt_date(value: Any) -> str:
    if not value:
        return "N/A"
    if isinstance(value, date):
        return value.isoformat()
    parsed = from_iso(str(value))
    return parsed.date().isoformat() if parsed else str(value)


class ContextBuilder:
    """
    Gathers knowledge, ad metrics, competitor, social and campaign context.

    Each source is fetched independently; a failing source is logged as
    CollaboratorUnavailable and leaves its section empty.
    """

    def __init__(
        self,
        knowledge: Optional[KnowledgePort] = None,
        marketing: Optional[MarketingDataPort] = None,
        today: Callable[[], date] = lambda: utcnow().date(),
    ):
        self.knowledge = knowledge
        self.marketing = marketing
        self._today = today

    async def owner_of(self, campaign_id: str) -> Optional[str]:
        """User id owning a campaign, or None when it cannot be looked up"""
        if self.marketing is None or not campaign_id:
            return None
        try:
            campaign = await self.marketing.campaign(campaign_id)
        except Exception as e:
            logger.warning("%s", CollaboratorUnavailable("campaign", e))
            return None
        return campaign.get("user_id") if campaign else None

    async def build(self, options: ContextOptions) -> ContextBundle:
        bundle = ContextBundle()
        since = self._today() - timedelta(days=METRICS_WINDOW_DAYS)

        if options.include_knowledge and self.knowledge is not None:
            bundle.knowledge = await self._guarded("knowledge", bundle, self._knowledge(options))
        if options.include_metrics and self.marketing is not None:
            bundle.metrics = await self._guarded("ad_metrics", bundle, self._metrics(options.user_id, since))
        if options.include_competitors and self.marketing is not None:
            bundle.competitors = await self._guarded("competitors", bundle, self._competitors(options.user_id))
        if options.include_social_media and self.marketing is not None:
            bundle.social_media = await self._guarded("social_media", bundle, self._social(options.user_id, since))
        if options.campaign_id and self.marketing is not None:
            bundle.campaign = await self._guarded("campaign", bundle, self._campaign(options.campaign_id))

        return bundle

    async def _guarded(self, source: str, bundle: ContextBundle, section: Awaitable[str]) -> str:
        try:
            return await section
        except Exception as e:
            error = CollaboratorUnavailable(source, e)
            logger.warning("%s", error)
            bundle.unavailable.append(source)
            return ""

    async def _knowledge(self, options: ContextOptions) -> str:
        query = options.query or f"{options.task_type} for campaign"
        chunks = await self.knowledge.search(
            query,
            threshold=KNOWLEDGE_THRESHOLD,
            limit=KNOWLEDGE_LIMIT,
            categories=options.categories,
        )
        if not chunks:
            return ""

        lines = ["## Relevant knowledge base"]
        lines.extend(f"- {c.content} (relevance: {c.similarity * 100:.0f}%)" for c in chunks)
        return "\n".join(lines)

    async def _metrics(self, user_id: str, since: date) -> str:
        google = await self.marketing.google_ads_metrics(user_id, since, limit=METRICS_ROW_LIMIT)
        meta = await self.marketing.meta_ads_metrics(user_id, since, limit=METRICS_ROW_LIMIT)

        parts = []
        if google:
            impressions = sum(_num(r.get("impressions")) for r in google)
            clicks = sum(_num(r.get("clicks")) for r in google)
            cost = sum(_num(r.get("cost")) for r in google)
            conversions = sum(_num(r.get("conversions")) for r in google)
            ctr = clicks / impressions * 100 if impressions else 0
            cpc = cost / clicks if clicks else 0
            parts.append("\n".join([
                f"### Google Ads (last {METRICS_WINDOW_DAYS} days)",
                f"- Impressions: {_fmt_int(impressions)}",
                f"- Clicks: {_fmt_int(clicks)}",
                f"- Average CTR: {ctr:.2f}%",
                f"- Average CPC: {cpc:.2f}",
                f"- Conversions: {conversions:g}",
                f"- Total spend: {cost:.2f}",
                f"- Active campaigns: {len({r.get('campaign_id') for r in google})}",
            ]))

        if meta:
            impressions = sum(_num(r.get("impressions")) for r in meta)
            reach = sum(_num(r.get("reach")) for r in meta)
            clicks = sum(_num(r.get("clicks")) for r in meta)
            cost = sum(_num(r.get("cost")) for r in meta)
            conversions = sum(_num(r.get("conversions")) for r in meta)
            ctr = clicks / impressions * 100 if impressions else 0
            parts.append("\n".join([
                f"### Meta Ads (last {METRICS_WINDOW_DAYS} days)",
                f"- Impressions: {_fmt_int(impressions)}",
                f"- Reach: {_fmt_int(reach)}",
                f"- Clicks: {_fmt_int(clicks)}",
                f"- Average CTR: {ctr:.2f}%",
                f"- Conversions: {conversions:g}",
                f"- Total spend: {cost:.2f}",
                f"- Active campaigns: {len({r.get('campaign_id') for r in meta})}",
            ]))

        if not parts:
            return ""
        return "## Performance metrics\n" + "\n\n".join(parts)

    async def _competitors(self, user_id: str) -> str:
        rows = await self.marketing.competitor_data(user_id, limit=COMPETITOR_ROW_LIMIT)
        if not rows:
            return ""

        # insertion order keeps the most recently scraped competitors first
        platforms_by_name: dict[str, list[str]] = {}
        for row in rows:
            platforms = platforms_by_name.setdefault(row.get("competitor_name"), [])
            if row.get("platform") not in platforms:
                platforms.append(row.get("platform"))

        lines = [
            "## Competitive intelligence",
            f"- Competitors tracked: {len(platforms_by_name)}",
            f"- Last update: {_fmt_date(rows[0].get('scraped_at'))}",
            f"- Platforms: {len({r.get('platform') for r in rows})}",
            "",
            "### Main competitors",
        ]
        for name, platforms in list(platforms_by_name.items())[:TOP_COMPETITORS]:
            lines.append(f"- {name} ({', '.join(str(p) for p in platforms)})")
        return "\n".join(lines)

    async def _social(self, user_id: str, since: date) -> str:
        rows = await self.marketing.social_media_metrics(user_id, since)
        if not rows:
            return ""

        by_platform: dict[str, list[Row]] = {}
        for row in rows:
            by_platform.setdefault(row.get("platform"), []).append(row)

        lines = ["## Social media"]
        for platform, platform_rows in by_platform.items():
            latest = platform_rows[0]
            engagement = sum(
                _num(r.get("total_likes")) + _num(r.get("total_comments")) + _num(r.get("total_shares"))
                for r in platform_rows
            )
            lines.extend([
                f"### {str(platform).capitalize()}",
                f"- Followers: {_fmt_int(_num(latest.get('followers')))}",
                f"- Posts: {int(_num(latest.get('posts_count')))}",
                f"- Total engagement: {_fmt_int(engagement)}",
                f"- Engagement rate: {_num(latest.get('engagement_rate')):.2f}%",
            ])
        return "\n".join(lines)

    async def _campaign(self, campaign_id: str) -> str:
        campaign = await self.marketing.campaign(campaign_id)
        if not campaign:
            return ""

        objectives = ", ".join(campaign.get("objectives") or []) or "N/A"
        channels = ", ".join(campaign.get("channels") or []) or "N/A"
        return "\n".join([
            "## Campaign",
            f"- Name: {campaign.get('name')}",
            f"- Status: {campaign.get('status')}",
            f"- Objectives: {objectives}",
            f"- Channels: {channels}",
            f"- Total budget: {_num(campaign.get('budget_total')):.2f}",
            f"- Period: {_fmt_date(campaign.get('start_date'))} to {_fmt_date(campaign.get('end_date'))}",
        ])
