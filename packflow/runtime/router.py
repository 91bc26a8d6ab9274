"""Task Router - expands a task category into a coordinator task and its execution sub-tasks"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Union

from ..core.errors import InvalidCategory
from ..core.models import MessageType, Priority, Task, TaskTree
from ..core.ports.storage import StoragePort
from .messenger import AgentMessenger

logger = logging.getLogger(__name__)

DEFAULT_ASSIGNED_BY = "ricardo-santos"


class TaskCategory(str, Enum):
    """Categories of work the marketing team accepts"""
    MARKET_RESEARCH = "market_research"
    COMPETITIVE_INTELLIGENCE = "competitive_intelligence"
    DATA_ANALYSIS = "data_analysis"
    BRAND_STRATEGY = "brand_strategy"
    CONTENT_CREATION = "content_creation"
    PAID_MEDIA = "paid_media"
    ORGANIC_GROWTH = "organic_growth"
    QUALITY_ASSURANCE = "quality_assurance"


@dataclass(frozen=True)
class Route:
    """Who coordinates a category and who executes under them"""
    coordinator: str
    executors: tuple[str, ...] = ()


class RoutingTable(Mapping[TaskCategory, Route]):
    """Immutable category -> route mapping, injected into the router"""

    def __init__(self, routes: Mapping[TaskCategory, Route]):
        self._routes = MappingProxyType(dict(routes))

    def __getitem__(self, category: TaskCategory) -> Route:
        return self._routes[category]

    def __iter__(self) -> Iterator[TaskCategory]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def resolve(self, category: Union[str, TaskCategory]) -> tuple[TaskCategory, Route]:
        """Look up a category by name. Raises InvalidCategory for unknown names."""
        valid = [c.value for c in self._routes]
        try:
            parsed = TaskCategory(category)
        except ValueError:
            raise InvalidCategory(str(category), valid) from None
        if parsed not in self._routes:
            raise InvalidCategory(parsed.value, valid)
        return parsed, self._routes[parsed]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]]) -> "RoutingTable":
        """
        Build from plain config, e.g.

            {"paid_media": {"coordinator": "camila-rodrigues",
                            "executors": ["rafael-costa", "isabela-almeida"]}}
        """
        routes = {}
        for name, entry in data.items():
            try:
                category = TaskCategory(name)
            except ValueError:
                raise InvalidCategory(name, [c.value for c in TaskCategory]) from None
            routes[category] = Route(
                coordinator=entry["coordinator"],
                executors=tuple(entry.get("executors") or ()),
            )
        return cls(routes)

    @classmethod
    def default(cls) -> "RoutingTable":
        return cls({
            TaskCategory.MARKET_RESEARCH: Route("ana-silva", ("pedro-oliveira",)),
            TaskCategory.COMPETITIVE_INTELLIGENCE: Route("thiago-costa", ("pedro-oliveira",)),
            TaskCategory.DATA_ANALYSIS: Route("camila-rodrigues", ()),
            TaskCategory.BRAND_STRATEGY: Route("renata-lima", ("marina-santos",)),
            TaskCategory.CONTENT_CREATION: Route(
                "renata-lima", ("pedro-oliveira", "marina-santos", "lucas-ferreira")
            ),
            TaskCategory.PAID_MEDIA: Route("camila-rodrigues", ("rafael-costa", "isabela-almeida")),
            TaskCategory.ORGANIC_GROWTH: Route("renata-lima", ("isabela-almeida", "juliana-mendes")),
            TaskCategory.QUALITY_ASSURANCE: Route("andre-martins", ("renata-lima",)),
        })


class TaskRouter:
    """
    Materializes a two-level task tree for a category.

    Every task row is written before the delegation message that announces
    it. Only the coordinating task is required: a sub-task or a message that
    cannot be written is logged and skipped.
    """

    def __init__(
        self,
        storage: StoragePort,
        messenger: AgentMessenger,
        routing_table: Optional[RoutingTable] = None,
        default_assigned_by: str = DEFAULT_ASSIGNED_BY,
    ):
        self.storage = storage
        self.messenger = messenger
        self.routing_table = routing_table or RoutingTable.default()
        self.default_assigned_by = default_assigned_by

    async def route(
        self,
        campaign_id: str,
        task_category: Union[str, TaskCategory],
        title: str,
        description: str = "",
        priority: Priority = Priority.MEDIUM,
        assigned_by: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> TaskTree:
        if not campaign_id:
            raise ValueError("campaign_id is required")
        if not title:
            raise ValueError("title is required")

        category, route = self.routing_table.resolve(task_category)
        assigned_by = assigned_by or self.default_assigned_by
        base_context = dict(context or {})

        root = Task(
            campaign_id=campaign_id,
            agent_id=route.coordinator,
            title=title,
            description=description,
            priority=priority,
            assigned_by=assigned_by,
            context={**base_context, "task_category": category.value, "level": 2},
        )
        await self.storage.create_task(root)
        logger.info("Task %s (%s) created for %s", root.id, category.value, route.coordinator)
        await self._announce(assigned_by, root, f"Nova tarefa delegada: {title}")

        tree = TaskTree(root=root)
        for executor in route.executors:
            subtask = Task(
                campaign_id=campaign_id,
                agent_id=executor,
                title=f"{title} - Execução",
                description=f"Subtarefa de: {title}",
                priority=priority,
                parent_task_id=root.id,
                assigned_by=route.coordinator,
                context={
                    **base_context,
                    "task_category": category.value,
                    "level": 3,
                    "parent_task_id": root.id,
                },
            )
            try:
                await self.storage.create_task(subtask)
            except Exception as e:
                logger.warning("Skipping sub-task for %s under %s: %s", executor, root.id, e)
                continue

            tree.subtasks.append(subtask)
            await self._announce(route.coordinator, subtask, f"Subtarefa delegada: {subtask.title}")

        return tree

    async def _announce(self, delegator: str, task: Task, content: str) -> None:
        try:
            await self.messenger.send(
                from_agent=delegator,
                to_agent=task.agent_id,
                content=content,
                message_type=MessageType.DELEGATION,
                campaign_id=task.campaign_id,
                related_task_id=task.id,
            )
        except Exception as e:
            logger.warning("Delegation notice for task %s not sent: %s", task.id, e)
