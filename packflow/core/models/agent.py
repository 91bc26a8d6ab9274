"""Agent domain models - the marketing team's agent identities and their configuration"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import NewType, Optional

AgentId = NewType("AgentId", str)


class AgentLevel(IntEnum):
    """Position in the delegation hierarchy - lower number = more senior"""
    DIRECTOR = 1      # CMO, originates task trees
    COORDINATOR = 2   # Owns a task category, delegates execution
    EXECUTOR = 3      # Produces the deliverables

    @property
    def display_name(self) -> str:
        names = {
            AgentLevel.DIRECTOR: "Director",
            AgentLevel.COORDINATOR: "Coordinator",
            AgentLevel.EXECUTOR: "Executor",
        }
        return names[self]


@dataclass
class AgentProfile:
    """
    Configuration of one agent identity.
    The system prompt and model settings are what the task processor feeds the LLM.
    """
    agent_id: AgentId
    name: str = ""
    title: str = ""
    level: AgentLevel = AgentLevel.EXECUTOR

    system_prompt: str = ""
    model: Optional[str] = None  # None = adapter default
    temperature: float = 0.7
    max_tokens: int = 2000

    # Knowledge-base categories searched first when building context
    preferred_categories: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.title})" if self.title else self.name or self.agent_id


def _profile(agent_id: str, name: str, title: str, level: AgentLevel,
             categories: Optional[list[str]] = None) -> AgentProfile:
    return AgentProfile(
        agent_id=AgentId(agent_id),
        name=name,
        title=title,
        level=level,
        preferred_categories=categories or [],
    )


DEFAULT_AGENTS: dict[str, AgentProfile] = {
    p.agent_id: p for p in (
        _profile("ricardo-santos", "Ricardo Santos", "CMO", AgentLevel.DIRECTOR),
        _profile("ana-silva", "Ana Silva", "Market Research", AgentLevel.COORDINATOR,
                 ["Pesquisa de Mercado", "Análise Competitiva"]),
        _profile("thiago-costa", "Thiago Costa", "Competitive Intelligence", AgentLevel.COORDINATOR,
                 ["Análise Competitiva", "Pesquisa de Mercado"]),
        _profile("camila-rodrigues", "Camila Rodrigues", "Data & Analytics", AgentLevel.COORDINATOR,
                 ["Analytics", "Google Ads", "Meta Ads"]),
        _profile("renata-lima", "Renata Lima", "Brand Strategy", AgentLevel.COORDINATOR,
                 ["Diretrizes de Marca", "Empresa", "Estratégia de Conteúdo"]),
        _profile("andre-martins", "André Martins", "Quality Assurance", AgentLevel.COORDINATOR),
        _profile("pedro-oliveira", "Pedro Oliveira", "Copywriter", AgentLevel.EXECUTOR,
                 ["Google Ads", "SEO"]),
        _profile("marina-santos", "Marina Santos", "Designer", AgentLevel.EXECUTOR,
                 ["Meta Ads"]),
        _profile("lucas-ferreira", "Lucas Ferreira", "Video Producer", AgentLevel.EXECUTOR,
                 ["Social Media", "Estratégia de Conteúdo"]),
        _profile("rafael-costa", "Rafael Costa", "Performance Manager", AgentLevel.EXECUTOR),
        _profile("isabela-almeida", "Isabela Almeida", "Social Media", AgentLevel.EXECUTOR),
        _profile("juliana-mendes", "Juliana Mendes", "SEO Specialist", AgentLevel.EXECUTOR),
    )
}


def default_profile(agent_id: str) -> AgentProfile:
    """Profile for an agent id, falling back to a bare executor profile"""
    known = DEFAULT_AGENTS.get(agent_id)
    if known is not None:
        return AgentProfile(
            agent_id=known.agent_id,
            name=known.name,
            title=known.title,
            level=known.level,
            system_prompt=known.system_prompt,
            model=known.model,
            temperature=known.temperature,
            max_tokens=known.max_tokens,
            preferred_categories=list(known.preferred_categories),
        )
    return AgentProfile(agent_id=AgentId(agent_id), name=agent_id)
