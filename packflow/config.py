"""Configuration - YAML settings file with built-in defaults"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .runtime.router import RoutingTable

CONFIG_ENV_VAR = "PACKFLOW_CONFIG"
DEFAULT_CONFIG_PATH = "config/settings.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "llm": {
        "model": "gpt-4o-mini",
        "fallback_model": None,
        "temperature": 0.7,
        "max_tokens": 2000,
        "max_tool_rounds": 3,
    },
    "storage": {
        "db_path": "./packflow.db",
    },
    "queue": {
        "name": "agent_jobs_queue",
        "batch_size": 5,
        "visibility_timeout": 300,
        "max_attempts": 3,
        "retry_delay": 0,
        "drain_interval": 60,
    },
    "messaging": {
        "timeout_ms": 60000,
        "poll_interval_ms": 2000,
        "ask_timeout_ms": 30000,
    },
    "routing": {
        "default_assigned_by": "ricardo-santos",
        "table": None,  # None = built-in marketing team routes
    },
    "logging": {
        "level": "INFO",
    },
}


@dataclass
class LLMSettings:
    model: str = "gpt-4o-mini"
    fallback_model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2000
    max_tool_rounds: int = 3


@dataclass
class StorageSettings:
    db_path: str = "./packflow.db"


@dataclass
class QueueSettings:
    name: str = "agent_jobs_queue"
    batch_size: int = 5
    visibility_timeout: float = 300
    max_attempts: int = 3
    retry_delay: float = 0
    drain_interval: float = 60


@dataclass
class MessagingSettings:
    timeout_ms: int = 60000
    poll_interval_ms: int = 2000
    ask_timeout_ms: int = 30000


@dataclass
class RoutingSettings:
    default_assigned_by: str = "ricardo-santos"
    table: Optional[dict[str, Any]] = None

    def routing_table(self) -> RoutingTable:
        if self.table:
            return RoutingTable.from_mapping(self.table)
        return RoutingTable.default()


@dataclass
class Settings:
    llm: LLMSettings = field(default_factory=LLMSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    messaging: MessagingSettings = field(default_factory=MessagingSettings)
    routing: RoutingSettings = field(default_factory=RoutingSettings)
    log_level: str = "INFO"


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """Build Settings from a (possibly partial) config dict"""
    config = _merge(DEFAULT_CONFIG, data)
    return Settings(
        llm=LLMSettings(**config["llm"]),
        storage=StorageSettings(**config["storage"]),
        queue=QueueSettings(**config["queue"]),
        messaging=MessagingSettings(**config["messaging"]),
        routing=RoutingSettings(**config["routing"]),
        log_level=str(config["logging"].get("level", "INFO")).upper(),
    )


def load_config(config_path: Optional[str] = None) -> Settings:
    """Load configuration from YAML file, falling back to defaults when it is absent"""
    config_path = config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file) as f:
            return settings_from_dict(yaml.safe_load(f) or {})

    return settings_from_dict({})
