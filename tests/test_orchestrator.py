"""Tests for the orchestrator facade, configuration and the command line"""
from __future__ import annotations

import asyncio

import pytest
from rich.console import Console

from packflow.adapters.cli.dashboard import TerminalDashboard
from packflow.config import CONFIG_ENV_VAR, Settings, load_config, settings_from_dict
from packflow.core.errors import InvalidCategory
from packflow.core.models import JobStatus, Priority, Task, TaskStatus
from packflow.main import build_parser, main
from packflow.runtime.loop import Orchestrator
from packflow.runtime.router import TaskCategory
from packflow.runtime.status import StatusAggregator

from conftest import FakeLLM


def fast_settings(**overrides) -> Settings:
    data = {
        "queue": {"name": "test_jobs", "batch_size": 10, "visibility_timeout": 30},
        "messaging": {"timeout_ms": 200, "poll_interval_ms": 50, "ask_timeout_ms": 200},
    }
    data.update(overrides)
    return settings_from_dict(data)


class TestOrchestrator:
    """Test routing, queueing and draining end to end"""

    @pytest.mark.asyncio
    async def test_create_and_drain(self, storage, queue):
        orchestrator = Orchestrator(storage, queue, llm=FakeLLM(), settings=fast_settings())

        tree, jobs = await orchestrator.create_task_tree("camp-1", "paid_media", "Q3 ads plan")
        assert len(tree) == 3
        assert [j.task_id for j in jobs] == [t.id for t in tree.tasks]
        assert await queue.size("test_jobs") == 3

        summary = await orchestrator.drain()
        await orchestrator.memory.flush()

        assert summary.succeeded == 3
        for task in tree.tasks:
            assert (await storage.get_task(task.id)).status == TaskStatus.COMPLETED
        assert await storage.count_by_status("jobs") == {JobStatus.COMPLETED.value: 3}
        assert await queue.size("test_jobs") == 0

    @pytest.mark.asyncio
    async def test_failed_jobs_reach_dead(self, storage, queue):
        llm = FakeLLM([RuntimeError("quota exceeded")] * 3)
        settings = fast_settings(queue={"name": "test_jobs", "max_attempts": 3})
        orchestrator = Orchestrator(storage, queue, llm=llm, settings=settings)
        tree, _ = await orchestrator.create_task_tree("camp-1", "data_analysis", "Weekly numbers")

        for _ in range(3):
            await orchestrator.drain()

        snap = await orchestrator.status.snapshot()
        assert [j.task_id for j in snap.dead_jobs] == [tree.root.id]
        assert [t.id for t in snap.failed_tasks] == [tree.root.id]
        assert snap.queue_depth == 0
        assert snap.open_tasks == 0

        summary = await orchestrator.status.get_summary()
        assert "1 dead" in summary

    @pytest.mark.asyncio
    async def test_failed_tasks_most_urgent_first(self, storage, queue):
        for title, priority in (("Newsletter", Priority.LOW), ("Launch ads", Priority.URGENT),
                                ("Blog post", Priority.MEDIUM)):
            task = Task(campaign_id="camp-1", agent_id="ana-silva", title=title, priority=priority)
            task.mark_in_progress()
            task.mark_failed("quota exceeded")
            await storage.create_task(task)

        snap = await StatusAggregator(storage, queue, "test_jobs").snapshot()

        assert [t.title for t in snap.failed_tasks] == ["Launch ads", "Blog post", "Newsletter"]
        assert all(t.completed_at is not None for t in snap.failed_tasks)

    @pytest.mark.asyncio
    async def test_invalid_category(self, storage, queue):
        orchestrator = Orchestrator(storage, queue, settings=fast_settings())
        with pytest.raises(InvalidCategory):
            await orchestrator.create_task_tree("camp-1", "astrology", "Horoscope")
        assert await queue.size("test_jobs") == 0

    @pytest.mark.asyncio
    async def test_drain_needs_llm(self, storage, queue):
        orchestrator = Orchestrator(storage, queue, settings=fast_settings())
        with pytest.raises(RuntimeError):
            await orchestrator.drain()

    @pytest.mark.asyncio
    async def test_run_bounded(self, storage, queue):
        orchestrator = Orchestrator(storage, queue, llm=FakeLLM(), settings=fast_settings())
        await orchestrator.create_task_tree("camp-1", "market_research", "Audience study")

        drains = await orchestrator.run(interval=0.01, max_drains=2)

        assert drains == 2
        assert await queue.size("test_jobs") == 0

    @pytest.mark.asyncio
    async def test_stop(self, storage, queue):
        orchestrator = Orchestrator(storage, queue, llm=FakeLLM(), settings=fast_settings())

        async def stop_soon():
            await asyncio.sleep(0.1)
            orchestrator.stop()

        drains, _ = await asyncio.gather(orchestrator.run(interval=5), stop_soon())
        assert drains == 1


class TestConfig:
    def test_defaults_without_file(self, tmp_path):
        settings = load_config(str(tmp_path / "missing.yaml"))
        assert settings.queue.name == "agent_jobs_queue"
        assert settings.queue.max_attempts == 3
        assert settings.messaging.timeout_ms == 60000
        assert settings.routing.routing_table()[TaskCategory.MARKET_RESEARCH].coordinator == "ana-silva"

    def test_partial_file_merges_with_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "llm:\n"
            "  model: claude-3-haiku\n"
            "queue:\n"
            "  max_attempts: 5\n"
            "routing:\n"
            "  table:\n"
            "    paid_media:\n"
            "      coordinator: camila-rodrigues\n"
            "      executors: [rafael-costa]\n"
            "logging:\n"
            "  level: debug\n"
        )
        settings = load_config(str(path))

        assert settings.llm.model == "claude-3-haiku"
        assert settings.llm.temperature == 0.7
        assert settings.queue.max_attempts == 5
        assert settings.queue.batch_size == 5
        assert settings.log_level == "DEBUG"
        table = settings.routing.routing_table()
        assert list(table) == [TaskCategory.PAID_MEDIA]

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("storage:\n  db_path: /tmp/elsewhere.db\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert load_config().storage.db_path == "/tmp/elsewhere.db"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).queue.batch_size == 5


class TestCommandLine:
    def test_parser(self):
        args = build_parser().parse_args(
            ["route", "paid_media", "Q3 ads", "--campaign", "camp-1", "--priority", "high"]
        )
        assert args.category == "paid_media"
        assert args.priority == "high"

        args = build_parser().parse_args(["run", "--interval", "5", "--max-drains", "2"])
        assert args.interval == 5.0
        assert args.max_drains == 2

    def test_route_and_status(self, tmp_path, monkeypatch):
        config = tmp_path / "settings.yaml"
        config.write_text(f"storage:\n  db_path: {tmp_path / 'cli.db'}\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config))

        assert main(["route", "market_research", "Audience study", "--campaign", "camp-1"]) == 0
        assert main(["status"]) == 0

    def test_invalid_category_exit_code(self, tmp_path, monkeypatch):
        config = tmp_path / "settings.yaml"
        config.write_text(f"storage:\n  db_path: {tmp_path / 'cli.db'}\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config))

        assert main(["route", "astrology", "Horoscope", "--campaign", "camp-1"]) == 2


class TestDashboard:
    @pytest.mark.asyncio
    async def test_renders(self, storage, queue):
        console = Console(record=True, width=160)
        dashboard = TerminalDashboard(console)
        orchestrator = Orchestrator(storage, queue, llm=FakeLLM(), settings=fast_settings())

        tree, _ = await orchestrator.create_task_tree("camp-1", "market_research", "Audience study")
        dashboard.print(dashboard.render_task_tree(tree))
        dashboard.print(dashboard.render_summary(await orchestrator.drain()))
        dashboard.print(dashboard.render_status(await orchestrator.status.snapshot()))
        await orchestrator.memory.flush()

        text = console.export_text()
        assert "Task tree: market_research" in text
        assert "ana-silva" in text
        assert "↳ Audience study" in text
        assert "Succeeded: 2" in text
        assert "Queue depth: 0" in text
