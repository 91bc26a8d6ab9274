"""Main entry point for packflow"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from rich.console import Console

from .adapters.cli.dashboard import TerminalDashboard, print_welcome
from .adapters.llm_litellm import LiteLLMAdapter
from .adapters.marketing_sqlite import SQLiteKnowledgeBase, SQLiteMarketingData
from .adapters.queue_sqlite import SQLiteQueueAdapter
from .adapters.storage_sqlite import SQLiteStorageAdapter
from .config import Settings, load_config
from .core.errors import InvalidCategory, PackflowError
from .core.models import Priority
from .log import setup_logging
from .runtime.loop import Orchestrator
from .runtime.router import TaskCategory

console = Console()
logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, with_llm: bool = True) -> Orchestrator:
    """Wire the SQLite adapters (and the LLM when jobs will be processed)"""
    db_path = settings.storage.db_path
    llm = None
    if with_llm:
        llm = LiteLLMAdapter(
            default_model=settings.llm.model,
            fallback_model=settings.llm.fallback_model,
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
        )

    return Orchestrator(
        storage=SQLiteStorageAdapter(db_path),
        queue=SQLiteQueueAdapter(db_path),
        llm=llm,
        knowledge=SQLiteKnowledgeBase(db_path),
        marketing=SQLiteMarketingData(db_path),
        settings=settings,
    )


async def cmd_route(args: argparse.Namespace, settings: Settings) -> None:
    orchestrator = build_orchestrator(settings, with_llm=False)
    context = json.loads(args.context) if args.context else None
    tree, jobs = await orchestrator.create_task_tree(
        campaign_id=args.campaign,
        task_category=args.category,
        title=args.title,
        description=args.description,
        priority=Priority(args.priority),
        assigned_by=args.assigned_by,
        context=context,
    )
    dashboard = TerminalDashboard(console)
    dashboard.print(dashboard.render_task_tree(tree))
    console.print(f"[green]{len(jobs)} job(s) queued[/green]")


async def cmd_drain(args: argparse.Namespace, settings: Settings) -> None:
    orchestrator = build_orchestrator(settings)
    summary = await orchestrator.drain(batch_size=args.batch_size,
                                       visibility_timeout=args.visibility_timeout)
    await orchestrator.memory.flush()
    dashboard = TerminalDashboard(console)
    dashboard.print(dashboard.render_summary(summary))


async def cmd_run(args: argparse.Namespace, settings: Settings) -> None:
    orchestrator = build_orchestrator(settings)
    console.print(f"[cyan]Draining {settings.queue.name} every "
                  f"{args.interval or settings.queue.drain_interval}s (Ctrl+C to stop)[/cyan]")
    drains = await orchestrator.run(interval=args.interval, max_drains=args.max_drains)
    console.print(f"[green]{drains} drain(s) done[/green]")


async def cmd_status(args: argparse.Namespace, settings: Settings) -> None:
    orchestrator = build_orchestrator(settings, with_llm=False)
    snap = await orchestrator.status.snapshot(campaign_id=args.campaign)
    dashboard = TerminalDashboard(console)
    dashboard.print(dashboard.render_status(snap))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="packflow", description="Multi-agent task orchestration")
    parser.add_argument("--config", help="Settings file (default: $PACKFLOW_CONFIG or config/settings.yaml)")
    parser.add_argument("--log-level", help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    route = sub.add_parser("route", help="Create and queue a task tree")
    route.add_argument("category", help=f"One of: {', '.join(c.value for c in TaskCategory)}")
    route.add_argument("title")
    route.add_argument("--campaign", required=True, help="Campaign id")
    route.add_argument("--description", default="")
    route.add_argument("--priority", default=Priority.MEDIUM.value, choices=[p.value for p in Priority])
    route.add_argument("--assigned-by", default=None)
    route.add_argument("--context", default=None, help="Extra task context as a JSON object")
    route.set_defaults(handler=cmd_route)

    drain = sub.add_parser("drain", help="Process one batch of queued jobs")
    drain.add_argument("--batch-size", type=int, default=None)
    drain.add_argument("--visibility-timeout", type=float, default=None)
    drain.set_defaults(handler=cmd_drain)

    run = sub.add_parser("run", help="Drain the queue on a timer")
    run.add_argument("--interval", type=float, default=None, help="Seconds between drains")
    run.add_argument("--max-drains", type=int, default=None)
    run.set_defaults(handler=cmd_run)

    status = sub.add_parser("status", help="Show task, job and queue status")
    status.add_argument("--campaign", default=None)
    status.set_defaults(handler=cmd_status)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    settings = load_config(args.config)
    setup_logging(args.log_level or settings.log_level)

    print_welcome(console)

    try:
        asyncio.run(args.handler(args, settings))
    except KeyboardInterrupt:
        console.print("\n[yellow]Goodbye![/yellow]")
    except InvalidCategory as e:
        console.print(f"[red]{e}[/red]")
        return 2
    except (PackflowError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
