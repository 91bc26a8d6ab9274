"""Terminal Dashboard - task trees, drain results and queue status rendered with Rich"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ...core.models import JobStatus, TaskStatus, TaskTree
from ...runtime.executor import ExecutionSummary
from ...runtime.status import StatusSnapshot

TASK_STATUS_STYLES = {
    TaskStatus.PENDING: "yellow",
    TaskStatus.IN_PROGRESS: "cyan",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.CANCELLED: "dim",
}

JOB_STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.PROCESSING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.DEAD: "bold red",
}


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


class TerminalDashboard:
    """
    Rich-based rendering for the command line.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_task_tree(self, tree: TaskTree) -> Panel:
        """Coordinator task and its sub-tasks"""
        table = Table(show_header=True, header_style="bold magenta", expand=True)
        table.add_column("Level", width=5, justify="center")
        table.add_column("Agent", style="cyan", width=18)
        table.add_column("Title", width=40)
        table.add_column("Status", width=12)
        table.add_column("Task ID", style="dim", width=36)

        for task in tree.tasks:
            table.add_row(
                str(task.context.get("level", "")),
                task.agent_id,
                _truncate(("↳ " if task.is_subtask else "") + task.title, 40),
                Text(task.status.value, style=TASK_STATUS_STYLES.get(task.status, "white")),
                task.id,
            )

        category = tree.root.context.get("task_category", "")
        return Panel(table, title=f"Task tree: {category}", border_style="blue")

    def render_summary(self, summary: ExecutionSummary) -> Panel:
        """Counts and per-job outcomes of one drain"""
        header = Text()
        header.append(f"Processed: {summary.processed}", style="bold")
        header.append("  |  ", style="dim")
        header.append(f"Succeeded: {summary.succeeded}", style="green")
        header.append("  |  ", style="dim")
        header.append(f"Failed: {summary.failed}", style="red" if summary.failed else "dim")
        header.append("  |  ", style="dim")
        header.append(f"Dead: {summary.dead}", style="bold red" if summary.dead else "dim")
        header.append("  |  ", style="dim")
        header.append(f"Skipped: {summary.skipped}", style="dim")

        table = Table(show_header=True, header_style="bold magenta", expand=True, box=None)
        table.add_column("Job", style="dim", width=36)
        table.add_column("Outcome", width=10)
        table.add_column("Error", width=50)

        for outcome in summary.outcomes:
            if outcome.skipped:
                label = Text("skipped", style="dim")
            elif outcome.success:
                label = Text("ok", style="green")
            elif outcome.will_retry:
                label = Text("retry", style="yellow")
            else:
                label = Text("dead", style="bold red")
            table.add_row(outcome.job_id or "?", label, _truncate(outcome.error or "", 50))

        if not summary.outcomes:
            table.add_row("", "", Text("Queue empty", style="dim italic"))

        return Panel(Group(header, table), title="Drain", border_style="blue")

    def render_status(self, snap: StatusSnapshot) -> Panel:
        """Task/job counts, queue depth and the items needing attention"""
        counts = Table(show_header=True, header_style="bold magenta", box=None)
        counts.add_column("Tasks", width=14)
        counts.add_column("", justify="right", width=6)
        counts.add_column("Jobs", width=12)
        counts.add_column("", justify="right", width=6)

        task_rows = [(s, snap.task_counts.get(s.value, 0)) for s in TaskStatus]
        job_rows = [(s, snap.job_counts.get(s.value, 0)) for s in JobStatus]
        for i in range(max(len(task_rows), len(job_rows))):
            t_status, t_count = task_rows[i] if i < len(task_rows) else (None, "")
            j_status, j_count = job_rows[i] if i < len(job_rows) else (None, "")
            counts.add_row(
                Text(t_status.value, style=TASK_STATUS_STYLES[t_status]) if t_status else "",
                str(t_count),
                Text(j_status.value, style=JOB_STATUS_STYLES[j_status]) if j_status else "",
                str(j_count),
            )

        parts = [counts, Text(f"\nQueue depth: {snap.queue_depth}  |  "
                              f"Recent model cost: ${snap.total_cost_usd:.4f}", style="dim")]

        if snap.dead_jobs:
            dead = Table(title="Dead jobs", show_header=True, header_style="bold red", expand=True)
            dead.add_column("Job", style="dim", width=36)
            dead.add_column("Agent", style="cyan", width=18)
            dead.add_column("Attempts", justify="right", width=8)
            dead.add_column("Last error", width=40)
            for job in snap.dead_jobs[:10]:
                dead.add_row(job.id, job.agent_id, f"{job.attempts}/{job.max_attempts}",
                             _truncate(job.error_message or "", 40))
            parts.append(dead)

        return Panel(Group(*parts), title="packflow status", border_style="blue")

    def print(self, renderable) -> None:
        self.console.print(renderable)


def print_welcome(console: Console) -> None:
    """Print welcome message"""
    console.print()
    console.print(Panel.fit(
        "[bold cyan]packflow[/bold cyan]\n"
        "[dim]Multi-agent task orchestration for marketing operations[/dim]",
        border_style="blue",
    ))
    console.print()
