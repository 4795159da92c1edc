"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

console = Console()

COUNT_COLUMNS = ("waiting", "active", "delayed", "completed", "failed")

HEALTH_STYLES = {
    "healthy": "green",
    "ready": "green",
    "degraded": "yellow",
    "not_ready": "yellow",
    "unhealthy": "red",
    "error": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def styled_status(status: str) -> str:
    color = HEALTH_STYLES.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def create_queue_stats_table(stats: dict[str, Any]) -> Table:
    """Create a table with one row of job counts per queue"""
    table = Table(title="Queues", box=box.ROUNDED)

    table.add_column("Queue", justify="left", style="cyan", no_wrap=True)
    table.add_column("Paused", justify="center")
    for column in COUNT_COLUMNS:
        table.add_column(column.capitalize(), justify="right")

    for name, queue_stats in stats.items():
        if "error" in queue_stats:
            table.add_row(
                name, "—", f"[red]{queue_stats['error']}[/red]", *[""] * (len(COUNT_COLUMNS) - 1)
            )
            continue

        counts = queue_stats.get("counts", {})
        table.add_row(
            name,
            "[yellow]yes[/yellow]" if queue_stats.get("paused") else "no",
            *[str(counts.get(column, 0)) for column in COUNT_COLUMNS],
        )

    return table


def create_jobs_table(queue_stats: dict[str, Any], limit: int = 5) -> Table:
    """Create a table of the sampled jobs of one queue"""
    table = Table(title=f"Jobs in {queue_stats.get('queue_name', '')}", box=box.ROUNDED)

    table.add_column("State", justify="center", style="bold")
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Priority", justify="right")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Error", justify="left", style="red")

    for state, jobs in queue_stats.get("jobs", {}).items():
        for job in jobs[:limit]:
            table.add_row(
                state,
                str(job.get("id", "")),
                job.get("job_type", ""),
                str(job.get("priority", 0)),
                f"{job.get('attempts_made', 0)}/{job.get('max_attempts', 0)}",
                job.get("last_error") or "—",
            )

    return table


def create_health_table(health: dict[str, Any]) -> Table:
    """Create a table with the readiness of every queue"""
    table = Table(title="Queue Health", box=box.ROUNDED)

    table.add_column("Queue", justify="left", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Paused", justify="center")
    table.add_column("Error", justify="left", style="red")

    for name, queue in health.get("queues", {}).items():
        paused = queue.get("paused")
        table.add_row(
            name,
            styled_status(queue.get("status", "unknown")),
            "—" if paused is None else ("yes" if paused else "no"),
            queue.get("error") or "",
        )

    return table
