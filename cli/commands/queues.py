"""Queue Commands - statistics, pause/resume and cleanup"""

import typer
from rich.console import Console

from ..client.endpoints import VerifyflowClient
from ..utils.config_manager import config
from ..utils.formatting import (
    create_jobs_table,
    create_queue_stats_table,
    print_error,
    print_info,
    print_success,
)

console = Console()
app = typer.Typer(name="queues", help="Queue monitoring and control")


@app.command("stats")
def stats(
    queue_name: str | None = typer.Argument(
        None, help="Queue name (optional - shows all queues if omitted)"
    ),
):
    """📊 Show job counts per queue"""
    try:
        with VerifyflowClient() as client:
            if queue_name:
                queue_stats = client.get_queue_stats(queue_name)
                console.print(create_queue_stats_table({queue_name: queue_stats}))
                limit = int(config.get("display.jobs_per_state", 5))
                console.print(create_jobs_table(queue_stats, limit=limit))
            else:
                all_stats = client.list_queue_stats()
                if not all_stats:
                    print_info("No queues found")
                    return
                console.print(create_queue_stats_table(all_stats))

    except Exception as e:
        print_error(f"Failed to get queue stats: {e}")
        raise typer.Exit(1) from None


@app.command("pause")
def pause(queue_name: str = typer.Argument(..., help="Queue to pause")):
    """⏸️ Stop workers from claiming jobs on a queue"""
    try:
        with VerifyflowClient() as client:
            client.pause_queue(queue_name)
        print_success(f"Queue {queue_name} paused")

    except Exception as e:
        print_error(f"Failed to pause queue: {e}")
        raise typer.Exit(1) from None


@app.command("resume")
def resume(queue_name: str = typer.Argument(..., help="Queue to resume")):
    """▶️ Let workers claim jobs on a paused queue again"""
    try:
        with VerifyflowClient() as client:
            client.resume_queue(queue_name)
        print_success(f"Queue {queue_name} resumed")

    except Exception as e:
        print_error(f"Failed to resume queue: {e}")
        raise typer.Exit(1) from None


@app.command("cleanup")
def cleanup(
    grace_s: int | None = typer.Option(
        None, "--grace", "-g", help="Purge jobs finished more than this many seconds ago"
    ),
):
    """🧹 Purge old completed and failed jobs"""
    try:
        with VerifyflowClient() as client:
            results = client.cleanup(grace_s)

        for name, counts in results.items():
            if "error" in counts:
                print_error(f"{name}: {counts['error']}")
            else:
                console.print(
                    f"[cyan]{name}[/cyan]: removed [green]{counts.get('completed', 0)}[/green] "
                    f"completed, [red]{counts.get('failed', 0)}[/red] failed"
                )
        print_success("Cleanup completed")

    except Exception as e:
        print_error(f"Cleanup failed: {e}")
        raise typer.Exit(1) from None
