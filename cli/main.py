"""verifyflow CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

# Import command modules
from .commands import config, queues, worker
from .utils.formatting import create_health_table, print_error, print_info, styled_status
from .utils.config_manager import config as config_manager
from .client.endpoints import VerifyflowClient

console = Console()

# Create main Typer app
app = typer.Typer(
    name="verifyflow",
    help="🛡️ verifyflow - KYC/AML job orchestration CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(queues.app, name="queues")
app.add_typer(config.app, name="config")
app.command("worker")(worker.run)


@app.command()
def status():
    """📊 Check API connectivity and queue health"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with VerifyflowClient(base_url) as client:
            health = client.health_check()

    except Exception as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the verifyflow API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]verifyflow config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    overall = health.get("status", "unknown")
    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Status: {styled_status(overall)}\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green" if overall == "healthy" else "yellow"
    ))
    console.print(create_health_table(health))

    if overall == "unhealthy":
        raise typer.Exit(2)


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"🛡️ [bold cyan]verifyflow CLI[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]\n"
        f"• Type: [yellow]Command Line Interface[/yellow]",
        title="Version Info",
        border_style="cyan"
    ))


@app.callback()
def main():
    """
    🛡️ verifyflow CLI - job orchestration for verification workflows

    Run workers, inspect queue statistics, pause and resume queues, and purge
    old jobs.
    """


if __name__ == "__main__":
    app()
