"""CLI interface for the autonomous agent loop."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .bridge.cli import bridge
from .models import LoopConfig, WorkerKind
from .state import SharedStateStore
from .supervisor import Supervisor

console = Console()


@click.group()
@click.version_option(package_name="tui-agent-loop")
def main():
    """TUI Agent Loop - restart an autonomous worker until its mission is accomplished."""
    pass


@main.command()
@click.option('--worker', type=click.Choice([w.value for w in WorkerKind]),
              help='Worker backend (default: $AGENT_WORKER or droid)')
@click.option('--model', help='Model passed to the worker (default: $AGENT_MODEL or the worker default)')
@click.option('--webhook', help='Discord webhook URL (default: $DISCORD_WEBHOOK)')
@click.option('--workdir', type=click.Path(file_okay=False, path_type=Path),
              help='Directory the worker is confined to (default: $AGENT_WORKDIR or .)')
@click.option('--cooldown', type=float, help='Seconds to wait between iterations (default 5)')
@click.option('--resume', is_flag=True, help='Continue from the persisted iteration state')
@click.option('--debug', is_flag=True, help='Ask the worker for verbose output')
@click.option('--no-worklog-summary', is_flag=True,
              help='Do not post the worklog excerpt when the mission is accomplished')
def run(
    worker: Optional[str],
    model: Optional[str],
    webhook: Optional[str],
    workdir: Optional[Path],
    cooldown: Optional[float],
    resume: bool,
    debug: bool,
    no_worklog_summary: bool
):
    """Run the worker in a loop until the worklog contains MISSION_ACCOMPLISHED.

    \b
    Examples:
        agent-loop run
        agent-loop run --worker claude --workdir ./project
        agent-loop run --worker opencode --cooldown 10 --resume
    """
    config = LoopConfig.from_env(
        worker=WorkerKind(worker) if worker else None,
        model=model,
        webhook_url=webhook,
        workdir=workdir,
        cooldown_seconds=cooldown,
        resume=resume,
        debug=debug,
        send_worklog_summary=not no_worklog_summary,
    )

    console.print(f"[bold]Worker:[/bold] {escape(config.worker_label)}")
    console.print(f"[bold]Workdir:[/bold] {escape(str(Path(config.workdir).resolve()))}")

    supervisor = Supervisor(config)
    exit_code = asyncio.run(supervisor.run())
    sys.exit(exit_code)


@main.command()
@click.option('--workdir', type=click.Path(file_okay=False, path_type=Path),
              help='Worker directory (default: $AGENT_WORKDIR or .)')
def status(workdir: Optional[Path]):
    """Show the persisted iteration state and whether the mission is accomplished."""
    config = LoopConfig.from_env(workdir=workdir)
    store = SharedStateStore(config)
    state = store.load_state()

    table = Table(title="Agent Loop Status")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Workdir", str(store.workdir))
    table.add_row("Worklog", str(store.artifact_path) if store.artifact_path.exists() else "(missing)")
    if state is None:
        table.add_row("Iteration", "(no persisted state)")
    else:
        table.add_row("Iteration", str(state.iteration))
        table.add_row("Resume token", state.resume_token or "-")
        table.add_row("Updated", state.updated_at.strftime("%Y-%m-%d %H:%M:%S"))
    table.add_row(
        "Mission accomplished",
        "[green]yes[/green]" if store.is_complete() else "[yellow]no[/yellow]"
    )
    console.print(table)


@main.command()
@click.option('--workdir', type=click.Path(file_okay=False, path_type=Path),
              help='Worker directory (default: $AGENT_WORKDIR or .)')
@click.option('--lines', '-n', default=40, show_default=True, help='Number of lines to show')
def worklog(workdir: Optional[Path], lines: int):
    """Show the tail of the shared worklog."""
    config = LoopConfig.from_env(workdir=workdir)
    store = SharedStateStore(config)

    if not store.artifact_path.exists():
        console.print(f"[yellow]No worklog at {escape(str(store.artifact_path))}[/yellow]", soft_wrap=True)
        return

    content = store.read_artifact().splitlines()
    for line in content[-lines:] if lines > 0 else []:
        click.echo(line)


main.add_command(bridge)


if __name__ == "__main__":
    main()
