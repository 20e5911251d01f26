"""CLI for the terminal session bridge (``tmux-bridge``, also ``agent-loop bridge``)."""

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..errors import BridgeError, UsageError
from ..models import BridgeConfig
from .bridge import TerminalBridge
from .tmux import TmuxClient

console = Console()

# Windows-compatible symbols
if sys.platform == "win32":
    SYM_OK = "[OK]"
    SYM_FAIL = "[X]"
else:
    SYM_OK = "✓"
    SYM_FAIL = "✗"

USAGE = """\
Usage: tmux-bridge COMMAND <session_name> [args]

Commands:
  start <session> <cmd> [width] [height]  Start a TUI, archiving any interrupted log
  send <session> <keys>...                Send keys to a session
  capture <session>                       Capture the plain-text screen
  capture-ansi <session>                  Capture the screen with ANSI colors
  cursor <session>                        Print the X,Y cursor position
  inspect <session>                       Print cursor and plain screen
  recover <session>                       Last 20 lines of the newest INTERRUPTED log
  screenshot <session> [filename]         Render the screen to PNG using freeze
  stop <session>                          Stop a session and rotate its log
  list                                    List active sessions
  wait [seconds]                          Sleep for the given time (default 1)
  check-deps                              Verify tmux, freeze and font availability"""


def _get_bridge(ctx: click.Context) -> TerminalBridge:
    return ctx.obj["bridge"]


def _require_name(name: Optional[str], action: str) -> str:
    return TerminalBridge.require_name(name, action)


def _usage_exit(message: str) -> NoReturn:
    console.print(f"[red]Error: {escape(message)}[/red]", soft_wrap=True)
    click.echo(USAGE)
    sys.exit(1)


@contextmanager
def _reporting_errors():
    """Turn BridgeError into a one-line red message and its exit code."""
    try:
        yield
    except UsageError as e:
        _usage_exit(str(e))
    except BridgeError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]", soft_wrap=True)
        sys.exit(e.exit_code)


class BridgeGroup(click.Group):
    """Group whose argument errors exit 1 with the bridge usage text.

    click reports bad arguments with exit code 2; every bridge usage error,
    including unknown commands and malformed numbers, exits 1.
    """

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            _usage_exit(e.format_message())

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            _usage_exit(e.format_message())


@click.group(name="bridge", cls=BridgeGroup, invoke_without_command=True)
@click.option('--log-dir', type=click.Path(file_okay=False, path_type=Path),
              envvar='TMUX_BRIDGE_LOG_DIR', default='logs', show_default=True,
              help='Directory for session interaction logs')
@click.option('--screenshot-dir', type=click.Path(file_okay=False, path_type=Path),
              envvar='TMUX_BRIDGE_SCREENSHOT_DIR', default='screenshots', show_default=True,
              help='Directory for rendered screenshots')
@click.pass_context
def bridge(ctx: click.Context, log_dir: Path, screenshot_dir: Path):
    """Drive and observe TUI programs in named tmux sessions."""
    if ctx.invoked_subcommand is None:
        raise click.UsageError("No command specified.")
    ctx.ensure_object(dict)
    config = BridgeConfig(log_dir=log_dir, screenshot_dir=screenshot_dir)
    tmux = ctx.obj.get("tmux") or TmuxClient()
    ctx.obj["bridge"] = TerminalBridge(config, tmux=tmux)


@bridge.command()
@click.argument('name', required=False)
@click.argument('command', required=False)
@click.argument('width', type=int, required=False)
@click.argument('height', type=int, required=False)
@click.pass_context
def start(ctx: click.Context, name: Optional[str], command: Optional[str],
          width: Optional[int], height: Optional[int]):
    """Start COMMAND in a new session NAME (default size 100x30)."""
    with _reporting_errors():
        result = _get_bridge(ctx).start(_require_name(name, "start"), command, width, height)

    if result.interrupted_archive is not None:
        console.print(
            f"[yellow]Warning: Previous session did not exit cleanly. "
            f"Log archived to {escape(str(result.interrupted_archive.path))}[/yellow]",
            soft_wrap=True
        )
    record = result.record
    console.print(
        f"[green]Started session '{escape(name)}' at {record.width}x{record.height} "
        f"running: {escape(command)}[/green]",
        soft_wrap=True
    )


@bridge.command()
@click.argument('name', required=False)
@click.argument('keys', nargs=-1)
@click.pass_context
def send(ctx: click.Context, name: Optional[str], keys: tuple[str, ...]):
    """Send KEYS to session NAME (Enter, Esc, Up, C-c, or literal text)."""
    with _reporting_errors():
        _get_bridge(ctx).send(_require_name(name, "send"), list(keys))


@bridge.command()
@click.argument('name', required=False)
@click.pass_context
def capture(ctx: click.Context, name: Optional[str]):
    """Print the plain-text screen of session NAME."""
    with _reporting_errors():
        screen = _get_bridge(ctx).capture(_require_name(name, "capture"))
    click.echo(screen, nl=False)


@bridge.command(name="capture-ansi")
@click.argument('name', required=False)
@click.pass_context
def capture_ansi(ctx: click.Context, name: Optional[str]):
    """Print the screen of session NAME with ANSI color escapes."""
    with _reporting_errors():
        screen = _get_bridge(ctx).capture(_require_name(name, "capture-ansi"), ansi=True)
    click.echo(screen, nl=False)


@bridge.command()
@click.argument('name', required=False)
@click.pass_context
def cursor(ctx: click.Context, name: Optional[str]):
    """Print the cursor position of session NAME as X,Y."""
    with _reporting_errors():
        position = _get_bridge(ctx).cursor(_require_name(name, "cursor"))
    click.echo(str(position))


@bridge.command()
@click.argument('name', required=False)
@click.pass_context
def inspect(ctx: click.Context, name: Optional[str]):
    """Print cursor position and plain screen of session NAME."""
    with _reporting_errors():
        report = _get_bridge(ctx).inspect(_require_name(name, "inspect"))
    click.echo(report, nl=False)


@bridge.command()
@click.argument('name', required=False)
@click.argument('filename', required=False)
@click.pass_context
def screenshot(ctx: click.Context, name: Optional[str], filename: Optional[str]):
    """Render the screen of session NAME to a PNG."""
    with _reporting_errors():
        path = _get_bridge(ctx).screenshot(_require_name(name, "screenshot"), filename)
    console.print(f"Screenshot saved to {escape(str(path))}", soft_wrap=True)


@bridge.command()
@click.argument('name', required=False)
@click.pass_context
def recover(ctx: click.Context, name: Optional[str]):
    """Show the tail of the newest INTERRUPTED log of session NAME."""
    with _reporting_errors():
        recovered = _get_bridge(ctx).recover(_require_name(name, "recover"))

    if recovered is None:
        console.print(f"No interrupted logs found for session '{escape(name)}'.", soft_wrap=True)
        return

    console.print(
        f"[bold]--- LAST {len(recovered.lines)} LINES OF {escape(str(recovered.path))} ---[/bold]",
        soft_wrap=True
    )
    for line in recovered.lines:
        click.echo(line)


@bridge.command()
@click.argument('name', required=False)
@click.pass_context
def stop(ctx: click.Context, name: Optional[str]):
    """Stop session NAME and rotate its log."""
    with _reporting_errors():
        archive = _get_bridge(ctx).stop(_require_name(name, "stop"))
    console.print(f"Stopped session '{escape(name)}'")
    console.print(f"[dim]Log archived to {escape(str(archive.path))}[/dim]", soft_wrap=True)


@bridge.command(name="list")
@click.pass_context
def list_cmd(ctx: click.Context):
    """List active sessions."""
    with _reporting_errors():
        records = _get_bridge(ctx).list_sessions()

    if not records:
        console.print("No active sessions.")
        return

    table = Table(title="Active Sessions")
    table.add_column("Name", style="cyan")
    table.add_column("Size")
    table.add_column("Log")
    for record in records:
        size = f"{record.width}x{record.height}" if record.width and record.height else "-"
        table.add_row(record.name, size, str(record.log_path))
    console.print(table)


@bridge.command()
@click.argument('seconds', type=float, default=1.0, required=False)
@click.pass_context
def wait(ctx: click.Context, seconds: float):
    """Sleep for SECONDS (default 1, fractions allowed)."""
    with _reporting_errors():
        _get_bridge(ctx).wait(seconds)


@bridge.command(name="check-deps")
@click.pass_context
def check_deps(ctx: click.Context):
    """Verify tmux, freeze and the screenshot font are available."""
    console.print("Verifying environment...")
    for status in _get_bridge(ctx).check_deps():
        if status.available:
            console.print(f"  [green]{SYM_OK}[/green] {escape(status.name)}: {escape(status.detail)}")
        else:
            console.print(f"  [red]{SYM_FAIL}[/red] {escape(status.name)}: MISSING ({escape(status.detail)})")


def main():
    """Entry point for ``tmux-bridge``."""
    bridge(prog_name="tmux-bridge")


if __name__ == "__main__":
    main()
