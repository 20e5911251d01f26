"""The supervisor's own append-only log.

Plain text, one timestamped line per supervisor event, with raw worker output
copied in verbatim between markers. Every line is also echoed to the console.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape


console = Console()


class LoopLog:
    """Tees supervisor messages to the console and the loop log file."""

    OUTPUT_START = "--- WORKER RESPONSE START ---"
    OUTPUT_END = "--- WORKER RESPONSE END ---"

    def __init__(self, log_file: Path, out: Optional[Console] = None):
        self.log_file = Path(log_file)
        self.console = out or console

    def _write(self, text: str) -> None:
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(text)

    def log(self, message: str, style: Optional[str] = None) -> None:
        """Write `[timestamp] message` to the file and the console."""
        line = f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {message}"
        self._write(line + "\n")
        if style:
            self.console.print(f"[{style}]{escape(line)}[/{style}]")
        else:
            self.console.print(escape(line))

    def append_output(self, output: str) -> None:
        """Copy raw worker output into the file only; it was already streamed."""
        if output and not output.endswith("\n"):
            output += "\n"
        self._write(f"{self.OUTPUT_START}\n{output}{self.OUTPUT_END}\n")

