"""tmux operations for the terminal bridge.

Thin wrapper over the tmux CLI: every call re-queries tmux, nothing is cached.
"""

import subprocess
from dataclasses import dataclass
from typing import Optional

from ..errors import BridgeError, DependencyMissingError


@dataclass
class TmuxSession:
    """A live session as reported by ``tmux list-sessions``."""
    name: str
    width: Optional[int]
    height: Optional[int]


@dataclass
class CursorPosition:
    x: int
    y: int

    def __str__(self) -> str:
        return f"{self.x},{self.y}"


class TmuxError(BridgeError):
    """A tmux command failed unexpectedly."""


_LIST_FORMAT = "#{session_name}\t#{session_width}\t#{session_height}"


def _to_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


class TmuxClient:
    """Runs tmux commands for session management and screen capture."""

    def __init__(self, executable: str = "tmux"):
        self.executable = executable

    def _run(
        self,
        *args: str,
        check: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a tmux command."""
        try:
            result = subprocess.run(
                [self.executable, *args],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            raise DependencyMissingError(self.executable, "Install tmux to manage sessions.")
        if check and result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise TmuxError(f"tmux {args[0]} failed: {detail}")
        return result

    @staticmethod
    def _target(name: str) -> str:
        # '=' forces an exact session-name match instead of prefix matching
        return f"={name}"

    def has_session(self, name: str) -> bool:
        result = self._run("has-session", "-t", self._target(name), check=False)
        return result.returncode == 0

    def list_sessions(self) -> list[TmuxSession]:
        """All live sessions; an absent tmux server means no sessions."""
        result = self._run("list-sessions", "-F", _LIST_FORMAT, check=False)
        if result.returncode != 0:
            return []

        sessions = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            parts = line.split("\t")
            while len(parts) < 3:
                parts.append("")
            name, width, height = parts[:3]
            sessions.append(TmuxSession(
                name=name,
                width=_to_int(width),
                height=_to_int(height),
            ))
        return sessions

    def new_session(self, name: str, command: str, width: int, height: int) -> None:
        self._run(
            "new-session", "-d",
            "-s", name,
            "-x", str(width),
            "-y", str(height),
            command,
        )

    def kill_session(self, name: str) -> None:
        self._run("kill-session", "-t", self._target(name))

    def send_keys(self, name: str, keys: list[str]) -> None:
        self._run("send-keys", "-t", self._pane(name), *keys)

    def capture_pane(self, name: str, ansi: bool = False) -> str:
        """Current screen contents, optionally with escape sequences kept."""
        args = ["capture-pane", "-p"]
        if ansi:
            args.append("-e")
        args += ["-t", self._pane(name)]
        return self._run(*args).stdout

    def cursor_position(self, name: str) -> CursorPosition:
        result = self._run(
            "display-message", "-p", "-t", self._pane(name), "#{cursor_x},#{cursor_y}"
        )
        x, _, y = result.stdout.strip().partition(",")
        return CursorPosition(x=_to_int(x) or 0, y=_to_int(y) or 0)

    @classmethod
    def _pane(cls, name: str) -> str:
        # Pane-level commands need a session target resolved to its active pane
        return f"{cls._target(name)}:"
