"""Named terminal sessions for driving and observing a TUI.

Each operation re-checks tmux for the session, serializes work on one name
with a per-name file lock, and appends an audit line to that session's
active log. Failures raise BridgeError subclasses; nothing is printed here.
"""

import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from ..errors import (
    BridgeError, DependencyMissingError, SessionExistsError,
    SessionNotFoundError, UsageError,
)
from ..log_archiver import LogArchiver, TIMESTAMP_FORMAT, tail_lines
from ..models import BridgeConfig, DependencyStatus, LogArchive, SessionRecord, SessionStatus
from . import deps
from .registry import SessionRegistry
from .tmux import CursorPosition, TmuxClient


# Characters tmux rewrites in session names, or that would leave the log directory
INVALID_NAME_CHARS = (".", ":", "/", "\\")

# Symbolic key names accepted by 'send', mapped to tmux key names
KEY_ALIASES = {
    "esc": "Escape",
    "escape": "Escape",
    "enter": "Enter",
    "return": "Enter",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "tab": "Tab",
    "space": "Space",
    "backspace": "BSpace",
    "bspace": "BSpace",
    "delete": "DC",
    "home": "Home",
    "end": "End",
    "pageup": "PPage",
    "pagedown": "NPage",
}


def translate_key(key: str) -> str:
    """Map a symbolic key to its tmux name; anything else is sent literally.

    ``ctrl-x`` / ``Ctrl+x`` become ``C-x``; tmux-native names like ``C-c`` or
    ``F5`` pass through unchanged.
    """
    lowered = key.lower()
    if lowered in KEY_ALIASES:
        return KEY_ALIASES[lowered]
    for prefix in ("ctrl-", "ctrl+"):
        if lowered.startswith(prefix) and len(key) == len(prefix) + 1:
            return f"C-{key[-1].lower()}"
    return key


@dataclass
class StartResult:
    """Outcome of 'start'."""
    record: SessionRecord
    interrupted_archive: Optional[LogArchive] = None


@dataclass
class RecoveredLog:
    """Tail of the newest interrupted archive."""
    path: Path
    lines: list[str]


class TerminalBridge:
    """Operations on named tmux-backed sessions."""

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        tmux: Optional[TmuxClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or BridgeConfig()
        self.tmux = tmux or TmuxClient()
        self._clock = clock or datetime.now
        self.archiver = LogArchiver(self.config.log_dir, clock=self._clock)
        self.registry = SessionRegistry(self.tmux, self.archiver)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    @staticmethod
    def require_name(name: Optional[str], action: str) -> str:
        """Reject empty names and names tmux or the log layout would alter.

        tmux rewrites '.' and ':' in session names, and path separators would
        escape the log directory.
        """
        if not name or not name.strip():
            raise UsageError(f"session_name is mandatory for action '{action}'")
        bad = [c for c in INVALID_NAME_CHARS if c in name]
        if bad:
            raise UsageError(
                f"Invalid session name '{name}': must not contain "
                + " ".join(repr(c) for c in bad)
            )
        return name

    def _require_running(self, name: str) -> SessionRecord:
        record = self.registry.get(name)
        if record.status != SessionStatus.RUNNING:
            raise SessionNotFoundError(name)
        return record

    @contextmanager
    def _running_session(self, name: str) -> Iterator[SessionRecord]:
        """Hold the name's lock while the session is live.

        Unknown names fail before the lock file is created.
        """
        self._require_running(name)
        with self.registry.lock(name):
            yield self._require_running(name)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(
        self,
        name: str,
        command: Optional[str],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> StartResult:
        """Start ``command`` in a new detached session.

        A live session with the same name is an error and is left untouched.
        A stale active log from an unclean exit is archived as INTERRUPTED
        before the new log begins.
        """
        self.require_name(name, "start")
        if not command or not command.strip():
            raise UsageError("No command specified to run.")

        width = width or self.config.default_width
        height = height or self.config.default_height
        if width < 1 or height < 1:
            raise UsageError(f"Invalid session size {width}x{height}.")

        with self.registry.lock(name):
            if self.registry.is_running(name):
                raise SessionExistsError(name)

            interrupted = self.archiver.archive(name, interrupted=True)

            self.tmux.new_session(name, command, width, height)
            self.archiver.append(
                name, f"STARTED session '{name}' ({width}x{height}) with command: {command}"
            )
            record = self.registry.get(name)
            if record.width is None:
                record.width, record.height = width, height

        return StartResult(record=record, interrupted_archive=interrupted)

    def stop(self, name: str) -> LogArchive:
        """Kill the session and rotate its active log into a timestamped archive."""
        self.require_name(name, "stop")
        with self._running_session(name):
            self.tmux.kill_session(name)
            self.archiver.append(name, f"STOPPED session '{name}'")
            archive = self.archiver.archive(name)

        if archive is None:
            raise BridgeError(f"Active log for session '{name}' disappeared during stop.")
        return archive

    # -------------------------------------------------------------------------
    # Interaction
    # -------------------------------------------------------------------------

    def send(self, name: str, keys: list[str]) -> list[str]:
        """Send keys to the session. Returns the tmux key names sent."""
        self.require_name(name, "send")
        keys = [k for k in keys if k != ""]
        if not keys:
            raise UsageError("No keys specified.")

        translated = [translate_key(k) for k in keys]
        with self._running_session(name):
            self.tmux.send_keys(name, translated)
            self.archiver.append(name, f"SEND :: {' '.join(keys)}")
        return translated

    def capture(self, name: str, ansi: bool = False) -> str:
        """Current screen as plain text, or with color escapes when ``ansi``."""
        self.require_name(name, "capture-ansi" if ansi else "capture")
        with self._running_session(name):
            screen = self.tmux.capture_pane(name, ansi=ansi)
            self.archiver.append(name, "CAPTURED ANSI" if ansi else "CAPTURED")
        return screen

    def cursor(self, name: str) -> CursorPosition:
        self.require_name(name, "cursor")
        with self._running_session(name):
            position = self.tmux.cursor_position(name)
            self.archiver.append(name, "GOT CURSOR POSITION")
        return position

    def inspect(self, name: str) -> str:
        """Cursor position followed by the plain-text screen."""
        self.require_name(name, "inspect")
        with self._running_session(name):
            position = self.tmux.cursor_position(name)
            screen = self.tmux.capture_pane(name)
            self.archiver.append(name, "INSPECTED (CURSOR + SCREEN)")
        return f"CURSOR: {position}\nSCREEN:\n{screen}"

    def screenshot(self, name: str, filename: Optional[str] = None) -> Path:
        """Render the ANSI screen to an image with the configured renderer.

        Raises:
            SessionNotFoundError: no live session (checked first)
            DependencyMissingError: renderer not installed
        """
        self.require_name(name, "screenshot")
        with self._running_session(name):

            renderer = deps.find_executable(self.config.renderer)
            if renderer is None:
                raise DependencyMissingError(
                    self.config.renderer,
                    "Install it to take screenshots (see 'check-deps')."
                )

            stamp = self._clock().strftime(TIMESTAMP_FORMAT)
            filename = filename or f"screenshot_{name}_{stamp}.png"
            self.config.screenshot_dir.mkdir(parents=True, exist_ok=True)
            output_path = self.config.screenshot_dir / filename

            screen = self.tmux.capture_pane(name, ansi=True)
            result = subprocess.run(
                [renderer, "--font.family", self.config.font_family, "--output", str(output_path)],
                input=screen,
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                detail = result.stderr.strip() or f"exit code {result.returncode}"
                raise BridgeError(f"Screenshot rendering failed: {detail}")

            self.archiver.append(name, f"SCREENSHOT saved to {output_path}")
        return output_path

    # -------------------------------------------------------------------------
    # Read-only helpers
    # -------------------------------------------------------------------------

    def recover(self, name: str) -> Optional[RecoveredLog]:
        """Tail of the newest INTERRUPTED archive, or None if there is none."""
        self.require_name(name, "recover")
        latest = self.archiver.latest_interrupted(name)
        if latest is None:
            return None
        return RecoveredLog(path=latest, lines=tail_lines(latest, self.config.recover_lines))

    def list_sessions(self) -> list[SessionRecord]:
        return self.registry.list_running()

    def wait(self, seconds: float) -> None:
        if seconds < 0:
            raise UsageError("wait needs a non-negative number of seconds.")
        time.sleep(seconds)

    def check_deps(self) -> list[DependencyStatus]:
        return deps.check_all(self.config)
