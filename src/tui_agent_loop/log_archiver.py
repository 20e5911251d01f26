"""Per-session interaction logs and their timestamped archives.

Layout inside the log directory:
    agent_interaction_<name>.log                              # Active log
    agent_interaction_<name>_<YYYYMMDD_HHMMSS>.log            # Clean stop
    agent_interaction_<name>_INTERRUPTED_<YYYYMMDD_HHMMSS>.log  # Unclean exit

Archives are produced by renaming the active log and are never written again.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .models import LogArchive


LOG_PREFIX = "agent_interaction_"
INTERRUPTED_TAG = "INTERRUPTED"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
LOCK_DIR = ".locks"


class LogArchiver:
    """Writes audit lines to active session logs and rotates them into archives."""

    def __init__(self, log_dir: Path, clock: Optional[Callable[[], datetime]] = None):
        self.log_dir = Path(log_dir)
        self._clock = clock or datetime.now

    def ensure_dir(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def active_log_path(self, name: str) -> Path:
        return self.log_dir / f"{LOG_PREFIX}{name}.log"

    def lock_path(self, name: str) -> Path:
        return self.log_dir / LOCK_DIR / f"{LOG_PREFIX}{name}.lock"

    def has_active_log(self, name: str) -> bool:
        return self.active_log_path(name).exists()

    def append(self, name: str, message: str) -> None:
        """Append a timestamped audit line to the session's active log."""
        self.ensure_dir()
        timestamp = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        with open(self.active_log_path(name), "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {message}\n")

    def archive(self, name: str, interrupted: bool = False) -> Optional[LogArchive]:
        """Rotate the active log into an archive.

        Args:
            name: Session name
            interrupted: Tag the archive as left behind by an unclean exit

        Returns:
            The created archive, or None if there was no active log
        """
        active = self.active_log_path(name)
        if not active.exists():
            return None

        created_at = self._clock()
        stamp = created_at.strftime(TIMESTAMP_FORMAT)
        tag = f"{INTERRUPTED_TAG}_" if interrupted else ""
        target = self._unique_path(f"{LOG_PREFIX}{name}_{tag}{stamp}")
        active.rename(target)

        return LogArchive(name=name, path=target, interrupted=interrupted, created_at=created_at)

    def _unique_path(self, stem: str) -> Path:
        # Same-second rotations must not overwrite an existing archive
        candidate = self.log_dir / f"{stem}.log"
        counter = 1
        while candidate.exists():
            candidate = self.log_dir / f"{stem}_{counter}.log"
            counter += 1
        return candidate

    def list_archives(self, name: str, interrupted_only: bool = False) -> list[Path]:
        """Archives for a session, newest first (by modification time)."""
        if not self.log_dir.exists():
            return []

        tag = f"{INTERRUPTED_TAG}_" if interrupted_only else f"(?:{INTERRUPTED_TAG}_)?"
        # Anchored so archives of "app_2" never count as archives of "app"
        pattern = re.compile(
            rf"{LOG_PREFIX}{re.escape(name)}_{tag}\d{{8}}_\d{{6}}(?:_\d+)?\.log"
        )

        archives = [
            p for p in self.log_dir.iterdir()
            if p.is_file() and pattern.fullmatch(p.name)
        ]
        return sorted(archives, key=lambda p: p.stat().st_mtime, reverse=True)

    def latest_interrupted(self, name: str) -> Optional[Path]:
        archives = self.list_archives(name, interrupted_only=True)
        return archives[0] if archives else None


def tail_lines(path: Path, lines: int = 20) -> list[str]:
    """Return the last `lines` lines of a text file."""
    content = Path(path).read_text(encoding="utf-8", errors="replace")
    all_lines = content.splitlines()
    return all_lines[-lines:] if lines > 0 else []
