"""Shared state that survives supervisor restarts.

Two pieces live on disk under the worker's working directory:
- the worklog artifact the worker writes to (and appends the sentinel to)
- the supervisor's IterationState (iteration counter + resume token)

All reads and writes go through SharedStateStore.
"""

from pathlib import Path
from typing import Optional

from .completion import is_complete
from .models import IterationState, LoopConfig


class SharedStateStore:
    """Single accessor for the worklog artifact and the persisted iteration state."""

    def __init__(self, config: LoopConfig):
        self.config = config
        self.workdir = Path(config.workdir).resolve()
        self.artifact_path = self.workdir / config.worklog_file
        self.state_path = self.workdir / config.state_file

    def ensure_artifact(self) -> bool:
        """Create the worklog empty if missing. Never overwrites.

        Returns:
            True if the file was created
        """
        if self.artifact_path.exists():
            return False
        self.artifact_path.parent.mkdir(parents=True, exist_ok=True)
        self.artifact_path.touch()
        return True

    def read_artifact(self) -> str:
        if not self.artifact_path.exists():
            return ""
        return self.artifact_path.read_text(encoding="utf-8", errors="replace")

    def artifact_excerpt(self, max_lines: int = 100, max_chars: int = 1800) -> str:
        """First lines of the worklog, bounded for a webhook message."""
        lines = self.read_artifact().splitlines()[:max_lines]
        excerpt = "\n".join(lines)
        if len(excerpt) > max_chars:
            excerpt = excerpt[:max_chars] + "\n... (truncated)"
        return excerpt

    def is_complete(self) -> bool:
        return is_complete(self.artifact_path, self.config.sentinel)

    def save_state(self, state: IterationState) -> None:
        """Persist iteration state for a later --resume."""
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(state.model_dump_json(indent=2))

    def load_state(self) -> Optional[IterationState]:
        """Load persisted state; a missing or corrupt file counts as none."""
        if not self.state_path.exists():
            return None
        try:
            return IterationState.model_validate_json(self.state_path.read_text())
        except Exception:
            return None

    def clear_state(self) -> None:
        if self.state_path.exists():
            self.state_path.unlink()
