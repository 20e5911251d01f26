"""Completion detection for the shared worklog artifact."""

from pathlib import Path

from .models import DEFAULT_SENTINEL


def is_complete(artifact_path: Path | str, sentinel: str = DEFAULT_SENTINEL) -> bool:
    """Return True if the literal sentinel appears anywhere in the artifact.

    Exact, case-sensitive substring match. A missing or unreadable artifact
    counts as not complete.
    """
    path = Path(artifact_path)
    if not path.is_file():
        return False
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False
    return sentinel in content


class CompletionDetector:
    """Checks one artifact for one sentinel. Safe to call any number of times."""

    def __init__(self, artifact_path: Path, sentinel: str = DEFAULT_SENTINEL):
        self.artifact_path = Path(artifact_path)
        self.sentinel = sentinel

    def is_complete(self) -> bool:
        return is_complete(self.artifact_path, self.sentinel)
