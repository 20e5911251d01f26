"""Session registry reconciled against tmux on every query.

tmux's session table plus the per-session log files are the only durable
state. The registry keeps an in-process map keyed by name but refreshes it
from tmux before answering, so "does this session exist" has one answer.
"""

import os
from pathlib import Path
from typing import IO, Optional

from ..log_archiver import LogArchiver
from ..models import SessionRecord, SessionStatus
from .tmux import TmuxClient

if os.name == "nt":
    import msvcrt

    def _acquire(handle: IO) -> None:
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)

    def _release(handle: IO) -> None:
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
else:
    import fcntl

    def _acquire(handle: IO) -> None:
        fcntl.flock(handle, fcntl.LOCK_EX)

    def _release(handle: IO) -> None:
        fcntl.flock(handle, fcntl.LOCK_UN)


class FileLock:
    """Exclusive lock on one session's lock file, held for one bridge command.

    Lock files are never unlinked; they live in a hidden subdirectory of the
    log directory, apart from the logs.
    """

    def __init__(self, lock_path: Path):
        self.lock_path = Path(lock_path)
        self._handle: Optional[IO] = None

    def __enter__(self) -> "FileLock":
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.lock_path, "a")
        _acquire(self._handle)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._handle is None:
            return
        try:
            _release(self._handle)
        finally:
            self._handle.close()
            self._handle = None


class SessionRegistry:
    """Authoritative view of named sessions.

    Status rules:
    - RUNNING: tmux has a live session with this name
    - INTERRUPTED: no live session, but an active log was left behind
    - STOPPED: neither
    """

    def __init__(self, tmux: TmuxClient, archiver: LogArchiver):
        self.tmux = tmux
        self.archiver = archiver
        self._records: dict[str, SessionRecord] = {}

    def refresh(self) -> dict[str, SessionRecord]:
        """Rebuild the running-session map from tmux."""
        records = {}
        for session in self.tmux.list_sessions():
            records[session.name] = SessionRecord(
                name=session.name,
                handle=session.name,
                width=session.width,
                height=session.height,
                log_path=self.archiver.active_log_path(session.name),
                status=SessionStatus.RUNNING,
            )
        self._records = records
        return records

    def get(self, name: str) -> SessionRecord:
        """Current record for a name, whatever its status."""
        if self.tmux.has_session(name):
            record = self.refresh().get(name)
            if record is not None:
                return record
            # Alive but raced out of the listing; still running
            return SessionRecord(
                name=name,
                handle=name,
                log_path=self.archiver.active_log_path(name),
                status=SessionStatus.RUNNING,
            )

        self._records.pop(name, None)
        status = (
            SessionStatus.INTERRUPTED if self.archiver.has_active_log(name)
            else SessionStatus.STOPPED
        )
        return SessionRecord(
            name=name,
            handle=name,
            log_path=self.archiver.active_log_path(name),
            status=status,
        )

    def is_running(self, name: str) -> bool:
        return self.get(name).status == SessionStatus.RUNNING

    def list_running(self) -> list[SessionRecord]:
        return sorted(self.refresh().values(), key=lambda r: r.name)

    def lock(self, name: str) -> FileLock:
        """Exclusive lock serializing structural operations on one name."""
        return FileLock(self.archiver.lock_path(name))
