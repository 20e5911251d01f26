"""Exceptions raised by the terminal bridge and the supervisor.

Bridge errors carry the process exit code so the CLI can report a one-line cause
and exit without a traceback.
"""


class BridgeError(Exception):
    """Base class for failures of a single bridge command."""
    exit_code = 1


class UsageError(BridgeError):
    """A required argument (session name, command, keys) is missing."""


class SessionExistsError(BridgeError):
    """'start' was issued for a name that already has a live session."""

    def __init__(self, name: str):
        super().__init__(f"Session '{name}' already exists in tmux. Use 'stop' first.")
        self.name = name


class SessionNotFoundError(BridgeError):
    """The named session has no live tmux session."""

    def __init__(self, name: str):
        super().__init__(f"Session '{name}' does not exist.")
        self.name = name


class DependencyMissingError(BridgeError):
    """An external helper needed by the operation is not installed."""

    def __init__(self, dependency: str, hint: str = ""):
        message = f"'{dependency}' is not installed."
        if hint:
            message += f" {hint}"
        super().__init__(message)
        self.dependency = dependency


class SupervisorInterrupted(Exception):
    """The supervisor was signalled while an iteration was running."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
