"""Data models for the agent loop supervisor and the terminal bridge.

Uses Pydantic for validation. State is persisted as JSON so a restarted
supervisor can pick up where the previous one stopped.
"""

import os
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_SENTINEL = "MISSION_ACCOMPLISHED"

# Webhook values that mean "not configured"
WEBHOOK_PLACEHOLDERS = ("YOUR_WEBHOOK_HERE", "YOUR_DISCORD_WEBHOOK_URL_HERE")


class WorkerKind(str, Enum):
    """Which autonomous agent CLI the supervisor drives."""
    DROID = "droid"
    CLAUDE = "claude"
    OPENCODE = "opencode"


DEFAULT_MODELS = {
    WorkerKind.DROID: "custom:glm-4.7",
    WorkerKind.OPENCODE: "opencode/minimax-m2.1-free",
}


class SessionStatus(str, Enum):
    """Lifecycle status of a named terminal session."""
    RUNNING = "running"
    STOPPED = "stopped"
    INTERRUPTED = "interrupted"  # Active log left behind without a live session


class LifecycleEventType(str, Enum):
    """Supervisor lifecycle events forwarded to the notifier."""
    STARTED = "started"
    ITERATION_COMPLETE = "iteration_complete"
    INTERRUPTED = "interrupted"
    MISSION_ACCOMPLISHED = "mission_accomplished"


class IterationState(BaseModel):
    """State carried from one iteration to the next.

    Owned by the supervisor and only mutated between iterations.
    """
    iteration: int = Field(default=1, ge=1, description="Monotonic iteration counter")
    resume_token: Optional[str] = Field(
        default=None,
        description="Opaque id of a prior worker invocation to continue from"
    )
    instruction: str = Field(default="", description="Instruction sent in this iteration")
    updated_at: datetime = Field(default_factory=datetime.now)

    def advance(self, resume_token: Optional[str] = None) -> None:
        """Move to the next iteration, keeping the token unless a new one arrived."""
        self.iteration += 1
        if resume_token:
            self.resume_token = resume_token
        self.updated_at = datetime.now()


class WorkerResult(BaseModel):
    """Structured result of one worker invocation.

    Every field has a default so a malformed response still yields a usable result.
    """
    raw_output: str = ""
    message: str = "No message returned."
    resume_token: Optional[str] = None
    turn_count: int = 0
    duration_ms: int = 0
    exit_code: int = 0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def duration_minutes(self) -> int:
        return self.duration_ms // 1000 // 60


class LifecycleEvent(BaseModel):
    """An ephemeral lifecycle notification. Never persisted."""
    type: LifecycleEventType
    message: str
    worker_label: str
    iteration: Optional[int] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class SessionRecord(BaseModel):
    """A named terminal session as seen by the bridge."""
    name: str
    handle: str = Field(..., description="tmux target for the session")
    width: Optional[int] = None
    height: Optional[int] = None
    log_path: Path
    status: SessionStatus


class LogArchive(BaseModel):
    """An immutable, timestamped copy of a session's interaction log."""
    name: str
    path: Path
    interrupted: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class DependencyStatus(BaseModel):
    """Availability of one external helper the bridge relies on."""
    name: str
    available: bool
    detail: str = ""


class BridgeConfig(BaseModel):
    """Configuration for the terminal session bridge."""
    log_dir: Path = Field(default=Path("logs"))
    screenshot_dir: Path = Field(default=Path("screenshots"))
    default_width: int = Field(default=100, ge=1)
    default_height: int = Field(default=30, ge=1)
    font_family: str = Field(
        default="BerkeleyMonoVariable Nerd Font",
        description="Font passed to the screenshot renderer and checked by check-deps"
    )
    renderer: str = Field(default="freeze", description="ANSI-to-image renderer executable")
    recover_lines: int = Field(default=20, description="Lines shown by 'recover'")


class LoopConfig(BaseModel):
    """Configuration for the supervisor loop."""
    worker: WorkerKind = Field(default=WorkerKind.DROID)
    model: Optional[str] = Field(
        default=None,
        description="Model identifier passed to the worker (None = worker default)"
    )
    webhook_url: str = Field(
        default="",
        description="Webhook endpoint; empty or placeholder disables notifications"
    )
    workdir: Path = Field(
        default=Path("."),
        description="Confinement path handed to the worker unmodified"
    )

    # Paths, relative to workdir
    worklog_file: str = Field(default="agent_worklog.md")
    loop_log_file: str = Field(default="logs/autonomous_loop.log")
    state_file: str = Field(default=".agent_loop/state.json")

    sentinel: str = Field(default=DEFAULT_SENTINEL)
    cooldown_seconds: float = Field(
        default=5.0, ge=0,
        description="Fixed delay between iterations"
    )

    # Worker options
    droid_autonomy: str = Field(default="medium", description="Value for droid --auto")
    claude_tools: list[str] = Field(
        default_factory=lambda: ["Bash", "Read", "Write", "Edit", "Glob", "Grep"]
    )
    debug: bool = Field(default=False, description="Ask the worker for debug output")

    # Completion summary
    send_worklog_summary: bool = Field(default=True)
    worklog_summary_lines: int = Field(default=100)

    resume: bool = Field(
        default=False,
        description="Continue from the persisted iteration state of a previous run"
    )

    @classmethod
    def from_env(cls, **overrides) -> "LoopConfig":
        """Build config from DISCORD_WEBHOOK, AGENT_MODEL, AGENT_WORKER and AGENT_WORKDIR."""
        values: dict = {}
        if os.environ.get("DISCORD_WEBHOOK"):
            values["webhook_url"] = os.environ["DISCORD_WEBHOOK"]
        if os.environ.get("AGENT_MODEL"):
            values["model"] = os.environ["AGENT_MODEL"]
        if os.environ.get("AGENT_WORKER"):
            values["worker"] = WorkerKind(os.environ["AGENT_WORKER"])
        if os.environ.get("AGENT_WORKDIR"):
            values["workdir"] = Path(os.environ["AGENT_WORKDIR"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def effective_model(self) -> Optional[str]:
        """Model to pass to the worker; Claude uses its own default when unset."""
        return self.model or DEFAULT_MODELS.get(self.worker)

    @property
    def worker_label(self) -> str:
        """Identifying worker/model label used in notifications."""
        model = self.effective_model
        return f"{self.worker.value} ({model})" if model else self.worker.value

