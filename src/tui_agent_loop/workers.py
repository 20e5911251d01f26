"""Worker invocation adapters for the autonomous agent CLIs.

Architecture:
- WorkerAdapter: Abstract base class; runs one blocking invocation and returns
  a WorkerResult
- DroidWorker / ClaudeWorker / OpenCodeWorker: per-CLI command lines and
  resume handling
- parse_worker_output(): the only place that reads structured fields out of
  worker output
- create_worker(): Factory selecting the adapter from LoopConfig
"""

import asyncio
import codecs
import json
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional

from .models import LoopConfig, WorkerKind, WorkerResult


# Exit code reported when the worker executable cannot be started
EXIT_NOT_FOUND = 127

_READ_CHUNK_BYTES = 8192
_TERMINATE_GRACE_SECONDS = 5.0


def safe_print(text: str, **kwargs) -> None:
    """Print text handling Unicode encoding errors on Windows.

    Falls back to replacing unencodable characters with '?'.
    Always flushes to ensure output is visible immediately.
    """
    kwargs.setdefault('flush', True)
    try:
        print(text, **kwargs)
    except UnicodeEncodeError:
        safe_text = text.encode('ascii', errors='replace').decode('ascii')
        print(safe_text, **kwargs)


# =============================================================================
# Output Parsing
# =============================================================================

def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _find_json_object(raw_output: str) -> Optional[dict]:
    """Find the structured result object in worker output.

    Tries the whole output first, then individual lines from the end, so a
    JSON result printed after log noise is still found.
    """
    stripped = raw_output.strip()
    if not stripped:
        return None

    try:
        data = json.loads(stripped)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    for line in reversed(stripped.splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    return None


def parse_worker_output(raw_output: str, exit_code: int = 0) -> WorkerResult:
    """Build a WorkerResult from raw worker output.

    Reads ``result``, ``session_id``, ``num_turns`` and ``duration_ms`` when a
    JSON object is present. Missing or garbled fields fall back to defaults;
    this never raises.
    """
    result = WorkerResult(raw_output=raw_output, exit_code=exit_code)

    data = _find_json_object(raw_output)
    if data is None:
        return result

    message = data.get("result")
    if isinstance(message, str) and message.strip():
        result.message = message

    session_id = data.get("session_id")
    if isinstance(session_id, str) and session_id.strip():
        result.resume_token = session_id.strip()

    result.turn_count = _as_int(data.get("num_turns"))
    result.duration_ms = _as_int(data.get("duration_ms"))
    return result


# =============================================================================
# Base Adapter (Abstract)
# =============================================================================

class WorkerAdapter(ABC):
    """Abstract base class for worker invocations.

    Runs the worker as a subprocess inside the configured working directory,
    streams its combined stdout/stderr to the console and captures it.
    Subclasses provide the command line and may refine parsing.
    """

    kind: WorkerKind

    def __init__(
        self,
        config: LoopConfig,
        on_output: Optional[Callable[[str], None]] = None
    ):
        self.config = config
        self.workdir = Path(config.workdir).resolve()
        self.on_output = on_output or (lambda text: safe_print(text, end=""))

    @abstractmethod
    def build_command(self, instruction: str, resume_token: Optional[str] = None) -> list[str]:
        """Command line for one invocation."""

    def build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["AGENT_WORKDIR"] = str(self.workdir)
        return env

    def parse(self, raw_output: str, exit_code: int) -> WorkerResult:
        return parse_worker_output(raw_output, exit_code)

    async def invoke(self, instruction: str, resume_token: Optional[str] = None) -> WorkerResult:
        """Run the worker once and block until it exits.

        Args:
            instruction: Prompt for this iteration
            resume_token: Token from a previous invocation to continue from

        Returns:
            WorkerResult; failures are reported through exit_code, never raised.
            Cancellation terminates the subprocess and propagates.
        """
        command = self.build_command(instruction, resume_token)
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.workdir),
                env=self.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return WorkerResult(
                raw_output=str(e),
                message=f"Could not start worker '{command[0]}': {e}",
                exit_code=EXIT_NOT_FOUND,
            )

        chunks: list[str] = []
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await proc.stdout.read(_READ_CHUNK_BYTES)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    chunks.append(text)
                    self.on_output(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                chunks.append(tail)
                self.on_output(tail)
            exit_code = await proc.wait()
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        result = self.parse("".join(chunks), exit_code)
        if not result.duration_ms:
            result.duration_ms = int((time.monotonic() - started) * 1000)
        return result


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Stop a worker subprocess, escalating to kill after a grace period."""
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
        await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_SECONDS)
    except ProcessLookupError:
        return
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()


# =============================================================================
# Adapters
# =============================================================================

class DroidWorker(WorkerAdapter):
    """Factory droid CLI with JSON output; resumes with ``-s <session_id>``."""

    kind = WorkerKind.DROID

    def build_command(self, instruction: str, resume_token: Optional[str] = None) -> list[str]:
        command = ["droid", "exec", "--auto", self.config.droid_autonomy]
        if self.config.effective_model:
            command += ["--model", self.config.effective_model]
        if resume_token:
            command += ["-s", resume_token]
        command += ["-o", "json", instruction]
        return command


class ClaudeWorker(WorkerAdapter):
    """Claude CLI in print mode with JSON output; resumes with ``--resume``."""

    kind = WorkerKind.CLAUDE

    def build_command(self, instruction: str, resume_token: Optional[str] = None) -> list[str]:
        command = [
            "claude",
            "--print",
            "--output-format", "json",
            "--permission-mode", "dontAsk",
            "--tools", ",".join(self.config.claude_tools),
        ]
        if self.config.effective_model:
            command += ["--model", self.config.effective_model]
        if self.config.debug:
            command.append("--verbose")
        if resume_token:
            command += ["--resume", resume_token]
        command.append(instruction)
        return command

    def build_env(self) -> dict[str, str]:
        env = super().build_env()
        # Keep the agent's shell and git non-interactive
        env["SHELL"] = "/bin/sh"
        env["PS1"] = "$ "
        env["GIT_OPTIONAL_LOCKS"] = "0"
        env["GIT_TERMINAL_PROMPT"] = "0"
        if self.config.debug:
            env["ANTHROPIC_LOG"] = "debug"
        return env


class OpenCodeWorker(WorkerAdapter):
    """opencode CLI; plain-text output, continues its last session with ``--continue``.

    opencode prints no session id, so after a run that started the process
    this adapter hands back CONTINUE_TOKEN, which turns on ``--continue`` next time.
    """

    kind = WorkerKind.OPENCODE
    CONTINUE_TOKEN = "continue"

    def build_command(self, instruction: str, resume_token: Optional[str] = None) -> list[str]:
        command = ["opencode", "run", instruction]
        if self.config.effective_model:
            command += ["--model", self.config.effective_model]
        if resume_token:
            command.append("--continue")
        return command

    def parse(self, raw_output: str, exit_code: int) -> WorkerResult:
        result = super().parse(raw_output, exit_code)
        if not result.resume_token:
            result.resume_token = self.CONTINUE_TOKEN
        return result


_ADAPTERS: dict[WorkerKind, type[WorkerAdapter]] = {
    WorkerKind.DROID: DroidWorker,
    WorkerKind.CLAUDE: ClaudeWorker,
    WorkerKind.OPENCODE: OpenCodeWorker,
}


def create_worker(
    config: LoopConfig,
    on_output: Optional[Callable[[str], None]] = None
) -> WorkerAdapter:
    """Factory function to create the adapter for config.worker."""
    return _ADAPTERS[config.worker](config, on_output=on_output)

