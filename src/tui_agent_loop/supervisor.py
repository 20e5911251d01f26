"""Supervisor loop for a long-running autonomous worker.

This is the core engine that:
1. Ensures the shared worklog exists
2. Runs the worker once per iteration (mission prompt first, resume prompt after)
3. Checks the worklog for the completion sentinel after every iteration
4. Cools down and restarts the worker until the sentinel appears

A failed or crashed worker is not fatal: it simply did not write the sentinel,
so the loop retries the whole task from the shared state.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional

from rich.console import Console
from rich.panel import Panel

from .completion import CompletionDetector
from .crash_handler import CrashHandler
from .errors import SupervisorInterrupted
from .loop_log import LoopLog
from .models import IterationState, LifecycleEvent, LifecycleEventType, LoopConfig, WorkerResult
from .notifier import WebhookNotifier, lifecycle_event
from .state import SharedStateStore
from .workers import WorkerAdapter, create_worker


console = Console()

EXIT_SUCCESS = 0


class Supervisor:
    """Restarts the worker until the completion sentinel shows up.

    State machine: Init -> RunIteration -> CheckCompletion -> (Cooldown -> RunIteration | Done)
    """

    def __init__(
        self,
        config: Optional[LoopConfig] = None,
        worker: Optional[WorkerAdapter] = None,
        notifier: Optional[WebhookNotifier] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.config = config or LoopConfig.from_env()
        self.workdir = Path(self.config.workdir).resolve()

        # Core components
        self.store = SharedStateStore(self.config)
        self.detector = CompletionDetector(self.store.artifact_path, self.config.sentinel)
        self.loop_log = LoopLog(self.workdir / self.config.loop_log_file)
        self.notifier = notifier or WebhookNotifier(self.config.webhook_url)
        self.worker = worker or create_worker(self.config)
        self.crash_handler = CrashHandler(self.loop_log, self.notifier, self.config.worker_label)
        self._sleep = sleep or asyncio.sleep

        # State
        self.state: Optional[IterationState] = None
        self.iterations_run = 0

    def _load_prompt_template(self, name: str) -> str:
        """Load a prompt template from the prompts directory."""
        # First check workdir-local prompts
        local_prompt = self.workdir / ".agent_loop" / "prompts" / f"{name}.txt"
        if local_prompt.exists():
            return local_prompt.read_text(encoding="utf-8").strip()

        package_prompt = Path(__file__).parent / "prompts" / f"{name}.txt"
        if package_prompt.exists():
            return package_prompt.read_text(encoding="utf-8").strip()

        raise FileNotFoundError(f"Prompt template not found: {name}")

    def select_instruction(self, iteration: int) -> str:
        """Full mission on the first iteration, the generic resume prompt after."""
        if iteration == 1:
            return self._load_prompt_template("mission")
        return self._load_prompt_template("resume")

    def _initial_state(self) -> IterationState:
        if self.config.resume:
            previous = self.store.load_state()
            if previous is not None:
                # The persisted iteration did not finish; carry on with the next one
                previous.advance()
                self.loop_log.log(
                    f"Resuming from persisted state at iteration {previous.iteration}"
                    + (f" (token {previous.resume_token})" if previous.resume_token else "")
                )
                return previous
            self.loop_log.log("No persisted state found - starting fresh", style="yellow")

        self.store.clear_state()
        return IterationState()

    def _emit(self, event_type: LifecycleEventType, iteration: Optional[int] = None) -> LifecycleEvent:
        event = lifecycle_event(event_type, self.config.worker_label, iteration)
        self.notifier.notify(event)
        return event

    async def run_iteration(self, state: IterationState) -> WorkerResult:
        """Run the worker once for the current iteration."""
        self.loop_log.log(f"--- Starting Iteration {state.iteration} ---", style="bold")

        state.instruction = self.select_instruction(state.iteration)
        self.store.save_state(state)

        if state.resume_token:
            self.loop_log.log(f"Resuming worker session {state.resume_token}")
        self.loop_log.log(f"Running {self.config.worker_label}...")

        result = await self.crash_handler.guard(
            self.worker.invoke(state.instruction, state.resume_token)
        )
        self.loop_log.append_output(result.raw_output)

        if not result.succeeded:
            self.loop_log.log(
                f"Worker exited with status {result.exit_code} - treating as a finished iteration",
                style="yellow"
            )
        self.loop_log.log(f"Worker Response Message: {result.message}")
        self.loop_log.log(
            f"Worker Stats: Turns: {result.turn_count}, Time Taken: {result.duration_minutes}mins"
        )

        if result.resume_token:
            state.resume_token = result.resume_token
            self.store.save_state(state)

        return result

    async def _run_loop(self) -> int:
        console.print(Panel(
            f"[bold]Autonomous Agent Loop[/bold]\n"
            f"Worker: {self.config.worker_label}\n"
            f"Workdir: {self.workdir}",
            title="Agent Loop"
        ))

        if self.store.ensure_artifact():
            self.loop_log.log(f"Initialized empty {self.config.worklog_file}")

        state = self._initial_state()
        self.state = state

        self.loop_log.log(f"Starting autonomous loop with {self.config.worker_label}")
        self._emit(LifecycleEventType.STARTED)

        while True:
            await self.run_iteration(state)
            self.iterations_run += 1
            # A signal may land after the worker returned but before the next guard
            self.crash_handler.raise_if_cancelled()

            if self.detector.is_complete():
                self.loop_log.log(
                    f"Mission Accomplished signal detected in {self.config.worklog_file}.",
                    style="green"
                )
                self._emit(LifecycleEventType.MISSION_ACCOMPLISHED, state.iteration)
                if self.config.send_worklog_summary:
                    self.notifier.send_worklog(
                        self.store.artifact_excerpt(self.config.worklog_summary_lines)
                    )
                self.loop_log.log("Autonomous mission complete.", style="green")
                console.print(Panel(
                    f"[bold]Iterations run:[/bold] {self.iterations_run}\n"
                    f"[bold]Final iteration:[/bold] {state.iteration}",
                    title="Summary"
                ))
                return EXIT_SUCCESS

            self.loop_log.log(f"Iteration {state.iteration} ended. Cooling down before restart...")
            self._emit(LifecycleEventType.ITERATION_COMPLETE, state.iteration)
            await self.crash_handler.guard(self._sleep(self.config.cooldown_seconds))

            state.advance()
            self.store.save_state(state)

    async def run(self) -> int:
        """Main entry point - loop until the sentinel appears.

        Returns:
            Exit status 0 on completion. Signals and internal errors end the
            process through CrashHandler.emergency_exit() (SystemExit(1)).
        """
        self.crash_handler.install()
        try:
            return await self._run_loop()
        except SupervisorInterrupted as e:
            self.crash_handler.emergency_exit(e.reason)
        except Exception as e:
            self.crash_handler.emergency_exit(f"internal error: {e}")
        finally:
            self.crash_handler.uninstall()


async def run_supervisor(config: Optional[LoopConfig] = None) -> int:
    """Convenience function to run the supervisor."""
    supervisor = Supervisor(config)
    return await supervisor.run()
