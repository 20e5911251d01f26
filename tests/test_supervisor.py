"""Tests for the Supervisor loop."""

import asyncio
from typing import Optional
from unittest.mock import MagicMock

import pytest

from tui_agent_loop.models import IterationState, LifecycleEventType, LoopConfig, WorkerResult
from tui_agent_loop.state import SharedStateStore
from tui_agent_loop.supervisor import Supervisor


class ScriptedWorker:
    """Worker double that replays scripted results and records each call."""

    def __init__(self, results: list[WorkerResult], finish_on: Optional[int] = None):
        self.results = results
        self.finish_on = finish_on
        self.calls: list[tuple[str, Optional[str]]] = []
        self.artifact_path = None

    async def invoke(self, instruction: str, resume_token: Optional[str] = None) -> WorkerResult:
        self.calls.append((instruction, resume_token))
        if self.finish_on is not None and len(self.calls) == self.finish_on:
            with open(self.artifact_path, "a", encoding="utf-8") as f:
                f.write("All tasks done.\nMISSION_ACCOMPLISHED\n")
        index = min(len(self.calls), len(self.results)) - 1
        return self.results[index] if self.results else WorkerResult()


def _events(notifier: MagicMock, event_type: LifecycleEventType) -> list:
    return [
        call.args[0] for call in notifier.notify.call_args_list
        if call.args[0].type == event_type
    ]


def _supervisor(config: LoopConfig, worker: ScriptedWorker, notifier: MagicMock, sleeps: list):
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    supervisor = Supervisor(config, worker=worker, notifier=notifier, sleep=fake_sleep)
    worker.artifact_path = supervisor.store.artifact_path
    return supervisor


class TestSupervisorLoop:
    """Tests for the iterate-until-sentinel loop."""

    @pytest.mark.asyncio
    async def test_runs_until_sentinel(self, loop_config):
        """Test that three non-finishing iterations are followed by a final one."""
        worker = ScriptedWorker([WorkerResult()], finish_on=4)
        notifier = MagicMock()
        sleeps: list = []
        supervisor = _supervisor(loop_config, worker, notifier, sleeps)

        exit_code = await supervisor.run()

        assert exit_code == 0
        assert len(worker.calls) == 4
        assert supervisor.iterations_run == 4
        assert len(sleeps) == 3
        assert len(_events(notifier, LifecycleEventType.STARTED)) == 1
        assert len(_events(notifier, LifecycleEventType.ITERATION_COMPLETE)) == 3
        assert len(_events(notifier, LifecycleEventType.MISSION_ACCOMPLISHED)) == 1
        assert _events(notifier, LifecycleEventType.INTERRUPTED) == []

    @pytest.mark.asyncio
    async def test_mission_prompt_first_then_resume(self, loop_config):
        worker = ScriptedWorker([WorkerResult()], finish_on=3)
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        mission = supervisor._load_prompt_template("mission")
        resume = supervisor._load_prompt_template("resume")
        assert mission != resume
        assert [c[0] for c in worker.calls] == [mission, resume, resume]

    @pytest.mark.asyncio
    async def test_creates_empty_worklog(self, loop_config, tmp_path):
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        assert (tmp_path / "agent_worklog.md").exists()

    @pytest.mark.asyncio
    async def test_existing_worklog_is_not_overwritten(self, loop_config, tmp_path):
        worklog = tmp_path / "agent_worklog.md"
        worklog.write_text("# Previous notes\n")
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        assert worklog.read_text().startswith("# Previous notes\n")

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_not_fatal(self, loop_config):
        """Test that a failed worker run just leads to the next iteration."""
        worker = ScriptedWorker(
            [WorkerResult(exit_code=1, raw_output="boom"), WorkerResult()],
            finish_on=2,
        )
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        exit_code = await supervisor.run()

        assert exit_code == 0
        assert len(worker.calls) == 2
        log_text = supervisor.loop_log.log_file.read_text()
        assert "Worker exited with status 1" in log_text
        assert "boom" in log_text

    @pytest.mark.asyncio
    async def test_resume_token_is_threaded(self, loop_config):
        worker = ScriptedWorker(
            [WorkerResult(resume_token="sess-1"), WorkerResult(resume_token="sess-2"), WorkerResult()],
            finish_on=3,
        )
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        assert [c[1] for c in worker.calls] == [None, "sess-1", "sess-2"]

    @pytest.mark.asyncio
    async def test_iteration_logged_and_persisted(self, loop_config, tmp_path):
        worker = ScriptedWorker([WorkerResult(message="did things", turn_count=7)], finish_on=2)
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        log_text = (tmp_path / "logs" / "autonomous_loop.log").read_text()
        assert "--- Starting Iteration 1 ---" in log_text
        assert "--- Starting Iteration 2 ---" in log_text
        assert "Worker Response Message: did things" in log_text
        assert "Turns: 7" in log_text
        assert "--- WORKER RESPONSE START ---" in log_text

        state = SharedStateStore(loop_config).load_state()
        assert state.iteration == 2

    @pytest.mark.asyncio
    async def test_sends_worklog_summary_on_completion(self, loop_config):
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        notifier = MagicMock()
        supervisor = _supervisor(loop_config, worker, notifier, [])

        await supervisor.run()

        notifier.send_worklog.assert_called_once()
        assert "MISSION_ACCOMPLISHED" in notifier.send_worklog.call_args.args[0]

    @pytest.mark.asyncio
    async def test_worklog_summary_can_be_disabled(self, tmp_path):
        config = LoopConfig(workdir=tmp_path, cooldown_seconds=0, send_worklog_summary=False)
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        notifier = MagicMock()
        supervisor = _supervisor(config, worker, notifier, [])

        await supervisor.run()

        notifier.send_worklog.assert_not_called()


class TestResume:
    """Tests for continuing from persisted state."""

    @pytest.mark.asyncio
    async def test_resume_continues_after_persisted_iteration(self, tmp_path):
        config = LoopConfig(workdir=tmp_path, cooldown_seconds=0, resume=True)
        SharedStateStore(config).save_state(IterationState(iteration=4, resume_token="abc"))
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        supervisor = _supervisor(config, worker, MagicMock(), [])

        await supervisor.run()

        resume = supervisor._load_prompt_template("resume")
        assert worker.calls == [(resume, "abc")]
        assert supervisor.state.iteration == 5

    @pytest.mark.asyncio
    async def test_fresh_run_clears_persisted_state(self, loop_config):
        SharedStateStore(loop_config).save_state(IterationState(iteration=9, resume_token="old"))
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        assert worker.calls[0][1] is None
        assert supervisor.state.iteration == 1

    @pytest.mark.asyncio
    async def test_workdir_prompt_override(self, loop_config, tmp_path):
        prompts = tmp_path / ".agent_loop" / "prompts"
        prompts.mkdir(parents=True)
        (prompts / "mission.txt").write_text("Custom mission\n")
        worker = ScriptedWorker([WorkerResult()], finish_on=1)
        supervisor = _supervisor(loop_config, worker, MagicMock(), [])

        await supervisor.run()

        assert worker.calls[0][0] == "Custom mission"


class TestEmergencyExit:
    """Tests for the interrupt and internal-error paths."""

    @pytest.mark.asyncio
    async def test_internal_error_exits_with_status_one(self, loop_config):
        class BrokenWorker(ScriptedWorker):
            async def invoke(self, instruction, resume_token=None):
                raise RuntimeError("adapter bug")

        notifier = MagicMock()
        supervisor = _supervisor(loop_config, BrokenWorker([]), notifier, [])

        with pytest.raises(SystemExit) as exc_info:
            await supervisor.run()

        assert exc_info.value.code == 1
        assert len(_events(notifier, LifecycleEventType.INTERRUPTED)) == 1
        assert _events(notifier, LifecycleEventType.MISSION_ACCOMPLISHED) == []
        log_text = supervisor.loop_log.log_file.read_text()
        assert "Emergency exit: Script interrupted (internal error: adapter bug)." in log_text

    @pytest.mark.asyncio
    async def test_signal_during_worker_call_aborts(self, loop_config):
        """Test that a trapped signal cancels the running call and never resumes it."""
        supervisor = None

        class HangingWorker(ScriptedWorker):
            async def invoke(self, instruction, resume_token=None):
                self.calls.append((instruction, resume_token))
                supervisor.crash_handler.trigger("received SIGINT")
                await asyncio.sleep(30)
                return WorkerResult()

        worker = HangingWorker([])
        notifier = MagicMock()
        supervisor = _supervisor(loop_config, worker, notifier, [])

        with pytest.raises(SystemExit) as exc_info:
            await supervisor.run()

        assert exc_info.value.code == 1
        assert len(worker.calls) == 1
        assert len(_events(notifier, LifecycleEventType.INTERRUPTED)) == 1
        assert "received SIGINT" in supervisor.loop_log.log_file.read_text()

    @pytest.mark.asyncio
    async def test_signal_during_cooldown_aborts(self, loop_config):
        supervisor = None
        worker = ScriptedWorker([WorkerResult()])
        notifier = MagicMock()

        async def interrupted_sleep(seconds: float) -> None:
            supervisor.crash_handler.trigger("received SIGTERM")
            await asyncio.sleep(30)

        supervisor = Supervisor(loop_config, worker=worker, notifier=notifier, sleep=interrupted_sleep)
        worker.artifact_path = supervisor.store.artifact_path

        with pytest.raises(SystemExit):
            await supervisor.run()

        assert len(worker.calls) == 1
        assert len(_events(notifier, LifecycleEventType.ITERATION_COMPLETE)) == 1
        assert len(_events(notifier, LifecycleEventType.INTERRUPTED)) == 1

    @pytest.mark.asyncio
    async def test_signal_after_worker_returns_aborts(self, loop_config):
        """Test that a signal landing once the worker is done still wins over completion."""
        worker = ScriptedWorker([WorkerResult(message="done")], finish_on=1)
        notifier = MagicMock()
        supervisor = _supervisor(loop_config, worker, notifier, [])
        append_output = supervisor.loop_log.append_output

        def append_then_signal(text):
            append_output(text)
            supervisor.crash_handler.trigger("received SIGINT")

        supervisor.loop_log.append_output = append_then_signal

        with pytest.raises(SystemExit) as exc_info:
            await supervisor.run()

        assert exc_info.value.code == 1
        assert len(worker.calls) == 1
        assert _events(notifier, LifecycleEventType.MISSION_ACCOMPLISHED) == []
        assert _events(notifier, LifecycleEventType.ITERATION_COMPLETE) == []
        assert len(_events(notifier, LifecycleEventType.INTERRUPTED)) == 1
