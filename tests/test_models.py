"""Tests for configuration and data models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from tui_agent_loop.models import (
    BridgeConfig, IterationState, LoopConfig, WorkerKind, WorkerResult,
)


class TestLoopConfig:
    """Tests for LoopConfig defaults and environment loading."""

    def test_defaults(self):
        config = LoopConfig()
        assert config.worker == WorkerKind.DROID
        assert config.effective_model == "custom:glm-4.7"
        assert config.worker_label == "droid (custom:glm-4.7)"
        assert config.worklog_file == "agent_worklog.md"
        assert config.sentinel == "MISSION_ACCOMPLISHED"

    def test_claude_has_no_default_model(self):
        config = LoopConfig(worker=WorkerKind.CLAUDE)
        assert config.effective_model is None
        assert config.worker_label == "claude"

    def test_from_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("DISCORD_WEBHOOK", "https://example.com/hook")
        monkeypatch.setenv("AGENT_MODEL", "glm-5")
        monkeypatch.setenv("AGENT_WORKER", "opencode")
        monkeypatch.setenv("AGENT_WORKDIR", str(tmp_path))

        config = LoopConfig.from_env()

        assert config.webhook_url == "https://example.com/hook"
        assert config.worker == WorkerKind.OPENCODE
        assert config.worker_label == "opencode (glm-5)"
        assert config.workdir == tmp_path

    def test_overrides_beat_environment_and_none_is_ignored(self, monkeypatch):
        monkeypatch.setenv("AGENT_MODEL", "from-env")

        config = LoopConfig.from_env(model="from-flag", webhook_url=None)

        assert config.model == "from-flag"
        assert config.webhook_url == ""

    def test_negative_cooldown_rejected(self):
        with pytest.raises(ValidationError):
            LoopConfig(cooldown_seconds=-1)


class TestModels:

    def test_iteration_must_be_positive(self):
        with pytest.raises(ValidationError):
            IterationState(iteration=0)

    def test_worker_result_defaults(self):
        result = WorkerResult()
        assert result.message == "No message returned."
        assert result.duration_minutes == 0
        assert result.succeeded

    def test_bridge_config_defaults(self):
        config = BridgeConfig()
        assert (config.default_width, config.default_height) == (100, 30)
        assert config.log_dir == Path("logs")
        assert config.renderer == "freeze"
