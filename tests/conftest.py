"""Shared fixtures for the agent loop and terminal bridge tests."""

from pathlib import Path

import pytest

from tui_agent_loop.bridge.bridge import TerminalBridge
from tui_agent_loop.bridge.tmux import CursorPosition, TmuxSession
from tui_agent_loop.models import BridgeConfig, LoopConfig


class FakeTmux:
    """In-memory stand-in for TmuxClient."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}
        self.sent: list[tuple[str, list[str]]] = []

    def has_session(self, name: str) -> bool:
        return name in self.sessions

    def list_sessions(self) -> list[TmuxSession]:
        return [
            TmuxSession(name=name, width=s["width"], height=s["height"])
            for name, s in self.sessions.items()
        ]

    def new_session(self, name: str, command: str, width: int, height: int) -> None:
        self.sessions[name] = {
            "command": command,
            "width": width,
            "height": height,
            "screen": f"$ {command}\n",
            "cursor": CursorPosition(x=2, y=0),
        }

    def kill_session(self, name: str) -> None:
        del self.sessions[name]

    def send_keys(self, name: str, keys: list[str]) -> None:
        self.sent.append((name, list(keys)))

    def capture_pane(self, name: str, ansi: bool = False) -> str:
        screen = self.sessions[name]["screen"]
        if ansi:
            return f"\x1b[32m{screen}\x1b[0m"
        return screen

    def cursor_position(self, name: str) -> CursorPosition:
        return self.sessions[name]["cursor"]

    # Test helper: simulate the session dying without 'stop'
    def crash(self, name: str) -> None:
        del self.sessions[name]


@pytest.fixture
def fake_tmux() -> FakeTmux:
    return FakeTmux()


@pytest.fixture
def bridge_config(tmp_path: Path) -> BridgeConfig:
    return BridgeConfig(
        log_dir=tmp_path / "logs",
        screenshot_dir=tmp_path / "screenshots",
    )


@pytest.fixture
def terminal_bridge(bridge_config: BridgeConfig, fake_tmux: FakeTmux) -> TerminalBridge:
    return TerminalBridge(bridge_config, tmux=fake_tmux)


@pytest.fixture
def loop_config(tmp_path: Path) -> LoopConfig:
    return LoopConfig(workdir=tmp_path, cooldown_seconds=0)


@pytest.fixture(autouse=True)
def clean_agent_env(monkeypatch):
    """Keep the developer's environment out of config defaults."""
    for var in (
        "DISCORD_WEBHOOK", "AGENT_MODEL", "AGENT_WORKER", "AGENT_WORKDIR",
        "TMUX_BRIDGE_LOG_DIR", "TMUX_BRIDGE_SCREENSHOT_DIR",
    ):
        monkeypatch.delenv(var, raising=False)

