"""Terminal session bridge: named tmux sessions for driving and observing TUIs."""

from .bridge import KEY_ALIASES, TerminalBridge, translate_key
from .registry import SessionRegistry
from .tmux import CursorPosition, TmuxClient

__all__ = [
    "KEY_ALIASES",
    "TerminalBridge",
    "translate_key",
    "SessionRegistry",
    "CursorPosition",
    "TmuxClient",
]
