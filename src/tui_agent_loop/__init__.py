"""TUI Agent Loop - supervise an autonomous coding worker and drive TUIs through tmux."""

__version__ = "0.1.0"
