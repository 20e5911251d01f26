"""Utilities for finding the external helpers the bridge depends on.

Checks the terminal multiplexer (tmux), the ANSI screenshot renderer (freeze)
and the font the renderer is asked to use. Each check is independent.
"""

import shutil
import subprocess
import sys
from typing import Optional

from ..models import BridgeConfig, DependencyStatus


def find_executable(name: str) -> Optional[str]:
    """Path to an executable on PATH, or None."""
    return shutil.which(name)


def check_executable(name: str) -> DependencyStatus:
    path = find_executable(name)
    if path:
        return DependencyStatus(name=name, available=True, detail=path)
    return DependencyStatus(name=name, available=False, detail="not found on PATH")


def _font_listed(command: list[str], font_family: str) -> bool:
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=60)
    except (OSError, subprocess.TimeoutExpired):
        return False
    return font_family.lower() in result.stdout.lower()


def check_font(font_family: str) -> DependencyStatus:
    """Look the font up with fc-list, falling back to system_profiler on macOS."""
    if find_executable("fc-list") and _font_listed(["fc-list", ":", "family"], font_family):
        return DependencyStatus(name=font_family, available=True, detail="found via fc-list")

    if sys.platform == "darwin" and _font_listed(
        ["system_profiler", "SPFontsDataType"], font_family
    ):
        return DependencyStatus(name=font_family, available=True, detail="found via system_profiler")

    return DependencyStatus(name=font_family, available=False, detail="not detected")


def check_all(config: BridgeConfig) -> list[DependencyStatus]:
    """Run every dependency check; one failing never stops the others."""
    return [
        check_executable("tmux"),
        check_executable(config.renderer),
        check_font(config.font_family),
    ]
