"""Execution environment details sent alongside every prompt."""

from __future__ import annotations

import os
import platform
from pathlib import Path


def environment_context(cwd: Path | str | None = None) -> str:
    directory = Path(cwd) if cwd else Path.cwd()
    shell = os.environ.get("SHELL", "bash")
    return (
        f"Current directory: {directory}\n"
        f"Shell: {shell}\n"
        f"OS: {platform.system() or 'unknown'}"
    )
