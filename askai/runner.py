"""Shell execution of approved commands."""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

TIMEOUT_EXIT_STATUS = 124


@dataclass
class ExecutionResult:
    command: str
    exit_status: int
    duration: float
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_status == 0


def run_command(
    command: str,
    cwd: Path | None = None,
    shell: str = "/bin/bash",
    timeout: float | None = None,
    capture: bool = True,
) -> ExecutionResult:
    """
    Run `command` through `<shell> -c`.

    With capture=False the child inherits the terminal (interactive use);
    with capture=True output is collected for batch summaries.
    """
    start = time.monotonic()
    logger.debug(f"[RUNNER] {cwd or '.'} $ {command}")
    try:
        result = subprocess.run(
            [shell, "-c", command],
            cwd=str(cwd) if cwd else None,
            capture_output=capture,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        return ExecutionResult(
            command=command,
            exit_status=TIMEOUT_EXIT_STATUS,
            duration=time.monotonic() - start,
            stdout=_text(e.stdout),
            stderr=_text(e.stderr),
            error=f"timed out after {timeout:.0f}s",
        )
    except OSError as e:
        return ExecutionResult(
            command=command,
            exit_status=127,
            duration=time.monotonic() - start,
            error=f"could not start {shell}: {e}",
        )

    duration = time.monotonic() - start
    error = None
    if result.returncode != 0:
        detail = (result.stderr or "").strip().splitlines()
        error = detail[-1] if detail else f"exit status {result.returncode}"
    return ExecutionResult(
        command=command,
        exit_status=result.returncode,
        duration=duration,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        error=error,
    )


def _text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
