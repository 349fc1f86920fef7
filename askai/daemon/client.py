"""Client side of the daemon socket, plus detached spawning."""

from __future__ import annotations

import os
import socket
import subprocess
import sys
from pathlib import Path

from loguru import logger
from pydantic import BaseModel
from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_fixed

from askai.config_loader import AskAIConfig
from askai.daemon.protocol import (
    DaemonRequest,
    GenerateResponse,
    StatusResponse,
    StopResponse,
    decode_response,
    encode,
    read_line,
)
from askai.errors import DaemonAlreadyRunning, DaemonNotRunning, IPCTimeout


class DaemonClient:
    """One connection per call. Every call is bounded by `timeout`."""

    def __init__(self, socket_path: Path, timeout: float = 30.0):
        self.socket_path = Path(socket_path)
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AskAIConfig) -> "DaemonClient":
        return cls(config.socket_path, timeout=config.daemon.client_timeout)

    def generate(
        self,
        prompt: str,
        provider: str | None = None,
        use_cache: bool = True,
        cwd: str | None = None,
    ) -> GenerateResponse:
        request = DaemonRequest(kind="generate", prompt=prompt, provider=provider, use_cache=use_cache, cwd=cwd)
        return self._roundtrip(request, GenerateResponse)

    def status(self) -> StatusResponse:
        return self._roundtrip(DaemonRequest(kind="status"), StatusResponse)

    def stop(self) -> StopResponse:
        return self._roundtrip(DaemonRequest(kind="stop"), StopResponse)

    def is_running(self) -> bool:
        try:
            self.status()
        except (DaemonNotRunning, IPCTimeout):
            return False
        return True

    def _roundtrip(self, request: DaemonRequest, expected: type[BaseModel]):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            try:
                sock.connect(str(self.socket_path))
            except socket.timeout as e:
                raise IPCTimeout(f"Timed out connecting to daemon at {self.socket_path}") from e
            except OSError as e:
                raise DaemonNotRunning(f"No daemon listening on {self.socket_path}") from e

            try:
                sock.sendall(encode(request))
                line = read_line(sock)
            except socket.timeout as e:
                raise IPCTimeout(f"Daemon did not answer within {self.timeout:.1f}s") from e
            except OSError as e:
                raise DaemonNotRunning(f"Daemon connection lost: {e}") from e
        finally:
            sock.close()
        return decode_response(line, expected)


def spawn_daemon(config: AskAIConfig) -> int:
    """
    Launch `python -m askai daemon run` detached and wait until it answers.

    Returns:
        int: The child's pid.

    Raises:
        DaemonAlreadyRunning: A daemon already answers on the socket.
        DaemonNotRunning: The child exited or never became ready.
    """
    client = DaemonClient(config.socket_path, timeout=1.0)
    if client.is_running():
        raise DaemonAlreadyRunning(f"A daemon is already listening on {config.socket_path}")

    config.home.mkdir(parents=True, exist_ok=True)
    env = dict(os.environ, ASKAI_HOME=str(config.home))
    proc = subprocess.Popen(
        [sys.executable, "-m", "askai", "daemon", "run"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        env=env,
        start_new_session=True,
    )
    logger.debug(f"[DAEMON] Spawned pid {proc.pid}")

    def _ready() -> bool:
        if proc.poll() is not None:
            return True
        return client.is_running()

    try:
        Retrying(
            stop=stop_after_delay(config.daemon.startup_timeout),
            wait=wait_fixed(0.1),
            retry=retry_if_result(lambda ready: not ready),
        )(_ready)
    except RetryError as e:
        proc.terminate()
        raise DaemonNotRunning(
            f"Daemon did not become ready within {config.daemon.startup_timeout:.0f}s"
        ) from e

    if proc.poll() is not None:
        raise DaemonNotRunning(
            f"Daemon exited during startup (status {proc.returncode}); see {config.daemon_log_path}"
        )
    return proc.pid
