"""
ASKAI Daemon Server

Resident process that keeps providers loaded and a warm memory cache.

  accept thread ──▶ reader pool (read_timeout per request line)
                         ├─status/stop──▶ answered by the reader
                         └─generate────▶ worker pool (max_workers) ──▶ pipeline ──▶ reply

The socket and pid file are removed on every exit path: a `stop`
request, SIGTERM/SIGINT, and interpreter exit.
"""

from __future__ import annotations

import atexit
import concurrent.futures
import os
import signal
import socket
import threading
from enum import Enum
from pathlib import Path

from loguru import logger

from askai.config_loader import AskAIConfig
from askai.daemon.protocol import (
    DaemonRequest,
    ErrorResponse,
    GenerateResponse,
    StatusResponse,
    StopResponse,
    decode_request,
    encode,
    read_line,
)
from askai.daemon.session import DaemonSession
from askai.errors import AskAIError, DaemonAlreadyRunning, ProtocolError
from askai.event_bus import EventBus, bus as default_bus
from askai.storage import ReadWriteLock

ACCEPT_POLL_SECONDS = 0.2


class DaemonState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def endpoint_is_live(socket_path: Path, timeout: float = 1.0) -> bool:
    """True when something accepts connections on `socket_path`."""
    if not socket_path.exists():
        return False
    probe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    probe.settimeout(timeout)
    try:
        probe.connect(str(socket_path))
        return True
    except OSError:
        return False
    finally:
        probe.close()


class DaemonServer:
    def __init__(
        self,
        config: AskAIConfig,
        session: DaemonSession | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.bus = bus or default_bus
        self.session = session or DaemonSession(config, bus=self.bus)
        self.socket_path = config.socket_path
        self.pid_path = config.pid_path

        self._state = DaemonState.STOPPED
        self._state_lock = ReadWriteLock()
        self._stop_event = threading.Event()
        self._listener: socket.socket | None = None
        self._readers: concurrent.futures.ThreadPoolExecutor | None = None
        self._pool: concurrent.futures.ThreadPoolExecutor | None = None
        self._owns_endpoint = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> DaemonState:
        with self._state_lock.read():
            return self._state

    def _set_state(self, state: DaemonState) -> None:
        with self._state_lock.write():
            self._state = state
        logger.info(f"[DAEMON] State → {state.value}")
        self.bus.emit("daemon.state", "daemon", {"state": state.value, "pid": os.getpid()})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Bind the endpoint, warm the session and become Running.

        Raises:
            DaemonAlreadyRunning: Another daemon answers on the socket.
        """
        if self.state is not DaemonState.STOPPED:
            raise DaemonAlreadyRunning("This daemon instance is already started")

        if endpoint_is_live(self.socket_path):
            raise DaemonAlreadyRunning(f"A daemon is already listening on {self.socket_path}")

        self._set_state(DaemonState.STARTING)
        try:
            if self.socket_path.exists():
                logger.warning(f"[DAEMON] Removing stale socket {self.socket_path}")
                self.socket_path.unlink()
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)

            listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            listener.bind(str(self.socket_path))
            listener.listen(self.config.daemon.max_workers * 2)
            listener.settimeout(ACCEPT_POLL_SECONDS)
            self._listener = listener
            self._owns_endpoint = True
            os.chmod(self.socket_path, 0o600)

            self.session.warm()
            self._readers = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.config.daemon.max_workers,
                thread_name_prefix="askai-reader",
            )
            self._pool = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.config.daemon.max_workers,
                thread_name_prefix="askai-worker",
            )
            self.pid_path.write_text(str(os.getpid()), encoding="utf-8")
        except BaseException:
            self.cleanup()
            self._set_state(DaemonState.STOPPED)
            raise

        self._stop_event.clear()
        self._set_state(DaemonState.RUNNING)
        logger.info(f"[DAEMON] Listening on {self.socket_path} (pid {os.getpid()})")

    def serve_forever(self) -> None:
        """Accept connections until a stop is requested, then drain and clean up."""
        try:
            while not self._stop_event.is_set():
                try:
                    conn, _ = self._listener.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._stop_event.is_set():
                        break
                    logger.error(f"[DAEMON] Accept failed: {e}")
                    break
                self._dispatch(conn)
        finally:
            self._shutdown()

    def request_stop(self) -> None:
        """Ask the accept loop to exit. Safe from signal handlers and other threads."""
        self._stop_event.set()

    def _shutdown(self) -> None:
        if self.state is DaemonState.STOPPED:
            return
        self._set_state(DaemonState.STOPPING)
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        if self._readers is not None:
            self._readers.shutdown(wait=True)
            self._readers = None
        if self._pool is not None:
            # Drain in-flight generations before the endpoint disappears
            self._pool.shutdown(wait=True)
            self._pool = None
        self.cleanup()
        self._set_state(DaemonState.STOPPED)

    def cleanup(self) -> None:
        """Remove the socket and pid file if this instance created them."""
        if not self._owns_endpoint:
            return
        self.socket_path.unlink(missing_ok=True)
        try:
            if self.pid_path.read_text(encoding="utf-8").strip() == str(os.getpid()):
                self.pid_path.unlink()
        except (OSError, ValueError):
            pass
        self._owns_endpoint = False

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def _dispatch(self, conn: socket.socket) -> None:
        """Hand a fresh connection to a reader. The accept thread never reads."""
        try:
            self._readers.submit(self._handle, conn)
        except RuntimeError:
            conn.close()

    def _handle(self, conn: socket.socket) -> None:
        daemon_cfg = self.config.daemon
        conn.settimeout(min(daemon_cfg.read_timeout, daemon_cfg.client_timeout))
        try:
            request = decode_request(read_line(conn))
        except ProtocolError as e:
            self._reply(conn, ErrorResponse.from_exception(e))
            return
        except OSError as e:
            logger.debug(f"[DAEMON] Dropped connection: {e}")
            conn.close()
            return
        conn.settimeout(daemon_cfg.client_timeout)

        if request.kind == "status":
            self._reply(conn, self.status())
        elif request.kind == "stop":
            self._reply(conn, StopResponse())
            self.request_stop()
        else:
            try:
                self._pool.submit(self._serve_generate, conn, request)
            except RuntimeError:
                self._reply(conn, ErrorResponse(error="daemon_not_running", message="Daemon is stopping"))

    def status(self) -> StatusResponse:
        cache = self.session.cache.stats()
        return StatusResponse(
            uptime_seconds=round(self.session.uptime, 3),
            loaded_providers=self.session.loaded_providers(),
            state=self.state.value,
            cache_entries=cache.entries,
            cache_hits=cache.hits,
            cache_misses=cache.misses,
        )

    def _serve_generate(self, conn: socket.socket, request: DaemonRequest) -> None:
        try:
            result = self.session.pipeline.generate(
                request.prompt,
                provider=request.provider,
                use_cache=request.use_cache,
                cwd=request.cwd,
            )
            response = GenerateResponse(
                command=result.command,
                risk_level=result.risk_level.value,
                cache_hit=result.cache_hit,
                provider=result.provider,
            )
        except AskAIError as e:
            logger.info(f"[DAEMON] Request failed ({e.kind}): {e.message}")
            response = ErrorResponse.from_exception(e)
        except Exception as e:
            logger.exception(f"[DAEMON] Unexpected failure: {e}")
            response = ErrorResponse(error="generation_failed", message=str(e))
        self._reply(conn, response)

    def _reply(self, conn: socket.socket, response) -> None:
        try:
            conn.sendall(encode(response))
        except (OSError, ProtocolError) as e:
            logger.debug(f"[DAEMON] Could not reply: {e}")
        finally:
            conn.close()


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

def run_daemon(config: AskAIConfig, foreground: bool = False) -> None:
    """
    Run a daemon in this process until stopped.

    In the background the log goes to <home>/daemon.log with rotation;
    in the foreground the caller's logging setup is kept.
    """
    if not foreground:
        config.home.mkdir(parents=True, exist_ok=True)
        logger.remove()
        logger.add(
            config.daemon_log_path,
            level="INFO",
            rotation="1 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {message}",
        )

    server = DaemonServer(config)
    atexit.register(server.cleanup)

    def _on_signal(signum, _frame):
        logger.info(f"[DAEMON] Received signal {signum}, stopping")
        server.request_stop()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)

    server.start()
    server.serve_forever()
