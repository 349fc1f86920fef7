"""Resident daemon: warm providers and cache behind a local socket."""

from askai.daemon.client import DaemonClient, spawn_daemon
from askai.daemon.server import DaemonServer, DaemonState, run_daemon
from askai.daemon.session import DaemonSession

__all__ = [
    "DaemonClient",
    "DaemonServer",
    "DaemonSession",
    "DaemonState",
    "run_daemon",
    "spawn_daemon",
]
