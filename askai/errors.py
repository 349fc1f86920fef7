"""
ASKAI error taxonomy.

Every error carries a stable `kind` so it can cross the daemon socket
and be rebuilt on the client side with the same type.
"""

from __future__ import annotations


class AskAIError(Exception):
    kind: str = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class ProviderUnavailable(AskAIError):
    """The backing generator is not installed or not configured."""
    kind = "provider_unavailable"

    def __init__(self, message: str, provider: str = "", remediation: str = ""):
        super().__init__(message)
        self.provider = provider
        self.remediation = remediation


class UnknownProvider(AskAIError, ValueError):
    kind = "unknown_provider"


class GenerationFailed(AskAIError):
    """The generator ran but did not produce a usable command."""
    kind = "generation_failed"


class CommandBlocked(AskAIError):
    """Hard-blocked by the risk classifier. The command is withheld."""
    kind = "blocked"

    def __init__(self, message: str, command: str = "", reason: str = ""):
        super().__init__(message)
        self.command = command
        self.reason = reason


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class CacheIOError(AskAIError):
    kind = "cache_io"


class HistoryIOError(AskAIError):
    kind = "history_io"


# ---------------------------------------------------------------------------
# Daemon / IPC
# ---------------------------------------------------------------------------

class DaemonAlreadyRunning(AskAIError):
    kind = "daemon_already_running"


class DaemonNotRunning(AskAIError):
    kind = "daemon_not_running"


class IPCTimeout(AskAIError):
    kind = "ipc_timeout"


class ProtocolError(AskAIError):
    kind = "protocol_error"


_WIRE_KINDS: dict[str, type[AskAIError]] = {
    cls.kind: cls
    for cls in (
        ProviderUnavailable,
        UnknownProvider,
        GenerationFailed,
        CommandBlocked,
        CacheIOError,
        HistoryIOError,
        DaemonAlreadyRunning,
        DaemonNotRunning,
        IPCTimeout,
        ProtocolError,
    )
}


def error_from_wire(kind: str, message: str) -> AskAIError:
    """Rebuild a typed error from an `{error, message}` response."""
    cls = _WIRE_KINDS.get(kind, AskAIError)
    return cls(message)
