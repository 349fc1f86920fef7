"""
Local IPC wire format.

One newline-terminated UTF-8 JSON object per direction, one request per
connection. Every response is either a success shape or
`{"error": <kind>, "message": ...}`.
"""

from __future__ import annotations

import json
import socket
from typing import Literal, Union

from pydantic import BaseModel, ValidationError

from askai.errors import AskAIError, ProtocolError, error_from_wire

MAX_MESSAGE_BYTES = 64 * 1024


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class DaemonRequest(BaseModel):
    kind: Literal["generate", "status", "stop"]
    prompt: str = ""
    provider: str | None = None
    use_cache: bool = True
    cwd: str | None = None


class GenerateResponse(BaseModel):
    command: str
    risk_level: str
    cache_hit: bool
    provider: str = ""


class StatusResponse(BaseModel):
    uptime_seconds: float
    loaded_providers: list[str]
    state: str = "running"
    cache_entries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


class StopResponse(BaseModel):
    stopping: bool = True


class ErrorResponse(BaseModel):
    error: str
    message: str = ""

    @classmethod
    def from_exception(cls, exc: AskAIError) -> "ErrorResponse":
        return cls(error=exc.kind, message=exc.message or str(exc))

    def to_exception(self) -> AskAIError:
        return error_from_wire(self.error, self.message)


Response = Union[GenerateResponse, StatusResponse, StopResponse, ErrorResponse]


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

def encode(message: BaseModel) -> bytes:
    data = (message.model_dump_json(exclude_none=True) + "\n").encode("utf-8")
    if len(data) > MAX_MESSAGE_BYTES:
        raise ProtocolError(f"Message exceeds {MAX_MESSAGE_BYTES} bytes")
    return data


def read_line(conn: socket.socket) -> bytes:
    """Read up to the first newline. Raises ProtocolError on overflow or early EOF."""
    buf = bytearray()
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            if buf:
                break
            raise ProtocolError("Connection closed before a message was received")
        buf.extend(chunk)
        if b"\n" in chunk:
            break
        if len(buf) > MAX_MESSAGE_BYTES:
            raise ProtocolError(f"Message exceeds {MAX_MESSAGE_BYTES} bytes")
    line = bytes(buf).split(b"\n", 1)[0]
    if len(line) > MAX_MESSAGE_BYTES:
        raise ProtocolError(f"Message exceeds {MAX_MESSAGE_BYTES} bytes")
    return line


def _load(line: bytes) -> dict:
    try:
        data = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError(f"Malformed message: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    return data


def decode_request(line: bytes) -> DaemonRequest:
    try:
        return DaemonRequest.model_validate(_load(line))
    except ValidationError as e:
        raise ProtocolError(f"Invalid request: {e.errors()[0]['msg']}") from e


def decode_response(line: bytes, expected: type[BaseModel]) -> BaseModel:
    """
    Parse a response line. Error responses are raised as their typed
    exception; anything else must match `expected`.
    """
    data = _load(line)
    if "error" in data:
        raise ErrorResponse.model_validate(data).to_exception()
    try:
        return expected.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Unexpected response: {e.errors()[0]['msg']}") from e
