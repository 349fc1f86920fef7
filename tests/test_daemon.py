import json
import socket
import threading
import time

import pytest

from askai.daemon.client import DaemonClient
from askai.daemon.protocol import (
    MAX_MESSAGE_BYTES,
    DaemonRequest,
    GenerateResponse,
    decode_request,
    decode_response,
    encode,
)
from askai.daemon.server import DaemonServer, DaemonState
from askai.daemon.session import DaemonSession
from askai.dispatch import generate
from askai.errors import (
    CommandBlocked,
    DaemonAlreadyRunning,
    DaemonNotRunning,
    IPCTimeout,
    ProtocolError,
    ProviderUnavailable,
)
from askai.event_bus import EventBus
from askai.safety import RiskLevel

from conftest import FakeProvider, factory_for


@pytest.fixture
def daemon_config(config, short_dir):
    config.daemon.socket = str(short_dir / "d.sock")
    config.daemon.pid_file = str(short_dir / "d.pid")
    config.daemon.client_timeout = 5.0
    config.daemon.read_timeout = 0.5
    return config


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def fake(gate):
    def reply(full_prompt):
        if "Request: wipe everything" in full_prompt:
            return "rm -rf /"
        if "Request: take your time" in full_prompt:
            gate.wait(timeout=10)
            return "sleep 1"
        return "echo hi"

    return FakeProvider("gemini", reply=reply)


@pytest.fixture
def running(daemon_config, fake):
    session = DaemonSession(daemon_config, factory=factory_for(fake, FakeProvider("claude", available=False)))
    server = DaemonServer(daemon_config, session=session, bus=EventBus())
    server.start()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.request_stop()
    thread.join(timeout=5)


def _client(config):
    return DaemonClient(config.socket_path, timeout=5.0)


def test_status_reports_uptime_and_providers(running, daemon_config):
    status = _client(daemon_config).status()
    assert status.uptime_seconds >= 0
    assert "gemini" in status.loaded_providers
    assert status.state == "running"
    assert status.cache_entries > 0


def test_prewarmed_prompt_is_a_cache_hit(running, daemon_config, fake):
    response = _client(daemon_config).generate("현재 시간")
    assert response.command == "date"
    assert response.cache_hit is True
    assert response.risk_level == "low"
    assert fake.calls == 0


def test_generated_command_is_cached_in_memory(running, daemon_config, fake):
    client = _client(daemon_config)
    first = client.generate("say hi")
    second = client.generate("say   HI")

    assert first.command == "echo hi"
    assert first.cache_hit is False
    assert second.cache_hit is True
    assert fake.calls == 1


def test_blocked_command_crosses_the_wire_as_blocked(running, daemon_config):
    with pytest.raises(CommandBlocked):
        _client(daemon_config).generate("wipe everything")


def test_unavailable_provider_crosses_the_wire(running, daemon_config):
    with pytest.raises(ProviderUnavailable):
        _client(daemon_config).generate("list files", provider="claude")


def test_concurrent_requests(running, daemon_config):
    results = []

    def ask(i):
        results.append(_client(daemon_config).generate(f"task number {i}").command)

    threads = [threading.Thread(target=ask, args=(i,)) for i in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert results == ["echo hi"] * 6


def test_second_instance_refuses_to_start(running, daemon_config, fake):
    other = DaemonServer(daemon_config, session=DaemonSession(daemon_config, factory=factory_for(fake)), bus=EventBus())
    with pytest.raises(DaemonAlreadyRunning):
        other.start()
    assert daemon_config.socket_path.exists()


def test_pid_file_written(running, daemon_config):
    assert daemon_config.pid_path.read_text().strip().isdigit()


def test_stop_request_cleans_up(daemon_config, fake):
    server = DaemonServer(daemon_config, session=DaemonSession(daemon_config, factory=factory_for(fake)), bus=EventBus())
    server.start()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    assert _client(daemon_config).stop().stopping is True
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert server.state is DaemonState.STOPPED
    assert not daemon_config.socket_path.exists()
    assert not daemon_config.pid_path.exists()
    assert not _client(daemon_config).is_running()


def test_stop_without_daemon(daemon_config):
    with pytest.raises(DaemonNotRunning):
        _client(daemon_config).stop()


def test_stale_socket_is_replaced(daemon_config, fake):
    stale = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    stale.bind(str(daemon_config.socket_path))
    stale.close()
    assert daemon_config.socket_path.exists()

    server = DaemonServer(daemon_config, session=DaemonSession(daemon_config, factory=factory_for(fake)), bus=EventBus())
    server.start()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        assert _client(daemon_config).is_running()
    finally:
        server.request_stop()
        thread.join(timeout=5)


def test_malformed_request_gets_protocol_error(running, daemon_config):
    conn = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    conn.settimeout(5)
    conn.connect(str(daemon_config.socket_path))
    conn.sendall(b'{"kind": "dance"}\n')
    reply = conn.recv(4096)
    conn.close()

    assert json.loads(reply)["error"] == "protocol_error"


def _wait_for(condition, timeout=3.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.02)
    return True


def test_status_answers_while_generation_is_in_flight(running, daemon_config, fake, gate):
    outcome = {}

    def slow():
        outcome["command"] = _client(daemon_config).generate("take your time").command

    worker = threading.Thread(target=slow, daemon=True)
    worker.start()
    try:
        assert _wait_for(lambda: fake.calls == 1)
        status = DaemonClient(daemon_config.socket_path, timeout=2.0).status()
        assert status.state == "running"
        assert "command" not in outcome
    finally:
        gate.set()
        worker.join(timeout=5)

    assert outcome["command"] == "sleep 1"


def test_silent_connection_does_not_block_status(running, daemon_config):
    silent = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    silent.settimeout(3)
    silent.connect(str(daemon_config.socket_path))
    try:
        status = DaemonClient(daemon_config.socket_path, timeout=2.0).status()
        assert status.state == "running"
        # Dropped once the read timeout passes
        assert silent.recv(1) == b""
    finally:
        silent.close()


def test_status_reports_cache_counters(running, daemon_config):
    client = _client(daemon_config)
    client.generate("say hi")
    client.generate("say hi")

    status = client.status()
    assert status.cache_hits == 1
    assert status.cache_misses == 1


def test_uptime_counts_from_warm(daemon_config, fake):
    session = DaemonSession(daemon_config, factory=factory_for(fake))
    session.start_time -= 1000
    session.warm()
    assert session.uptime < 100


def test_dispatch_prefers_daemon(running, daemon_config):
    daemon_config.daemon.enabled = True
    result = generate(daemon_config, "현재 시간")
    assert result.cache_hit is True
    assert result.risk_level is RiskLevel.LOW


def test_dispatch_falls_back_when_daemon_is_down(daemon_config, monkeypatch):
    daemon_config.daemon.enabled = True
    calls = []

    class Direct:
        def generate(self, prompt, **kwargs):
            calls.append(prompt)
            return "direct"

    assert generate(daemon_config, "list files", pipeline=Direct()) == "direct"
    assert calls == ["list files"]


def test_dispatch_falls_back_when_daemon_never_answers(daemon_config):
    daemon_config.daemon.enabled = True
    daemon_config.daemon.client_timeout = 0.3
    hung = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    hung.bind(str(daemon_config.socket_path))
    hung.listen(1)

    class Direct:
        def generate(self, prompt, **kwargs):
            return "direct"

    try:
        with pytest.raises(IPCTimeout):
            DaemonClient.from_config(daemon_config).status()

        started = time.monotonic()
        assert generate(daemon_config, "list files", pipeline=Direct()) == "direct"
        assert time.monotonic() - started < 3
    finally:
        hung.close()


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------

def test_request_encoding_is_one_line():
    data = encode(DaemonRequest(kind="generate", prompt="multi\nline"))
    assert data.endswith(b"\n")
    assert data.count(b"\n") == 1
    assert decode_request(data.rstrip(b"\n")).prompt == "multi\nline"


def test_oversized_message_rejected():
    with pytest.raises(ProtocolError):
        encode(DaemonRequest(kind="generate", prompt="x" * MAX_MESSAGE_BYTES))


def test_error_response_is_raised_as_typed_error():
    with pytest.raises(CommandBlocked):
        decode_response(b'{"error": "blocked", "message": "nope"}', GenerateResponse)


def test_unexpected_response_shape():
    with pytest.raises(ProtocolError):
        decode_response(b'{"stopping": true}', GenerateResponse)
