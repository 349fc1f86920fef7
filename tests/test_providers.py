import subprocess
from types import SimpleNamespace

import pytest

from askai.errors import GenerationFailed, ProviderUnavailable, UnknownProvider
from askai.providers import cli as cli_providers
from askai.providers.api import LiteLLMProvider, _build_kwargs
from askai.providers.cli import ClaudeProvider, CodexProvider, GeminiProvider
from askai.providers.prompts import build_command_prompt
from askai.providers.registry import ProviderPool, create_provider, is_supported
from askai.providers.response import extract_command

from conftest import FakeProvider, factory_for


# ---------------------------------------------------------------------------
# Response extraction
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("ls -la\n", "ls -la"),
        ("```bash\nfind . -name '*.txt'\n```", "find . -name '*.txt'"),
        ("Here is the command: git status", "git status"),
        ("`docker ps`", "docker ps"),
        ("$ df -h", "df -h"),
        ("To list the files sorted by size, use:\nls -lS", "ls -lS"),
    ],
)
def test_extract_command(raw, expected):
    assert extract_command(raw) == expected


@pytest.mark.parametrize("raw", ["", "   \n", "I cannot help with that.", "I'm sorry, but no."])
def test_extract_command_rejects_non_commands(raw):
    with pytest.raises(GenerationFailed):
        extract_command(raw)


def test_prompt_carries_request_context_and_rules():
    prompt = build_command_prompt("show disk usage", "Current directory: /srv", "- Be concise")
    assert "Request: show disk usage" in prompt
    assert "Current directory: /srv" in prompt
    assert "- Be concise" in prompt
    assert prompt.rstrip().endswith("Command:")


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def test_create_provider_variants(config):
    assert isinstance(create_provider("gemini", config), GeminiProvider)
    assert isinstance(create_provider("Claude", config), ClaudeProvider)
    assert isinstance(create_provider("codex", config), CodexProvider)
    litellm_provider = create_provider("litellm", config)
    assert isinstance(litellm_provider, LiteLLMProvider)
    assert litellm_provider.model == config.providers.litellm_model


def test_unknown_provider(config):
    assert not is_supported("copilot")
    with pytest.raises(UnknownProvider):
        create_provider("copilot", config)


def test_cli_command_lines():
    assert GeminiProvider().command_line("p") == ["gemini", "-p", "p"]
    assert ClaudeProvider().command_line("p") == ["claude", "-p", "p"]
    assert CodexProvider().command_line("p") == ["codex", "exec", "p"]


def test_pool_reuses_instances(config):
    fake = FakeProvider("gemini")
    pool = ProviderPool(config, factory=factory_for(fake))

    assert pool.get() is pool.get("gemini")
    assert pool.loaded() == ["gemini"]


def test_pool_preload_reports_availability(config):
    up = FakeProvider("gemini")
    down = FakeProvider("claude", available=False)
    pool = ProviderPool(config, factory=factory_for(up, down))

    assert pool.preload(["gemini", "claude", "nope"]) == {"gemini": True, "claude": False}


# ---------------------------------------------------------------------------
# Gateway behavior
# ---------------------------------------------------------------------------

def test_availability_is_probed_once():
    probes = []

    class Counting(FakeProvider):
        def probe(self):
            probes.append(1)
            return True

    provider = Counting("gemini")
    provider.is_available()
    Counting("gemini").is_available()

    assert len(probes) == 1


def test_unavailable_provider_raises_with_remediation():
    provider = FakeProvider("claude", available=False)
    with pytest.raises(ProviderUnavailable) as exc:
        provider.generate("list files")
    assert exc.value.remediation == provider.install_hint
    assert provider.calls == 0


def test_generate_extracts_command():
    provider = FakeProvider(reply="```sh\ndu -sh *\n```")
    assert provider.generate("folder sizes", "Shell: bash") == "du -sh *"
    assert "Request: folder sizes" in provider.prompts[0]


def test_cli_provider_nonzero_exit(monkeypatch):
    monkeypatch.setattr(cli_providers.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(
        cli_providers.subprocess,
        "run",
        lambda *a, **kw: subprocess.CompletedProcess(a[0], 1, stdout="", stderr="quota exceeded"),
    )

    with pytest.raises(GenerationFailed, match="quota exceeded"):
        GeminiProvider().generate("list files")


def test_cli_provider_timeout(monkeypatch):
    monkeypatch.setattr(cli_providers.shutil, "which", lambda name: f"/usr/bin/{name}")

    def slow(*a, **kw):
        raise subprocess.TimeoutExpired(a[0], kw.get("timeout"))

    monkeypatch.setattr(cli_providers.subprocess, "run", slow)

    with pytest.raises(GenerationFailed, match="did not answer"):
        ClaudeProvider(timeout=1).generate("list files")


def test_cli_provider_success(monkeypatch):
    seen = {}

    def fake_run(argv, **kw):
        seen["argv"] = argv
        return subprocess.CompletedProcess(argv, 0, stdout="ls -la\n", stderr="")

    monkeypatch.setattr(cli_providers.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(cli_providers.subprocess, "run", fake_run)

    assert CodexProvider().generate("list files") == "ls -la"
    assert seen["argv"][:2] == ["codex", "exec"]


def test_missing_cli_is_unavailable(monkeypatch):
    monkeypatch.setattr(cli_providers.shutil, "which", lambda name: None)
    with pytest.raises(ProviderUnavailable):
        GeminiProvider().generate("list files")


def test_litellm_probe_uses_api_keys(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    assert LiteLLMProvider("gemini/gemini-2.0-flash").probe() is False

    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    assert LiteLLMProvider("gemini/gemini-2.0-flash").probe() is True
    assert LiteLLMProvider("ollama/llama3").probe() is True


def test_litellm_invoke(monkeypatch):
    import litellm

    captured = {}

    def fake_completion(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content="git log --oneline -5")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    monkeypatch.setattr(litellm, "completion", fake_completion)
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")

    provider = LiteLLMProvider("openai/gpt-4o-mini", timeout=5)
    assert provider.generate("last five commits") == "git log --oneline -5"
    assert captured["model"] == "openai/gpt-4o-mini"
    assert captured["temperature"] == 0.0


def test_litellm_failure_becomes_generation_failed(monkeypatch):
    import litellm

    def boom(**kwargs):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(litellm, "completion", boom)
    with pytest.raises(GenerationFailed, match="rate limited"):
        LiteLLMProvider("ollama/llama3").invoke("p")


def test_reasoning_models_skip_temperature():
    assert "temperature" not in _build_kwargs("openai/o3-mini", [], 5)
    assert "temperature" not in _build_kwargs("gpt-5", [], 5)
